import json
from typing import Any

import httpx
import pytest

from sitemail_mcp.config import Settings


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def settings() -> Settings:
    return Settings(
        webflow_api_key="test-api-key",
        webflow_site_id="test-site-id",
        resend_api_key="re_test_key",
    )


class FakeWebflow:
    """Queue of canned Webflow responses served through httpx.MockTransport."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self._responses: list[tuple[int, Any]] = []
        self.transport = httpx.MockTransport(self._handle)

    def respond(self, body: Any, status: int = 200) -> None:
        self._responses.append((status, body))

    def body(self, index: int) -> Any:
        return json.loads(self.requests[index].content)

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if not self._responses:
            raise AssertionError(f"Unexpected request: {request.method} {request.url}")
        status, body = self._responses.pop(0)
        return httpx.Response(status, json=body)


@pytest.fixture
def webflow() -> FakeWebflow:
    return FakeWebflow()
