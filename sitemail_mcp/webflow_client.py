from __future__ import annotations

# Lightweight Webflow Data API v2 client helpers.

from typing import Any, Dict, Mapping, Optional

import httpx

from sitemail_mcp.config import Settings
from sitemail_mcp.logging import get_logger

logger = get_logger(__name__)


class ApiError(RuntimeError):
    """Raised when the Webflow API returns a non-successful response."""

    def __init__(self, status_code: int, body: str) -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(f"Webflow API error ({status_code}): {body}")


class WebflowClient:
    """Minimal async client for the Webflow REST API.

    Each request opens and closes its own ``httpx.AsyncClient``; nothing is
    pooled between tool invocations.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._settings = settings
        self._transport = transport

    @staticmethod
    def _serialize_param_value(value: Any) -> Any:
        if isinstance(value, bool):
            return str(value).lower()
        return value

    def _prepare_query(self, params: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
        query: Dict[str, Any] = {}
        for key, value in (params or {}).items():
            if value is None:
                continue
            query[key] = self._serialize_param_value(value)
        return query

    def _build_client(self) -> httpx.AsyncClient:
        kwargs: Dict[str, Any] = {}
        if self._settings.timeout is not None:
            kwargs["timeout"] = self._settings.timeout
        if self._transport is not None:
            kwargs["transport"] = self._transport
        return httpx.AsyncClient(**kwargs)

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Mapping[str, Any]] = None,
        json_body: Optional[Mapping[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Execute an HTTP request and raise ApiError on failure."""
        api_key = self._settings.require_webflow_api_key()
        headers = {
            "Authorization": f"Bearer {api_key}",
            "Accept": "application/json",
        }
        if json_body is not None:
            headers["Content-Type"] = "application/json"

        url = self._settings.webflow_base_url.rstrip("/") + path
        async with self._build_client() as client:
            response = await client.request(
                method,
                url,
                params=self._prepare_query(params) or None,
                json=json_body,
                headers=headers,
            )

        if not response.is_success:
            raise ApiError(response.status_code, response.text)
        logger.debug("webflow_request", method=method, path=path, status=response.status_code)
        if not response.content:
            return {}
        payload = response.json()
        return payload if isinstance(payload, dict) else {"data": payload}
