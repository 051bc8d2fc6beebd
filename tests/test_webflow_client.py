import httpx
import pytest

from sitemail_mcp.config import ConfigurationError, Settings
from sitemail_mcp.webflow_client import ApiError, WebflowClient

pytestmark = pytest.mark.anyio


async def test_get_request_skips_unset_params(settings, webflow) -> None:
    webflow.respond({"ok": True})
    client = WebflowClient(settings, transport=webflow.transport)

    payload = await client.request("GET", "/sites/s1/pages", params={"limit": 5, "offset": None})

    assert payload == {"ok": True}
    request = webflow.requests[0]
    assert str(request.url) == "https://api.webflow.com/v2/sites/s1/pages?limit=5"
    assert request.headers["Authorization"] == "Bearer test-api-key"
    assert request.headers["Accept"] == "application/json"
    assert "Content-Type" not in request.headers


async def test_boolean_params_are_lowercase(settings, webflow) -> None:
    webflow.respond({})
    client = WebflowClient(settings, transport=webflow.transport)

    await client.request("GET", "/sites", params={"archived": False})

    assert webflow.requests[0].url.params["archived"] == "false"


async def test_body_sets_json_content_type(settings, webflow) -> None:
    webflow.respond({"id": "x"})
    client = WebflowClient(settings, transport=webflow.transport)

    await client.request("POST", "/sites/s1/publish", json_body={"publishToWebflowSubdomain": False})

    assert webflow.requests[0].headers["Content-Type"] == "application/json"
    assert webflow.body(0) == {"publishToWebflowSubdomain": False}


async def test_error_status_raises_api_error_with_body(settings) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(403, text="site token lacks scope")

    client = WebflowClient(settings, transport=httpx.MockTransport(handler))

    with pytest.raises(ApiError) as excinfo:
        await client.request("GET", "/sites")

    assert excinfo.value.status_code == 403
    assert excinfo.value.body == "site token lacks scope"
    assert str(excinfo.value) == "Webflow API error (403): site token lacks scope"


async def test_empty_success_body_returns_empty_mapping(settings) -> None:
    client = WebflowClient(settings, transport=httpx.MockTransport(lambda request: httpx.Response(204)))

    assert await client.request("PUT", "/sites/s1/custom_code", json_body={"scripts": []}) == {}


async def test_missing_api_key_raises_before_request(webflow) -> None:
    client = WebflowClient(Settings(), transport=webflow.transport)

    with pytest.raises(ConfigurationError):
        await client.request("GET", "/sites")

    assert webflow.requests == []


async def test_custom_base_url(webflow) -> None:
    webflow.respond({})
    settings = Settings(webflow_api_key="k", webflow_base_url="http://localhost:8080/v2/")
    client = WebflowClient(settings, transport=webflow.transport)

    await client.request("GET", "/sites")

    assert str(webflow.requests[0].url) == "http://localhost:8080/v2/sites"
