"""Model Context Protocol server exposing the Webflow and Resend tools."""

from __future__ import annotations

import json
import os
from contextlib import asynccontextmanager
from typing import Any

import anyio
from dotenv import load_dotenv
from mcp import types
from mcp.server import Server
from mcp.server.stdio import stdio_server
from pydantic import ValidationError

from sitemail_mcp.config import ConfigurationError, Settings
from sitemail_mcp.logging import configure_logging, get_logger
from sitemail_mcp.resend_tools import build_resend_tools
from sitemail_mcp.tooling import ToolDescriptor
from sitemail_mcp.webflow_tools import MAX_INLINE_SCRIPT_LENGTH, build_webflow_tools

logger = get_logger(__name__)


def _json(data: Any) -> str:
    return json.dumps(data, indent=2, sort_keys=True)


def build_tools(settings: Settings) -> dict[str, ToolDescriptor]:
    """Return every tool descriptor, Webflow first, keyed by tool name."""
    return {**build_webflow_tools(settings), **build_resend_tools(settings)}


@asynccontextmanager
async def lifespan(app: Server):
    """Load configuration and build the tool set for the server lifecycle."""
    load_dotenv(override=True)
    configure_logging(os.getenv("SITEMAIL_LOG_LEVEL", "INFO"))

    try:
        settings = Settings.from_env()
    except ConfigurationError as e:
        raise RuntimeError(f"Failed to load configuration: {e}") from e

    app.tools = build_tools(settings)  # type: ignore[attr-defined]
    logger.info(
        "server_ready",
        tools=len(app.tools),  # type: ignore[attr-defined]
        webflow_configured=bool(settings.webflow_api_key),
        resend_configured=bool(settings.resend_api_key),
    )
    yield


server = Server(
    name="sitemail-mcp",
    version="0.1.0",
    instructions=(
        "Tools for managing a Webflow site and sending email through Resend.\n"
        "\n"
        "Read document:sitemail/configuration to learn which credentials and defaults are set. "
        "Webflow tools take an optional siteId; when it is omitted the configured default site is used. "
        "Call list_sites first if you need a site ID or custom domain IDs.\n"
        "\n"
        "Tools marked as requiring approval (publish_site, add_custom_code, remove_contact) change "
        "live state. Confirm the exact arguments with the user before calling them.\n"
        "\n"
        "Before add_custom_code, read document:webflow/custom-code. Inline scripts are limited to "
        f"{MAX_INLINE_SCRIPT_LENGTH} characters and applying a script replaces the scripts on the target.\n"
        "\n"
        "Every tool reports failures in its result (success=false or an error field) instead of raising. "
        "Check the error field before assuming a call succeeded."
    ),
    lifespan=lifespan,
)


RESOURCE_DEFINITIONS: dict[str, dict[str, str]] = {
    "sitemail-configuration": {
        "name": "sitemail-configuration",
        "title": "Server Configuration",
        "uri": "document:sitemail/configuration",
        "description": "Environment variables read by the server and what each one controls.",
        "mime_type": "text/markdown",
        "content": (
            "# Configuration\n"
            "\n"
            "Variables are read from the environment (and a `.env` file) when the server starts.\n"
            "\n"
            "- `WEBFLOW_API_KEY`: Webflow site token. Required by every Webflow tool.\n"
            "- `WEBFLOW_SITE_ID`: Default site used when a tool call omits `siteId`.\n"
            "- `WEBFLOW_BASE_URL`: Overrides the API base URL (defaults to `https://api.webflow.com/v2`).\n"
            "- `RESEND_API_KEY`: Resend API key. Required by every Resend tool.\n"
            "- `RESEND_EMAIL_DOMAIN`: Verified sending domain, mentioned in the send tool descriptions.\n"
            "- `SITEMAIL_TIMEOUT_SECONDS`: Optional HTTP timeout for Webflow calls.\n"
            "- `SITEMAIL_LOG_LEVEL`: Log level for stderr logging (defaults to `INFO`).\n"
            "\n"
            "A missing key does not stop the server; the tools that need it return an error instead.\n"
        ),
    },
    "webflow-custom-code": {
        "name": "webflow-custom-code",
        "title": "Webflow Custom Code Rules",
        "uri": "document:webflow/custom-code",
        "description": "How add_custom_code registers and applies inline scripts, and its limits.",
        "mime_type": "text/markdown",
        "content": (
            "# Custom Code\n"
            "\n"
            "`add_custom_code` runs two API calls in order:\n"
            "\n"
            "1. `POST /sites/{siteId}/registered_scripts/inline` registers the script and returns its ID.\n"
            "2. `PUT /sites/{siteId}/custom_code` or `PUT /pages/{pageId}/custom_code` applies it.\n"
            "\n"
            f"- `sourceCode` must be at most {MAX_INLINE_SCRIPT_LENGTH} characters, without `<script>` tags.\n"
            "- `pageId` is required when `target` is `page`.\n"
            "- If step 2 fails the script stays registered; the result includes its `scriptId`.\n"
            "- Applying replaces the scripts on the target. Use `list_custom_code` to review what is there first.\n"
        ),
    },
}

RESOURCE_DEFINITIONS_BY_URI = {info["uri"]: info for info in RESOURCE_DEFINITIONS.values()}

PROMPT_DEFINITIONS: dict[str, dict[str, str]] = {
    "audit-site-forms": {
        "description": "Summarise the forms on the default Webflow site and their recent submissions.",
        "text": (
            "List the forms on my Webflow site. For each form, fetch its recent submissions using "
            "the form's formElementId and summarise how many came in and any common themes."
        ),
    },
    "email-delivery-report": {
        "description": "Review recently sent emails and highlight delivery problems.",
        "text": (
            "List my recently sent emails and group them by last delivery event. "
            "Call out anything that bounced or was marked as spam."
        ),
    },
}


def _tool_title(tool: ToolDescriptor) -> str:
    title = tool.name.replace("_", " ").title()
    return f"{title} (requires approval)" if tool.needs_approval else title


def _get_tools() -> dict[str, ToolDescriptor]:
    """Get the tool descriptors built during the server lifespan."""
    tools = getattr(server, "tools", None)  # type: ignore[attr-defined]
    if tools is None:
        raise RuntimeError("Tools not initialised.")
    return tools


@server.list_tools()
async def list_tools(_req: types.ListToolsRequest | None = None) -> types.ListToolsResult:
    tools = [
        types.Tool(
            name=tool.name,
            title=_tool_title(tool),
            description=tool.description,
            inputSchema=tool.input_schema(),
            outputSchema=tool.output_schema(),
            annotations=types.ToolAnnotations(
                readOnlyHint=tool.read_only,
                destructiveHint=tool.needs_approval,
                openWorldHint=True,
            ),
        )
        for tool in _get_tools().values()
    ]
    return types.ListToolsResult(tools=tools)


@server.list_resources()
async def list_resources(_req: types.ListResourcesRequest | None = None) -> types.ListResourcesResult:
    resources = [
        types.Resource(
            name=info["name"],
            uri=info["uri"],
            description=info["description"],
            mimeType=info["mime_type"],
            title=info["title"],
        )
        for info in RESOURCE_DEFINITIONS.values()
    ]
    return types.ListResourcesResult(resources=resources)


@server.read_resource()
async def read_resource(uri: str):
    info = RESOURCE_DEFINITIONS_BY_URI.get(str(uri))
    if not info:
        raise ValueError(f"Unknown resource URI: {uri}")
    return [
        types.TextResourceContents(
            uri=info["uri"],
            text=info["content"],
            mimeType=info["mime_type"],
        )
    ]


@server.list_prompts()
async def list_prompts(_req: types.ListPromptsRequest | None = None) -> types.ListPromptsResult:
    prompts = [
        types.Prompt(name=name, description=info["description"])
        for name, info in PROMPT_DEFINITIONS.items()
    ]
    return types.ListPromptsResult(prompts=prompts)


@server.get_prompt()
async def get_prompt(name: str, arguments: dict[str, str] | None = None) -> types.GetPromptResult:
    info = PROMPT_DEFINITIONS.get(name)
    if not info:
        raise ValueError(f"Prompt '{name}' not found.")
    return types.GetPromptResult(
        description=info["description"],
        messages=[
            types.PromptMessage(
                role="user",
                content=types.TextContent(type="text", text=info["text"]),
            )
        ],
    )


@server.call_tool()
async def call_tool(tool_name: str, arguments: dict[str, Any]) -> types.CallToolResult | tuple[Any, Any]:
    tool = _get_tools().get(tool_name)
    if tool is None:
        return types.CallToolResult(
            content=[types.TextContent(type="text", text=f"Unknown tool: {tool_name}")],
            isError=True,
        )
    try:
        result = await tool.execute(arguments or {})
    except ValidationError as exc:
        return types.CallToolResult(
            content=[types.TextContent(type="text", text=f"Invalid arguments for {tool_name}: {exc}")],
            isError=True,
        )
    payload = result.dump()
    return (
        [types.TextContent(type="text", text=_json(payload))],
        payload,
    )


async def _run() -> None:
    initialization_options = server.create_initialization_options()
    async with stdio_server() as (read_stream, write_stream):
        await server.run(read_stream, write_stream, initialization_options)


def main() -> None:
    anyio.run(_run)


if __name__ == "__main__":
    main()
