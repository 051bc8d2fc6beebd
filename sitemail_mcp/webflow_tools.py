"""Webflow site, page, form and custom code tools."""

from __future__ import annotations

from typing import Any, Literal, Mapping, Optional

import httpx
from pydantic import Field

from sitemail_mcp.config import Settings
from sitemail_mcp.logging import get_logger
from sitemail_mcp.normalize import as_records, get_string_field, optional_str, optional_true
from sitemail_mcp.tooling import ToolDescriptor, ToolInput, ToolModel, ToolOutput, ValidationError
from sitemail_mcp.webflow_client import WebflowClient

logger = get_logger(__name__)

MAX_INLINE_SCRIPT_LENGTH = 2000


# ── Projections ─────────────────────────────────────────────────────────────


class Pagination(ToolModel):
    limit: int = 0
    offset: int = 0
    total: int = 0


class Seo(ToolModel):
    title: Optional[str] = None
    description: Optional[str] = None


class Site(ToolModel):
    id: str
    display_name: str
    short_name: str
    last_published: Optional[str] = None
    last_updated: Optional[str] = None
    created_on: Optional[str] = None
    preview_url: Optional[str] = None
    time_zone: Optional[str] = None
    workspace_id: Optional[str] = None
    custom_domains: Optional[list[Any]] = None


class Page(ToolModel):
    id: str
    title: str
    slug: str
    parent_id: Optional[str] = None
    collection_id: Optional[str] = None
    created_on: Optional[str] = None
    last_updated: Optional[str] = None
    published_path: Optional[str] = None
    archived: Optional[bool] = None
    draft: Optional[bool] = None
    seo: Optional[Seo] = None


class Form(ToolModel):
    id: str
    display_name: str
    site_id: Optional[str] = None
    page_id: Optional[str] = None
    page_name: Optional[str] = None
    form_element_id: Optional[str] = None
    fields: Optional[dict[str, Any]] = None
    created_on: Optional[str] = None
    last_updated: Optional[str] = None


class FormSubmission(ToolModel):
    id: str
    display_name: str
    site_id: Optional[str] = None
    form_id: Optional[str] = None
    date_submitted: Optional[str] = None
    form_response: Optional[dict[str, Any]] = None


class ScriptRef(ToolModel):
    id: str
    location: str = ""
    version: str = ""


class CustomCodeBlock(ToolModel):
    site_id: str
    type: str
    page_id: Optional[str] = None
    scripts: Optional[list[ScriptRef]] = None
    created_on: Optional[str] = None
    last_updated: Optional[str] = None


def _pagination(payload: Mapping[str, Any]) -> Optional[Pagination]:
    raw = payload.get("pagination")
    if not isinstance(raw, Mapping):
        return None
    try:
        return Pagination(
            limit=int(raw.get("limit") or 0),
            offset=int(raw.get("offset") or 0),
            total=int(raw.get("total") or 0),
        )
    except (TypeError, ValueError):
        # Unparseable echo; the listing itself is still valid.
        return None


def _to_site(raw: Mapping[str, Any]) -> Site:
    domains = raw.get("customDomains") or raw.get("custom_domains")
    return Site(
        id=str(raw.get("id") or ""),
        display_name=str(get_string_field(raw, "display_name", "displayName") or ""),
        short_name=str(get_string_field(raw, "short_name", "shortName") or ""),
        last_published=get_string_field(raw, "last_published", "lastPublished"),
        last_updated=get_string_field(raw, "last_updated", "lastUpdated"),
        created_on=get_string_field(raw, "created_on", "createdOn"),
        preview_url=get_string_field(raw, "preview_url", "previewUrl"),
        time_zone=get_string_field(raw, "time_zone", "timeZone"),
        workspace_id=get_string_field(raw, "workspace_id", "workspaceId"),
        custom_domains=list(domains) if isinstance(domains, list) and domains else None,
    )


def _to_page(raw: Mapping[str, Any]) -> Page:
    seo = raw.get("seo")
    return Page(
        id=str(raw.get("id") or ""),
        title=str(raw.get("title") or ""),
        slug=str(raw.get("slug") or ""),
        parent_id=get_string_field(raw, "parent_id", "parentId"),
        collection_id=get_string_field(raw, "collection_id", "collectionId"),
        created_on=get_string_field(raw, "created_on", "createdOn"),
        last_updated=get_string_field(raw, "last_updated", "lastUpdated"),
        published_path=get_string_field(raw, "published_path", "publishedPath"),
        archived=optional_true(raw.get("archived")),
        draft=optional_true(raw.get("draft")),
        seo=(
            Seo(title=optional_str(seo.get("title")), description=optional_str(seo.get("description")))
            if isinstance(seo, Mapping)
            else None
        ),
    )


def _to_form(raw: Mapping[str, Any]) -> Form:
    fields = raw.get("fields")
    return Form(
        id=str(raw.get("id") or ""),
        display_name=str(get_string_field(raw, "display_name", "displayName") or ""),
        site_id=get_string_field(raw, "site_id", "siteId"),
        page_id=get_string_field(raw, "page_id", "pageId"),
        page_name=get_string_field(raw, "page_name", "pageName"),
        form_element_id=get_string_field(raw, "form_element_id", "formElementId"),
        fields=dict(fields) if isinstance(fields, Mapping) and fields else None,
        created_on=get_string_field(raw, "created_on", "createdOn"),
        last_updated=get_string_field(raw, "last_updated", "lastUpdated"),
    )


def _to_submission(raw: Mapping[str, Any]) -> FormSubmission:
    response = raw.get("formResponse") or raw.get("form_response")
    return FormSubmission(
        id=str(raw.get("id") or ""),
        display_name=str(get_string_field(raw, "display_name", "displayName") or ""),
        site_id=get_string_field(raw, "site_id", "siteId"),
        form_id=get_string_field(raw, "form_id", "formId"),
        date_submitted=get_string_field(raw, "date_submitted", "dateSubmitted"),
        form_response=dict(response) if isinstance(response, Mapping) else None,
    )


def _to_block(raw: Mapping[str, Any]) -> CustomCodeBlock:
    scripts = as_records(raw.get("scripts"))
    return CustomCodeBlock(
        site_id=str(get_string_field(raw, "site_id", "siteId") or ""),
        type=str(raw.get("type") or ""),
        page_id=get_string_field(raw, "page_id", "pageId"),
        scripts=[
            ScriptRef(
                id=str(script.get("id") or ""),
                location=str(script.get("location") or ""),
                version=str(script.get("version") or ""),
            )
            for script in scripts
        ]
        or None,
        created_on=get_string_field(raw, "created_on", "createdOn"),
        last_updated=get_string_field(raw, "last_updated", "lastUpdated"),
    )


# ── Inputs ──────────────────────────────────────────────────────────────────


class ListSitesInput(ToolInput):
    pass


class SiteScopedInput(ToolInput):
    site_id: Optional[str] = Field(
        default=None,
        description="Webflow site ID. Falls back to WEBFLOW_SITE_ID when omitted.",
    )


class PagedInput(SiteScopedInput):
    limit: Optional[int] = Field(default=None, ge=1, le=100, description="Maximum records to return (1-100).")
    offset: Optional[int] = Field(default=None, ge=0, description="Offset used for pagination.")


class ListPagesInput(PagedInput):
    locale: Optional[str] = Field(default=None, description="Locale ID to list localized pages for.")


class ListFormsInput(PagedInput):
    pass


class ListFormSubmissionsInput(PagedInput):
    element_id: Optional[str] = Field(
        default=None,
        description="Form element ID to filter submissions by (formElementId from list_forms).",
    )


class ListCustomCodeInput(PagedInput):
    pass


class PublishSiteInput(SiteScopedInput):
    custom_domains: Optional[list[str]] = Field(
        default=None,
        description="IDs of custom domains to publish to. Use IDs from list_sites, never domain names.",
    )
    publish_to_webflow_subdomain: Optional[bool] = Field(
        default=None,
        description="Publish to the site's webflow.io subdomain. Defaults to false.",
    )


class AddCustomCodeInput(SiteScopedInput):
    target: Literal["site", "page"] = Field(description="Apply the script site-wide or to a single page.")
    page_id: Optional[str] = Field(default=None, description="Page ID. Required when target is 'page'.")
    source_code: str = Field(description="Inline JavaScript without <script> tags. Max 2000 characters.")
    display_name: str = Field(description="Human-readable script name shown in Webflow.")
    version: str = Field(description="Semantic version of the script, e.g. '1.0.0'.")
    location: Literal["header", "footer"] = Field(
        default="header",
        description="Where the script is placed on the page.",
    )


# ── Outputs ─────────────────────────────────────────────────────────────────


class ListSitesResult(ToolOutput):
    sites: list[Site] = Field(default_factory=list)
    count: int = 0


class ListPagesResult(ToolOutput):
    pages: list[Page] = Field(default_factory=list)
    count: int = 0
    pagination: Optional[Pagination] = None


class ListFormsResult(ToolOutput):
    forms: list[Form] = Field(default_factory=list)
    count: int = 0
    pagination: Optional[Pagination] = None


class ListFormSubmissionsResult(ToolOutput):
    form_submissions: list[FormSubmission] = Field(default_factory=list)
    count: int = 0
    pagination: Optional[Pagination] = None


class ListCustomCodeResult(ToolOutput):
    blocks: list[CustomCodeBlock] = Field(default_factory=list)
    count: int = 0
    pagination: Optional[Pagination] = None


class PublishSiteResult(ToolOutput):
    success: bool
    published_domains: Optional[list[Any]] = None
    published_to_webflow_subdomain: Optional[bool] = None


class AddCustomCodeResult(ToolOutput):
    success: bool
    script_id: Optional[str] = None
    applied_to: Optional[str] = None


# ── Tools ───────────────────────────────────────────────────────────────────


def build_webflow_tools(
    settings: Settings,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> dict[str, ToolDescriptor]:
    """
    Build the Webflow tool descriptors bound to one configuration.

    Args:
        settings: Credentials and defaults. The API key is checked per call.
        transport: Optional httpx transport, used by tests to stub the API.

    Returns:
        Mapping of tool name to descriptor.
    """
    client = WebflowClient(settings, transport=transport)

    async def list_sites(params: ListSitesInput) -> ListSitesResult:
        payload = await client.request("GET", "/sites")
        sites = [_to_site(raw) for raw in as_records(payload.get("sites"))]
        return ListSitesResult(sites=sites, count=len(sites))

    async def publish_site(params: PublishSiteInput) -> PublishSiteResult:
        site_id = settings.resolve_site_id(params.site_id)
        body: dict[str, Any] = {
            "publishToWebflowSubdomain": bool(params.publish_to_webflow_subdomain),
        }
        if params.custom_domains:
            body["customDomains"] = list(params.custom_domains)
        payload = await client.request("POST", f"/sites/{site_id}/publish", json_body=body)
        domains = payload.get("customDomains")
        return PublishSiteResult(
            success=True,
            published_domains=list(domains) if isinstance(domains, list) and domains else None,
            published_to_webflow_subdomain=optional_true(payload.get("publishToWebflowSubdomain")),
        )

    async def list_pages(params: ListPagesInput) -> ListPagesResult:
        site_id = settings.resolve_site_id(params.site_id)
        payload = await client.request(
            "GET",
            f"/sites/{site_id}/pages",
            params={"limit": params.limit, "offset": params.offset, "localeId": params.locale},
        )
        pages = [_to_page(raw) for raw in as_records(payload.get("pages"))]
        return ListPagesResult(pages=pages, count=len(pages), pagination=_pagination(payload))

    async def list_forms(params: ListFormsInput) -> ListFormsResult:
        site_id = settings.resolve_site_id(params.site_id)
        payload = await client.request(
            "GET",
            f"/sites/{site_id}/forms",
            params={"limit": params.limit, "offset": params.offset},
        )
        forms = [_to_form(raw) for raw in as_records(payload.get("forms"))]
        return ListFormsResult(forms=forms, count=len(forms), pagination=_pagination(payload))

    async def list_form_submissions(params: ListFormSubmissionsInput) -> ListFormSubmissionsResult:
        site_id = settings.resolve_site_id(params.site_id)
        payload = await client.request(
            "GET",
            f"/sites/{site_id}/form_submissions",
            params={"elementId": params.element_id, "limit": params.limit, "offset": params.offset},
        )
        submissions = [_to_submission(raw) for raw in as_records(payload.get("formSubmissions"))]
        return ListFormSubmissionsResult(
            form_submissions=submissions,
            count=len(submissions),
            pagination=_pagination(payload),
        )

    async def list_custom_code(params: ListCustomCodeInput) -> ListCustomCodeResult:
        site_id = settings.resolve_site_id(params.site_id)
        payload = await client.request(
            "GET",
            f"/sites/{site_id}/custom_code/blocks",
            params={"limit": params.limit, "offset": params.offset},
        )
        blocks = [_to_block(raw) for raw in as_records(payload.get("blocks"))]
        return ListCustomCodeResult(blocks=blocks, count=len(blocks), pagination=_pagination(payload))

    async def add_custom_code(params: AddCustomCodeInput) -> AddCustomCodeResult:
        if params.target == "page" and not params.page_id:
            raise ValidationError("pageId is required when target is 'page'.")
        length = len(params.source_code)
        if length > MAX_INLINE_SCRIPT_LENGTH:
            raise ValidationError(
                f"sourceCode is {length} characters, which exceeds the "
                f"{MAX_INLINE_SCRIPT_LENGTH} character limit for inline scripts. "
                "Host the script externally and load it with a short loader instead."
            )
        site_id = settings.resolve_site_id(params.site_id)

        registered = await client.request(
            "POST",
            f"/sites/{site_id}/registered_scripts/inline",
            json_body={
                "sourceCode": params.source_code,
                "version": params.version,
                "displayName": params.display_name,
            },
        )
        script_id = optional_str(registered.get("id"))
        if not script_id:
            raise RuntimeError("Script registration failed: no script ID returned")

        if params.target == "page":
            path = f"/pages/{params.page_id}/custom_code"
            applied_to = f"page:{params.page_id}"
        else:
            path = f"/sites/{site_id}/custom_code"
            applied_to = f"site:{site_id}"

        # The registered script stays upstream if this call fails; there is no
        # deregistration endpoint for inline scripts.
        try:
            await client.request(
                "PUT",
                path,
                json_body={
                    "scripts": [
                        {"id": script_id, "location": params.location, "version": params.version}
                    ]
                },
            )
        except Exception as exc:  # noqa: BLE001
            logger.error("custom_code_apply_failed", script_id=script_id, target=applied_to, error=str(exc))
            return AddCustomCodeResult(
                success=False,
                script_id=script_id,
                error=f"Script {script_id} was registered but could not be applied to {applied_to}: {exc}",
            )
        return AddCustomCodeResult(success=True, script_id=script_id, applied_to=applied_to)

    tools = [
        ToolDescriptor(
            name="list_sites",
            description=(
                "List all Webflow sites the API token can access. "
                "Use this tool to discover site IDs, custom domain IDs, and publish timestamps. "
                "Custom domain IDs returned here are what publish_site expects."
            ),
            input_model=ListSitesInput,
            output_model=ListSitesResult,
            handler=list_sites,
            on_error=lambda params, message: ListSitesResult(error=message),
            read_only=True,
            input_examples=({},),
            fallback_message="Failed to list sites",
        ),
        ToolDescriptor(
            name="publish_site",
            description=(
                "Publish a Webflow site to its custom domains and/or its webflow.io subdomain. "
                "Use this tool only when the user explicitly asks to publish. "
                "Webflow allows one publish per minute; a rejected publish is reported as an error."
            ),
            input_model=PublishSiteInput,
            output_model=PublishSiteResult,
            handler=publish_site,
            on_error=lambda params, message: PublishSiteResult(success=False, error=message),
            needs_approval=True,
            input_examples=(
                {"siteId": "580e63e98c9a982ac9b8b741", "publishToWebflowSubdomain": True},
                {"customDomains": ["589a331aa51e760df7ccb89d"]},
            ),
            fallback_message="Failed to publish site",
        ),
        ToolDescriptor(
            name="list_pages",
            description=(
                "List pages of a Webflow site with their slugs, SEO metadata, and draft/archived state. "
                "Use this tool to find a page ID before adding page-level custom code."
            ),
            input_model=ListPagesInput,
            output_model=ListPagesResult,
            handler=list_pages,
            on_error=lambda params, message: ListPagesResult(error=message),
            read_only=True,
            input_examples=({}, {"siteId": "580e63e98c9a982ac9b8b741", "limit": 20}),
            fallback_message="Failed to list pages",
        ),
        ToolDescriptor(
            name="list_forms",
            description=(
                "List forms on a Webflow site, including their fields and the page they live on. "
                "The formElementId of a form can be used to filter list_form_submissions."
            ),
            input_model=ListFormsInput,
            output_model=ListFormsResult,
            handler=list_forms,
            on_error=lambda params, message: ListFormsResult(error=message),
            read_only=True,
            input_examples=({},),
            fallback_message="Failed to list forms",
        ),
        ToolDescriptor(
            name="list_form_submissions",
            description=(
                "List form submissions for a Webflow site, optionally filtered to one form element. "
                "Returns the submitted field values and submission timestamps."
            ),
            input_model=ListFormSubmissionsInput,
            output_model=ListFormSubmissionsResult,
            handler=list_form_submissions,
            on_error=lambda params, message: ListFormSubmissionsResult(error=message),
            read_only=True,
            input_examples=({}, {"elementId": "6c5b7d42-0e8f-2a1b-9c3d-4e5f6a7b8c9d", "limit": 10}),
            fallback_message="Failed to list form submissions",
        ),
        ToolDescriptor(
            name="list_custom_code",
            description=(
                "List custom code blocks applied to a Webflow site and its pages. "
                "Shows which registered scripts are placed where, and at which version."
            ),
            input_model=ListCustomCodeInput,
            output_model=ListCustomCodeResult,
            handler=list_custom_code,
            on_error=lambda params, message: ListCustomCodeResult(error=message),
            read_only=True,
            input_examples=({},),
            fallback_message="Failed to list custom code",
        ),
        ToolDescriptor(
            name="add_custom_code",
            description=(
                "Register an inline script and apply it to a Webflow site or a single page. "
                "Inline scripts are limited to 2000 characters. "
                "Applying replaces the custom code scripts on the target, so review list_custom_code first."
            ),
            input_model=AddCustomCodeInput,
            output_model=AddCustomCodeResult,
            handler=add_custom_code,
            on_error=lambda params, message: AddCustomCodeResult(success=False, error=message),
            needs_approval=True,
            input_examples=(
                {
                    "target": "site",
                    "sourceCode": "console.log('hello');",
                    "displayName": "Hello Script",
                    "version": "1.0.0",
                    "location": "footer",
                },
                {
                    "target": "page",
                    "pageId": "63c720f9347c2139b248e552",
                    "sourceCode": "document.body.classList.add('promo');",
                    "displayName": "Promo Banner",
                    "version": "0.1.0",
                    "location": "header",
                },
            ),
            fallback_message="Failed to add custom code",
        ),
    ]
    return {tool.name: tool for tool in tools}
