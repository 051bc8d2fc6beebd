"""Resend email, contact and template tools."""

from __future__ import annotations

import threading
from functools import partial
from typing import Any, Callable, Literal, Mapping, Optional, Union

import anyio
import resend
from pydantic import Field
from resend.exceptions import ResendError

from sitemail_mcp.config import Settings
from sitemail_mcp.normalize import as_records, get_string_field, optional_str, to_string_list
from sitemail_mcp.tooling import ToolDescriptor, ToolInput, ToolModel, ToolOutput


class SdkError(RuntimeError):
    """Raised when the Resend SDK reports an error, thrown or returned."""


def _raise_for_error(response: Any) -> None:
    if not isinstance(response, Mapping):
        return
    error = response.get("error")
    if isinstance(error, Mapping) and error.get("message"):
        raise SdkError(str(error["message"]))
    if "statusCode" in response and "message" in response:
        raise SdkError(str(response["message"]))


_SDK_LOCK = threading.Lock()


def _invoke_with_key(api_key: str, operation: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
    # The SDK only reads its key from module state, so the key and the call
    # it authenticates must not interleave with another invocation.
    with _SDK_LOCK:
        resend.api_key = api_key
        return operation(*args, **kwargs)


async def _call_sdk(settings: Settings, operation: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
    """Run one blocking SDK call in a worker thread with the configured key."""
    api_key = settings.require_resend_api_key()
    try:
        response = await anyio.to_thread.run_sync(partial(_invoke_with_key, api_key, operation, *args, **kwargs))
    except ResendError as exc:
        raise SdkError(getattr(exc, "message", None) or str(exc)) from exc
    _raise_for_error(response)
    return response if response is not None else {}


# ── Inputs ──────────────────────────────────────────────────────────────────


class EmailTag(ToolInput):
    name: str = Field(description="Tag name. ASCII letters, numbers, underscores or dashes. Max 256 characters.")
    value: str = Field(description="Tag value. ASCII letters, numbers, underscores or dashes. Max 256 characters.")


class Attachment(ToolInput):
    filename: Optional[str] = Field(default=None, description="Name of the attached file.")
    content: Optional[str] = Field(default=None, description="File content as a Base64 string.")
    path: Optional[str] = Field(default=None, description="URL where the attachment is hosted.")
    content_type: Optional[str] = Field(
        default=None,
        description="Content type of the attachment. Derived from filename when omitted.",
    )


class TemplateRef(ToolInput):
    id: str = Field(description="ID or alias of a published template.")
    variables: Optional[dict[str, Union[str, int, float]]] = Field(
        default=None,
        description="Template variables as key/value pairs.",
    )


class EmailMessage(ToolInput):
    sender: str = Field(alias="from", description='Sender address. Use "Name <sender@domain.com>" for a display name.')
    to: list[str] = Field(min_length=1, max_length=50, description="Recipient addresses. Max 50.")
    subject: str = Field(description="Email subject line.")
    html: Optional[str] = Field(default=None, description="HTML body. Cannot be combined with template.")
    text: Optional[str] = Field(default=None, description="Plain text body. Generated from html when omitted.")
    cc: Optional[list[str]] = Field(default=None, description="CC recipients.")
    bcc: Optional[list[str]] = Field(default=None, description="BCC recipients.")
    scheduled_at: Optional[str] = Field(
        default=None,
        description='Delivery time, in natural language ("in 1 min") or ISO 8601.',
    )
    tags: Optional[list[EmailTag]] = Field(default=None, description="Key/value pairs for tracking.")
    attachments: Optional[list[Attachment]] = Field(
        default=None,
        description="Attachments. Give either content (Base64) or path (URL) for each. Max 40MB per email.",
    )


class SendEmailInput(EmailMessage):
    reply_to: Optional[Union[str, list[str]]] = Field(default=None, description="Reply-to address or addresses.")
    template: Optional[TemplateRef] = Field(
        default=None,
        description="Send a published template instead of html/text.",
    )
    topic_id: Optional[str] = Field(
        default=None,
        description="Topic ID. Contacts who opted out of this topic do not receive the email.",
    )


class BatchEmail(EmailMessage):
    reply_to: Optional[list[str]] = Field(default=None, description="Reply-to addresses.")


class SendBatchEmailsInput(ToolInput):
    emails: list[BatchEmail] = Field(min_length=1, max_length=100, description="Emails to send. Max 100 per call.")


class GetEmailInput(ToolInput):
    email_id: str = Field(description="ID of the email, as returned by send_email.")


class ListEmailsInput(ToolInput):
    pass


class TopicSubscription(ToolInput):
    id: str = Field(description="Topic ID.")
    subscription: Literal["opt_in", "opt_out"] = Field(description="Subscription status for the topic.")


class CreateContactInput(ToolInput):
    email: str = Field(description="Email address of the contact.")
    first_name: Optional[str] = Field(default=None, description="First name of the contact.")
    last_name: Optional[str] = Field(default=None, description="Last name of the contact.")
    unsubscribed: Optional[bool] = Field(
        default=None,
        description="Global subscription status. True unsubscribes the contact from all broadcasts.",
    )
    properties: Optional[dict[str, str]] = Field(default=None, description="Custom contact properties.")
    segments: Optional[list[str]] = Field(default=None, description="Segment IDs to add the contact to.")
    topics: Optional[list[TopicSubscription]] = Field(default=None, description="Topic subscriptions.")


class ListContactsInput(ToolInput):
    pass


class RemoveContactInput(ToolInput):
    id: str = Field(description="ID or email address of the contact to remove.")


class ListTemplatesInput(ToolInput):
    limit: Optional[int] = Field(default=None, ge=1, le=100, description="Templates to return. Default 20, max 100.")
    after: Optional[str] = Field(default=None, description="Template ID to page forward from. Not with before.")
    before: Optional[str] = Field(default=None, description="Template ID to page backward from. Not with after.")


class GetTemplateInput(ToolInput):
    id: str = Field(description="ID or alias of the template.")


# ── Outputs ─────────────────────────────────────────────────────────────────


class EmailInfo(ToolModel):
    id: str
    sender: str = Field(alias="from")
    to: list[str] = Field(default_factory=list)
    subject: str = ""
    last_event: Optional[str] = None
    created_at: Optional[str] = None


class ContactInfo(ToolModel):
    id: str
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    unsubscribed: bool = False


class TemplateVariable(ToolModel):
    id: str
    key: str
    type: str = "string"
    fallback_value: Optional[str] = None


class TemplateInfo(ToolModel):
    id: str
    name: str
    status: str
    alias: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    published_at: Optional[str] = None


class SendEmailResult(ToolOutput):
    success: bool
    id: str = ""


class SendBatchEmailsResult(ToolOutput):
    success: bool
    ids: list[str] = Field(default_factory=list)
    count: int = 0


class GetEmailResult(ToolOutput):
    success: bool
    id: str
    sender: Optional[str] = Field(default=None, alias="from")
    to: Optional[list[str]] = None
    subject: Optional[str] = None
    last_event: Optional[str] = None
    created_at: Optional[str] = None


class ListEmailsResult(ToolOutput):
    emails: list[EmailInfo] = Field(default_factory=list)
    count: int = 0


class CreateContactResult(ToolOutput):
    success: bool
    id: str = ""


class ListContactsResult(ToolOutput):
    contacts: list[ContactInfo] = Field(default_factory=list)
    count: int = 0


class RemoveContactResult(ToolOutput):
    success: bool
    deleted: bool
    id: str


class ListTemplatesResult(ToolOutput):
    templates: list[TemplateInfo] = Field(default_factory=list)
    count: int = 0
    has_more: Optional[bool] = None


class GetTemplateResult(ToolOutput):
    success: bool
    id: str
    name: Optional[str] = None
    alias: Optional[str] = None
    status: Optional[str] = None
    sender: Optional[str] = Field(default=None, alias="from")
    subject: Optional[str] = None
    reply_to: Optional[str] = None
    variables: Optional[list[TemplateVariable]] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    published_at: Optional[str] = None


# ── Reshaping ───────────────────────────────────────────────────────────────


def _send_params(message: EmailMessage) -> dict[str, Any]:
    """Translate a validated message into the SDK's snake_case send params."""
    params: dict[str, Any] = {
        "from": message.sender,
        "to": list(message.to),
        "subject": message.subject,
    }
    optional = {
        "html": message.html,
        "text": message.text,
        "reply_to": getattr(message, "reply_to", None),
        "cc": message.cc,
        "bcc": message.bcc,
        "scheduled_at": message.scheduled_at,
        "topic_id": getattr(message, "topic_id", None),
    }
    params.update({key: value for key, value in optional.items() if value is not None})
    if message.tags is not None:
        params["tags"] = [{"name": tag.name, "value": tag.value} for tag in message.tags]
    if message.attachments is not None:
        params["attachments"] = [
            attachment.model_dump(exclude_none=True) for attachment in message.attachments
        ]
    template = getattr(message, "template", None)
    if template is not None:
        params["template"] = template.model_dump(exclude_none=True)
    return params


def _to_email(raw: Mapping[str, Any], fallback_id: str = "") -> EmailInfo:
    return EmailInfo(
        id=str(raw.get("id") or fallback_id),
        sender=str(raw.get("from") or ""),
        to=to_string_list(raw.get("to")),
        subject=str(raw.get("subject") or ""),
        last_event=get_string_field(raw, "last_event", "lastEvent") or "",
        created_at=get_string_field(raw, "created_at", "createdAt") or "",
    )


def _to_contact(raw: Mapping[str, Any]) -> ContactInfo:
    return ContactInfo(
        id=str(raw.get("id") or ""),
        email=str(raw.get("email") or ""),
        first_name=get_string_field(raw, "first_name", "firstName"),
        last_name=get_string_field(raw, "last_name", "lastName"),
        unsubscribed=bool(raw.get("unsubscribed") or False),
    )


def _to_template(raw: Mapping[str, Any]) -> TemplateInfo:
    return TemplateInfo(
        id=str(raw.get("id") or ""),
        name=str(raw.get("name") or ""),
        status=str(raw.get("status") or ""),
        alias=optional_str(raw.get("alias")),
        created_at=get_string_field(raw, "created_at", "createdAt"),
        updated_at=get_string_field(raw, "updated_at", "updatedAt"),
        published_at=get_string_field(raw, "published_at", "publishedAt"),
    )


def _to_variable(raw: Mapping[str, Any]) -> TemplateVariable:
    return TemplateVariable(
        id=str(raw.get("id") or ""),
        key=str(raw.get("key") or ""),
        type=str(raw.get("type") or "string"),
        fallback_value=get_string_field(raw, "fallback_value", "fallbackValue"),
    )


# ── Tools ───────────────────────────────────────────────────────────────────


def build_resend_tools(settings: Settings) -> dict[str, ToolDescriptor]:
    """
    Build the Resend tool descriptors bound to one configuration.

    Args:
        settings: Credentials and the optional verified sending domain, which
            is only mentioned in descriptions.

    Returns:
        Mapping of tool name to descriptor.
    """
    domain = settings.resend_email_domain
    domain_hint = f" The verified sending domain is {domain}." if domain else ""

    async def send_email(params: SendEmailInput) -> SendEmailResult:
        response = await _call_sdk(settings, resend.Emails.send, _send_params(params))
        return SendEmailResult(success=True, id=str(response.get("id") or ""))

    async def send_batch_emails(params: SendBatchEmailsInput) -> SendBatchEmailsResult:
        batch = [_send_params(email) for email in params.emails]
        response = await _call_sdk(settings, resend.Batch.send, batch)
        errors = response.get("errors") or []
        if errors:
            first = errors[0] if isinstance(errors[0], Mapping) else {}
            raise SdkError(
                f"{len(errors)} of {len(batch)} emails were rejected: "
                f"{first.get('message', 'unknown error')}"
            )
        ids = [str(item.get("id") or "") for item in as_records(response.get("data"))]
        return SendBatchEmailsResult(success=True, ids=ids, count=len(ids))

    async def get_email(params: GetEmailInput) -> GetEmailResult:
        response = await _call_sdk(settings, resend.Emails.get, params.email_id)
        email = _to_email(response, fallback_id=params.email_id)
        return GetEmailResult(
            success=True,
            id=email.id,
            sender=email.sender,
            to=email.to,
            subject=email.subject,
            last_event=email.last_event,
            created_at=email.created_at,
        )

    async def list_emails(params: ListEmailsInput) -> ListEmailsResult:
        response = await _call_sdk(settings, resend.Emails.list)
        emails = [_to_email(raw) for raw in as_records(response.get("data"))]
        return ListEmailsResult(emails=emails, count=len(emails))

    async def create_contact(params: CreateContactInput) -> CreateContactResult:
        body: dict[str, Any] = {"email": params.email}
        optional = {
            "first_name": params.first_name,
            "last_name": params.last_name,
            "unsubscribed": params.unsubscribed,
            "properties": params.properties,
        }
        body.update({key: value for key, value in optional.items() if value is not None})
        if params.segments is not None:
            body["segments"] = [{"id": segment_id} for segment_id in params.segments]
        if params.topics is not None:
            body["topics"] = [topic.model_dump() for topic in params.topics]
        response = await _call_sdk(settings, resend.Contacts.create, body)
        return CreateContactResult(success=True, id=str(response.get("id") or ""))

    async def list_contacts(params: ListContactsInput) -> ListContactsResult:
        response = await _call_sdk(settings, resend.Contacts.list)
        contacts = [_to_contact(raw) for raw in as_records(response.get("data"))]
        return ListContactsResult(contacts=contacts, count=len(contacts))

    async def remove_contact(params: RemoveContactInput) -> RemoveContactResult:
        if "@" in params.id:
            response = await _call_sdk(settings, resend.Contacts.remove, email=params.id)
        else:
            response = await _call_sdk(settings, resend.Contacts.remove, id=params.id)
        deleted = response.get("deleted")
        return RemoveContactResult(
            success=True,
            deleted=True if deleted is None else bool(deleted),
            id=str(response.get("contact") or response.get("id") or params.id),
        )

    async def list_templates(params: ListTemplatesInput) -> ListTemplatesResult:
        query = {
            key: value
            for key, value in {"limit": params.limit, "after": params.after, "before": params.before}.items()
            if value is not None
        }
        response = await _call_sdk(settings, resend.Templates.list, query)
        templates = [_to_template(raw) for raw in as_records(response.get("data"))]
        return ListTemplatesResult(
            templates=templates,
            count=len(templates),
            has_more=bool(response.get("has_more") or False),
        )

    async def get_template(params: GetTemplateInput) -> GetTemplateResult:
        response = await _call_sdk(settings, resend.Templates.get, params.id)
        raw_variables = response.get("variables")
        return GetTemplateResult(
            success=True,
            id=str(response.get("id") or params.id),
            name=optional_str(response.get("name")),
            alias=optional_str(response.get("alias")),
            status=optional_str(response.get("status")),
            sender=optional_str(response.get("from")),
            subject=optional_str(response.get("subject")),
            reply_to=get_string_field(response, "reply_to", "replyTo"),
            variables=(
                [_to_variable(raw) for raw in as_records(raw_variables)]
                if isinstance(raw_variables, list)
                else None
            ),
            created_at=get_string_field(response, "created_at", "createdAt"),
            updated_at=get_string_field(response, "updated_at", "updatedAt"),
            published_at=get_string_field(response, "published_at", "publishedAt"),
        )

    tools = [
        ToolDescriptor(
            name="send_email",
            description=(
                "Send an email to one or more recipients using Resend. "
                "Use this tool for transactional emails, notifications, or welcome messages. "
                "Supports HTML or plain text bodies, published templates, attachments, tags, CC/BCC, "
                "reply-to, topic-based sending and scheduled delivery. Use either html/text or template, "
                "never both. Returns the email ID for tracking delivery." + domain_hint
            ),
            input_model=SendEmailInput,
            output_model=SendEmailResult,
            handler=send_email,
            on_error=lambda params, message: SendEmailResult(success=False, id="", error=message),
            input_examples=(
                {
                    "from": "Acme <hello@acme.com>",
                    "to": ["user@example.com"],
                    "subject": "Welcome!",
                    "html": "<h1>Welcome!</h1><p>Thanks for signing up.</p>",
                },
                {
                    "from": "noreply@acme.com",
                    "to": ["user@example.com"],
                    "subject": "Your receipt",
                    "text": "Thank you for your purchase.",
                    "replyTo": "support@acme.com",
                    "tags": [{"name": "category", "value": "receipt"}],
                },
            ),
            fallback_message="Failed to send email",
        ),
        ToolDescriptor(
            name="send_batch_emails",
            description=(
                "Send up to 100 emails in a single API call. "
                "Use this tool for bulk notifications or for sending different emails to different recipients. "
                "If any email in the batch is rejected, the whole batch is reported as failed." + domain_hint
            ),
            input_model=SendBatchEmailsInput,
            output_model=SendBatchEmailsResult,
            handler=send_batch_emails,
            on_error=lambda params, message: SendBatchEmailsResult(success=False, error=message),
            input_examples=(
                {
                    "emails": [
                        {
                            "from": "Acme <hello@acme.com>",
                            "to": ["alice@example.com"],
                            "subject": "Welcome Alice!",
                            "html": "<p>Welcome to Acme!</p>",
                        },
                        {
                            "from": "Acme <hello@acme.com>",
                            "to": ["bob@example.com"],
                            "subject": "Welcome Bob!",
                            "html": "<p>Welcome to Acme!</p>",
                        },
                    ]
                },
            ),
            fallback_message="Failed to send batch emails",
        ),
        ToolDescriptor(
            name="get_email",
            description=(
                "Retrieve the delivery status and metadata of a sent email by its ID. "
                "Use this tool to check whether an email was delivered, bounced, or is still pending."
            ),
            input_model=GetEmailInput,
            output_model=GetEmailResult,
            handler=get_email,
            on_error=lambda params, message: GetEmailResult(success=False, id=params.email_id, error=message),
            read_only=True,
            input_examples=({"emailId": "4ef9a417-02e9-4d39-ad75-9611e0bf7a83"},),
            fallback_message="Failed to retrieve email",
        ),
        ToolDescriptor(
            name="list_emails",
            description=(
                "List recently sent emails from the Resend account. "
                "Returns email IDs, subjects, recipients and the last delivery event."
            ),
            input_model=ListEmailsInput,
            output_model=ListEmailsResult,
            handler=list_emails,
            on_error=lambda params, message: ListEmailsResult(error=message),
            read_only=True,
            input_examples=({},),
            fallback_message="Failed to list emails",
        ),
        ToolDescriptor(
            name="create_contact",
            description=(
                "Create a contact in the Resend account. "
                "Use this tool to add a subscriber or build a mailing list. "
                "Contacts are identified by email and can be added to segments and topics."
            ),
            input_model=CreateContactInput,
            output_model=CreateContactResult,
            handler=create_contact,
            on_error=lambda params, message: CreateContactResult(success=False, id="", error=message),
            input_examples=(
                {"email": "john@example.com", "firstName": "John", "lastName": "Doe"},
                {
                    "email": "jane@example.com",
                    "firstName": "Jane",
                    "segments": ["seg_123"],
                    "topics": [{"id": "top_456", "subscription": "opt_in"}],
                },
            ),
            fallback_message="Failed to create contact",
        ),
        ToolDescriptor(
            name="list_contacts",
            description="List contacts in the Resend account with their subscription status.",
            input_model=ListContactsInput,
            output_model=ListContactsResult,
            handler=list_contacts,
            on_error=lambda params, message: ListContactsResult(error=message),
            read_only=True,
            input_examples=({},),
            fallback_message="Failed to list contacts",
        ),
        ToolDescriptor(
            name="remove_contact",
            description=(
                "Permanently remove a contact by ID or email address. "
                "Use only when the user explicitly asks to delete a subscriber. "
                "WARNING: This action is irreversible."
            ),
            input_model=RemoveContactInput,
            output_model=RemoveContactResult,
            handler=remove_contact,
            on_error=lambda params, message: RemoveContactResult(
                success=False, deleted=False, id=params.id, error=message
            ),
            needs_approval=True,
            input_examples=(
                {"id": "4ef9a417-02e9-4d39-ad75-9611e0bf7a83"},
                {"id": "user@example.com"},
            ),
            fallback_message="Failed to remove contact",
        ),
        ToolDescriptor(
            name="list_templates",
            description=(
                "List email templates with their ID, name, alias and status. "
                "Supports cursor pagination via limit, after and before."
            ),
            input_model=ListTemplatesInput,
            output_model=ListTemplatesResult,
            handler=list_templates,
            on_error=lambda params, message: ListTemplatesResult(error=message),
            read_only=True,
            input_examples=({}, {"limit": 10}, {"limit": 5, "after": "34a080c9-b17d-4187-ad80-5af20266e535"}),
            fallback_message="Failed to list templates",
        ),
        ToolDescriptor(
            name="get_template",
            description=(
                "Retrieve an email template by ID or alias. "
                "Use this tool to inspect a template's variables and default from/subject/reply-to before sending."
            ),
            input_model=GetTemplateInput,
            output_model=GetTemplateResult,
            handler=get_template,
            on_error=lambda params, message: GetTemplateResult(success=False, id=params.id, error=message),
            read_only=True,
            input_examples=({"id": "34a080c9-b17d-4187-ad80-5af20266e535"}, {"id": "reset-password"}),
            fallback_message="Failed to get template",
        ),
    ]
    return {tool.name: tool for tool in tools}
