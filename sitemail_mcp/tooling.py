"""Tool descriptors shared by the Webflow and Resend surfaces."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Mapping, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from sitemail_mcp.logging import get_logger

logger = get_logger(__name__)


class ValidationError(ValueError):
    """Raised by a handler when its input breaks a rule checked before any remote call."""


class ToolModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ToolInput(ToolModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")


class ToolOutput(ToolModel):
    error: Optional[str] = None

    def dump(self) -> dict[str, Any]:
        """Serialize with camelCase keys, leaving out fields that are unset."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


Handler = Callable[[Any], Awaitable[ToolOutput]]
ErrorBuilder = Callable[[Any, str], ToolOutput]


@dataclass(frozen=True)
class ToolDescriptor:
    """A callable tool as handed to the LLM host.

    ``needs_approval`` is advisory: the host decides whether to ask a human
    before calling ``execute``.
    """

    name: str
    description: str
    input_model: type[ToolInput]
    output_model: type[ToolOutput]
    handler: Handler
    on_error: ErrorBuilder
    needs_approval: bool = False
    read_only: bool = False
    input_examples: tuple[dict[str, Any], ...] = ()
    fallback_message: str = "Tool execution failed"

    def input_schema(self) -> dict[str, Any]:
        return self.input_model.model_json_schema(by_alias=True)

    def output_schema(self) -> dict[str, Any]:
        return self.output_model.model_json_schema(by_alias=True, mode="serialization")

    async def execute(self, arguments: Optional[Mapping[str, Any] | ToolInput] = None) -> ToolOutput:
        """
        Validate arguments, run the handler and fold any failure into the output.

        Args:
            arguments: Raw tool arguments (camelCase or snake_case keys) or an
                already validated input model.

        Returns:
            The tool's output model. Handler failures never propagate; they
            come back as the tool's failure shape with ``error`` set.

        Raises:
            pydantic.ValidationError: If the arguments do not match the input schema.
        """
        if isinstance(arguments, self.input_model):
            params = arguments
        else:
            params = self.input_model.model_validate(dict(arguments or {}))

        try:
            return await self.handler(params)
        except Exception as exc:  # noqa: BLE001
            message = str(exc) or self.fallback_message
            logger.error(
                "tool_failed",
                tool=self.name,
                error=message,
                error_type=type(exc).__name__,
            )
            return self.on_error(params, message)
