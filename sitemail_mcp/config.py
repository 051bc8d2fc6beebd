"""Runtime configuration for the Webflow and Resend tool sets."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional


DEFAULT_WEBFLOW_BASE_URL = "https://api.webflow.com/v2"


class ConfigurationError(RuntimeError):
    """Raised when a credential or identifier cannot be resolved."""


def _env(environ: Mapping[str, str], key: str) -> Optional[str]:
    value = environ.get(key, "")
    value = value.strip() if value else ""
    return value or None


@dataclass(frozen=True)
class Settings:
    """Credentials and defaults shared by every tool invocation.

    Built once at process start and passed into the tool factories, so tests
    can supply alternate settings without touching ``os.environ``. Missing
    credentials are not an error here; they fail the individual call that
    needs them.
    """

    webflow_api_key: Optional[str] = None
    webflow_site_id: Optional[str] = None
    webflow_base_url: str = DEFAULT_WEBFLOW_BASE_URL
    resend_api_key: Optional[str] = None
    resend_email_domain: str = ""
    timeout: Optional[float] = None

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """
        Build settings from environment variables.

        Args:
            environ: Mapping to read from. Defaults to ``os.environ``.

        Returns:
            Settings instance. Empty variables are treated as unset.

        Raises:
            ConfigurationError: If SITEMAIL_TIMEOUT_SECONDS is not a number.
        """
        environ = os.environ if environ is None else environ

        timeout: Optional[float] = None
        raw_timeout = _env(environ, "SITEMAIL_TIMEOUT_SECONDS")
        if raw_timeout is not None:
            try:
                timeout = float(raw_timeout)
            except ValueError as e:
                raise ConfigurationError(
                    f"SITEMAIL_TIMEOUT_SECONDS must be a number, got {raw_timeout!r}."
                ) from e

        return cls(
            webflow_api_key=_env(environ, "WEBFLOW_API_KEY"),
            webflow_site_id=_env(environ, "WEBFLOW_SITE_ID"),
            webflow_base_url=_env(environ, "WEBFLOW_BASE_URL") or DEFAULT_WEBFLOW_BASE_URL,
            resend_api_key=_env(environ, "RESEND_API_KEY"),
            resend_email_domain=_env(environ, "RESEND_EMAIL_DOMAIN") or "",
            timeout=timeout,
        )

    def require_webflow_api_key(self) -> str:
        if not self.webflow_api_key:
            raise ConfigurationError("WEBFLOW_API_KEY environment variable is required")
        return self.webflow_api_key

    def require_resend_api_key(self) -> str:
        if not self.resend_api_key:
            raise ConfigurationError("RESEND_API_KEY environment variable is required")
        return self.resend_api_key

    def resolve_site_id(self, explicit: Optional[str] = None) -> str:
        """Return the explicit site ID, falling back to the configured default."""
        if explicit:
            return explicit
        if self.webflow_site_id:
            return self.webflow_site_id
        raise ConfigurationError(
            "A siteId must be provided, or set the WEBFLOW_SITE_ID environment variable."
        )
