import pytest

from sitemail_mcp.config import DEFAULT_WEBFLOW_BASE_URL, ConfigurationError, Settings


def test_from_env_reads_variables() -> None:
    settings = Settings.from_env(
        {
            "WEBFLOW_API_KEY": "wf-key",
            "WEBFLOW_SITE_ID": "site-1",
            "RESEND_API_KEY": "re_key",
            "RESEND_EMAIL_DOMAIN": "acme.com",
            "SITEMAIL_TIMEOUT_SECONDS": "12.5",
        }
    )

    assert settings.webflow_api_key == "wf-key"
    assert settings.webflow_site_id == "site-1"
    assert settings.webflow_base_url == DEFAULT_WEBFLOW_BASE_URL
    assert settings.resend_api_key == "re_key"
    assert settings.resend_email_domain == "acme.com"
    assert settings.timeout == 12.5


def test_from_env_treats_blank_values_as_unset() -> None:
    settings = Settings.from_env({"WEBFLOW_API_KEY": "  ", "RESEND_EMAIL_DOMAIN": ""})

    assert settings.webflow_api_key is None
    assert settings.resend_email_domain == ""
    assert settings.timeout is None


def test_from_env_uses_process_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("WEBFLOW_SITE_ID", "from-env")
    monkeypatch.delenv("WEBFLOW_API_KEY", raising=False)

    settings = Settings.from_env()

    assert settings.webflow_site_id == "from-env"
    assert settings.webflow_api_key is None


def test_from_env_rejects_bad_timeout() -> None:
    with pytest.raises(ConfigurationError, match="SITEMAIL_TIMEOUT_SECONDS"):
        Settings.from_env({"SITEMAIL_TIMEOUT_SECONDS": "soon"})


def test_missing_keys_fail_at_call_time() -> None:
    settings = Settings()

    with pytest.raises(ConfigurationError, match="WEBFLOW_API_KEY"):
        settings.require_webflow_api_key()
    with pytest.raises(ConfigurationError, match="RESEND_API_KEY"):
        settings.require_resend_api_key()


def test_resolve_site_id_prefers_explicit_value() -> None:
    assert Settings(webflow_site_id="default").resolve_site_id("explicit") == "explicit"


def test_resolve_site_id_falls_back_to_default() -> None:
    settings = Settings(webflow_site_id="default")

    assert settings.resolve_site_id() == "default"
    assert settings.resolve_site_id("") == "default"


def test_resolve_site_id_without_any_value() -> None:
    with pytest.raises(ConfigurationError, match="siteId"):
        Settings().resolve_site_id(None)
