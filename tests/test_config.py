"""
Tests for environment configuration and session option building.
"""

import logging

import pytest
from pydantic import ValidationError

from grammarly_mcp.config import (
    AppConfig,
    ConfigError,
    ProxyConfig,
    StealthConfig,
    build_iproyal_password,
    configure_logging,
    get_session_options,
    load_config,
)
from grammarly_mcp.models.session import Viewport

BROWSER_ENV = {
    "BROWSERBASE_API_KEY": "bb_test_key",
    "BROWSERBASE_PROJECT_ID": "proj-123",
}
BASE_ENV = {**BROWSER_ENV, "ANTHROPIC_API_KEY": "sk-ant"}


class TestIproyalPassword:

    def test_country_only(self):
        assert build_iproyal_password("p", country="US") == "p_country-us"

    def test_all_parameters_in_order(self):
        result = build_iproyal_password(
            "p", country="GB", session_id="xyz98765", session_lifetime="1h"
        )
        assert result == "p_country-gb_session-xyz98765_lifetime-1h"

    def test_no_parameters_returns_password(self):
        assert build_iproyal_password("secret") == "secret"

    def test_already_suffixed_password_is_unchanged(self):
        password = "p_country-gb_session-xyz98765"
        assert build_iproyal_password(password, country="US", session_lifetime="2h") == password

    def test_session_without_country(self):
        assert build_iproyal_password("p", session_id="abcd1234") == "p_session-abcd1234"


class TestProxyConfig:

    def test_country_is_uppercased(self):
        assert ProxyConfig(country="us").country == "US"

    def test_invalid_country_rejected(self):
        with pytest.raises(ValidationError):
            ProxyConfig(country="USA")

    def test_external_requires_server(self):
        with pytest.raises(ValidationError):
            ProxyConfig(type="external")

    def test_bad_server_rejected(self):
        with pytest.raises(ValidationError):
            ProxyConfig(type="external", server="geo.iproyal.com:12321")

    @pytest.mark.parametrize("session_id", ["short", "abc-1234", "abcdefghi"])
    def test_session_id_must_be_eight_alphanumerics(self, session_id):
        with pytest.raises(ValidationError):
            ProxyConfig(session_id=session_id)

    @pytest.mark.parametrize("lifetime", ["1h", "30m", "45s", "2d"])
    def test_valid_lifetimes(self, lifetime):
        assert ProxyConfig(session_lifetime=lifetime).session_lifetime == lifetime

    def test_invalid_lifetime_rejected(self):
        with pytest.raises(ValidationError):
            ProxyConfig(session_lifetime="1 hour")

    def test_enabled_flag(self):
        assert ProxyConfig(country="DE").is_enabled
        assert not ProxyConfig(country="DE", enabled=False).is_enabled
        assert not ProxyConfig().is_enabled


class TestGetSessionOptions:

    def test_defaults_without_proxy(self, app_config):
        options = get_session_options(app_config)
        assert options.proxy_enabled is False
        assert options.proxy_type is None
        assert options.advanced_stealth is False
        assert options.block_ads is True
        assert options.solve_captchas is True

    def test_advanced_stealth_and_viewport(self, app_config):
        config = app_config.model_copy(
            update={
                "stealth": StealthConfig(
                    level="advanced", block_ads=False, viewport=Viewport(width=1280, height=800)
                )
            }
        )
        options = get_session_options(config)
        assert options.stealth is True
        assert options.advanced_stealth is True
        assert options.block_ads is False
        assert options.viewport.width == 1280

    def test_browserbase_country_proxy_leaves_type_unset(self, app_config):
        config = app_config.model_copy(update={"proxy": ProxyConfig(country="gb")})
        options = get_session_options(config)
        assert options.proxy_enabled is True
        assert options.proxy_country == "GB"
        assert options.proxy_type is None

    def test_external_proxy_builds_iproyal_password(self, app_config):
        proxy = ProxyConfig(
            type="external",
            server="http://geo.iproyal.com:12321",
            username="user",
            password="p",
            country="GB",
            session_id="xyz98765",
            session_lifetime="1h",
        )
        options = get_session_options(app_config.model_copy(update={"proxy": proxy}))
        assert options.proxy_type == "external"
        assert options.proxy_server == "http://geo.iproyal.com:12321"
        assert options.proxy_username == "user"
        assert options.proxy_password == "p_country-gb_session-xyz98765_lifetime-1h"


class TestLoadConfig:

    def test_minimal_stagehand_env(self):
        config = load_config(BASE_ENV)
        assert config.browser_provider == "stagehand"
        assert config.log_level == "info"
        assert config.default_max_ai_percent == 10
        assert config.default_max_plagiarism_percent == 5
        assert config.default_max_iterations == 5
        assert config.proxy is None

    def test_missing_browserbase_credentials(self):
        with pytest.raises(ConfigError, match="BROWSERBASE_API_KEY"):
            load_config({})

    def test_browser_use_requires_its_own_credentials(self):
        with pytest.raises(ConfigError, match="BROWSER_USE_API_KEY"):
            load_config({"BROWSER_PROVIDER": "browser-use"})

    def test_unknown_provider(self):
        with pytest.raises(ConfigError):
            load_config({**BASE_ENV, "BROWSER_PROVIDER": "selenium"})

    def test_legacy_claude_key(self):
        config = load_config({**BROWSER_ENV, "CLAUDE_API_KEY": "legacy"})
        assert config.anthropic_api_key == "legacy"

    def test_anthropic_key_wins_over_legacy(self):
        config = load_config({**BASE_ENV, "CLAUDE_API_KEY": "legacy", "ANTHROPIC_API_KEY": "new"})
        assert config.anthropic_api_key == "new"

    def test_warn_log_level_normalised(self):
        assert load_config({**BASE_ENV, "LOG_LEVEL": "WARN"}).log_level == "warning"

    def test_invalid_log_level(self):
        with pytest.raises(ConfigError):
            load_config({**BASE_ENV, "LOG_LEVEL": "verbose"})

    def test_non_integer_timeout(self):
        with pytest.raises(ConfigError, match="SCORE_TIMEOUT_MS"):
            load_config({**BASE_ENV, "SCORE_TIMEOUT_MS": "soon"})

    def test_proxy_from_env(self):
        config = load_config(
            {
                **BASE_ENV,
                "PROXY_TYPE": "external",
                "PROXY_SERVER": "http://geo.iproyal.com:12321",
                "PROXY_PASSWORD": "p",
                "PROXY_COUNTRY": "us",
            }
        )
        assert config.proxy.type == "external"
        assert config.proxy.country == "US"
        assert config.proxy.is_enabled

    def test_invalid_proxy_env_is_config_error(self):
        with pytest.raises(ConfigError):
            load_config({**BASE_ENV, "PROXY_TYPE": "external"})

    def test_stealth_from_env(self):
        config = load_config(
            {
                **BASE_ENV,
                "STEALTH_LEVEL": "none",
                "STEALTH_SOLVE_CAPTCHAS": "false",
                "STEALTH_VIEWPORT_WIDTH": "1920",
                "STEALTH_VIEWPORT_HEIGHT": "1080",
            }
        )
        assert config.stealth.level == "none"
        assert config.stealth.solve_captchas is False
        assert config.stealth.viewport == Viewport(width=1920, height=1080)

    @pytest.mark.parametrize("width", ["wide", "0", "-5"])
    def test_bad_viewport_is_config_error(self, width):
        with pytest.raises(ConfigError, match="STEALTH_VIEWPORT_WIDTH"):
            load_config(
                {**BASE_ENV, "STEALTH_VIEWPORT_WIDTH": width, "STEALTH_VIEWPORT_HEIGHT": "1080"}
            )

    def test_claude_key_required(self):
        with pytest.raises(ConfigError, match="ANTHROPIC_API_KEY"):
            load_config(BROWSER_ENV)

    def test_browser_use_still_needs_claude_key(self):
        env = {
            "BROWSER_PROVIDER": "browser-use",
            "BROWSER_USE_API_KEY": "bu-key",
            "BROWSER_USE_PROFILE_ID": "profile-1",
        }
        with pytest.raises(ConfigError, match="ANTHROPIC_API_KEY"):
            load_config(env)
        assert load_config({**env, "ANTHROPIC_API_KEY": "sk-ant"}).browser_provider == "browser-use"

    def test_selected_automation_llm_needs_its_key(self):
        with pytest.raises(ConfigError, match="OPENAI_API_KEY"):
            load_config({**BASE_ENV, "STAGEHAND_LLM_PROVIDER": "openai"})

    def test_selected_automation_llm_with_key(self):
        config = load_config(
            {**BASE_ENV, "STAGEHAND_LLM_PROVIDER": "google", "GOOGLE_API_KEY": "g-key"}
        )
        assert config.stagehand_llm_provider == "google"

    def test_anthropic_model_from_env(self):
        assert load_config(BASE_ENV).anthropic_model == "claude-sonnet-4-20250514"
        config = load_config({**BASE_ENV, "ANTHROPIC_MODEL": "claude-opus-4-1"})
        assert config.anthropic_model == "claude-opus-4-1"

    def test_config_is_frozen(self):
        config = load_config(BASE_ENV)
        with pytest.raises(ValidationError):
            config.log_level = "debug"


def test_configure_logging_targets_stderr():
    import sys

    configure_logging("debug")
    root = logging.getLogger()
    assert root.level == logging.DEBUG
    assert any(getattr(h, "stream", None) is sys.stderr for h in root.handlers)
    configure_logging("info")


def test_app_config_direct_construction(app_config):
    assert isinstance(app_config, AppConfig)
    assert app_config.browserbase_project_id == "proj-123"
