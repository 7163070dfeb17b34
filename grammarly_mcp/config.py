"""Application configuration loaded from environment variables."""

from __future__ import annotations

import logging
import os
import re
import sys
from typing import Literal, Mapping, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ValidationError, field_validator, model_validator

from .models.session import SessionOptions, Viewport

load_dotenv()

LOG_FORMAT = "%(asctime)s [%(name)s] %(levelname)s: %(message)s"

IPROYAL_MARKERS = ("_country-", "_session-", "_lifetime-")

BrowserProviderName = Literal["stagehand", "browser-use"]
LlmProviderName = Literal["openai", "google", "anthropic"]
StealthLevel = Literal["none", "basic", "advanced"]


class ConfigError(ValueError):
    """Raised when the environment does not describe a usable configuration."""


# ── Proxy / Stealth ──────────────────────────────────────────────────────────


class ProxyConfig(BaseModel):
    """Declarative proxy settings, either Browserbase built-in or BYOP."""

    enabled: Optional[bool] = None
    type: Literal["browserbase", "external"] = "browserbase"
    country: Optional[str] = None
    server: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    session_id: Optional[str] = None
    session_lifetime: Optional[str] = None

    @field_validator("country")
    @classmethod
    def _upper_country(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        if not re.fullmatch(r"[A-Za-z]{2}", value):
            raise ValueError("country must be a 2-letter ISO code")
        return value.upper()

    @field_validator("server")
    @classmethod
    def _check_server(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not re.match(r"^(https?|socks5?)://[^\s/]+", value):
            raise ValueError("server must be a proxy URL such as http://host:port")
        return value

    @field_validator("session_id")
    @classmethod
    def _check_session_id(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not re.fullmatch(r"[A-Za-z0-9]{8}", value):
            raise ValueError("session_id must be exactly 8 alphanumeric characters")
        return value

    @field_validator("session_lifetime")
    @classmethod
    def _check_lifetime(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not re.fullmatch(r"\d+[smhd]", value):
            raise ValueError("session_lifetime must look like 30s, 10m, 2h or 1d")
        return value

    @model_validator(mode="after")
    def _external_needs_server(self) -> ProxyConfig:
        if self.type == "external" and not self.server:
            raise ValueError("type='external' requires server")
        return self

    @property
    def is_enabled(self) -> bool:
        if self.enabled is False:
            return False
        if self.type == "external":
            return bool(self.server)
        return bool(self.country)


class StealthConfig(BaseModel):
    level: StealthLevel = "basic"
    block_ads: bool = True
    solve_captchas: bool = True
    viewport: Optional[Viewport] = None


# ── App Config ───────────────────────────────────────────────────────────────


class AppConfig(BaseModel):
    """Resolved, read-only settings shared by every optimization run."""

    model_config = {"frozen": True}

    browser_provider: BrowserProviderName = "stagehand"

    browserbase_api_key: Optional[str] = None
    browserbase_project_id: Optional[str] = None
    browserbase_session_id: Optional[str] = None
    browserbase_context_id: Optional[str] = None

    browser_use_api_key: Optional[str] = None
    browser_use_profile_id: Optional[str] = None

    stagehand_model: str = "gemini-2.5-flash"
    stagehand_llm_provider: Optional[LlmProviderName] = None

    claude_model: str = "claude-sonnet-4-20250514"
    openai_model: str = "gpt-4o"
    google_model: str = "gemini-2.5-flash"
    anthropic_model: str = "claude-sonnet-4-20250514"
    anthropic_api_key: Optional[str] = None
    openai_api_key: Optional[str] = None
    google_api_key: Optional[str] = None

    llm_request_timeout_ms: int = 120_000
    connect_timeout_ms: int = 30_000
    score_timeout_ms: int = 300_000
    browser_use_timeout_ms: int = 300_000

    log_level: str = "info"

    default_max_ai_percent: float = 10
    default_max_plagiarism_percent: float = 5
    default_max_iterations: int = 5

    proxy: Optional[ProxyConfig] = None
    stealth: Optional[StealthConfig] = None

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        value = value.lower()
        if value == "warn":
            value = "warning"
        if value not in ("debug", "info", "warning", "error"):
            raise ValueError("LOG_LEVEL must be debug, info, warning or error")
        return value

    @model_validator(mode="after")
    def _check_provider_credentials(self) -> AppConfig:
        if self.browser_provider == "stagehand":
            if not self.browserbase_api_key or not self.browserbase_project_id:
                raise ValueError(
                    "BROWSERBASE_API_KEY and BROWSERBASE_PROJECT_ID are required "
                    "when BROWSER_PROVIDER=stagehand"
                )
        elif not self.browser_use_api_key or not self.browser_use_profile_id:
            raise ValueError(
                "BROWSER_USE_API_KEY and BROWSER_USE_PROFILE_ID are required "
                "when BROWSER_PROVIDER=browser-use"
            )
        if not self.anthropic_api_key:
            raise ValueError("ANTHROPIC_API_KEY is required for Claude rewriting and analysis")
        if self.browser_provider == "stagehand" and self.stagehand_llm_provider:
            key_name = f"{self.stagehand_llm_provider.upper()}_API_KEY"
            if not getattr(self, f"{self.stagehand_llm_provider}_api_key"):
                raise ValueError(
                    f"{key_name} is required when STAGEHAND_LLM_PROVIDER={self.stagehand_llm_provider}"
                )
        return self


def _env_bool(value: Optional[str]) -> Optional[bool]:
    if value is None or value.strip() == "":
        return None
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_str(env: Mapping[str, str], key: str) -> Optional[str]:
    value = env.get(key)
    if value is None or value.strip() == "":
        return None
    return value.strip()


def _env_int(env: Mapping[str, str], key: str, default: int) -> int:
    value = _env_str(env, key)
    if value is None:
        return default
    try:
        number = int(value)
    except ValueError as e:
        raise ConfigError(f"{key} must be an integer, got {value!r}") from e
    if number <= 0:
        raise ConfigError(f"{key} must be positive, got {number}")
    return number


def _proxy_from_env(env: Mapping[str, str]) -> Optional[ProxyConfig]:
    keys = {
        "enabled": "PROXY_ENABLED",
        "type": "PROXY_TYPE",
        "country": "PROXY_COUNTRY",
        "server": "PROXY_SERVER",
        "username": "PROXY_USERNAME",
        "password": "PROXY_PASSWORD",
        "session_id": "PROXY_SESSION_ID",
        "session_lifetime": "PROXY_SESSION_LIFETIME",
    }
    raw = {field: _env_str(env, key) for field, key in keys.items()}
    if all(value is None for value in raw.values()):
        return None
    raw["enabled"] = _env_bool(raw["enabled"])
    return ProxyConfig(**{k: v for k, v in raw.items() if v is not None})


def _stealth_from_env(env: Mapping[str, str]) -> StealthConfig:
    stealth: dict = {}
    level = _env_str(env, "STEALTH_LEVEL")
    if level:
        stealth["level"] = level.lower()
    for field, key in (("block_ads", "STEALTH_BLOCK_ADS"), ("solve_captchas", "STEALTH_SOLVE_CAPTCHAS")):
        flag = _env_bool(env.get(key))
        if flag is not None:
            stealth[field] = flag
    if _env_str(env, "STEALTH_VIEWPORT_WIDTH") and _env_str(env, "STEALTH_VIEWPORT_HEIGHT"):
        stealth["viewport"] = Viewport(
            width=_env_int(env, "STEALTH_VIEWPORT_WIDTH", 0),
            height=_env_int(env, "STEALTH_VIEWPORT_HEIGHT", 0),
        )
    return StealthConfig(**stealth)


def load_config(env: Optional[Mapping[str, str]] = None) -> AppConfig:
    """Build an AppConfig from the given mapping (defaults to os.environ).

    Raises:
        ConfigError: when a variable is malformed or a required one is missing.
    """
    env = os.environ if env is None else env

    try:
        return AppConfig(
            browser_provider=(_env_str(env, "BROWSER_PROVIDER") or "stagehand").lower(),
            browserbase_api_key=_env_str(env, "BROWSERBASE_API_KEY"),
            browserbase_project_id=_env_str(env, "BROWSERBASE_PROJECT_ID"),
            browserbase_session_id=_env_str(env, "BROWSERBASE_SESSION_ID"),
            browserbase_context_id=_env_str(env, "BROWSERBASE_CONTEXT_ID"),
            browser_use_api_key=_env_str(env, "BROWSER_USE_API_KEY"),
            browser_use_profile_id=_env_str(env, "BROWSER_USE_PROFILE_ID"),
            stagehand_model=_env_str(env, "STAGEHAND_MODEL") or "gemini-2.5-flash",
            stagehand_llm_provider=_env_str(env, "STAGEHAND_LLM_PROVIDER"),
            claude_model=_env_str(env, "CLAUDE_MODEL") or "claude-sonnet-4-20250514",
            openai_model=_env_str(env, "OPENAI_MODEL") or "gpt-4o",
            google_model=_env_str(env, "GOOGLE_MODEL") or "gemini-2.5-flash",
            anthropic_model=_env_str(env, "ANTHROPIC_MODEL") or "claude-sonnet-4-20250514",
            # CLAUDE_API_KEY is the legacy name
            anthropic_api_key=_env_str(env, "ANTHROPIC_API_KEY") or _env_str(env, "CLAUDE_API_KEY"),
            openai_api_key=_env_str(env, "OPENAI_API_KEY"),
            google_api_key=_env_str(env, "GOOGLE_API_KEY"),
            llm_request_timeout_ms=_env_int(env, "LLM_REQUEST_TIMEOUT_MS", 120_000),
            connect_timeout_ms=_env_int(env, "CONNECT_TIMEOUT_MS", 30_000),
            score_timeout_ms=_env_int(env, "SCORE_TIMEOUT_MS", 300_000),
            browser_use_timeout_ms=_env_int(env, "BROWSER_USE_TIMEOUT_MS", 300_000),
            log_level=_env_str(env, "LOG_LEVEL") or "info",
            default_max_ai_percent=float(_env_str(env, "DEFAULT_MAX_AI_PERCENT") or 10),
            default_max_plagiarism_percent=float(
                _env_str(env, "DEFAULT_MAX_PLAGIARISM_PERCENT") or 5
            ),
            default_max_iterations=_env_int(env, "DEFAULT_MAX_ITERATIONS", 5),
            proxy=_proxy_from_env(env),
            stealth=_stealth_from_env(env),
        )
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'config'}: {err['msg']}"
            for err in e.errors()
        )
        raise ConfigError(f"Invalid environment configuration: {problems}") from e


_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """Return the process-wide config, loading it on first use."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def configure_logging(level: str = "info") -> None:
    """Send all log output to stderr; stdout is reserved for MCP JSON-RPC."""
    logging.basicConfig(
        stream=sys.stderr,
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        force=True,
    )


# ── Session option builder ───────────────────────────────────────────────────


def build_iproyal_password(
    password: str,
    country: Optional[str] = None,
    session_id: Optional[str] = None,
    session_lifetime: Optional[str] = None,
) -> str:
    """Embed IPRoyal stickiness parameters into a proxy password.

    Order is country, session, lifetime:
    ``pass_country-gb_session-xyz98765_lifetime-1h``. A password that already
    carries any of these markers is returned unchanged.
    """
    if any(marker in password for marker in IPROYAL_MARKERS):
        return password

    parts = [password]
    if country:
        parts.append(f"_country-{country.lower()}")
    if session_id:
        parts.append(f"_session-{session_id}")
    if session_lifetime:
        parts.append(f"_lifetime-{session_lifetime}")
    return "".join(parts)


def get_session_options(config: AppConfig) -> SessionOptions:
    """Translate stealth and proxy config into options for session creation."""
    stealth = config.stealth or StealthConfig()
    options = SessionOptions(
        stealth=stealth.level != "none",
        advanced_stealth=stealth.level == "advanced",
        block_ads=stealth.block_ads,
        solve_captchas=stealth.solve_captchas,
        viewport=stealth.viewport,
        proxy_enabled=False,
    )

    proxy = config.proxy
    if proxy is None:
        return options

    options.proxy_enabled = proxy.is_enabled
    options.proxy_country = proxy.country
    # Only an explicit type is forwarded; None means Browserbase behaviour
    options.proxy_type = proxy.type if "type" in proxy.model_fields_set else None

    if proxy.type == "external":
        options.proxy_server = proxy.server
        options.proxy_username = proxy.username
        if proxy.password is not None:
            options.proxy_password = build_iproyal_password(
                proxy.password,
                country=proxy.country,
                session_id=proxy.session_id,
                session_lifetime=proxy.session_lifetime,
            )

    return options
