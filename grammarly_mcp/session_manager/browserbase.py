"""Browserbase session and context lifecycle for persistent Grammarly login."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Literal, Optional, Union

from browserbase import AsyncBrowserbase
from pydantic import BaseModel

from ..config import AppConfig, ConfigError
from ..models.session import SessionInfo, SessionOptions

logger = logging.getLogger(__name__)


class ProxyConfigurationError(ConfigError):
    """An external proxy was requested without the settings to honour it."""


class Geolocation(BaseModel):
    country: str


class BrowserbaseProxy(BaseModel):
    """Browserbase built-in proxy with geolocation."""

    type: Literal["browserbase"] = "browserbase"
    geolocation: Geolocation


class ExternalProxy(BaseModel):
    """Bring-your-own proxy (e.g. IPRoyal)."""

    type: Literal["external"] = "external"
    server: str
    username: Optional[str] = None
    password: Optional[str] = None


ProxyEntry = Union[BrowserbaseProxy, ExternalProxy]


def build_proxy_config(
    options: Optional[SessionOptions],
) -> Union[list[ProxyEntry], Literal[True], None]:
    """Build the Browserbase ``proxies`` value from session options.

    Returns None when proxying is disabled, a one-element list for an
    external or geolocated proxy, or True for a generic Browserbase proxy.

    Raises:
        ProxyConfigurationError: proxy_type is "external" but no server is set.
    """
    if options is None or not options.proxy_enabled:
        return None

    if options.proxy_type == "external":
        if not options.proxy_server:
            raise ProxyConfigurationError(
                "proxy_type='external' requires proxy_server to be set; configuration is missing"
            )
        logger.debug(
            "Using external proxy (BYOP), server=[external], auth=%s",
            "yes" if options.proxy_username else "no",
        )
        return [
            ExternalProxy(
                server=options.proxy_server,
                username=options.proxy_username,
                password=options.proxy_password,
            )
        ]

    if options.proxy_country:
        logger.debug("Using Browserbase geolocation proxy, country=%s", options.proxy_country)
        return [BrowserbaseProxy(geolocation=Geolocation(country=options.proxy_country))]

    logger.debug("Using generic Browserbase proxy")
    return True


def _proxies_payload(proxies: Union[list[ProxyEntry], Literal[True]]) -> Any:
    if proxies is True:
        return True
    return [proxy.model_dump(exclude_none=True) for proxy in proxies]


class BrowserbaseSessionManager:
    """Creates, reuses and releases Browserbase sessions.

    Caches at most one session id and one context id per instance. The
    context holds Grammarly's login cookies and outlives any single session.
    """

    def __init__(self, config: AppConfig):
        if not config.browserbase_api_key or not config.browserbase_project_id:
            raise ConfigError(
                "BrowserbaseSessionManager requires BROWSERBASE_API_KEY and BROWSERBASE_PROJECT_ID"
            )

        self.bb = AsyncBrowserbase(
            api_key=config.browserbase_api_key,
            timeout=config.connect_timeout_ms / 1000,
        )
        self.project_id = config.browserbase_project_id

        # Pre-seeded ids from config are reused when still valid
        self.cached_session_id: Optional[str] = config.browserbase_session_id
        self.cached_context_id: Optional[str] = config.browserbase_context_id
        self._lock = asyncio.Lock()

        logger.debug(
            "BrowserbaseSessionManager initialized (project=%s, session=%s, context=%s)",
            self.project_id,
            bool(self.cached_session_id),
            bool(self.cached_context_id),
        )

    async def is_session_active(self, session_id: str) -> bool:
        """Return True if Browserbase reports the session as RUNNING."""
        try:
            session = await self.bb.sessions.retrieve(session_id)
        except Exception as e:
            logger.debug("Session %s not found or expired: %s", session_id, e)
            return False
        return session.status == "RUNNING"

    async def get_or_create_session(
        self,
        context_id: Optional[str] = None,
        force_new: bool = False,
        options: Optional[SessionOptions] = None,
    ) -> SessionInfo:
        """Reuse the cached session if it is still running, else create one.

        A context is resolved as explicit > cached > freshly created; only a
        freshly created context reports ``needs_login=True``.
        """
        async with self._lock:
            if not force_new and self.cached_session_id:
                if await self.is_session_active(self.cached_session_id):
                    logger.debug("Reusing Browserbase session %s", self.cached_session_id)
                    return SessionInfo(
                        session_id=self.cached_session_id,
                        context_id=self.cached_context_id,
                    )
                logger.debug("Cached session %s expired, creating a new one", self.cached_session_id)

            context_id = context_id or self.cached_context_id
            needs_login = False
            if not context_id:
                logger.info("No context ID available, creating new persistent context")
                context_id = await self.create_context()
                needs_login = True

            proxies = build_proxy_config(options)

            opts = options or SessionOptions()
            browser_settings: dict[str, Any] = {
                # advanced stealth needs the Scale plan, so it is opt-in
                "advanced_stealth": bool(opts.advanced_stealth),
                "solve_captchas": True if opts.solve_captchas is None else opts.solve_captchas,
                "block_ads": True if opts.block_ads is None else opts.block_ads,
                "context": {"id": context_id, "persist": True},
            }
            if opts.viewport:
                browser_settings["viewport"] = opts.viewport.model_dump()

            create_params: dict[str, Any] = {
                "project_id": self.project_id,
                "browser_settings": browser_settings,
            }
            if proxies is not None:
                create_params["proxies"] = _proxies_payload(proxies)

            logger.debug(
                "Creating Browserbase session (proxy_enabled=%s, proxy_type=%s, country=%s, "
                "server=%s, advanced_stealth=%s)",
                opts.proxy_enabled,
                opts.proxy_type or "browserbase",
                opts.proxy_country,
                "[external]" if opts.proxy_server else None,
                browser_settings["advanced_stealth"],
            )

            session = await self.bb.sessions.create(**create_params)
            self.cached_session_id = session.id

            new_context_id = getattr(session, "context_id", None) or context_id
            if new_context_id:
                self.cached_context_id = new_context_id

            debug_url = await self.get_debug_url(session.id)

            logger.info(
                "Created Browserbase session %s (context=%s, needs_login=%s, debug_url=%s)",
                session.id,
                new_context_id,
                needs_login,
                debug_url,
            )

            return SessionInfo(
                session_id=session.id,
                context_id=new_context_id,
                status=getattr(session, "status", None),
                needs_login=needs_login,
                debug_url=debug_url,
            )

    async def close_session(self, session_id: str) -> None:
        """Request release of a session. Never raises.

        The context is left alone so the login survives.
        """
        if self.cached_session_id == session_id:
            self.cached_session_id = None
        try:
            await self.bb.sessions.update(
                session_id,
                project_id=self.project_id,
                status="REQUEST_RELEASE",
            )
            logger.debug("Closed Browserbase session %s", session_id)
        except Exception as e:
            logger.warning("Failed to close Browserbase session %s: %s", session_id, e)

    async def create_context(self) -> str:
        """Create and cache a persistent context for Grammarly login state."""
        context = await self.bb.contexts.create(project_id=self.project_id)
        self.cached_context_id = context.id
        logger.info("Created Browserbase context %s for persistent login", context.id)
        return context.id

    async def get_debug_url(self, session_id: str) -> Optional[str]:
        """Return the live view URL for a session, or None."""
        try:
            debug = await self.bb.sessions.debug(session_id)
        except Exception as e:
            logger.debug("Failed to get debug URL for %s: %s", session_id, e)
            return None
        return (
            getattr(debug, "debugger_fullscreen_url", None)
            or getattr(debug, "debugger_url", None)
            or None
        )
