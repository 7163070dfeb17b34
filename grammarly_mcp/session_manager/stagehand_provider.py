"""Stagehand + Browserbase provider with deterministic observe/act/extract."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

from stagehand import Stagehand, StagehandConfig

from ..config import AppConfig, ConfigError
from ..llm.stagehand_llm import get_llm_api_key, get_llm_model_name
from ..models.scores import ScoreResult
from ..models.session import ScoreOptions, SessionOptions, SessionResult
from .browserbase import BrowserbaseSessionManager
from .grammarly_task import (
    GrammarlyAuthError,
    cleanup_grammarly_document,
    run_stagehand_grammarly_task,
)
from .provider import BrowserProvider

logger = logging.getLogger(__name__)

_PROXY_FIELDS = ("proxy_country", "proxy_type", "proxy_server", "proxy_username", "proxy_password")


class StagehandProvider(BrowserProvider):
    """Primary provider: Browserbase sessions driven by Stagehand."""

    provider_name = "stagehand"

    def __init__(self, config: AppConfig, session_manager: Optional[BrowserbaseSessionManager] = None):
        self.config = config
        self.session_manager = session_manager or BrowserbaseSessionManager(config)
        self._stagehands: dict[str, Any] = {}
        self._debug_urls: dict[str, str] = {}

    async def create_session(self, options: Optional[SessionOptions] = None) -> SessionResult:
        options = options or SessionOptions()
        if not options.proxy_enabled:
            # Proxy fields only travel with an enabled proxy
            options = options.model_copy(update={field: None for field in _PROXY_FIELDS})

        session_info = await self.session_manager.get_or_create_session(
            context_id=self.config.browserbase_context_id,
            options=options,
        )
        session_id = session_info.session_id

        try:
            stagehand = await self._create_stagehand(session_id)
        except Exception as e:
            logger.error("Failed to initialize Stagehand for session %s: %s", session_id, e)
            await self.session_manager.close_session(session_id)
            raise
        self._stagehands[session_id] = stagehand

        live_url = session_info.debug_url or await self.session_manager.get_debug_url(session_id)
        if live_url:
            self._debug_urls[session_id] = live_url

        logger.info(
            "Stagehand session ready (session=%s, context=%s, needs_login=%s, live_url=%s)",
            session_id,
            session_info.context_id,
            session_info.needs_login,
            live_url,
        )

        return SessionResult(
            session_id=session_id,
            live_url=live_url or session_info.live_url,
            context_id=session_info.context_id,
            needs_login=session_info.needs_login,
            debug_url=live_url,
        )

    async def score_text(
        self,
        session_id: str,
        text: str,
        options: Optional[ScoreOptions] = None,
    ) -> ScoreResult:
        stagehand = self._stagehands.get(session_id)
        if stagehand is None:
            raise RuntimeError(f"No Stagehand instance found for session: {session_id}")

        options = options or ScoreOptions()
        debug_url = self._debug_urls.get(session_id)
        logger.debug("Scoring %d characters in session %s", len(text), session_id)

        try:
            scores = await asyncio.wait_for(
                run_stagehand_grammarly_task(
                    stagehand,
                    text,
                    max_steps=options.max_steps,
                    iteration=options.iteration,
                    mode=options.mode,
                    debug_url=debug_url,
                ),
                timeout=self.config.score_timeout_ms / 1000,
            )
        except GrammarlyAuthError as e:
            logger.warning("Grammarly login required for session %s (debug_url=%s)", session_id, e.debug_url)
            raise

        live_url = await self.session_manager.get_debug_url(session_id)
        return ScoreResult(
            ai_detection_percent=scores.ai_detection_percent,
            plagiarism_percent=scores.plagiarism_percent,
            notes=scores.notes,
            live_url=live_url,
        )

    async def close_session(self, session_id: str) -> None:
        logger.debug("Closing Stagehand session %s", session_id)

        stagehand = self._stagehands.pop(session_id, None)
        if stagehand is not None:
            await cleanup_grammarly_document(stagehand)
            try:
                await stagehand.close()
            except Exception as e:
                logger.warning("Failed to close Stagehand instance for %s: %s", session_id, e)

        self._debug_urls.pop(session_id, None)
        await self.session_manager.close_session(session_id)

    async def _create_stagehand(self, session_id: str) -> Any:
        """Connect a Stagehand instance to an existing Browserbase session."""
        if not self.config.browserbase_api_key or not self.config.browserbase_project_id:
            raise ConfigError(
                "BROWSERBASE_API_KEY and BROWSERBASE_PROJECT_ID are required for the Stagehand provider"
            )

        model_name = get_llm_model_name(self.config)
        logger.debug("Creating Stagehand instance (session=%s, model=%s)", session_id, model_name)

        stagehand_config = StagehandConfig(
            env="BROWSERBASE",
            api_key=self.config.browserbase_api_key,
            project_id=self.config.browserbase_project_id,
            browserbase_session_id=session_id,
            model_name=model_name,
            model_client_options={"apiKey": get_llm_api_key(self.config)},
            self_heal=True,
            verbose=2 if self.config.log_level == "debug" else 1,
        )
        stagehand = Stagehand(stagehand_config)
        await stagehand.init()

        logger.debug("Stagehand instance initialized for session %s", session_id)
        return stagehand
