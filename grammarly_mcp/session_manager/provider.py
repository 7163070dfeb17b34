"""Browser provider interface shared by the Stagehand and Browser Use backends."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from ..config import AppConfig, ConfigError
from ..models.scores import ScoreResult
from ..models.session import ScoreOptions, SessionOptions, SessionResult


class BrowserProvider(ABC):
    """Something that can open a Grammarly-capable browser and score text in it."""

    provider_name: str

    @abstractmethod
    async def create_session(self, options: Optional[SessionOptions] = None) -> SessionResult:
        """Create a browser session ready for Grammarly automation."""

    @abstractmethod
    async def score_text(
        self,
        session_id: str,
        text: str,
        options: Optional[ScoreOptions] = None,
    ) -> ScoreResult:
        """Run Grammarly's AI detector and plagiarism checker on ``text``."""

    @abstractmethod
    async def close_session(self, session_id: str) -> None:
        """Release the session. Implementations must not raise."""


def create_browser_provider(config: AppConfig) -> BrowserProvider:
    """Instantiate the provider selected by ``config.browser_provider``."""
    if config.browser_provider == "stagehand":
        from .stagehand_provider import StagehandProvider

        return StagehandProvider(config)
    if config.browser_provider == "browser-use":
        from .browser_use_provider import BrowserUseProvider

        return BrowserUseProvider(config)
    raise ConfigError(f"Unknown browser provider: {config.browser_provider}")
