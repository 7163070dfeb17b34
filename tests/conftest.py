"""
Pytest fixtures shared by the Grammarly optimizer test suite.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from grammarly_mcp.config import AppConfig
from grammarly_mcp.session_manager import grammarly_task


# === Config Fixtures ===

@pytest.fixture
def app_config():
    """Stagehand-provider config with fake credentials."""
    return AppConfig(
        browserbase_api_key="bb_test_key",
        browserbase_project_id="proj-123",
        anthropic_api_key="sk-ant-test",
        google_api_key="google-test",
    )


@pytest.fixture
def browser_use_config():
    return AppConfig(
        browser_provider="browser-use",
        browser_use_api_key="bu-test-key",
        browser_use_profile_id="profile-1",
        anthropic_api_key="sk-ant-test",
    )


# === Browser Fixtures ===

@pytest.fixture
def make_page():
    """Factory for a mock Stagehand page already on Grammarly and signed in."""

    def _make(url="https://app.grammarly.com/", observed=None, extracted=None):
        page = MagicMock()
        page.url = url
        page.observe = AsyncMock(return_value=observed if observed is not None else [{"selector": "#x"}])
        page.act = AsyncMock()
        page.extract = AsyncMock(
            return_value=extracted
            if extracted is not None
            else {"ai_detection_percent": 12, "plagiarism_percent": 3, "notes": "ok"}
        )
        page.goto = AsyncMock()
        page.wait_for_load_state = AsyncMock()
        editor = MagicMock()
        editor.fill = AsyncMock()
        page.locator = MagicMock(return_value=editor)
        return page

    return _make


@pytest.fixture
def make_stagehand():
    """Factory for a mock Stagehand handle; ``context.pages()`` is awaited like StagehandContext."""

    def _make(*pages):
        stagehand = MagicMock()
        stagehand.context.pages = AsyncMock(return_value=list(pages))
        stagehand.init = AsyncMock()
        stagehand.close = AsyncMock()
        return stagehand

    return _make


@pytest.fixture(autouse=True)
def no_ui_delays(monkeypatch):
    """Skip the settle pauses between Grammarly UI steps."""
    monkeypatch.setattr(grammarly_task, "SETTLE_DELAY_SECONDS", 0)
    monkeypatch.setattr(grammarly_task, "RESULTS_DELAY_SECONDS", 0)
