"""Grammarly scoring flow driven through Stagehand observe/act/extract.

Each scoring call walks the same pipeline: acquire page, navigate, verify
login, create a document, enter the text, open the AI detection panel, and
extract the scores. Every UI step observes first and falls back to a
natural-language action when nothing usable was observed.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional
from urllib.parse import urlparse

from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from pydantic import BaseModel

from ..constants import (
    AI_DETECTION_FALLBACK,
    AI_DETECTION_OBSERVE,
    AUTH_INDICATOR_INSTRUCTION,
    CLEANUP_DOCUMENT_INSTRUCTION,
    CLEANUP_DOCUMENT_OBSERVE,
    EDITOR_SELECTOR,
    EXTRACT_INSTRUCTION,
    GRAMMARLY_APP_URL,
    GRAMMARLY_HOST,
    MAX_TEXT_LENGTH,
    NEW_DOCUMENT_FALLBACK,
    NEW_DOCUMENT_OBSERVE,
    PARTIAL_EXTRACT_INSTRUCTION,
    SHORT_TEXT_LIMIT,
    SIGNED_OUT_PATHS,
    TYPE_TEXT_INSTRUCTION,
)
from ..models.scores import ExtractedScores, PartialExtractedScores

logger = logging.getLogger(__name__)

# Pause after actions that make Grammarly do work in the background
SETTLE_DELAY_SECONDS = 2.0
RESULTS_DELAY_SECONDS = 5.0


class TaskSetupError(RuntimeError):
    """The automation handle has no usable page."""


class GrammarlyAuthError(RuntimeError):
    """Grammarly is signed out; a human has to log in through the live view."""

    def __init__(self, message: str, debug_url: Optional[str] = None):
        super().__init__(message)
        self.debug_url = debug_url


class AuthStatus(BaseModel):
    logged_in: bool
    current_url: str


async def _first_page(stagehand: Any, message: str) -> Any:
    # StagehandContext exposes pages() as a coroutine returning wrapped pages
    pages = await stagehand.context.pages()
    if not pages:
        raise TaskSetupError(message)
    return pages[0]


def _selector(element: Any) -> Optional[str]:
    if isinstance(element, dict):
        return element.get("selector")
    return getattr(element, "selector", None)


def _is_grammarly_url(url: str) -> bool:
    return urlparse(url).hostname == GRAMMARLY_HOST


async def _settle(seconds: float) -> None:
    if seconds > 0:
        await asyncio.sleep(seconds)


async def observe_then_act(page: Any, instruction: str, fallback: str) -> bool:
    """Observe an element and act on it, or fall back to a plain instruction.

    Returns True when the observed element was used directly. An element
    without a selector, or one that fails to act, falls back as well.
    """
    try:
        observed = await page.observe(instruction)
    except Exception as e:
        logger.debug("observe(%r) failed: %s", instruction, e)
        observed = []

    element = observed[0] if observed else None
    if element is not None and _selector(element):
        try:
            await page.act(element)
            return True
        except Exception as e:
            logger.warning("Acting on observed element for %r failed, falling back: %s", instruction, e)
    else:
        logger.debug("Nothing usable observed for %r, falling back to instruction", instruction)

    await page.act(fallback)
    return False


async def _detect_login(page: Any) -> bool:
    url = page.url
    if not _is_grammarly_url(url):
        return False
    path = urlparse(url).path
    if any(fragment in path for fragment in SIGNED_OUT_PATHS):
        return False

    try:
        indicators = await page.observe(AUTH_INDICATOR_INSTRUCTION)
    except Exception as e:
        # Treat a failed probe as signed out rather than work in a guest session
        logger.debug("Auth indicator observation failed: %s", e)
        return False
    return bool(indicators)


async def check_auth_status(stagehand: Any) -> AuthStatus:
    """Report whether the browser is signed into Grammarly."""
    page = await _first_page(stagehand, "No page found in browser context")
    logged_in = await _detect_login(page)
    return AuthStatus(logged_in=logged_in, current_url=page.url)


async def _navigate(page: Any) -> None:
    if _is_grammarly_url(page.url):
        logger.debug("Already on Grammarly (%s)", page.url)
    else:
        logger.info("Navigating to %s", GRAMMARLY_APP_URL)
        try:
            await page.goto(GRAMMARLY_APP_URL, wait_until="networkidle")
        except PlaywrightTimeoutError as e:
            logger.warning("Navigation did not reach network idle, continuing: %s", e)
            return

    try:
        await page.wait_for_load_state("networkidle")
    except Exception as e:
        logger.warning("Network idle wait timed out, continuing: %s", e)


async def _enter_text(page: Any, text: str) -> None:
    if len(text) <= SHORT_TEXT_LIMIT:
        await page.act(TYPE_TEXT_INSTRUCTION.format(text=text))
        return
    # Natural-language typing gets slow and lossy for long input
    await page.locator(EDITOR_SELECTOR).fill(text)


def _as_dict(result: Any) -> dict:
    if hasattr(result, "model_dump"):
        return result.model_dump()
    return dict(result)


async def _extract_scores(page: Any) -> ExtractedScores:
    try:
        raw = await page.extract(EXTRACT_INSTRUCTION, schema=ExtractedScores)
        return ExtractedScores.model_validate(_as_dict(raw))
    except Exception as original:
        logger.warning("Score extraction failed, trying partial extraction: %s", original)
        try:
            raw = await page.extract(PARTIAL_EXTRACT_INSTRUCTION, schema=PartialExtractedScores)
            partial = PartialExtractedScores.model_validate(_as_dict(raw))
        except Exception as fallback_error:
            logger.debug("Partial extraction also failed: %s", fallback_error)
            raise original

    notes = (partial.notes or "").strip()
    return ExtractedScores(
        ai_detection_percent=partial.ai_detection_percent,
        plagiarism_percent=partial.plagiarism_percent,
        notes=f"{notes} (partial extraction)".strip(),
    )


async def run_stagehand_grammarly_task(
    stagehand: Any,
    text: str,
    max_steps: Optional[int] = None,
    iteration: Optional[int] = None,
    mode: Optional[str] = None,
    debug_url: Optional[str] = None,
) -> ExtractedScores:
    """Score ``text`` in Grammarly and return the extracted percentages.

    Raises:
        TaskSetupError: the Stagehand context has no page.
        GrammarlyAuthError: Grammarly is not signed in.
    """
    page = await _first_page(stagehand, "No page available in Stagehand context")

    if len(text) > MAX_TEXT_LENGTH:
        logger.warning("Text has %d characters, truncating to %d", len(text), MAX_TEXT_LENGTH)
        text = text[:MAX_TEXT_LENGTH]

    logger.info(
        "Scoring %d characters in Grammarly (iteration=%s, mode=%s, max_steps=%s)",
        len(text),
        iteration,
        mode,
        max_steps,
    )

    await _navigate(page)

    if not await _detect_login(page):
        if debug_url:
            message = (
                "Grammarly login required. Open the live browser session and sign in: "
                f"{debug_url}"
            )
        else:
            message = (
                "Grammarly login required. Sign in once through a Browserbase session "
                "and set BROWSERBASE_CONTEXT_ID to the persisted context."
            )
        raise GrammarlyAuthError(message, debug_url)

    await observe_then_act(page, NEW_DOCUMENT_OBSERVE, NEW_DOCUMENT_FALLBACK)
    await _settle(SETTLE_DELAY_SECONDS)

    await _enter_text(page, text)
    await _settle(SETTLE_DELAY_SECONDS)

    await observe_then_act(page, AI_DETECTION_OBSERVE, AI_DETECTION_FALLBACK)
    await _settle(RESULTS_DELAY_SECONDS)

    scores = await _extract_scores(page)
    logger.info(
        "Extracted scores: ai=%s, plagiarism=%s",
        scores.ai_detection_percent,
        scores.plagiarism_percent,
    )
    return scores


async def cleanup_grammarly_document(stagehand: Any) -> None:
    """Delete or close the current document. Never raises."""
    try:
        page = await _first_page(stagehand, "No page available for cleanup")
        await observe_then_act(page, CLEANUP_DOCUMENT_OBSERVE, CLEANUP_DOCUMENT_INSTRUCTION)
    except Exception as e:
        logger.debug("Document cleanup failed: %s", e)
