"""Score / analyze / optimize loop over a single browser session."""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, Optional

from .config import AppConfig, get_session_options
from .llm.claude_client import (
    RewriteRequest,
    SummaryRequest,
    analyze_text,
    rewrite_text,
    summarize_optimization,
)
from .models.optimize import OptimizeInput, OptimizeResult
from .models.scores import HistoryEntry, Scores
from .models.session import ScoreOptions
from .session_manager.provider import BrowserProvider, create_browser_provider

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str, Optional[float]], Awaitable[None]]

SETUP_BAND_END = 15.0
LOOP_BAND_END = 85.0
SUMMARY_PROGRESS = 92.0


def thresholds_met(scores: Scores, max_ai_percent: float, max_plagiarism_percent: float) -> bool:
    """An unavailable score passes its threshold, unless both are unavailable."""
    ai = scores.ai_detection_percent
    plagiarism = scores.plagiarism_percent

    if ai is None and plagiarism is None:
        logger.warning("Cannot verify thresholds: both Grammarly scores unavailable")
        return False

    ai_ok = ai is None or ai <= max_ai_percent
    plagiarism_ok = plagiarism is None or plagiarism <= max_plagiarism_percent
    return ai_ok and plagiarism_ok


def iteration_progress(iteration: int, max_iterations: int, offset: float = 0.0) -> float:
    """Map an iteration step into the 15-85 band; offset 0.5 marks re-scoring."""
    span = LOOP_BAND_END - SETUP_BAND_END
    value = SETUP_BAND_END + ((iteration - 1 + offset) / max_iterations) * span
    return max(SETUP_BAND_END, min(LOOP_BAND_END, value))


class _Progress:
    """Forwards progress to the caller, clamped to 0-100 and never decreasing."""

    def __init__(self, callback: Optional[ProgressCallback]):
        self._callback = callback
        self._last = 0.0

    async def __call__(self, message: str, percent: float) -> None:
        percent = max(self._last, min(100.0, max(0.0, percent)))
        self._last = percent
        if self._callback is not None:
            await self._callback(message, percent)


def _history_entry(iteration: int, scores: Scores, note: str) -> HistoryEntry:
    return HistoryEntry(
        iteration=iteration,
        ai_detection_percent=scores.ai_detection_percent,
        plagiarism_percent=scores.plagiarism_percent,
        note=note,
    )


async def run_grammarly_optimization(
    config: AppConfig,
    request: OptimizeInput,
    on_progress: Optional[ProgressCallback] = None,
    provider: Optional[BrowserProvider] = None,
) -> OptimizeResult:
    """Score, analyze or iteratively rewrite ``request.text``.

    The browser session opened here is always closed before returning,
    including when scoring or rewriting raises.
    """
    progress = _Progress(on_progress)
    provider = provider or create_browser_provider(config)

    history: list[HistoryEntry] = []
    current_text = request.text
    iterations_used = 0
    reached = False

    await progress(f"Creating {provider.provider_name} browser session...", 5)
    session = await provider.create_session(get_session_options(config))
    session_id = session.session_id
    if session.needs_login:
        logger.warning(
            "Fresh browser context: log into Grammarly via %s",
            session.debug_url or session.live_url or "the Browserbase dashboard",
        )

    try:
        await progress("Running initial Grammarly scoring...", 10)
        logger.info("Running initial Grammarly scoring pass")
        last_scores = await provider.score_text(
            session_id, current_text, ScoreOptions(iteration=0, mode=request.mode)
        )
        history.append(
            _history_entry(0, last_scores, "Baseline Grammarly scores on original text (iteration 0).")
        )

        if request.mode == "score_only":
            reached = thresholds_met(last_scores, request.max_ai_percent, request.max_plagiarism_percent)
            await progress("Scoring complete", 100)
            notes = (
                "Score-only run: original text already meets configured AI and plagiarism thresholds."
                if reached
                else "Score-only run: thresholds not met or scores unavailable; no rewriting performed."
            )
            return OptimizeResult(
                final_text=current_text,
                ai_detection_percent=last_scores.ai_detection_percent,
                plagiarism_percent=last_scores.plagiarism_percent,
                iterations_used=0,
                thresholds_met=reached,
                history=history,
                notes=notes,
            )

        if request.mode == "analyze":
            await progress("Analyzing text with Claude...", 50)
            analysis = await analyze_text(
                config,
                current_text,
                last_scores.ai_detection_percent,
                last_scores.plagiarism_percent,
                request.max_ai_percent,
                request.max_plagiarism_percent,
                tone=request.tone,
                domain_hint=request.domain_hint,
            )
            reached = thresholds_met(last_scores, request.max_ai_percent, request.max_plagiarism_percent)
            await progress("Analysis complete", 100)
            return OptimizeResult(
                final_text=current_text,
                ai_detection_percent=last_scores.ai_detection_percent,
                plagiarism_percent=last_scores.plagiarism_percent,
                iterations_used=0,
                thresholds_met=reached,
                history=history,
                notes=analysis,
            )

        await progress("Starting optimization loop...", SETUP_BAND_END)
        logger.info(
            "Starting optimization loop (max_iterations=%d, max_ai=%s, max_plagiarism=%s)",
            request.max_iterations,
            request.max_ai_percent,
            request.max_plagiarism_percent,
        )

        for iteration in range(1, request.max_iterations + 1):
            iterations_used = iteration

            await progress(
                f"Iteration {iteration}/{request.max_iterations}: Rewriting with Claude...",
                iteration_progress(iteration, request.max_iterations),
            )
            rewrite = await rewrite_text(
                config,
                RewriteRequest(
                    original_text=current_text,
                    last_ai_percent=last_scores.ai_detection_percent,
                    last_plagiarism_percent=last_scores.plagiarism_percent,
                    target_max_ai_percent=request.max_ai_percent,
                    target_max_plagiarism_percent=request.max_plagiarism_percent,
                    tone=request.tone,
                    domain_hint=request.domain_hint,
                    custom_instructions=request.custom_instructions,
                    max_iterations=request.max_iterations,
                ),
            )
            current_text = rewrite.rewritten_text

            await progress(
                f"Iteration {iteration}/{request.max_iterations}: Re-scoring with Grammarly...",
                iteration_progress(iteration, request.max_iterations, offset=0.5),
            )
            last_scores = await provider.score_text(
                session_id, current_text, ScoreOptions(iteration=iteration, mode=request.mode)
            )
            reached = thresholds_met(last_scores, request.max_ai_percent, request.max_plagiarism_percent)
            history.append(_history_entry(iteration, last_scores, rewrite.reasoning))

            logger.info(
                "Optimization iteration %d completed (ai=%s, plagiarism=%s, thresholds_met=%s)",
                iteration,
                last_scores.ai_detection_percent,
                last_scores.plagiarism_percent,
                reached,
            )
            if reached:
                break

        await progress("Generating optimization summary...", SUMMARY_PROGRESS)
        notes = await summarize_optimization(
            config,
            SummaryRequest(
                mode=request.mode,
                iterations_used=iterations_used,
                thresholds_met=reached,
                history=history,
                final_text=current_text,
                max_ai_percent=request.max_ai_percent,
                max_plagiarism_percent=request.max_plagiarism_percent,
            ),
        )
        await progress("Optimization complete", 100)

        return OptimizeResult(
            final_text=current_text,
            ai_detection_percent=last_scores.ai_detection_percent,
            plagiarism_percent=last_scores.plagiarism_percent,
            iterations_used=iterations_used,
            thresholds_met=reached,
            history=history,
            notes=notes,
        )
    finally:
        try:
            await provider.close_session(session_id)
            logger.debug("Browser session %s closed", session_id)
        except Exception as e:
            logger.warning("Failed to close browser session %s: %s", session_id, e)
