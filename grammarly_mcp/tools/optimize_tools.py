"""MCP tool body for grammarly_optimize_text."""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

from mcp.server.fastmcp.exceptions import ToolError
from pydantic import ValidationError

from ..config import AppConfig
from ..models.optimize import OptimizeInput, OptimizeResult
from ..optimizer import ProgressCallback, run_grammarly_optimization
from ..session_manager.grammarly_task import GrammarlyAuthError, TaskSetupError

logger = logging.getLogger(__name__)


def make_progress_callback(ctx: Any) -> ProgressCallback:
    """Wrap an MCP context so progress failures never abort a run."""

    async def on_progress(message: str, percent: Optional[float] = None) -> None:
        logger.debug("Progress: %s (%s)", message, percent)
        if ctx is None:
            return
        try:
            await ctx.report_progress(percent or 0, 100, message)
        except Exception as e:
            logger.debug("Failed to send progress notification: %s", e)

    return on_progress


def build_input(config: AppConfig, **args: Any) -> OptimizeInput:
    """Apply configured defaults to omitted tool arguments and validate."""
    defaults = {
        "max_ai_percent": config.default_max_ai_percent,
        "max_plagiarism_percent": config.default_max_plagiarism_percent,
        "max_iterations": config.default_max_iterations,
    }
    for key, value in defaults.items():
        if args.get(key) is None:
            args[key] = value
    try:
        return OptimizeInput(**{k: v for k, v in args.items() if v is not None})
    except ValidationError as e:
        raise ToolError(f"Invalid arguments: {e}") from e


async def optimize_text(config: AppConfig, request: OptimizeInput, ctx: Any = None) -> OptimizeResult:
    """Run the optimizer and turn login/setup failures into structured tool errors."""
    logger.info(
        "Received grammarly_optimize_text call (mode=%s, max_ai=%s, max_plagiarism=%s, max_iterations=%s)",
        request.mode,
        request.max_ai_percent,
        request.max_plagiarism_percent,
        request.max_iterations,
    )
    try:
        return await run_grammarly_optimization(config, request, make_progress_callback(ctx))
    except GrammarlyAuthError as e:
        raise ToolError(
            json.dumps(
                {"error": "authentication_required", "message": str(e), "debug_url": e.debug_url}
            )
        ) from e
    except TaskSetupError as e:
        raise ToolError(json.dumps({"error": "setup_failed", "message": str(e)})) from e
