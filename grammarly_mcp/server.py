"""MCP Server entry point for the Grammarly text optimizer.

Exposes one tool to MCP clients:
- grammarly_optimize_text: score text with Grammarly's AI detector and
  plagiarism checker, analyze it, or rewrite it with Claude until the
  configured thresholds are met.

All logging goes to stderr; stdout carries MCP JSON-RPC only.
"""

import logging
import sys
from typing import Literal, Optional

from mcp.server.fastmcp import Context, FastMCP
from mcp.types import ToolAnnotations

from .config import ConfigError, configure_logging, get_config
from .models.optimize import OptimizeResult
from .tools.optimize_tools import build_input, optimize_text

logger = logging.getLogger("grammarly-optimizer")

mcp = FastMCP(
    "grammarly-optimizer",
    instructions=(
        "Grammarly Text Optimizer - score text for AI detection and plagiarism "
        "in a real Grammarly session and optionally rewrite it with Claude. "
        "Use mode='score_only' for scores, 'analyze' for scores plus advice, "
        "'optimize' to rewrite until the thresholds are met. If the tool reports "
        "authentication_required, open the returned debug_url and sign in."
    ),
)


@mcp.tool(
    title="Grammarly Text Optimizer",
    annotations=ToolAnnotations(
        readOnlyHint=False,
        destructiveHint=False,
        idempotentHint=False,
        openWorldHint=True,
    ),
)
async def grammarly_optimize_text(
    text: str,
    mode: Literal["score_only", "analyze", "optimize"] = "optimize",
    max_ai_percent: Optional[float] = None,
    max_plagiarism_percent: Optional[float] = None,
    max_iterations: Optional[int] = None,
    tone: Literal["neutral", "formal", "informal", "academic", "custom"] = "neutral",
    domain_hint: Optional[str] = None,
    custom_instructions: Optional[str] = None,
    ctx: Context = None,
) -> OptimizeResult:
    """Score and optionally rewrite text using Grammarly and Claude.

    Args:
        text: The text to evaluate.
        mode: "score_only", "analyze", or "optimize" (default).
        max_ai_percent: Target maximum AI detection percentage (default 10).
        max_plagiarism_percent: Target maximum plagiarism percentage (default 5).
        max_iterations: Maximum rewrite iterations in optimize mode (1-20, default 5).
        tone: Desired tone of the final text.
        domain_hint: Short description of the domain, e.g. "university essay".
        custom_instructions: Extra constraints, e.g. "preserve citations".
    """
    config = get_config()
    request = build_input(
        config,
        text=text,
        mode=mode,
        max_ai_percent=max_ai_percent,
        max_plagiarism_percent=max_plagiarism_percent,
        max_iterations=max_iterations,
        tone=tone,
        domain_hint=domain_hint,
        custom_instructions=custom_instructions,
    )
    return await optimize_text(config, request, ctx)


# ── Entry Point ──────────────────────────────────────────────────────────────


def main():
    """Validate configuration and run the MCP server on STDIO transport."""
    configure_logging()
    try:
        config = get_config()
    except ConfigError as e:
        logger.error("%s", e)
        sys.exit(1)

    configure_logging(config.log_level)
    logger.info("Starting Grammarly optimizer MCP server over stdio (provider=%s)", config.browser_provider)
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
