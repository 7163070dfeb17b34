"""Claude calls used by the optimizer: rewrite, analyze, summarize."""

from __future__ import annotations

import json
import logging
import re
from typing import Optional

from anthropic import AsyncAnthropic
from pydantic import BaseModel, ValidationError

from ..config import AppConfig
from ..models.optimize import Tone
from ..models.scores import HistoryEntry

logger = logging.getLogger(__name__)

MAX_TOKENS = 4096

REWRITE_SYSTEM_PROMPT = (
    "You are an expert editor. Rewrite the user's text so it reads as natural, "
    "original human writing while preserving its meaning, facts, citations and "
    "structure. Vary sentence length and rhythm, prefer concrete wording, and "
    "avoid stock phrases. Never add new claims. Respond with a single JSON object "
    'of the form {"rewrittenText": "...", "reasoning": "..."} and nothing else.'
)

ANALYZE_SYSTEM_PROMPT = (
    "You are a writing analyst. Explain concisely why Grammarly might flag the "
    "text as AI-generated or plagiarised and list concrete edits that would lower "
    "those scores without changing the meaning."
)

SUMMARY_SYSTEM_PROMPT = (
    "You summarise a text optimization run for the user in a short paragraph: "
    "how the scores moved, whether targets were reached, and what changed."
)


class RewriteRequest(BaseModel):
    original_text: str
    last_ai_percent: Optional[float] = None
    last_plagiarism_percent: Optional[float] = None
    target_max_ai_percent: float
    target_max_plagiarism_percent: float
    tone: Tone = "neutral"
    domain_hint: Optional[str] = None
    custom_instructions: Optional[str] = None
    max_iterations: Optional[int] = None


class RewriteResult(BaseModel):
    rewritten_text: str
    reasoning: str = ""


class _RewritePayload(BaseModel):
    rewrittenText: str
    reasoning: str = ""


class SummaryRequest(BaseModel):
    mode: str
    iterations_used: int
    thresholds_met: bool
    history: list[HistoryEntry]
    final_text: str
    max_ai_percent: float
    max_plagiarism_percent: float


def _client(config: AppConfig) -> AsyncAnthropic:
    return AsyncAnthropic(
        api_key=config.anthropic_api_key,
        timeout=config.llm_request_timeout_ms / 1000,
    )


def _fmt(percent: Optional[float]) -> str:
    return "unavailable" if percent is None else f"{percent:g}%"


async def _complete(config: AppConfig, system: str, prompt: str) -> str:
    client = _client(config)
    response = await client.messages.create(
        model=config.claude_model,
        max_tokens=MAX_TOKENS,
        system=system,
        messages=[{"role": "user", "content": prompt}],
    )
    return "".join(block.text for block in response.content if block.type == "text").strip()


def parse_rewrite_response(raw: str) -> RewriteResult:
    """Pull the JSON rewrite out of a model reply.

    Replies that are not the expected JSON are used verbatim as the rewrite.
    """
    match = re.search(r"\{.*\}", raw, re.DOTALL)
    if match:
        try:
            payload = _RewritePayload.model_validate_json(match.group(0))
            return RewriteResult(rewritten_text=payload.rewrittenText, reasoning=payload.reasoning)
        except ValidationError as e:
            logger.warning("Rewrite reply was not valid JSON, using raw text: %s", e)
    return RewriteResult(rewritten_text=raw, reasoning="Model returned unstructured output.")


async def rewrite_text(config: AppConfig, request: RewriteRequest) -> RewriteResult:
    """Ask Claude for a rewrite aimed at the configured score targets."""
    lines = [
        f"Current Grammarly AI detection: {_fmt(request.last_ai_percent)} "
        f"(target <= {request.target_max_ai_percent:g}%).",
        f"Current plagiarism: {_fmt(request.last_plagiarism_percent)} "
        f"(target <= {request.target_max_plagiarism_percent:g}%).",
        f"Tone: {request.tone}.",
    ]
    if request.domain_hint:
        lines.append(f"Domain: {request.domain_hint}.")
    if request.custom_instructions:
        lines.append(f"Additional constraints: {request.custom_instructions}")
    lines += ["", "Text to rewrite:", "<text>", request.original_text, "</text>"]

    raw = await _complete(config, REWRITE_SYSTEM_PROMPT, "\n".join(lines))
    result = parse_rewrite_response(raw)
    logger.debug("Rewrite produced %d characters", len(result.rewritten_text))
    return result


async def analyze_text(
    config: AppConfig,
    text: str,
    ai_percent: Optional[float],
    plagiarism_percent: Optional[float],
    max_ai_percent: float,
    max_plagiarism_percent: float,
    tone: Tone = "neutral",
    domain_hint: Optional[str] = None,
) -> str:
    prompt = "\n".join(
        [
            f"Grammarly AI detection: {_fmt(ai_percent)} (target <= {max_ai_percent:g}%).",
            f"Plagiarism: {_fmt(plagiarism_percent)} (target <= {max_plagiarism_percent:g}%).",
            f"Desired tone: {tone}." + (f" Domain: {domain_hint}." if domain_hint else ""),
            "",
            "<text>",
            text,
            "</text>",
        ]
    )
    return await _complete(config, ANALYZE_SYSTEM_PROMPT, prompt)


async def summarize_optimization(config: AppConfig, request: SummaryRequest) -> str:
    history = json.dumps([entry.model_dump() for entry in request.history], indent=2)
    prompt = "\n".join(
        [
            f"Mode: {request.mode}. Iterations used: {request.iterations_used}.",
            f"Targets: AI <= {request.max_ai_percent:g}%, plagiarism <= {request.max_plagiarism_percent:g}%.",
            f"Thresholds met: {request.thresholds_met}.",
            "Score history:",
            history,
            "",
            "Final text:",
            request.final_text,
        ]
    )
    return await _complete(config, SUMMARY_SYSTEM_PROMPT, prompt)
