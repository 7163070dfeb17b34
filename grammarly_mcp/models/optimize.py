"""Pydantic models for the optimize tool's input and result."""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, Field

from .scores import HistoryEntry

OptimizeMode = Literal["score_only", "analyze", "optimize"]
Tone = Literal["neutral", "formal", "informal", "academic", "custom"]


class OptimizeInput(BaseModel):
    """Arguments of one grammarly_optimize_text call."""

    text: str = Field(min_length=1)
    mode: OptimizeMode = "optimize"
    max_ai_percent: float = Field(default=10, ge=0, le=100)
    max_plagiarism_percent: float = Field(default=5, ge=0, le=100)
    max_iterations: int = Field(default=5, ge=1, le=20)
    tone: Tone = "neutral"
    domain_hint: Optional[str] = Field(default=None, max_length=200)
    custom_instructions: Optional[str] = Field(default=None, max_length=2000)


class OptimizeResult(BaseModel):
    final_text: str = Field(description="The optimized or original text.")
    ai_detection_percent: Optional[float] = Field(
        default=None, description="Final AI detection percentage from Grammarly."
    )
    plagiarism_percent: Optional[float] = Field(
        default=None, description="Final plagiarism percentage from Grammarly."
    )
    iterations_used: int = Field(description="Number of optimization iterations performed.")
    thresholds_met: bool = Field(description="Whether the AI and plagiarism thresholds were met.")
    history: list[HistoryEntry] = Field(
        default_factory=list, description="Scores and notes for each iteration."
    )
    notes: str = Field(default="", description="Summary or analysis notes.")
