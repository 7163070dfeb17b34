"""Pydantic models for Grammarly scores and optimization history."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class Scores(BaseModel):
    """AI detection and plagiarism percentages; None means not shown in the UI."""

    ai_detection_percent: Optional[float] = Field(
        default=None,
        ge=0,
        le=100,
        description="Overall AI-generated percentage as shown by Grammarly's AI Detector.",
    )
    plagiarism_percent: Optional[float] = Field(
        default=None,
        ge=0,
        le=100,
        description="Overall plagiarism / originality percentage from Grammarly's Plagiarism Checker.",
    )
    notes: str = Field(
        default="",
        description="Free-text notes about what was seen in the UI, including any warnings.",
    )


class ScoreResult(Scores):
    """Scores plus the live view URL of the session that produced them."""

    live_url: Optional[str] = None


class ExtractedScores(BaseModel):
    """Schema handed to the automation backend's structured extraction."""

    ai_detection_percent: Optional[float] = Field(
        default=None,
        ge=0,
        le=100,
        description="AI Detection Percentage shown in the AI detector panel, or null.",
    )
    plagiarism_percent: Optional[float] = Field(
        default=None,
        ge=0,
        le=100,
        description="Plagiarism Percentage shown by the plagiarism checker, or null.",
    )
    overall_score: Optional[float] = Field(
        default=None,
        description="Overall Grammarly performance score if visible.",
    )
    notes: str = Field(default="", description="Anything notable about the panel state.")


class PartialExtractedScores(BaseModel):
    """Reduced schema used when the full extraction fails."""

    ai_detection_percent: Optional[float] = Field(default=None, ge=0, le=100)
    plagiarism_percent: Optional[float] = Field(default=None, ge=0, le=100)
    notes: Optional[str] = None


class HistoryEntry(BaseModel):
    iteration: int
    ai_detection_percent: Optional[float] = None
    plagiarism_percent: Optional[float] = None
    note: str = ""
