"""Model selection for the LLM that Stagehand uses to observe and act."""

from __future__ import annotations

from typing import Optional

from ..config import AppConfig


def detect_llm_provider(config: AppConfig) -> str:
    """Explicit STAGEHAND_LLM_PROVIDER wins, then the first API key present."""
    if config.stagehand_llm_provider:
        return config.stagehand_llm_provider
    if config.openai_api_key:
        return "openai"
    if config.google_api_key:
        return "google"
    if config.anthropic_api_key:
        return "anthropic"
    return "google"


def get_llm_model_name(config: AppConfig, provider: Optional[str] = None) -> str:
    """Return a Stagehand model name in ``provider/model`` form."""
    provider = provider or detect_llm_provider(config)
    if provider == "openai":
        model = config.openai_model
    elif provider == "google":
        # STAGEHAND_MODEL defaults to a Gemini model
        model = config.stagehand_model or config.google_model
    elif provider == "anthropic":
        model = config.anthropic_model
    else:
        return "unknown"
    return model if "/" in model else f"{provider}/{model}"


def get_llm_api_key(config: AppConfig, provider: Optional[str] = None) -> Optional[str]:
    provider = provider or detect_llm_provider(config)
    return {
        "openai": config.openai_api_key,
        "google": config.google_api_key,
        "anthropic": config.anthropic_api_key,
    }.get(provider)
