"""Per-stage Gemini model selection and the compact call log line."""

from typing import Optional

import structlog

from bouchenator.core.config import GenerationConfig, get_settings

logger = structlog.get_logger("gemini")

STAGE_DEFAULTS = {
    "ideas": "gemini-3-flash-preview",
    "steps": "gemini-3-pro-preview",
    "custom": "gemini-3-pro-preview",
}


def get_gemini_model(stage: str, config: Optional[GenerationConfig] = None) -> str:
    """
    Model id for a pipeline stage.

    ideas: GEMINI_IDEAS_MODEL, then GEMINI_MODEL, then the stage default.
    steps/custom: GEMINI_STEPS_MODEL, then GEMINI_MODEL, then the stage default.
    """
    config = config or get_settings().generation
    stage_override = config.gemini_ideas_model if stage == "ideas" else config.gemini_steps_model
    return stage_override or config.gemini_model or STAGE_DEFAULTS.get(stage, STAGE_DEFAULTS["steps"])


def get_gemini_api_version(config: Optional[GenerationConfig] = None) -> str:
    config = config or get_settings().generation
    return config.gemini_api_version or "v1beta"


def log_gemini_call(stage: str, config: GenerationConfig, duration_ms: int, used: str,
                    fallback: bool) -> None:
    """One secret-free line per generation request."""
    logger.info(
        "gemini_call",
        stage=stage,
        model=get_gemini_model(stage, config),
        apiVersion=get_gemini_api_version(config),
        durationMs=duration_ms,
        used=used,
        fallback=fallback,
    )
