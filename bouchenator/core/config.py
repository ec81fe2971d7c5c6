"""
Configuration management for Bouchenator.

Provides centralized, validated configuration from environment variables
with proper type checking and defaults.
"""

from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _parse_flag(v) -> bool:
    if isinstance(v, str):
        return v.lower() in ("1", "true", "yes", "y")
    return bool(v)


class GenerationConfig(BaseSettings):
    """LLM provider configuration for idea, build-plan and custom-idea generation."""

    gemini_api_key: Optional[str] = Field(default=None, alias="GEMINI_API_KEY")
    gemini_model: Optional[str] = Field(default=None, alias="GEMINI_MODEL")
    gemini_ideas_model: Optional[str] = Field(default=None, alias="GEMINI_IDEAS_MODEL")
    gemini_steps_model: Optional[str] = Field(default=None, alias="GEMINI_STEPS_MODEL")
    gemini_api_version: str = Field(default="v1beta", alias="GEMINI_API_VERSION")
    gemini_rest_url: str = Field(
        default="https://generativelanguage.googleapis.com", alias="GEMINI_REST_URL"
    )

    openai_api_key: Optional[str] = Field(default=None, alias="OPENAI_API_KEY")
    openai_model: str = Field(default="gpt-4o-mini", alias="OPENAI_CHAT_MODEL")
    openai_temperature: float = Field(default=0.8, alias="OPENAI_TEMPERATURE")
    openai_max_tokens: int = Field(default=4096, alias="OPENAI_MAX_TOKENS")

    # Per-call budgets in seconds
    ideas_timeout: float = Field(default=60.0, alias="GENERATION_IDEAS_TIMEOUT")
    steps_timeout: float = Field(default=60.0, alias="GENERATION_STEPS_TIMEOUT")
    custom_timeout: float = Field(default=20.0, alias="GENERATION_CUSTOM_TIMEOUT")

    model_config = SettingsConfigDict(env_prefix="", extra="ignore")


class FetchConfig(BaseSettings):
    """Website fetching configuration."""

    user_agent: str = Field(
        default=(
            "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
            "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
        ),
        alias="FETCH_USER_AGENT",
    )
    enable_playwright: bool = Field(default=False, alias="ENABLE_PLAYWRIGHT")
    home_timeout: float = Field(default=8.0, alias="FETCH_HOME_TIMEOUT")
    subpage_timeout: float = Field(default=6.0, alias="FETCH_SUBPAGE_TIMEOUT")
    probe_timeout: float = Field(default=4.0, alias="FETCH_PROBE_TIMEOUT")
    press_page_timeout: float = Field(default=5.0, alias="FETCH_PRESS_PAGE_TIMEOUT")
    sitemap_timeout: float = Field(default=5.0, alias="FETCH_SITEMAP_TIMEOUT")
    stylesheet_timeout: float = Field(default=5.0, alias="FETCH_STYLESHEET_TIMEOUT")
    favicon_timeout: float = Field(default=8.0, alias="FETCH_FAVICON_TIMEOUT")
    website_guess_timeout: float = Field(default=5.0, alias="WEBSITE_GUESS_TIMEOUT")
    playwright_timeout: float = Field(default=15.0, alias="PLAYWRIGHT_TIMEOUT")
    max_html_chars: int = Field(default=300_000, alias="FETCH_MAX_HTML_CHARS")

    @field_validator("enable_playwright", mode="before")
    @classmethod
    def parse_enable_playwright(cls, v):
        return _parse_flag(v)

    model_config = SettingsConfigDict(env_prefix="", extra="ignore")


class EvidenceConfig(BaseSettings):
    """Auxiliary evidence source configuration."""

    product_hunt_token: Optional[str] = Field(default=None, alias="PRODUCT_HUNT_TOKEN")
    product_hunt_api_url: str = Field(
        default="https://api.producthunt.com/v2/api/graphql", alias="PRODUCT_HUNT_API_URL"
    )
    product_hunt_timeout: float = Field(default=8.0, alias="PRODUCT_HUNT_TIMEOUT")

    wikidata_api_url: str = Field(
        default="https://www.wikidata.org/w/api.php", alias="WIKIDATA_API_URL"
    )
    wikidata_timeout: float = Field(default=6.0, alias="WIKIDATA_TIMEOUT")

    gdelt_api_url: str = Field(
        default="https://api.gdeltproject.org/api/v2/doc/doc", alias="GDELT_API_URL"
    )
    gdelt_timeout: float = Field(default=8.0, alias="GDELT_TIMEOUT")

    theme_cache_ttl: int = Field(default=30 * 60, alias="THEME_CACHE_TTL")
    product_hunt_cache_ttl: int = Field(default=10 * 60, alias="PRODUCT_HUNT_CACHE_TTL")

    model_config = SettingsConfigDict(env_prefix="", extra="ignore")


class Settings(BaseSettings):
    """Main application settings."""

    # Environment
    environment: str = Field(default="production", alias="ENVIRONMENT")
    debug: bool = Field(default=False, alias="DEBUG")

    # Demo pacing: minimum wall time per pipeline step
    demo_min_step_ms: int = Field(default=0, alias="DEMO_MIN_STEP_MS")

    # Persistence
    data_dir: str = Field(default=".bouchenator", alias="DATA_DIR")

    # Service
    service_host: str = Field(default="127.0.0.1", alias="SERVICE_HOST")
    service_port: int = Field(default=8000, alias="SERVICE_PORT")

    # Component configurations
    generation: GenerationConfig = Field(default_factory=GenerationConfig)
    fetch: FetchConfig = Field(default_factory=FetchConfig)
    evidence: EvidenceConfig = Field(default_factory=EvidenceConfig)

    @field_validator("debug", mode="before")
    @classmethod
    def parse_debug(cls, v):
        return _parse_flag(v)

    @field_validator("demo_min_step_ms", mode="before")
    @classmethod
    def parse_demo_min_step_ms(cls, v):
        try:
            return max(0, int(v or 0))
        except (TypeError, ValueError):
            return 0

    def model_post_init(self, __context) -> None:
        # Initialize sub-configurations
        self.generation = GenerationConfig()
        self.fetch = FetchConfig()
        self.evidence = EvidenceConfig()

    def resolved_data_dir(self) -> Path:
        return Path(self.data_dir).expanduser()

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


# Global settings instance
settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the global settings instance."""
    global settings
    if settings is None:
        settings = Settings()
    return settings


def reset_settings() -> None:
    """Drop the cached settings so the next call re-reads the environment."""
    global settings
    settings = None


def validate_generation_config() -> Dict[str, str]:
    """
    Report which generation providers are usable with the current environment.

    Returns a dictionary of provider name to status.
    """
    config = get_settings().generation
    status = {
        "gemini_sdk": "available" if config.gemini_api_key else "unavailable",
        "openai": "available" if config.openai_api_key else "unavailable",
        "gemini_rest": "available" if config.gemini_api_key else "unavailable",
        "mock": "available",
    }
    live = [k for k, v in status.items() if k != "mock" and v == "available"]
    status["overall"] = "live" if live else "mock_only"
    return status


def missing_optional_settings() -> List[str]:
    """List optional settings that would enrich the pipeline if present."""
    config = get_settings()
    missing = []
    if not config.generation.gemini_api_key:
        missing.append("GEMINI_API_KEY")
    if not config.generation.openai_api_key:
        missing.append("OPENAI_API_KEY")
    if not config.evidence.product_hunt_token:
        missing.append("PRODUCT_HUNT_TOKEN")
    return missing
