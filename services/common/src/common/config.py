"""Application-wide configuration management using Pydantic settings."""

from __future__ import annotations

from functools import lru_cache
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Central configuration shared across services.

    Every field can be overridden with a ``DREAMLOG_``-prefixed environment
    variable (``DREAMLOG_OPENAI_API_KEY``, ``DREAMLOG_RATE_STORY_LIMIT`` ...).
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="DREAMLOG_",
        env_nested_delimiter="__",
        extra="allow",
    )

    environment: str = "development"
    service_name: str = "dreamlog"
    log_level: str = "INFO"

    # HTTP surface
    cors_origins: List[str] = ["http://localhost:5173", "http://localhost:4173"]
    # Proxies whose X-Forwarded-For is honoured when keying rate budgets
    trusted_proxies: List[str] = []

    # Model providers
    openai_api_key: Optional[str] = None
    openai_base_url: Optional[str] = None
    chat_model: str = "gpt-4"
    image_model: str = "dall-e-3"
    transcription_model: str = "whisper-1"
    tts_model: str = "tts-1"
    tts_default_voice: str = "nova"
    tts_default_speed: float = 1.0
    provider_timeout_seconds: float = 60.0

    # Payload ceilings enforced before dispatch
    max_audio_bytes: int = 10 * 1024 * 1024
    max_text_bytes: int = 10 * 1024 * 1024

    # Remote dream store (authenticated sessions)
    remote_store_url: Optional[str] = None
    remote_store_timeout_seconds: float = 15.0

    # Local dream store (guest sessions)
    local_store_dir: str = "storage/dreams"

    # Rate budgets: limit per window, window in seconds
    rate_general_limit: int = 100
    rate_general_window_seconds: float = 15 * 60
    rate_story_limit: int = 5
    rate_story_window_seconds: float = 60
    rate_image_limit: int = 3
    rate_image_window_seconds: float = 60
    rate_analysis_limit: int = 5
    rate_analysis_window_seconds: float = 60
    rate_speech_limit: int = 10
    rate_speech_window_seconds: float = 60
    rate_transcription_limit: int = 10
    rate_transcription_window_seconds: float = 60


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load and cache configuration for the current process."""

    return Settings()  # type: ignore[arg-type]


settings = get_settings()
