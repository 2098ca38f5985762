# config.py
"""Configuration settings for the Arcloom generation layer.
Uses Pydantic BaseSettings for automatic environment variable loading.
"""

from __future__ import annotations

import os

import structlog
from dotenv import load_dotenv
from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv()

logger = structlog.get_logger()


class ArcloomSettings(BaseSettings):
    """Full configuration for the Arcloom generation layer."""

    # Provider API Configuration
    OPENAI_API_BASE: str = "https://api.openai.com/v1"
    GEMINI_API_BASE: str = "https://generativelanguage.googleapis.com/v1beta"

    # Transport Settings
    HTTPX_TIMEOUT: float = 600.0
    LLM_RETRY_ATTEMPTS: int = 3
    LLM_RETRY_DELAY_SECONDS: float = 1.5

    # Temperature Settings
    TEMPERATURE_NARRATIVE: float = 0.8
    TEMPERATURE_WORLD_GENERATION: float = 0.9

    # Output Repair
    REPAIR_SAFE_MODE: bool = False
    REPAIR_PREVIEW_CHARS: int = 200
    DETAILED_ERRORS: bool = False

    # Narrative Streaming
    NARRATIVE_TEXT_FIELD: str = "text"

    # Image Generation
    IMAGE_STYLE_PREFIX: str = (
        "A beautiful, high-quality, cinematic anime style illustration of: "
    )

    # Model Discovery
    MODEL_LIST_CACHE_SIZE: int = 32
    OPENAI_TEXT_MODEL_KEYWORDS: list[str] = [
        "gpt",
        "davinci",
        "babbage",
        "instruct",
        "codex",
        "o1",
        "o3",
        "o4",
        "command-a",
        "command-r",
    ]
    OPENAI_NON_TEXT_MODEL_KEYWORDS: list[str] = [
        "image",
        "audio",
        "sora",
        "tts",
        "whisper",
        "transcribe",
        "embedding",
        "moderation",
    ]
    OPENAI_IMAGE_MODEL_KEYWORDS: list[str] = ["dall-e", "image"]

    # Storage
    BASE_OUTPUT_DIR: str = "arcloom_data"
    BACKENDS_FILE: str = "backends.json"

    # Logging & UI
    LOG_LEVEL_STR: str = Field("INFO", alias="ARCLOOM_LOG_LEVEL")
    LOG_FORMAT: str = (
        "%(asctime)s - %(levelname)s - [%(name)s:%(funcName)s:%(lineno)d] - %(message)s"
    )
    LOG_DATE_FORMAT: str = "%Y-%m-%d %H:%M:%S"
    LOG_FILE: str | None = "arcloom_run.log"
    ENABLE_RICH_PROGRESS: bool = True

    @model_validator(mode="after")
    def clamp_retry_settings(self) -> ArcloomSettings:
        if self.LLM_RETRY_ATTEMPTS < 1:
            logger.warning(
                "LLM_RETRY_ATTEMPTS below 1; forcing a single attempt.",
                configured=self.LLM_RETRY_ATTEMPTS,
            )
            self.LLM_RETRY_ATTEMPTS = 1
        if self.LLM_RETRY_DELAY_SECONDS < 0:
            self.LLM_RETRY_DELAY_SECONDS = 0.0
        return self

    model_config = SettingsConfigDict(env_prefix="", env_file=".env", extra="ignore")


settings = ArcloomSettings()


BACKENDS_FILE_PATH = os.path.join(settings.BASE_OUTPUT_DIR, settings.BACKENDS_FILE)
