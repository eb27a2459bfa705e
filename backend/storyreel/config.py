from __future__ import annotations
"""Application configuration using Pydantic Settings."""

from functools import lru_cache
from urllib.parse import quote_plus

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """StoryReel application settings.

    Loaded from environment variables or .env file.
    """

    # --- Application ---
    APP_NAME: str = "StoryReel"
    DEBUG: bool = False
    USE_MOCK_API: bool = True

    # --- Database (MySQL 8.0+) ---
    DB_HOST: str = "127.0.0.1"
    DB_PORT: int = 3306
    DB_USER: str = "root"
    DB_PASSWORD: str = ""
    DB_NAME: str = "storyreel"
    DATABASE_URL_OVERRIDE: str = ""  # e.g. sqlite+aiosqlite:///./storyreel.db

    @property
    def DATABASE_URL(self) -> str:
        """Async connection string; MySQL via asyncmy unless overridden."""
        if self.DATABASE_URL_OVERRIDE:
            return self.DATABASE_URL_OVERRIDE
        encoded_password = quote_plus(self.DB_PASSWORD)
        return (
            f"mysql+asyncmy://{self.DB_USER}:{encoded_password}"
            f"@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"
            "?charset=utf8mb4"
        )

    # --- Redis (status notifications) ---
    REDIS_URL: str = "redis://localhost:6379/0"
    NOTIFY_ENABLED: bool = True

    # --- Auth ---
    API_KEYS: str = ""  # comma-separated "key:user_id" entries; empty = dev mode
    DEFAULT_USER_ID: str = "local"
    SINGLE_TENANT: bool = True

    # --- Media Volume / Storage ---
    MEDIA_VOLUME: str = "media_volume"
    STORAGE_SIGNING_KEY: str = "change-me"
    SIGNED_URL_TTL: int = 3600

    # --- Scene writer (OpenAI-compatible chat completions) ---
    LLM_BASE_URL: str = "https://open.bigmodel.cn/api/paas/v4"
    LLM_API_KEY: str = ""
    LLM_MODEL: str = "glm-4"
    LLM_TIMEOUT: int = 60
    LLM_MAX_RETRIES: int = 3

    # --- Image generation ---
    IMAGE_API_BASE: str = "https://ark.cn-beijing.volces.com/api/v3"
    IMAGE_API_KEY: str = ""
    IMAGE_MODEL: str = "doubao-seedream-3-0-t2i-250415"
    IMAGE_SIZE: str = "1024x1024"

    # --- Video generation ---
    VIDEO_API_BASE: str = "https://ark.cn-beijing.volces.com/api/v3"
    VIDEO_API_KEY: str = ""
    VIDEO_MODEL: str = "doubao-seedance-1-0-lite-i2v-250428"
    VIDEO_DURATION: int = 5
    VIDEO_POLL_INTERVAL: float = 5.0

    # --- Timeouts (seconds) ---
    GENERATION_TIMEOUT: float = 600.0
    ASSEMBLY_TIMEOUT: float = 120.0

    # --- Assembly ---
    WORK_DIR: str = ""  # empty = system temp dir
    FFMPEG_BIN: str = "ffmpeg"

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings singleton."""
    return Settings()
