from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

PACKAGE_DIR = Path(__file__).resolve().parent.parent
PROJECT_ROOT = PACKAGE_DIR.parent
DATA_ROOT = PROJECT_ROOT / "data"

MAX_FILE_SIZE = 10 * 1024 * 1024  # 10MB
ALLOWED_MEDIA_TYPES = ("image/jpeg", "image/jpg", "image/png", "image/webp")
ESTIMATED_PROCESSING_TIME = "2-5 minutes"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="APP_", env_file=".env", extra="ignore")

    app_name: str = "Listing Pipeline Service"
    settings_dir: Path = Field(default_factory=lambda: DATA_ROOT / "settings")
    max_upload_files: int = 10
    max_file_size: int = MAX_FILE_SIZE
    allowed_media_types: List[str] = Field(default_factory=lambda: list(ALLOWED_MEDIA_TYPES))

    # Every collaborator request is bounded by this many seconds.
    collaborator_timeout: float = 30.0
    google_ai_api_key: Optional[str] = None
    gemini_model: str = "gemini-1.5-flash"
    etsy_api_key: Optional[str] = None

    cors_allow_origins: List[str] = Field(default_factory=lambda: ["http://localhost:3000"])
    cors_allow_credentials: bool = True
    cors_allow_methods: List[str] = Field(default_factory=lambda: ["*"])
    cors_allow_headers: List[str] = Field(default_factory=lambda: ["*"])

    ffmpeg_binary: str = "ffmpeg"
    slideshow_timeout: float = 300.0
    log_level: str = "INFO"

    @property
    def metadata_configured(self) -> bool:
        return bool(self.google_ai_api_key)

    @property
    def etsy_configured(self) -> bool:
        return bool(self.etsy_api_key)


@lru_cache
def get_settings() -> Settings:
    return Settings()
