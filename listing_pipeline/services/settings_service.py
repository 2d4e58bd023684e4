from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path

from pydantic import ValidationError

from listing_pipeline.services.utils import safe_filename
from listing_pipeline.user_settings import UserSettings

logger = logging.getLogger(__name__)


class SettingsLoadError(Exception):
    pass


class SettingsService:
    """Read-only access to per-user settings stored as ``<identity>.json``.

    Sections missing from a stored file, and fields missing from a section,
    take their defaults. Writing settings belongs to another service.
    """

    def __init__(self, settings_dir: Path) -> None:
        self.settings_dir = settings_dir

    @staticmethod
    def default_settings() -> UserSettings:
        return UserSettings()

    def settings_path(self, identity: str = "default") -> Path:
        return self.settings_dir / f"{safe_filename(identity)}.json"

    async def load_settings(self, identity: str = "default") -> UserSettings:
        path = self.settings_path(identity)
        if not path.exists():
            logger.debug("No stored settings for %s, using defaults", identity)
            return self.default_settings()

        try:
            raw = await asyncio.to_thread(path.read_text, encoding="utf-8")
            data = json.loads(raw)
        except (OSError, json.JSONDecodeError) as exc:
            raise SettingsLoadError(f"Failed to read settings for '{identity}': {exc}") from exc
        if not isinstance(data, dict):
            raise SettingsLoadError(f"Settings for '{identity}' must be a JSON object")

        try:
            return UserSettings.model_validate(data)
        except ValidationError as exc:
            raise SettingsLoadError(f"Invalid settings for '{identity}': {exc}") from exc
