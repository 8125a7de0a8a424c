"""Reader preference service for persisting voice and meditation settings."""

import json
import logging
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from ..schemas.voice import (
    ReaderPreferences,
    ReaderPreferencesUpdate,
    VoiceParams,
    merge_voice,
)

logger = logging.getLogger(__name__)


class VoiceSettingsService:
    """Loads and saves ReaderPreferences as JSON."""

    def __init__(self, settings_path: Path, defaults: Optional[ReaderPreferences] = None):
        self._path = settings_path
        self._defaults = defaults or ReaderPreferences()
        self._cached: Optional[ReaderPreferences] = None

    def _ensure_data_dir(self) -> None:
        """Ensure the data directory exists."""
        self._path.parent.mkdir(parents=True, exist_ok=True)

    def get_settings(self) -> ReaderPreferences:
        """Load settings from file or return defaults."""
        if self._cached is not None:
            return self._cached

        if self._path.exists():
            try:
                data = json.loads(self._path.read_text(encoding="utf-8"))
                self._cached = ReaderPreferences.model_validate(data)
                logger.info(f"Loaded reader preferences from {self._path}")
            except (OSError, json.JSONDecodeError, ValidationError) as e:
                logger.warning(f"Failed to load reader preferences: {e}, using defaults")
                self._cached = self._defaults.model_copy(deep=True)
        else:
            self._cached = self._defaults.model_copy(deep=True)
            logger.info("Using default reader preferences")

        return self._cached

    def update_settings(self, update: ReaderPreferencesUpdate) -> ReaderPreferences:
        """Apply a partial update and persist it."""
        current = self.get_settings()

        changes = update.model_dump(exclude_none=True, exclude={"voice"})
        merged = current.model_copy(update=changes)
        if update.voice is not None:
            merged = merged.model_copy(update={"voice": merge_voice(current.voice, update.voice)})

        self._save(merged)
        return merged

    def remember_voice(self, voice: VoiceParams) -> ReaderPreferences:
        """Store the voice currently in use by a controller."""
        merged = self.get_settings().model_copy(update={"voice": voice})
        self._save(merged)
        return merged

    def reset_to_defaults(self) -> ReaderPreferences:
        """Reset settings to defaults."""
        defaults = self._defaults.model_copy(deep=True)
        self._save(defaults)
        return defaults

    def _save(self, settings: ReaderPreferences) -> None:
        """Persist settings to file."""
        self._cached = settings
        try:
            self._ensure_data_dir()
            self._path.write_text(settings.model_dump_json(indent=2), encoding="utf-8")
        except OSError as e:
            logger.warning(f"Failed to save reader preferences to {self._path}: {e}")
            return
        logger.info(f"Saved reader preferences to {self._path}")


__all__ = ["VoiceSettingsService"]
