"""Application configuration using environment variables."""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Resolve the project root once so that `.env` is discovered regardless of CWD
PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent


class Settings(BaseSettings):
    """Load configuration from environment variables and `.env`."""

    model_config = SettingsConfigDict(
        env_file=str(PROJECT_ROOT / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    position_database_path: Path = Field(
        default_factory=lambda: Path("data/positions.db"),
        validation_alias=AliasChoices("READER_POSITION_DB", "position_database_path"),
    )
    voice_settings_path: Path = Field(
        default_factory=lambda: Path("data/voice_settings.json"),
        validation_alias=AliasChoices(
            "READER_VOICE_SETTINGS_PATH", "voice_settings_path"
        ),
    )

    # Gap between one utterance ending and the next being issued. Some engines
    # drop a speak() issued from inside another utterance's completion callback.
    settle_delay_seconds: float = Field(
        default=0.1,
        ge=0,
        le=2,
        validation_alias=AliasChoices("READER_SETTLE_DELAY", "settle_delay_seconds"),
    )
    default_chars_per_second: float = Field(
        default=15.0,
        gt=0,
        validation_alias=AliasChoices("READER_DEFAULT_CPS", "default_chars_per_second"),
    )
    eta_tick_seconds: float = Field(
        default=1.0,
        gt=0,
        validation_alias=AliasChoices("READER_ETA_TICK", "eta_tick_seconds"),
    )
    meditation_pause_seconds: float = Field(
        default=3.0,
        ge=0.5,
        le=30,
        validation_alias=AliasChoices(
            "READER_MEDITATION_PAUSE", "meditation_pause_seconds"
        ),
    )
    autosave_debounce_seconds: float = Field(
        default=10.0,
        ge=0,
        validation_alias=AliasChoices(
            "READER_AUTOSAVE_DEBOUNCE", "autosave_debounce_seconds"
        ),
    )
    preferred_voice_language: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices(
            "READER_VOICE_LANGUAGE", "preferred_voice_language"
        ),
        description="Language prefix (e.g. 'pt') used to pick the default voice.",
    )

    logging_settings_path: Path = Field(
        default_factory=lambda: Path("logging_settings.conf"),
        validation_alias=AliasChoices(
            "READER_LOGGING_SETTINGS", "logging_settings_path"
        ),
    )
    session_log_dir: Path = Field(
        default_factory=lambda: Path("logs/sessions"),
        validation_alias=AliasChoices("READER_SESSION_LOG_DIR", "session_log_dir"),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached `Settings` instance."""

    return Settings()


__all__ = ["PROJECT_ROOT", "Settings", "get_settings"]
