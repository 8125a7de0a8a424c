"""Composition root: logging setup and reader assembly."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from .config import PROJECT_ROOT, Settings, get_settings
from .logging_handlers import SessionFileHandler, cleanup_old_logs
from .logging_settings import parse_logging_settings
from .schemas.voice import ReaderPreferences, ReaderPreferencesUpdate, VoiceParams
from .services.engines.base import SpeechEngine, pick_default_voice
from .services.playback.autosave import DebouncedPositionSaver
from .services.playback.controller import PlaybackController
from .services.playback.events import StoreUnavailableError
from .services.position_repository import (
    InMemoryPositionStore,
    PositionRepository,
    PositionStore,
)
from .services.voice_settings import VoiceSettingsService

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _resolve_under(base: Path, p: Path) -> Path:
    # Allow absolute paths as-is (useful for tests and external mounts).
    if p.is_absolute():
        return p.resolve()
    resolved = (base / p).resolve()
    if not resolved.is_relative_to(base):
        raise ValueError(f"Configured path {resolved} escapes project root {base}")
    return resolved


def configure_logging(settings: Optional[Settings] = None) -> Optional[Path]:
    """Configure logging from LOG_LEVEL and ``logging_settings.conf``.

    Returns the path of the session log file, if one was opened.
    """
    # Load .env first so LOG_LEVEL is visible
    load_dotenv()
    settings = settings or get_settings()

    log_settings = parse_logging_settings(
        _resolve_under(PROJECT_ROOT, settings.logging_settings_path)
    )
    log_settings = log_settings.with_terminal_override(os.getenv("LOG_LEVEL"))
    terminal_level = log_settings.terminal_level

    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
    handlers: list[logging.Handler] = []
    session_path: Optional[Path] = None

    if terminal_level is not None:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(terminal_level)
        console_handler.setFormatter(formatter)
        handlers.append(console_handler)

    session_dir = _resolve_under(PROJECT_ROOT, settings.session_log_dir)
    if log_settings.sessions_level is not None:
        session_handler = SessionFileHandler(session_dir)
        session_handler.setLevel(log_settings.sessions_level)
        session_handler.setFormatter(formatter)
        handlers.append(session_handler)
        session_path = session_handler.session_path

    if not handlers:
        handlers.append(logging.NullHandler())

    root_level = log_settings.lowest_level
    if root_level is None:
        root_level = logging.WARNING

    logging.basicConfig(
        level=root_level,
        handlers=handlers,
        force=True,  # Override any existing configuration
    )

    # aiosqlite logs every statement at DEBUG
    logging.getLogger("aiosqlite").setLevel(max(root_level, logging.INFO))

    cleanup_old_logs([session_dir], log_settings.retention_hours, logger)
    return session_path


@dataclass
class ReaderApp:
    """Everything a front end needs to drive one reader."""

    settings: Settings
    controller: PlaybackController
    engine: SpeechEngine
    preferences: VoiceSettingsService
    store: PositionStore
    saver: DebouncedPositionSaver
    repository: Optional[PositionRepository] = None
    closed: bool = field(default=False, init=False)

    async def open(self, document_id: str, text: str) -> int:
        """Load a document and return the sentence index reading will start at."""
        await self.controller.load_document(document_id, text)
        return self.controller.cursor_index

    async def shutdown(self) -> None:
        if self.closed:
            return
        self.closed = True

        self.preferences.remember_voice(self.controller.voice)
        self.preferences.update_settings(
            ReaderPreferencesUpdate(
                meditation_mode=self.controller.meditation_mode,
                meditation_pause_seconds=self.controller.meditation_pause_seconds,
            )
        )

        await self.controller.close()
        await self.saver.flush()
        if self.repository is not None:
            await self.repository.close()
        logger.info("Reader shut down")


async def _open_store(
    database_path: Path, persist: bool
) -> tuple[PositionStore, Optional[PositionRepository]]:
    if not persist:
        return InMemoryPositionStore(), None
    repository = PositionRepository(database_path)
    try:
        await repository.initialize()
    except StoreUnavailableError as e:
        logger.warning(f"{e}; positions will not survive this session")
        return InMemoryPositionStore(), None
    return repository, repository


def _initial_voice(
    engine: SpeechEngine, saved: VoiceParams, preferred_language: Optional[str]
) -> VoiceParams:
    if saved.voice_id:
        return saved
    language = saved.language or preferred_language
    default = pick_default_voice(engine.list_voices(), language)
    if default is None:
        return saved
    logger.info(f"Default voice: {default.name} ({', '.join(default.languages) or 'unknown'})")
    return saved.model_copy(
        update={
            "voice_id": default.id,
            "language": saved.language or (default.languages[0] if default.languages else None),
        }
    )


async def create_reader(
    settings: Optional[Settings] = None,
    engine: Optional[SpeechEngine] = None,
    *,
    persist: bool = True,
) -> ReaderApp:
    """Build a controller wired to preferences, the position store and autosave."""
    settings = settings or get_settings()

    preferences = VoiceSettingsService(
        _resolve_under(PROJECT_ROOT, settings.voice_settings_path),
        defaults=ReaderPreferences(
            meditation_pause_seconds=settings.meditation_pause_seconds
        ),
    )
    prefs = preferences.get_settings()

    store, repository = await _open_store(
        _resolve_under(PROJECT_ROOT, settings.position_database_path), persist
    )

    if engine is None:
        from .services.engines.pyttsx3_engine import Pyttsx3Engine

        engine = Pyttsx3Engine()

    voice = _initial_voice(engine, prefs.voice, settings.preferred_voice_language)

    controller = PlaybackController(
        engine,
        store=store,
        voice=voice,
        settle_delay_seconds=settings.settle_delay_seconds,
        meditation_mode=prefs.meditation_mode,
        meditation_pause_seconds=prefs.meditation_pause_seconds,
        default_chars_per_second=settings.default_chars_per_second,
        eta_tick_seconds=settings.eta_tick_seconds,
        save_on_transition=False,
    )
    saver = DebouncedPositionSaver(store, debounce_seconds=settings.autosave_debounce_seconds)
    saver.attach(controller)

    logger.info(f"Reader ready ({engine.describe()})")
    return ReaderApp(
        settings=settings,
        controller=controller,
        engine=engine,
        preferences=preferences,
        store=store,
        saver=saver,
        repository=repository,
    )


__all__ = ["ReaderApp", "configure_logging", "create_reader"]
