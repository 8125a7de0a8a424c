"""Shared types for the playback core: states, engine events and issues."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class PlaybackState(str, Enum):
    """Playback session states."""

    IDLE = "idle"
    SPEAKING = "speaking"
    PAUSED = "paused"
    FINISHED = "finished"


class EventKind(str, Enum):
    """Lifecycle events an engine reports for one utterance."""

    START = "start"
    BOUNDARY = "boundary"
    END = "end"
    ERROR = "error"

    @property
    def terminal(self) -> bool:
        return self in (EventKind.END, EventKind.ERROR)


@dataclass(frozen=True)
class EngineEvent:
    """One engine callback, tagged with the generation of the utterance."""

    kind: EventKind
    generation: int
    payload: dict[str, Any] = field(default_factory=dict)

    @property
    def char_index(self) -> int:
        value = self.payload.get("char_index", 0)
        try:
            return max(0, int(value))
        except (TypeError, ValueError):
            return 0

    @property
    def message(self) -> str:
        return str(self.payload.get("message") or self.kind.value)


class IssueKind(str, Enum):
    """Failure categories reported by the controller."""

    SEGMENTATION_DEGENERATE = "segmentation_degenerate"
    ENGINE_UNAVAILABLE = "engine_unavailable"
    ENGINE_TRANSIENT_ERROR = "engine_transient_error"
    STORE_UNAVAILABLE = "store_unavailable"


@dataclass(frozen=True)
class PlaybackIssue:
    """A diagnostic pushed to error listeners instead of raising."""

    kind: IssueKind
    message: str
    sentence_index: int | None = None

    @property
    def is_warning(self) -> bool:
        return self.kind == IssueKind.STORE_UNAVAILABLE


@dataclass(frozen=True)
class PlaybackView:
    """Observable controller output pushed on every relevant transition."""

    sentences: tuple[str, ...]
    cursor_index: int
    state: PlaybackState
    eta_label: str
    spoken_index: int | None = None
    char_offset: int = 0
    utterance_started_at: datetime | None = None

    @property
    def sentence_count(self) -> int:
        return len(self.sentences)

    @property
    def progress_percentage(self) -> int:
        if not self.sentences:
            return 0
        return round(self.cursor_index / len(self.sentences) * 100)

    @property
    def current_sentence(self) -> str | None:
        if 0 <= self.cursor_index < len(self.sentences):
            return self.sentences[self.cursor_index]
        return None


class ReaderError(Exception):
    """Base class for errors raised below the controller boundary."""


class EngineUnavailableError(ReaderError):
    """No speech synthesis capability could be initialised."""


class StoreUnavailableError(ReaderError):
    """The position store could not be read or written."""


__all__ = [
    "EngineEvent",
    "EngineUnavailableError",
    "EventKind",
    "IssueKind",
    "PlaybackIssue",
    "PlaybackState",
    "PlaybackView",
    "ReaderError",
    "StoreUnavailableError",
]
