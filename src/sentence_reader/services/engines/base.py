"""Speech engine abstraction consumed by the utterance sequencer."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Optional

from ...schemas.voice import VoiceParams

logger = logging.getLogger(__name__)

# emit(kind, **payload) - kind is one of "start", "boundary", "end", "error".
# Engines must call it on the event-loop thread.
EmitFn = Callable[..., None]


@dataclass(frozen=True)
class EngineVoice:
    """A voice offered by an engine."""

    id: str
    name: str
    languages: tuple[str, ...] = ()

    def matches_language(self, language: str | None) -> bool:
        """True when any of the voice languages shares the primary subtag."""
        if not language:
            return False
        wanted = language_prefix(language)
        return any(language_prefix(lang) == wanted for lang in self.languages)


def language_prefix(tag: str) -> str:
    """Return the lowercase primary subtag of a language tag ('pt-BR' -> 'pt')."""
    return tag.replace("_", "-").split("-", 1)[0].strip().lower()


def pick_default_voice(
    voices: Iterable[EngineVoice], preferred_language: Optional[str] = None
) -> EngineVoice | None:
    """First voice speaking ``preferred_language``, else the first voice."""
    voices = list(voices)
    if not voices:
        return None
    if preferred_language:
        for voice in voices:
            if voice.matches_language(preferred_language):
                return voice
    return voices[0]


class SpeechEngine(ABC):
    """
    Asynchronous, callback-driven text-to-speech capability.

    ``speak`` returns immediately; progress is reported through ``emit``:

    - ``emit("start")`` when audio begins
    - ``emit("boundary", char_index=n)`` at word boundaries
    - exactly one of ``emit("end")`` or ``emit("error", message=...)``

    ``cancel`` silences whatever the engine is doing. Events for a cancelled
    utterance may still arrive; callers are expected to ignore them.
    """

    name: str = "engine"

    @property
    def available(self) -> bool:
        return True

    def list_voices(self) -> list[EngineVoice]:
        return []

    @abstractmethod
    def speak(self, text: str, voice: VoiceParams, emit: EmitFn) -> None:
        """Start speaking ``text`` and report lifecycle events via ``emit``."""

    @abstractmethod
    def cancel(self) -> None:
        """Stop the active utterance and drop anything queued."""

    def close(self) -> None:
        """Release engine resources."""

    def describe(self) -> dict[str, Any]:
        return {"engine": self.name, "available": self.available}


__all__ = [
    "EmitFn",
    "EngineVoice",
    "SpeechEngine",
    "language_prefix",
    "pick_default_voice",
]
