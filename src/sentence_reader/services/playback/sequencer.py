"""
Utterance Sequencer.

Issues one utterance at a time to a SpeechEngine and turns the engine's
callbacks into generation-tagged EngineEvents for the controller.

Ownership rules:
    - every speak() cancels the engine first, even if nothing is known to be
      in flight, because the engine queue can lag local state
    - each utterance gets the next generation number; only events carrying
      the active generation are delivered
    - a handle delivers at most one terminal event (end or error); after
      that, or after cancel(), its events are dropped
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

from ...schemas.voice import VoiceParams
from ..engines.base import SpeechEngine
from .events import EngineEvent, EventKind

logger = logging.getLogger(__name__)


@dataclass
class UtteranceHandle:
    """One-shot handle for a single utterance."""

    generation: int
    sentence_index: int
    text: str
    closed: bool = False


class UtteranceSequencer:
    """Wraps a SpeechEngine so exactly one utterance is live at a time."""

    def __init__(
        self,
        engine: SpeechEngine,
        on_event: Callable[[EngineEvent], None],
    ):
        self._engine = engine
        self._on_event = on_event
        self._generation = 0
        self._active: Optional[UtteranceHandle] = None

    @property
    def engine(self) -> SpeechEngine:
        return self._engine

    @property
    def generation(self) -> int:
        """Generation of the most recently issued utterance."""
        return self._generation

    @property
    def active(self) -> Optional[UtteranceHandle]:
        return self._active

    def is_current(self, generation: int) -> bool:
        active = self._active
        return active is not None and not active.closed and active.generation == generation

    def speak(self, sentence_index: int, text: str, voice: VoiceParams) -> UtteranceHandle:
        """Cancel whatever is playing and start speaking ``text``."""
        self.cancel()

        self._generation += 1
        handle = UtteranceHandle(
            generation=self._generation,
            sentence_index=sentence_index,
            text=text,
        )
        self._active = handle
        generation = handle.generation

        def emit(kind: Any, **payload: Any) -> None:
            self._deliver(generation, kind, payload)

        logger.debug(f"Speaking sentence {sentence_index} (generation {generation})")
        try:
            self._engine.speak(text, voice, emit)
        except Exception as e:
            logger.error(f"Engine rejected sentence {sentence_index}: {e}")
            self._deliver(generation, EventKind.ERROR, {"message": str(e)})
        return handle

    def cancel(self) -> bool:
        """Supersede the active handle and silence the engine.

        Returns True if an utterance was live. The engine is told to cancel
        either way.
        """
        active = self._active
        if active is not None:
            active.closed = True
            self._active = None
            logger.debug(f"Cancelled generation {active.generation}")
        try:
            self._engine.cancel()
        except Exception as e:
            logger.warning(f"Engine cancel failed: {e}")
        return active is not None

    def _deliver(self, generation: int, kind: Any, payload: dict[str, Any]) -> None:
        try:
            kind = EventKind(kind)
        except ValueError:
            logger.debug(f"Ignoring unknown engine event {kind!r}")
            return

        if not self.is_current(generation):
            # Late callback from a superseded utterance.
            logger.debug(f"Dropped stale {kind.value} for generation {generation}")
            return

        if kind.terminal:
            assert self._active is not None
            self._active.closed = True
            self._active = None

        self._on_event(EngineEvent(kind=kind, generation=generation, payload=dict(payload)))


__all__ = ["UtteranceHandle", "UtteranceSequencer"]
