import pathlib
import sys
from typing import Any, Callable

import pytest

PROJECT_ROOT = pathlib.Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from sentence_reader.schemas.snapshot import PositionSnapshot  # noqa: E402
from sentence_reader.schemas.voice import VoiceParams  # noqa: E402
from sentence_reader.services.engines.base import EngineVoice, SpeechEngine  # noqa: E402


class FakeEngine(SpeechEngine):
    """Records speak/cancel calls; tests fire the callbacks by hand."""

    name = "fake"

    def __init__(self, voices: list[EngineVoice] | None = None, available: bool = True):
        self.is_available = available
        self.voices = voices or []
        self.spoken: list[tuple[str, VoiceParams]] = []
        self.emits: list[Callable[..., None]] = []
        self.cancel_calls = 0
        self.closed = False
        self.raise_on_speak: Exception | None = None

    @property
    def available(self) -> bool:
        return self.is_available

    def list_voices(self) -> list[EngineVoice]:
        return list(self.voices)

    def speak(self, text: str, voice: VoiceParams, emit: Callable[..., None]) -> None:
        if self.raise_on_speak is not None:
            raise self.raise_on_speak
        self.spoken.append((text, voice))
        self.emits.append(emit)

    def cancel(self) -> None:
        self.cancel_calls += 1

    def close(self) -> None:
        self.closed = True

    @property
    def texts(self) -> list[str]:
        return [text for text, _ in self.spoken]

    def fire(self, kind: str, index: int = -1, **payload: Any) -> None:
        """Deliver an event for the ``index``-th utterance (latest by default)."""
        self.emits[index](kind, **payload)

    def complete(self, index: int = -1) -> None:
        self.fire("start", index)
        self.fire("end", index)


class _Token:
    def __init__(self, due: float, callback: Callable[[], None]):
        self.due = due
        self.callback = callback
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    def cancelled(self) -> bool:
        return self._cancelled


class ManualScheduler:
    """Deterministic scheduler driven by ``advance``."""

    def __init__(self) -> None:
        self.time = 0.0
        self.tokens: list[_Token] = []

    def after(self, seconds: float, callback: Callable[[], None]) -> _Token:
        token = _Token(self.time + max(0.0, seconds), callback)
        self.tokens.append(token)
        return token

    def now(self) -> float:
        return self.time

    @property
    def pending(self) -> list[_Token]:
        return [t for t in self.tokens if not t.cancelled()]

    def advance(self, seconds: float) -> None:
        target = self.time + seconds
        while True:
            due = [t for t in self.pending if t.due <= target]
            if not due:
                break
            token = min(due, key=lambda t: t.due)
            self.tokens.remove(token)
            self.time = max(self.time, token.due)
            token.callback()
        self.time = target


class MemoryPositionStore:
    """Position store that records calls and can be told to fail."""

    def __init__(self, fail: bool = False):
        self.snapshots: dict[str, PositionSnapshot] = {}
        self.saves: list[PositionSnapshot] = []
        self.cleared: list[str] = []
        self.fail = fail

    async def load(self, document_id: str) -> PositionSnapshot | None:
        if self.fail:
            raise OSError("store offline")
        return self.snapshots.get(document_id)

    async def save(self, document_id: str, snapshot: PositionSnapshot) -> bool:
        if self.fail:
            return False
        self.saves.append(snapshot)
        self.snapshots[document_id] = snapshot
        return True

    async def clear(self, document_id: str) -> bool:
        if self.fail:
            raise OSError("store offline")
        self.cleared.append(document_id)
        return self.snapshots.pop(document_id, None) is not None


@pytest.fixture
def engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def store() -> MemoryPositionStore:
    return MemoryPositionStore()
