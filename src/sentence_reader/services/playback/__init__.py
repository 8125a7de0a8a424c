"""
Sentence-Sequenced Playback Package.

- segmenter: Splits free text into sentences that keep their delimiters
- sequencer: One-utterance-at-a-time wrapper around a SpeechEngine
- controller: Playback state machine (play/pause/stop/reset/seek/next/previous)
- timing: Remaining-time estimation from live throughput
- scheduler: Cancellable delayed callbacks
- autosave: Debounced position saving attached to controller hooks

Architecture Overview:

    ┌──────┐     ┌───────────┐     ┌──────────────────┐     ┌───────────┐     ┌────────┐
    │ Text │────▶│ segment() │────▶│PlaybackController│────▶│ Sequencer │────▶│ Engine │
    └──────┘     └───────────┘     └──────────────────┘     └───────────┘     └────────┘
                                     │        ▲    ▲                              │
                                     │        │    └──── EngineEvent(generation) ─┘
                                     ▼        │
                              ┌─────────────┐ │ ┌─────────────────┐
                              │PositionStore│ └─│ TimingEstimator │
                              └─────────────┘   └─────────────────┘

The controller speaks one sentence, waits for its terminal event, advances
the cursor, waits a short settle delay (plus the meditation gap when enabled)
and speaks the next one.
"""

from .autosave import DebouncedPositionSaver, SaveStatus
from .controller import PlaybackController, PlaybackHooks
from .events import (
    EngineEvent,
    EngineUnavailableError,
    EventKind,
    IssueKind,
    PlaybackIssue,
    PlaybackState,
    PlaybackView,
    ReaderError,
    StoreUnavailableError,
)
from .scheduler import AsyncioScheduler
from .segmenter import iter_sentences, segment
from .sequencer import UtteranceHandle, UtteranceSequencer
from .timing import TimingEstimator, format_eta

__all__ = [
    "AsyncioScheduler",
    "DebouncedPositionSaver",
    "EngineEvent",
    "EngineUnavailableError",
    "EventKind",
    "IssueKind",
    "PlaybackController",
    "PlaybackHooks",
    "PlaybackIssue",
    "PlaybackState",
    "PlaybackView",
    "ReaderError",
    "SaveStatus",
    "StoreUnavailableError",
    "TimingEstimator",
    "UtteranceHandle",
    "UtteranceSequencer",
    "format_eta",
    "iter_sentences",
    "segment",
]
