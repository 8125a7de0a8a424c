"""
Playback Controller for Sentence-Sequenced Speech.

Owns the playback state machine and drives the utterance sequencer, the
timing estimator and position persistence.

States:
    IDLE ──play──▶ SPEAKING ──pause──▶ PAUSED ──play──▶ SPEAKING
    SPEAKING ──end (last sentence)──▶ FINISHED ──seek──▶ PAUSED
    SPEAKING ──error──▶ IDLE          any ──reset──▶ IDLE

Every engine callback arrives as an EngineEvent and goes through
``_dispatch``. Events whose generation is not the live one are dropped, so a
cancelled utterance can never advance the cursor.

Resuming after a pause always re-speaks the whole current sentence.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from functools import partial
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Mapping, Optional

from ...schemas.snapshot import PositionSnapshot
from ...schemas.voice import (
    MEDITATION_PAUSE_RANGE,
    VoiceParams,
    VoiceParamsUpdate,
    merge_voice,
)
from ..engines.base import SpeechEngine
from .events import (
    EngineEvent,
    EventKind,
    IssueKind,
    PlaybackIssue,
    PlaybackState,
    PlaybackView,
)
from .scheduler import AsyncioScheduler, Cancellable, Scheduler
from .segmenter import clamp_index, segment
from .sequencer import UtteranceSequencer
from .timing import DEFAULT_CHARS_PER_SECOND, TimingEstimator

if TYPE_CHECKING:
    from ..position_repository import PositionStore

logger = logging.getLogger(__name__)

SnapshotHook = Callable[[PositionSnapshot], Any]
ResetHook = Callable[[str], Any]
ViewListener = Callable[[PlaybackView], None]
IssueListener = Callable[[PlaybackIssue], None]


@dataclass
class PlaybackHooks:
    """Callbacks fired with a position snapshot at persistence points.

    Hooks may be plain functions or coroutine functions; coroutines are run
    as background tasks on the current loop.
    """

    on_pause: list[SnapshotHook] = field(default_factory=list)
    on_stop: list[SnapshotHook] = field(default_factory=list)
    on_advance: list[SnapshotHook] = field(default_factory=list)
    on_close: list[SnapshotHook] = field(default_factory=list)
    on_reset: list[ResetHook] = field(default_factory=list)


class PlaybackController:
    """Reads a document aloud one sentence at a time.

    With ``save_on_transition=False`` the store is only read from; writes are
    left to whatever is attached to ``hooks`` (see DebouncedPositionSaver).
    """

    def __init__(
        self,
        engine: SpeechEngine,
        *,
        scheduler: Optional[Scheduler] = None,
        store: Optional["PositionStore"] = None,
        voice: Optional[VoiceParams] = None,
        settle_delay_seconds: float = 0.1,
        meditation_mode: bool = False,
        meditation_pause_seconds: float = 3.0,
        default_chars_per_second: float = DEFAULT_CHARS_PER_SECOND,
        eta_tick_seconds: float = 1.0,
        hooks: Optional[PlaybackHooks] = None,
        save_on_transition: bool = True,
    ):
        self._engine = engine
        self._scheduler: Scheduler = scheduler or AsyncioScheduler()
        self._store = store
        self._writes_store = store is not None and save_on_transition
        self._voice = voice or VoiceParams()
        self._settle_delay = max(0.0, settle_delay_seconds)
        self._meditation_mode = meditation_mode
        self._meditation_pause = self._clamp_pause(meditation_pause_seconds)
        self._eta_tick_seconds = eta_tick_seconds
        self.hooks = hooks or PlaybackHooks()

        self._sequencer = UtteranceSequencer(engine, self._dispatch)
        self._estimator = TimingEstimator(
            self._scheduler.now, default_chars_per_second=default_chars_per_second
        )

        self._document_id: Optional[str] = None
        self._sentences: tuple[str, ...] = ()
        self._cursor = 0
        self._char_offset = 0
        self._state = PlaybackState.IDLE
        self._spoken_index: Optional[int] = None
        self._utterance_started_at: Optional[datetime] = None

        self._pending: Optional[Cancellable] = None
        self._eta_tick: Optional[Cancellable] = None
        self._estimate_requested = False

        self._listeners: list[ViewListener] = []
        self._issue_listeners: list[IssueListener] = []
        self._last_issue: Optional[PlaybackIssue] = None
        self._engine_unavailable_reported = False
        self._tasks: set[asyncio.Task[Any]] = set()

    # ------------------------------------------------------------------
    # Observable state
    # ------------------------------------------------------------------

    @property
    def state(self) -> PlaybackState:
        return self._state

    @property
    def cursor_index(self) -> int:
        return self._cursor

    @property
    def char_offset(self) -> int:
        return self._char_offset

    @property
    def sentences(self) -> tuple[str, ...]:
        return self._sentences

    @property
    def document_id(self) -> Optional[str]:
        return self._document_id

    @property
    def voice(self) -> VoiceParams:
        return self._voice

    @property
    def meditation_mode(self) -> bool:
        return self._meditation_mode

    @property
    def meditation_pause_seconds(self) -> float:
        return self._meditation_pause

    @property
    def last_issue(self) -> Optional[PlaybackIssue]:
        return self._last_issue

    @property
    def sequencer(self) -> UtteranceSequencer:
        return self._sequencer

    @property
    def estimator(self) -> TimingEstimator:
        return self._estimator

    @property
    def chain_pending(self) -> bool:
        """True while waiting out a settle delay or meditation gap."""
        return self._pending is not None

    @property
    def eta_label(self) -> str:
        pause = self._meditation_pause if self._meditation_mode else 0.0
        return self._estimator.estimate_label(self._cursor, self._voice.rate, pause)

    @property
    def view(self) -> PlaybackView:
        return PlaybackView(
            sentences=self._sentences,
            cursor_index=self._cursor,
            state=self._state,
            eta_label=self.eta_label,
            spoken_index=self._spoken_index,
            char_offset=self._char_offset,
            utterance_started_at=self._utterance_started_at,
        )

    def subscribe(self, listener: ViewListener) -> Callable[[], None]:
        """Register a view listener. Returns a function that unsubscribes."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def on_issue(self, listener: IssueListener) -> Callable[[], None]:
        """Register an error-channel listener. Returns an unsubscribe function."""
        self._issue_listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._issue_listeners:
                self._issue_listeners.remove(listener)

        return unsubscribe

    def snapshot(self) -> Optional[PositionSnapshot]:
        """Current position, or None when no document identity is set."""
        if not self._document_id:
            return None
        return PositionSnapshot(
            document_identity=self._document_id,
            sentence_index=self._cursor,
            character_offset=self._char_offset,
        )

    # ------------------------------------------------------------------
    # Text and documents
    # ------------------------------------------------------------------

    def set_text(self, text: str, document_id: Optional[str] = None) -> list[str]:
        """Segment ``text`` and start over with a fresh session.

        Any playback in progress is cancelled. The cursor is kept when it is
        still inside the new sentence list, otherwise it goes back to 0.
        """
        self._teardown_session()
        if document_id is not None:
            self._document_id = document_id

        sentences = segment(text)
        self._sentences = tuple(sentences)
        self._estimator.set_sentences(self._sentences)
        if self._cursor >= len(self._sentences):
            self._cursor = 0
        self._spoken_index = None

        logger.info(
            f"Loaded {len(self._sentences)} sentence(s)"
            + (f" for {self._document_id}" if self._document_id else "")
        )
        self._notify()
        return sentences

    async def load_document(self, document_id: str, text: str) -> Optional[PositionSnapshot]:
        """Open a document and seed the cursor from its stored position.

        The previous session is discarded (its stored position is kept).
        Playback does not start automatically.
        """
        if self._document_id and self._document_id != document_id:
            logger.info(f"Switching document {self._document_id} -> {document_id}")
        self._cursor = 0
        self.set_text(text, document_id)

        snapshot = await self._load_snapshot(document_id)
        if snapshot is not None and self._sentences:
            self._cursor = snapshot.clamped_index(len(self._sentences))
            self._char_offset = 0
            logger.info(
                f"Restored {document_id} at sentence {self._cursor + 1}/{len(self._sentences)}"
            )
            self._notify()
        return snapshot

    async def _load_snapshot(self, document_id: str) -> Optional[PositionSnapshot]:
        if self._store is None:
            return None
        try:
            return await self._store.load(document_id)
        except Exception as e:
            self._report(IssueKind.STORE_UNAVAILABLE, f"Could not load saved position: {e}")
            return None

    # ------------------------------------------------------------------
    # Transport controls
    # ------------------------------------------------------------------

    def play(self) -> bool:
        """Start or resume reading at the cursor. Returns False on a no-op."""
        if not self._sentences:
            self._report(IssueKind.SEGMENTATION_DEGENERATE, "There is no text to read.")
            return False

        if not self._engine.available:
            if not self._engine_unavailable_reported:
                self._engine_unavailable_reported = True
                self._report(
                    IssueKind.ENGINE_UNAVAILABLE, "No speech synthesis engine is available."
                )
            return False
        self._engine_unavailable_reported = False

        if self._state == PlaybackState.SPEAKING:
            return False
        if self._state == PlaybackState.FINISHED:
            logger.info("Reading already finished; reset or seek to play again")
            return False

        resumed = self._state == PlaybackState.PAUSED
        self._estimator.start_session(self._cursor)
        self._set_state(PlaybackState.SPEAKING)
        logger.info(
            f"{'Resuming' if resumed else 'Starting'} at sentence "
            f"{self._cursor + 1}/{len(self._sentences)}"
        )
        self._speak_current()
        self._notify()
        return True

    def pause(self) -> bool:
        """Silence the engine and keep the cursor on the current sentence."""
        if self._state != PlaybackState.SPEAKING:
            return False
        self._halt()
        self._set_state(PlaybackState.PAUSED)
        self._notify()
        self._persist(self.hooks.on_pause)
        return True

    def stop(self) -> bool:
        """End the session; the cursor stays where it is."""
        if self._state not in (PlaybackState.SPEAKING, PlaybackState.PAUSED):
            return False
        self._halt()
        self._set_state(PlaybackState.IDLE)
        self._notify()
        self._persist(self.hooks.on_stop)
        return True

    def reset(self) -> None:
        """Back to the first sentence and forget the stored position."""
        self._halt()
        self._cursor = 0
        self._spoken_index = None
        self._set_state(PlaybackState.IDLE)
        self._notify()

        document_id = self._document_id
        if document_id:
            self._run_callbacks(self.hooks.on_reset, document_id)
            if self._writes_store:
                self._spawn(self._clear_snapshot(document_id))

    def seek(self, index: int) -> bool:
        """Move the cursor to ``index`` (clamped).

        While speaking, the current utterance is cancelled and the target is
        spoken immediately. From FINISHED the session becomes PAUSED.
        """
        if not self._sentences:
            return False

        target = clamp_index(index, len(self._sentences))
        self._cursor = target
        self._char_offset = 0

        if self._state == PlaybackState.SPEAKING:
            self._cancel_pending()
            self._estimator.start_session(target)
            self._speak_current()
        elif self._state == PlaybackState.FINISHED:
            self._set_state(PlaybackState.PAUSED)

        logger.debug(f"Cursor moved to {target}")
        self._notify()
        self._persist(self.hooks.on_advance)
        return True

    def next(self) -> bool:
        if self._cursor + 1 > len(self._sentences) - 1:
            return False
        return self.seek(self._cursor + 1)

    def previous(self) -> bool:
        if self._cursor - 1 < 0 or not self._sentences:
            return False
        return self.seek(self._cursor - 1)

    async def close(self) -> None:
        """Stop everything, flush the position and release the engine."""
        self.request_estimate(False)
        if self._state in (PlaybackState.SPEAKING, PlaybackState.PAUSED):
            self._halt()
            self._set_state(PlaybackState.IDLE)
        else:
            self._cancel_pending()
            self._sequencer.cancel()

        snapshot = self.snapshot()
        if snapshot is not None:
            self._run_callbacks(self.hooks.on_close, snapshot)
            if self._writes_store:
                await self._save_snapshot(snapshot)

        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

        self._engine.close()
        self._notify()

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    def set_voice_params(self, update: VoiceParamsUpdate | Mapping[str, Any]) -> VoiceParams:
        """Merge a partial update; it applies from the next utterance on."""
        if not isinstance(update, VoiceParamsUpdate):
            update = VoiceParamsUpdate.model_validate(dict(update))
        self._voice = merge_voice(self._voice, update)
        logger.debug(f"Voice params now {self._voice.model_dump()}")
        self._notify()
        return self._voice

    def set_meditation_mode(self, enabled: bool) -> None:
        self._meditation_mode = bool(enabled)
        logger.info(f"Meditation mode {'on' if self._meditation_mode else 'off'}")
        self._notify()

    def set_meditation_pause_seconds(self, seconds: float) -> float:
        self._meditation_pause = self._clamp_pause(seconds)
        self._notify()
        return self._meditation_pause

    @staticmethod
    def _clamp_pause(seconds: float) -> float:
        low, high = MEDITATION_PAUSE_RANGE
        return max(low, min(float(seconds), high))

    def request_estimate(self, requested: bool = True) -> None:
        """Recompute the ETA on a fixed tick while ``requested`` is set."""
        self._estimate_requested = requested
        if requested and self._eta_tick is None:
            self._eta_tick = self._scheduler.after(self._eta_tick_seconds, self._on_eta_tick)
        elif not requested and self._eta_tick is not None:
            self._eta_tick.cancel()
            self._eta_tick = None

    def _on_eta_tick(self) -> None:
        self._eta_tick = None
        if not self._estimate_requested:
            return
        self._notify()
        self._eta_tick = self._scheduler.after(self._eta_tick_seconds, self._on_eta_tick)

    # ------------------------------------------------------------------
    # Engine events
    # ------------------------------------------------------------------

    def _dispatch(self, event: EngineEvent) -> None:
        """Single reducer for every engine callback."""
        if event.generation != self._sequencer.generation or self._state != PlaybackState.SPEAKING:
            logger.debug(f"Ignoring {event.kind.value} from generation {event.generation}")
            return

        if event.kind == EventKind.START:
            self._spoken_index = self._cursor
            self._char_offset = 0
            self._utterance_started_at = datetime.now(timezone.utc)
            self._notify()
        elif event.kind == EventKind.BOUNDARY:
            self._char_offset = min(event.char_index, len(self._sentences[self._cursor]))
        elif event.kind == EventKind.END:
            self._on_utterance_end()
        elif event.kind == EventKind.ERROR:
            self._on_utterance_error(event)

    def _on_utterance_end(self) -> None:
        self._cursor += 1
        self._char_offset = 0
        self._utterance_started_at = None

        if self._cursor >= len(self._sentences):
            self._cursor = len(self._sentences)
            self._estimator.end_session(self._cursor)
            self._set_state(PlaybackState.FINISHED)
            logger.info("Finished reading")
            self._notify()
            self._persist(self.hooks.on_advance)
            return

        self._notify()
        self._persist(self.hooks.on_advance)

        delay = self._settle_delay
        if self._meditation_mode:
            self._estimator.begin_gap(self._meditation_pause)
            delay += self._meditation_pause
        self._pending = self._scheduler.after(
            delay, partial(self._continue_chain, self._sequencer.generation)
        )

    def _continue_chain(self, generation: int) -> None:
        self._pending = None
        if self._state != PlaybackState.SPEAKING or generation != self._sequencer.generation:
            return
        self._estimator.close_gap()
        self._speak_current()

    def _on_utterance_error(self, event: EngineEvent) -> None:
        index = self._cursor
        self._cancel_pending()
        self._char_offset = 0
        self._utterance_started_at = None
        self._estimator.end_session(self._cursor)
        self._set_state(PlaybackState.IDLE)
        logger.error(f"Speech failed on sentence {index + 1}: {event.message}")
        self._report(IssueKind.ENGINE_TRANSIENT_ERROR, event.message, sentence_index=index)
        self._notify()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _speak_current(self) -> None:
        self._cancel_pending()
        self._char_offset = 0
        self._utterance_started_at = None
        self._sequencer.speak(self._cursor, self._sentences[self._cursor], self._voice)

    def _cancel_pending(self) -> None:
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None
        self._estimator.close_gap()

    def _halt(self) -> None:
        """Cancel the chain and the utterance; the cursor is untouched."""
        self._cancel_pending()
        self._sequencer.cancel()
        self._char_offset = 0
        self._utterance_started_at = None
        if self._state == PlaybackState.SPEAKING:
            self._estimator.end_session(self._cursor)

    def _teardown_session(self) -> None:
        self._halt()
        self._set_state(PlaybackState.IDLE)

    def _set_state(self, state: PlaybackState) -> None:
        if state != self._state:
            logger.info(f"Playback {self._state.value} -> {state.value}")
            self._state = state

    def _notify(self) -> None:
        if not self._listeners:
            return
        view = self.view
        for listener in list(self._listeners):
            try:
                listener(view)
            except Exception:
                logger.exception("Playback listener failed")

    def _report(
        self, kind: IssueKind, message: str, sentence_index: Optional[int] = None
    ) -> None:
        issue = PlaybackIssue(kind=kind, message=message, sentence_index=sentence_index)
        self._last_issue = issue
        if issue.is_warning:
            logger.warning(message)
        else:
            logger.info(f"{kind.value}: {message}")
        for listener in list(self._issue_listeners):
            try:
                listener(issue)
            except Exception:
                logger.exception("Issue listener failed")

    def _persist(self, hooks: list[SnapshotHook]) -> None:
        snapshot = self.snapshot()
        if snapshot is None:
            return
        self._run_callbacks(hooks, snapshot)
        if self._writes_store:
            self._spawn(self._save_snapshot(snapshot))

    async def _save_snapshot(self, snapshot: PositionSnapshot) -> bool:
        assert self._store is not None
        try:
            saved = await self._store.save(snapshot.document_identity, snapshot)
        except Exception as e:
            saved = False
            logger.debug(f"Store raised during save: {e}")
        if not saved:
            self._report(
                IssueKind.STORE_UNAVAILABLE,
                f"Could not save position for {snapshot.document_identity}",
            )
        return saved

    async def _clear_snapshot(self, document_id: str) -> None:
        assert self._store is not None
        try:
            await self._store.clear(document_id)
        except Exception as e:
            self._report(IssueKind.STORE_UNAVAILABLE, f"Could not clear saved position: {e}")

    def _run_callbacks(self, callbacks: list[Callable[..., Any]], *args: Any) -> None:
        for callback in list(callbacks):
            try:
                result = callback(*args)
            except Exception:
                logger.exception("Playback hook failed")
                continue
            if inspect.isawaitable(result):
                self._spawn(result)

    def _spawn(self, awaitable: Awaitable[Any]) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("No running event loop; dropping background persistence task")
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            return
        task = asyncio.ensure_future(awaitable, loop=loop)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def drain(self) -> None:
        """Wait for outstanding persistence tasks."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


__all__ = ["PlaybackController", "PlaybackHooks"]
