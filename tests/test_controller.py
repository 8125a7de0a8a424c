"""Tests for the playback controller state machine."""

from __future__ import annotations

import pytest

from conftest import FakeEngine, ManualScheduler, MemoryPositionStore
from sentence_reader.schemas.snapshot import PositionSnapshot
from sentence_reader.services.playback.controller import PlaybackController, PlaybackHooks
from sentence_reader.services.playback.events import (
    IssueKind,
    PlaybackIssue,
    PlaybackState,
    PlaybackView,
)

THREE = "First sentence. Second one? Third!"


def make_controller(
    engine: FakeEngine,
    scheduler: ManualScheduler,
    text: str | None = THREE,
    **kwargs,
) -> PlaybackController:
    kwargs.setdefault("settle_delay_seconds", 0.0)
    controller = PlaybackController(engine, scheduler=scheduler, **kwargs)
    if text is not None:
        controller.set_text(text, document_id="doc")
    return controller


def record_states(controller: PlaybackController) -> list[PlaybackState]:
    states: list[PlaybackState] = [controller.state]

    def listener(view: PlaybackView) -> None:
        if view.state != states[-1]:
            states.append(view.state)

    controller.subscribe(listener)
    return states


def record_issues(controller: PlaybackController) -> list[PlaybackIssue]:
    issues: list[PlaybackIssue] = []
    controller.on_issue(issues.append)
    return issues


def test_set_text_segments_and_starts_idle(engine, scheduler) -> None:
    controller = make_controller(engine, scheduler)

    assert controller.sentences == ("First sentence. ", "Second one? ", "Third!")
    assert controller.state == PlaybackState.IDLE
    assert controller.cursor_index == 0
    assert engine.spoken == []


def test_pause_then_play_respeaks_whole_sentence(engine, scheduler) -> None:
    controller = make_controller(engine, scheduler)
    states = record_states(controller)

    assert controller.play() is True
    engine.fire("start")
    engine.fire("boundary", char_index=6)
    assert controller.char_offset == 6

    assert controller.pause() is True
    assert controller.char_offset == 0
    assert controller.cursor_index == 0

    assert controller.play() is True

    assert engine.texts == ["First sentence. ", "First sentence. "]
    assert states == [
        PlaybackState.IDLE,
        PlaybackState.SPEAKING,
        PlaybackState.PAUSED,
        PlaybackState.SPEAKING,
    ]


def test_late_end_from_paused_utterance_is_ignored(engine, scheduler) -> None:
    controller = make_controller(engine, scheduler)
    controller.play()
    controller.pause()

    engine.fire("end", index=0)

    assert controller.cursor_index == 0
    assert controller.state == PlaybackState.PAUSED
    assert not controller.chain_pending


def test_reads_to_the_end(engine, scheduler) -> None:
    controller = make_controller(engine, scheduler, text="One. Two.")

    controller.play()
    engine.complete()
    scheduler.advance(0.0)
    engine.complete()

    assert engine.texts == ["One. ", "Two."]
    assert controller.state == PlaybackState.FINISHED
    assert controller.cursor_index == 2
    assert controller.view.progress_percentage == 100
    assert controller.view.current_sentence is None


def test_settle_delay_separates_utterances(engine, scheduler) -> None:
    controller = make_controller(engine, scheduler, settle_delay_seconds=0.25)

    controller.play()
    engine.complete()

    assert engine.texts == ["First sentence. "]
    assert controller.chain_pending

    scheduler.advance(0.25)

    assert engine.texts == ["First sentence. ", "Second one? "]
    assert not controller.chain_pending


def test_meditation_gap_delays_next_sentence(engine, scheduler) -> None:
    controller = make_controller(
        engine, scheduler, meditation_mode=True, meditation_pause_seconds=2.0
    )

    controller.play()
    engine.complete()
    scheduler.advance(1.5)

    assert len(engine.spoken) == 1

    scheduler.advance(1.0)

    assert engine.texts[-1] == "Second one? "


def test_stop_during_meditation_gap_cancels_advance(engine, scheduler) -> None:
    controller = make_controller(
        engine, scheduler, meditation_mode=True, meditation_pause_seconds=2.0
    )
    controller.play()
    engine.complete()
    scheduler.advance(1.0)

    assert controller.stop() is True
    scheduler.advance(5.0)

    assert len(engine.spoken) == 1
    assert controller.state == PlaybackState.IDLE
    assert controller.cursor_index == 1


def test_seek_during_meditation_gap_speaks_target_once(engine, scheduler) -> None:
    controller = make_controller(
        engine, scheduler, meditation_mode=True, meditation_pause_seconds=2.0
    )
    controller.play()
    engine.complete()
    scheduler.advance(0.5)

    controller.seek(2)
    scheduler.advance(5.0)

    assert engine.texts == ["First sentence. ", "Third!"]
    assert controller.state == PlaybackState.SPEAKING


def test_seek_while_speaking_supersedes_current_utterance(engine, scheduler) -> None:
    controller = make_controller(engine, scheduler)
    controller.play()
    engine.fire("start")

    controller.seek(1)
    engine.fire("end", index=0)

    assert engine.texts == ["First sentence. ", "Second one? "]
    assert controller.cursor_index == 1
    assert controller.sequencer.active is not None
    assert controller.sequencer.active.generation == controller.sequencer.generation
    assert engine.cancel_calls >= len(engine.spoken)


def test_seek_while_idle_only_moves_cursor(engine, scheduler) -> None:
    controller = make_controller(engine, scheduler)

    assert controller.seek(2) is True

    assert controller.cursor_index == 2
    assert controller.state == PlaybackState.IDLE
    assert engine.spoken == []


def test_seek_clamps_target(engine, scheduler) -> None:
    controller = make_controller(engine, scheduler)

    controller.seek(99)
    assert controller.cursor_index == 2

    controller.seek(-4)
    assert controller.cursor_index == 0


def test_seek_from_finished_pauses(engine, scheduler) -> None:
    controller = make_controller(engine, scheduler, text="Only one.")
    controller.play()
    engine.complete()
    assert controller.state == PlaybackState.FINISHED
    assert controller.play() is False

    controller.seek(0)

    assert controller.state == PlaybackState.PAUSED
    assert controller.play() is True
    assert engine.texts == ["Only one.", "Only one."]


def test_next_and_previous_stay_in_bounds(engine, scheduler) -> None:
    controller = make_controller(engine, scheduler)

    assert controller.previous() is False
    assert controller.next() is True
    assert controller.next() is True
    assert controller.next() is False
    assert controller.cursor_index == 2
    assert controller.previous() is True
    assert controller.cursor_index == 1


def test_cursor_bounds_hold_for_mixed_navigation(engine, scheduler) -> None:
    controller = make_controller(engine, scheduler)
    count = len(controller.sentences)
    moves = [
        lambda: controller.next(),
        lambda: controller.seek(10),
        lambda: controller.next(),
        lambda: controller.previous(),
        lambda: controller.seek(-1),
        lambda: controller.previous(),
        lambda: controller.play(),
        lambda: engine.complete(),
        lambda: scheduler.advance(0.0),
        lambda: controller.next(),
        lambda: engine.complete(),
        lambda: scheduler.advance(0.0),
        lambda: controller.previous(),
    ]

    for move in moves:
        move()
        assert 0 <= controller.cursor_index <= count


def test_play_while_speaking_is_noop(engine, scheduler) -> None:
    controller = make_controller(engine, scheduler)
    controller.play()

    assert controller.play() is False
    assert len(engine.spoken) == 1


def test_engine_error_goes_idle_and_reports(engine, scheduler) -> None:
    controller = make_controller(engine, scheduler)
    issues = record_issues(controller)
    controller.play()
    engine.complete()
    scheduler.advance(0.0)

    engine.fire("error", message="audio device lost")
    scheduler.advance(5.0)

    assert controller.state == PlaybackState.IDLE
    assert controller.cursor_index == 1
    assert len(engine.spoken) == 2
    assert issues[-1].kind == IssueKind.ENGINE_TRANSIENT_ERROR
    assert issues[-1].sentence_index == 1
    assert "audio device lost" in issues[-1].message
    assert controller.last_issue == issues[-1]


def test_engine_raising_on_speak_is_reported(engine, scheduler) -> None:
    controller = make_controller(engine, scheduler)
    issues = record_issues(controller)
    engine.raise_on_speak = RuntimeError("driver crashed")

    controller.play()

    assert controller.state == PlaybackState.IDLE
    assert issues[-1].kind == IssueKind.ENGINE_TRANSIENT_ERROR


def test_engine_unavailable_reported_once(scheduler) -> None:
    engine = FakeEngine(available=False)
    controller = make_controller(engine, scheduler)
    issues = record_issues(controller)

    assert controller.play() is False
    assert controller.play() is False

    assert [i.kind for i in issues] == [IssueKind.ENGINE_UNAVAILABLE]
    assert controller.state == PlaybackState.IDLE

    engine.is_available = True
    assert controller.play() is True


def test_degenerate_text_is_reported_noop(engine, scheduler) -> None:
    controller = make_controller(engine, scheduler, text="   \n\n  ")
    issues = record_issues(controller)

    assert controller.play() is False

    assert controller.sentences == ()
    assert controller.state == PlaybackState.IDLE
    assert issues[0].kind == IssueKind.SEGMENTATION_DEGENERATE
    assert controller.eta_label == "0:00"


def test_boundary_offset_is_capped_to_sentence(engine, scheduler) -> None:
    controller = make_controller(engine, scheduler, text="Hi. There.")
    controller.play()
    engine.fire("start")

    engine.fire("boundary", char_index=500)

    assert controller.char_offset == len("Hi. ")


def test_start_event_sets_spoken_index(engine, scheduler) -> None:
    controller = make_controller(engine, scheduler)
    controller.seek(1)
    controller.play()

    assert controller.view.spoken_index is None
    engine.fire("start")

    assert controller.view.spoken_index == 1
    assert controller.view.utterance_started_at is not None


def test_voice_change_applies_to_next_utterance(engine, scheduler) -> None:
    controller = make_controller(engine, scheduler)
    controller.play()

    controller.set_voice_params({"rate": 1.5, "volume": 0.5})
    engine.complete()
    scheduler.advance(0.0)

    assert engine.spoken[0][1].rate == 1.0
    assert engine.spoken[1][1].rate == 1.5
    assert engine.spoken[1][1].volume == 0.5


def test_invalid_voice_params_rejected(engine, scheduler) -> None:
    controller = make_controller(engine, scheduler)

    with pytest.raises(ValueError):
        controller.set_voice_params({"rate": 5.0})

    assert controller.voice.rate == 1.0


def test_meditation_pause_is_clamped(engine, scheduler) -> None:
    controller = make_controller(engine, scheduler)

    assert controller.set_meditation_pause_seconds(100) == 30.0
    assert controller.set_meditation_pause_seconds(0.01) == 0.5


def test_set_text_keeps_cursor_in_range(engine, scheduler) -> None:
    controller = make_controller(engine, scheduler)
    controller.seek(1)

    controller.set_text("A. B. C. D.")
    assert controller.cursor_index == 1

    controller.seek(3)
    controller.set_text("Only one.")
    assert controller.cursor_index == 0


def test_set_text_while_speaking_cancels(engine, scheduler) -> None:
    controller = make_controller(engine, scheduler)
    controller.play()

    controller.set_text("Something else.")
    engine.fire("end", index=0)

    assert controller.state == PlaybackState.IDLE
    assert controller.cursor_index == 0


def test_hooks_receive_snapshots(engine, scheduler) -> None:
    paused: list[PositionSnapshot] = []
    advanced: list[PositionSnapshot] = []
    resets: list[str] = []
    hooks = PlaybackHooks(on_pause=[paused.append], on_advance=[advanced.append])
    hooks.on_reset.append(resets.append)
    controller = make_controller(engine, scheduler, hooks=hooks)

    controller.play()
    engine.complete()
    scheduler.advance(0.0)
    controller.pause()
    controller.reset()

    assert [s.sentence_index for s in advanced] == [1]
    assert paused[0].sentence_index == 1
    assert paused[0].document_identity == "doc"
    assert resets == ["doc"]
    assert controller.cursor_index == 0


def test_failing_hook_does_not_break_playback(engine, scheduler) -> None:
    def broken(snapshot: PositionSnapshot) -> None:
        raise RuntimeError("nope")

    controller = make_controller(engine, scheduler, hooks=PlaybackHooks(on_advance=[broken]))
    controller.play()
    engine.complete()
    scheduler.advance(0.0)

    assert engine.texts[-1] == "Second one? "


def test_estimate_ticks_until_cancelled(engine, scheduler) -> None:
    controller = make_controller(engine, scheduler)
    labels: list[str] = []
    controller.subscribe(lambda view: labels.append(view.eta_label))

    controller.request_estimate(True)
    scheduler.advance(3.0)
    assert len(labels) == 3

    controller.request_estimate(False)
    scheduler.advance(3.0)
    assert len(labels) == 3



def test_estimate_holds_steady_during_meditation_gap(engine, scheduler) -> None:
    controller = make_controller(
        engine,
        scheduler,
        text="Aaaaaaaaaaaaa. Bbbbbbbbbbbbb. Cccccccccccccc.",
        meditation_mode=True,
        meditation_pause_seconds=10.0,
    )

    controller.play()
    scheduler.advance(1.0)
    engine.complete()
    at_gap_start = controller.eta_label

    scheduler.advance(9.0)

    assert controller.eta_label == at_gap_start == "0:22"

    scheduler.advance(1.0)

    assert engine.texts[-1] == "Bbbbbbbbbbbbb. "
    assert controller.eta_label == "0:22"


def test_pause_mid_gap_counts_only_elapsed_silence(engine, scheduler) -> None:
    controller = make_controller(
        engine,
        scheduler,
        text="Aaaaaaaaaaaaa. Bbbbbbbbbbbbb. Cccccccccccccc.",
        meditation_mode=True,
        meditation_pause_seconds=10.0,
    )

    controller.play()
    scheduler.advance(1.0)
    engine.complete()
    scheduler.advance(4.0)
    controller.pause()

    # 15 chars over 1 s of speech, 2 sentences and 2 gaps left
    assert controller.eta_label == "0:22"
    assert scheduler.pending == []


def test_unsubscribe_stops_updates(engine, scheduler) -> None:
    controller = make_controller(engine, scheduler)
    views: list[PlaybackView] = []
    unsubscribe = controller.subscribe(views.append)

    controller.seek(1)
    unsubscribe()
    controller.seek(2)

    assert len(views) == 1


@pytest.mark.asyncio
async def test_load_document_restores_clamped_position(engine, scheduler, store) -> None:
    store.snapshots["book"] = PositionSnapshot(document_identity="book", sentence_index=10)
    controller = make_controller(engine, scheduler, text=None, store=store)

    snapshot = await controller.load_document("book", THREE)

    assert snapshot is not None
    assert controller.cursor_index == 2
    assert controller.document_id == "book"
    assert controller.state == PlaybackState.IDLE
    assert engine.spoken == []


@pytest.mark.asyncio
async def test_load_document_without_saved_position(engine, scheduler, store) -> None:
    controller = make_controller(engine, scheduler, text=None, store=store)
    controller.set_text("A. B. C.", document_id="other")
    controller.seek(2)

    await controller.load_document("fresh", THREE)

    assert controller.cursor_index == 0


@pytest.mark.asyncio
async def test_store_load_failure_is_a_warning(engine, scheduler) -> None:
    controller = make_controller(
        engine, scheduler, text=None, store=MemoryPositionStore(fail=True)
    )
    issues = record_issues(controller)

    await controller.load_document("book", THREE)

    assert controller.cursor_index == 0
    assert issues[0].kind == IssueKind.STORE_UNAVAILABLE
    assert issues[0].is_warning
    assert controller.play() is True


@pytest.mark.asyncio
async def test_transitions_save_position(engine, scheduler, store) -> None:
    controller = make_controller(engine, scheduler, text=None, store=store)
    await controller.load_document("book", THREE)

    controller.play()
    engine.complete()
    controller.pause()
    await controller.drain()

    assert store.snapshots["book"].sentence_index == 1
    assert [s.sentence_index for s in store.saves] == [1, 1]


@pytest.mark.asyncio
async def test_store_save_failure_keeps_playing(engine, scheduler) -> None:
    failing = MemoryPositionStore()
    controller = make_controller(engine, scheduler, text=None, store=failing)
    await controller.load_document("book", THREE)
    issues = record_issues(controller)
    failing.fail = True

    controller.play()
    engine.complete()
    await controller.drain()
    scheduler.advance(0.0)

    assert issues[-1].kind == IssueKind.STORE_UNAVAILABLE
    assert controller.state == PlaybackState.SPEAKING
    assert engine.texts[-1] == "Second one? "


@pytest.mark.asyncio
async def test_reset_clears_stored_position(engine, scheduler, store) -> None:
    controller = make_controller(engine, scheduler, text=None, store=store)
    await controller.load_document("book", THREE)
    controller.seek(2)
    await controller.drain()
    assert "book" in store.snapshots

    controller.reset()
    await controller.drain()

    assert store.cleared == ["book"]
    assert "book" not in store.snapshots
    assert controller.cursor_index == 0


@pytest.mark.asyncio
async def test_close_saves_and_releases_engine(engine, scheduler, store) -> None:
    controller = make_controller(engine, scheduler, text=None, store=store)
    await controller.load_document("book", THREE)
    controller.play()
    engine.fire("start")

    await controller.close()

    assert engine.closed
    assert controller.state == PlaybackState.IDLE
    assert store.snapshots["book"].sentence_index == 0


@pytest.mark.asyncio
async def test_store_is_read_only_without_save_on_transition(engine, scheduler, store) -> None:
    store.snapshots["book"] = PositionSnapshot(document_identity="book", sentence_index=1)
    controller = make_controller(
        engine, scheduler, text=None, store=store, save_on_transition=False
    )
    await controller.load_document("book", THREE)

    controller.seek(2)
    controller.reset()
    await controller.close()

    assert store.saves == []
    assert store.cleared == []
