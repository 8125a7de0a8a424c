"""
Local speech engine backed by pyttsx3 (SAPI5 / NSSpeechSynthesizer / eSpeak).

pyttsx3 is synchronous: ``runAndWait()`` blocks until its queue drains and its
callbacks fire on whichever thread runs the loop. This adapter runs every
utterance on one dedicated worker thread and hands each callback back to the
asyncio loop with ``call_soon_threadsafe``, so the rest of the reader only
ever sees events on the loop thread.

Engine quirks handled here:
    - rate is words per minute; the multiplier is applied to the driver's
      initial rate (usually 200 wpm)
    - pitch cannot be changed and is ignored
    - voice ids are driver specific; an unknown id falls back to the first
      voice that speaks the requested language
    - eSpeak reports languages as bytes with a leading length byte
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Optional

import pyttsx3

from ...schemas.voice import VoiceParams
from ..playback.events import EngineUnavailableError
from .base import EmitFn, EngineVoice, SpeechEngine

logger = logging.getLogger(__name__)

DEFAULT_WORDS_PER_MINUTE = 200


@dataclass(eq=False)
class _Job:
    """State shared between the loop and the worker for one utterance."""

    name: str
    text: str
    voice: VoiceParams
    emit: EmitFn
    loop: asyncio.AbstractEventLoop
    cancelled: bool = False
    terminal_sent: bool = False


def _decode_language(value: Any) -> str:
    if isinstance(value, bytes):
        # eSpeak prefixes the tag with its length byte
        value = value.decode("utf-8", errors="ignore")
    return "".join(ch for ch in str(value) if ch.isprintable()).strip()


class Pyttsx3Engine(SpeechEngine):
    """SpeechEngine adapter over a lazily initialised pyttsx3 driver."""

    name = "pyttsx3"

    def __init__(self, driver_name: Optional[str] = None):
        self._driver_name = driver_name
        self._engine: Any = None
        self._init_error: Optional[str] = None
        self._base_rate = DEFAULT_WORDS_PER_MINUTE
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="pyttsx3")
        self._lock = threading.Lock()
        self._job: Optional[_Job] = None
        self._queued: set[_Job] = set()
        self._names = itertools.count(1)
        self._pitch_warned = False

    def _ensure_engine(self) -> Any:
        """Lazy load the pyttsx3 driver."""
        if self._engine is not None:
            return self._engine
        if self._init_error is not None:
            raise EngineUnavailableError(self._init_error)

        try:
            logger.info("Loading pyttsx3 TTS engine...")
            engine = pyttsx3.init(self._driver_name)
            engine.connect("started-utterance", self._on_started)
            engine.connect("started-word", self._on_word)
            engine.connect("finished-utterance", self._on_finished)
            engine.connect("error", self._on_error)
            self._base_rate = int(engine.getProperty("rate") or DEFAULT_WORDS_PER_MINUTE)
        except Exception as e:
            self._init_error = f"pyttsx3 could not be initialised: {e}"
            logger.warning(self._init_error)
            raise EngineUnavailableError(self._init_error) from e

        self._engine = engine
        logger.info(f"pyttsx3 loaded (base rate {self._base_rate} wpm)")
        return engine

    @property
    def available(self) -> bool:
        try:
            self._ensure_engine()
        except EngineUnavailableError:
            return False
        return True

    def list_voices(self) -> list[EngineVoice]:
        try:
            engine = self._ensure_engine()
        except EngineUnavailableError:
            return []
        voices = []
        for v in engine.getProperty("voices") or []:
            languages = tuple(
                lang
                for lang in (_decode_language(raw) for raw in getattr(v, "languages", []) or [])
                if lang
            )
            voices.append(EngineVoice(id=v.id, name=v.name or v.id, languages=languages))
        return voices

    def speak(self, text: str, voice: VoiceParams, emit: EmitFn) -> None:
        self._ensure_engine()
        job = _Job(
            name=f"utt-{next(self._names)}",
            text=text,
            voice=voice,
            emit=emit,
            loop=asyncio.get_running_loop(),
        )
        with self._lock:
            self._queued.add(job)
        future = job.loop.run_in_executor(self._executor, self._run_job, job)
        future.add_done_callback(lambda f: self._job_done(job, f))

    def cancel(self) -> None:
        # jobs still waiting for the worker must never reach the driver
        with self._lock:
            for job in self._queued:
                job.cancelled = True
            running = self._job is not None
        if self._engine is not None and running:
            try:
                self._engine.stop()
            except Exception as e:
                logger.warning(f"pyttsx3 stop failed: {e}")

    def close(self) -> None:
        self.cancel()
        self._executor.shutdown(wait=False, cancel_futures=True)
        logger.info("Closed pyttsx3 engine")

    # -- worker thread -------------------------------------------------

    def _run_job(self, job: _Job) -> None:
        engine = self._engine
        with self._lock:
            if job.cancelled:
                self._queued.discard(job)
                return
            self._job = job
        try:
            self._apply_voice(engine, job.voice)
            with self._lock:
                if job.cancelled:
                    return
            engine.say(job.text, job.name)
            engine.runAndWait()
        finally:
            with self._lock:
                self._queued.discard(job)
                if self._job is job:
                    self._job = None

    def _apply_voice(self, engine: Any, voice: VoiceParams) -> None:
        engine.setProperty("rate", max(1, int(round(self._base_rate * voice.rate))))
        engine.setProperty("volume", voice.volume)

        if voice.pitch != 1.0 and not self._pitch_warned:
            logger.debug("pyttsx3 cannot change pitch; ignoring pitch setting")
            self._pitch_warned = True

        voice_id = self._resolve_voice_id(voice)
        if voice_id:
            engine.setProperty("voice", voice_id)

    def _resolve_voice_id(self, voice: VoiceParams) -> Optional[str]:
        voices = self.list_voices()
        if voice.voice_id and any(v.id == voice.voice_id for v in voices):
            return voice.voice_id
        if voice.language:
            for v in voices:
                if v.matches_language(voice.language):
                    if voice.voice_id:
                        logger.debug(
                            f"Voice {voice.voice_id!r} not found; using {v.id!r} for {voice.language}"
                        )
                    return v.id
        return None

    def _current(self, name: str) -> Optional[_Job]:
        with self._lock:
            job = self._job
        if job is None or job.name != name or job.cancelled:
            return None
        return job

    def _post(self, job: _Job, kind: str, **payload: Any) -> None:
        if kind in ("end", "error"):
            if job.terminal_sent:
                return
            job.terminal_sent = True
        job.loop.call_soon_threadsafe(lambda: job.emit(kind, **payload))

    def _on_started(self, name: str) -> None:
        job = self._current(name)
        if job is not None:
            self._post(job, "start")

    def _on_word(self, name: str, location: int, length: int) -> None:
        job = self._current(name)
        if job is not None:
            self._post(job, "boundary", char_index=location, length=length)

    def _on_finished(self, name: str, completed: bool) -> None:
        job = self._current(name)
        if job is None:
            return
        if completed:
            self._post(job, "end")
        else:
            self._post(job, "error", message="utterance interrupted by the engine")

    def _on_error(self, name: str, exception: Exception) -> None:
        job = self._current(name)
        if job is not None:
            self._post(job, "error", message=str(exception))

    # -- loop thread ---------------------------------------------------

    def _job_done(self, job: _Job, future: "asyncio.Future[None]") -> None:
        if future.cancelled() or job.cancelled or job.terminal_sent:
            return
        exc = future.exception()
        if exc is not None:
            logger.error(f"pyttsx3 run loop failed: {exc}")
            job.terminal_sent = True
            job.emit("error", message=str(exc))
        else:
            # Some drivers never fire finished-utterance for short input.
            job.terminal_sent = True
            job.emit("end")


__all__ = ["Pyttsx3Engine"]
