"""Remaining reading time estimation from live throughput."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from itertools import accumulate
from typing import Callable, Optional, Sequence

logger = logging.getLogger(__name__)

DEFAULT_CHARS_PER_SECOND = 15.0


@dataclass(frozen=True)
class TimingSample:
    """Reference point for one uninterrupted play session."""

    session_start: float
    session_start_index: int
    chars_before_session: int


def format_eta(seconds: float) -> str:
    """Format a duration as ``H:MM`` from one hour upwards, else ``M:SS``."""
    total = max(0, int(round(seconds)))
    if total >= 3600:
        hours, rem = divmod(total, 3600)
        return f"{hours}:{rem // 60:02d}"
    minutes, secs = divmod(total, 60)
    return f"{minutes}:{secs:02d}"


class TimingEstimator:
    """
    Projects the time left until the last sentence finishes.

    1. chars read this session = chars up to cursor - chars at session start
    2. throughput = chars read / (elapsed - meditation pauses this session),
       falling back to a default when there is no usable sample
    3. throughput *= rate multiplier
    4. remaining chars = length of sentences from the cursor to the end
    5. remaining pauses = sentences left * meditation pause (if enabled)
    6. eta = remaining chars / throughput + remaining pauses
    """

    def __init__(
        self,
        clock: Callable[[], float],
        default_chars_per_second: float = DEFAULT_CHARS_PER_SECOND,
    ):
        self._clock = clock
        self._default_cps = default_chars_per_second
        self._prefix: list[int] = [0]
        self._sample: Optional[TimingSample] = None
        self._pause_seconds = 0.0
        self._gap: Optional[tuple[float, float]] = None
        self._carried_cps: Optional[float] = None

    @property
    def sample(self) -> Optional[TimingSample]:
        return self._sample

    @property
    def sentence_count(self) -> int:
        return len(self._prefix) - 1

    def set_sentences(self, sentences: Sequence[str]) -> None:
        self._prefix = [0, *accumulate(len(s) for s in sentences)]
        self._sample = None
        self._pause_seconds = 0.0
        self._gap = None
        self._carried_cps = None

    def chars_up_to(self, index: int) -> int:
        """Characters in sentences ``[0, index)``."""
        index = max(0, min(index, self.sentence_count))
        return self._prefix[index]

    def remaining_chars(self, cursor: int) -> int:
        return self._prefix[-1] - self.chars_up_to(cursor)

    def start_session(self, cursor: int) -> TimingSample:
        """Reset the sample; called on every transition into playing."""
        self._sample = TimingSample(
            session_start=self._clock(),
            session_start_index=cursor,
            chars_before_session=self.chars_up_to(cursor),
        )
        self._pause_seconds = 0.0
        self._gap = None
        return self._sample

    def end_session(self, cursor: int) -> None:
        """Keep the measured throughput so estimates stay stable while paused."""
        measured = self._measured_cps(cursor)
        if measured is not None:
            self._carried_cps = measured
        self._sample = None
        self._pause_seconds = 0.0
        self._gap = None

    def add_pause(self, seconds: float) -> None:
        """Record silent meditation time spent in the current session."""
        if self._sample is not None and seconds > 0:
            self._pause_seconds += seconds

    def begin_gap(self, seconds: float) -> None:
        """Start a meditation gap of up to ``seconds``; it counts as silence as it elapses."""
        self.close_gap()
        if self._sample is not None and seconds > 0:
            self._gap = (self._clock(), seconds)

    def close_gap(self) -> None:
        """End the open gap, keeping only the silence that actually elapsed."""
        elapsed = self._gap_elapsed()
        self._gap = None
        self.add_pause(elapsed)

    def _gap_elapsed(self) -> float:
        if self._gap is None:
            return 0.0
        started, length = self._gap
        return max(0.0, min(self._clock() - started, length))

    def _measured_cps(self, cursor: int) -> Optional[float]:
        sample = self._sample
        if sample is None:
            return None
        chars_read = self.chars_up_to(cursor) - sample.chars_before_session
        silent = self._pause_seconds + self._gap_elapsed()
        speaking_seconds = (self._clock() - sample.session_start) - silent
        if chars_read <= 0 or speaking_seconds <= 0:
            return None
        return chars_read / speaking_seconds

    def throughput(self, cursor: int, rate: float = 1.0) -> float:
        """Characters per second, scaled by the rate multiplier."""
        cps = self._measured_cps(cursor)
        if cps is None:
            cps = self._carried_cps or self._default_cps
        return cps * (rate if rate > 0 else 1.0)

    def estimate_seconds(
        self,
        cursor: int,
        rate: float = 1.0,
        meditation_pause_seconds: float = 0.0,
    ) -> float:
        remaining = self.remaining_chars(cursor)
        sentences_left = max(0, self.sentence_count - cursor)
        if remaining <= 0 and sentences_left == 0:
            return 0.0
        pauses = sentences_left * max(0.0, meditation_pause_seconds)
        return remaining / self.throughput(cursor, rate) + pauses

    def estimate_label(
        self,
        cursor: int,
        rate: float = 1.0,
        meditation_pause_seconds: float = 0.0,
    ) -> str:
        return format_eta(self.estimate_seconds(cursor, rate, meditation_pause_seconds))


__all__ = [
    "DEFAULT_CHARS_PER_SECOND",
    "TimingEstimator",
    "TimingSample",
    "format_eta",
]
