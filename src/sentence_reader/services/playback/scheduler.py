"""Cancellable delayed callbacks on the running event loop."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Protocol

logger = logging.getLogger(__name__)


class Cancellable(Protocol):
    """Token returned by :meth:`Scheduler.after`."""

    def cancel(self) -> None: ...

    def cancelled(self) -> bool: ...


class Scheduler(Protocol):
    """Runs ``callback`` once after ``seconds`` unless the token is cancelled."""

    def after(self, seconds: float, callback: Callable[[], None]) -> Cancellable: ...

    def now(self) -> float: ...


class AsyncioScheduler:
    """Scheduler backed by ``loop.call_later``; ``now()`` is the loop clock."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None):
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def after(self, seconds: float, callback: Callable[[], None]) -> asyncio.TimerHandle:
        delay = max(0.0, seconds)
        logger.debug(f"Scheduling {getattr(callback, '__name__', callback)} in {delay:.2f}s")
        return self.loop.call_later(delay, callback)

    def now(self) -> float:
        return self.loop.time()


__all__ = ["AsyncioScheduler", "Cancellable", "Scheduler"]
