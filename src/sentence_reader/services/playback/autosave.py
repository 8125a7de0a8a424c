"""Debounced position autosave attached to controller hooks."""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import TYPE_CHECKING, Optional

from ...schemas.snapshot import PositionSnapshot

if TYPE_CHECKING:
    from ..position_repository import PositionStore
    from .controller import PlaybackController

logger = logging.getLogger(__name__)


class SaveStatus(str, Enum):
    """Autosave indicator states."""

    IDLE = "idle"
    SAVING = "saving"
    SAVED = "saved"


class DebouncedPositionSaver:
    """
    Save policy for callers that do not want a write on every sentence.

    - cursor moves are saved once the position has been stable for
      ``debounce_seconds``
    - pause, stop and close save immediately
    - a position identical to the last one saved is not written again
    - reset cancels any pending save and clears the stored position
    """

    def __init__(self, store: "PositionStore", debounce_seconds: float = 10.0):
        self._store = store
        self._debounce = max(0.0, debounce_seconds)
        self._pending: Optional[asyncio.Task[None]] = None
        self._pending_snapshot: Optional[PositionSnapshot] = None
        self._last_saved: Optional[PositionSnapshot] = None
        self.status = SaveStatus.IDLE

    @property
    def last_saved(self) -> Optional[PositionSnapshot]:
        return self._last_saved

    @property
    def has_pending(self) -> bool:
        return self._pending is not None and not self._pending.done()

    def attach(self, controller: "PlaybackController") -> None:
        """Register this saver on the controller's persistence hooks."""
        hooks = controller.hooks
        hooks.on_advance.append(self.schedule)
        hooks.on_pause.append(self.save_now)
        hooks.on_stop.append(self.save_now)
        hooks.on_close.append(self.save_now)
        hooks.on_reset.append(self.forget)

    def schedule(self, snapshot: PositionSnapshot) -> None:
        """Save ``snapshot`` after the debounce period unless superseded."""
        self._cancel_pending()
        self._pending_snapshot = snapshot
        self._pending = asyncio.create_task(self._wait_and_save(snapshot))

    async def _wait_and_save(self, snapshot: PositionSnapshot) -> None:
        try:
            if self._debounce > 0:
                await asyncio.sleep(self._debounce)
        except asyncio.CancelledError:
            logger.debug("Autosave superseded")
            raise
        self._pending = None
        await self._write(snapshot)

    async def save_now(self, snapshot: PositionSnapshot) -> bool:
        """Cancel any pending save and write ``snapshot`` right away."""
        self._cancel_pending()
        return await self._write(snapshot)

    async def flush(self) -> bool:
        """Write the pending snapshot, if any, without waiting."""
        snapshot = self._pending_snapshot
        if snapshot is None:
            return True
        return await self.save_now(snapshot)

    async def forget(self, document_id: str) -> bool:
        self._cancel_pending()
        self._last_saved = None
        self.status = SaveStatus.IDLE
        cleared = await self._store.clear(document_id)
        logger.info(f"Cleared saved position for {document_id}")
        return cleared

    def _cancel_pending(self) -> None:
        if self._pending is not None and not self._pending.done():
            self._pending.cancel()
        self._pending = None
        self._pending_snapshot = None

    async def _write(self, snapshot: PositionSnapshot) -> bool:
        if snapshot.same_position(self._last_saved):
            return True

        self.status = SaveStatus.SAVING
        try:
            saved = await self._store.save(snapshot.document_identity, snapshot)
        except Exception as e:
            logger.warning(f"Autosave failed: {e}")
            saved = False

        if saved:
            self._last_saved = snapshot
            self.status = SaveStatus.SAVED
            logger.info(
                f"Saved {snapshot.document_identity} at sentence {snapshot.sentence_index + 1}"
            )
        else:
            self.status = SaveStatus.IDLE
            logger.warning(f"Position for {snapshot.document_identity} was not saved")
        return saved


__all__ = ["DebouncedPositionSaver", "SaveStatus"]
