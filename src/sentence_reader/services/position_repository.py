"""SQLite-backed repository for reading positions."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Protocol

import aiosqlite

from ..schemas.snapshot import PositionSnapshot
from .playback.events import StoreUnavailableError

logger = logging.getLogger(__name__)


class PositionStore(Protocol):
    """What the playback controller needs from a position store."""

    async def load(self, document_id: str) -> PositionSnapshot | None: ...

    async def save(self, document_id: str, snapshot: PositionSnapshot) -> bool: ...

    async def clear(self, document_id: str) -> bool: ...


class PositionRepository:
    """Persist and retrieve one snapshot per document from SQLite."""

    def __init__(self, database_path: Path):
        self._path = database_path
        self._connection: aiosqlite.Connection | None = None

    async def initialize(self) -> None:
        """Open the SQLite connection and ensure tables exist."""
        if self._connection is not None:
            return

        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._connection = await aiosqlite.connect(self._path)
            self._connection.row_factory = aiosqlite.Row
            await self._connection.execute("PRAGMA journal_mode=WAL;")
            await self._create_schema()
        except (aiosqlite.Error, OSError) as e:
            await self.close()
            raise StoreUnavailableError(f"Cannot open {self._path}: {e}") from e

    async def _create_schema(self) -> None:
        assert self._connection is not None
        await self._connection.executescript(
            """
            CREATE TABLE IF NOT EXISTS positions (
                document_id TEXT PRIMARY KEY,
                sentence_index INTEGER NOT NULL DEFAULT 0,
                character_offset INTEGER NOT NULL DEFAULT 0,
                captured_at TEXT NOT NULL
            );
            """
        )
        await self._connection.commit()

    async def close(self) -> None:
        """Close the database connection."""
        if self._connection is not None:
            await self._connection.close()
            self._connection = None

    async def _require(self) -> aiosqlite.Connection:
        if self._connection is None:
            await self.initialize()
        assert self._connection is not None
        return self._connection

    def _row_to_snapshot(self, row: aiosqlite.Row) -> PositionSnapshot:
        return PositionSnapshot(
            document_identity=row["document_id"],
            sentence_index=row["sentence_index"],
            character_offset=row["character_offset"],
            captured_at=row["captured_at"],
        )

    async def load(self, document_id: str) -> PositionSnapshot | None:
        """Return the stored snapshot, or None if the document was never saved.

        Raises StoreUnavailableError when the database cannot be read.
        """
        try:
            connection = await self._require()
            cursor = await connection.execute(
                "SELECT * FROM positions WHERE document_id = ?",
                (document_id,),
            )
            row = await cursor.fetchone()
            await cursor.close()
        except aiosqlite.Error as e:
            raise StoreUnavailableError(f"Failed to load position for {document_id}: {e}") from e

        if row is None:
            return None
        return self._row_to_snapshot(row)

    async def save(self, document_id: str, snapshot: PositionSnapshot) -> bool:
        """Upsert the snapshot. Returns False instead of raising on failure."""
        try:
            connection = await self._require()
            await connection.execute(
                """
                INSERT INTO positions (document_id, sentence_index, character_offset, captured_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(document_id) DO UPDATE SET
                    sentence_index = excluded.sentence_index,
                    character_offset = excluded.character_offset,
                    captured_at = excluded.captured_at
                """,
                (
                    document_id,
                    snapshot.sentence_index,
                    snapshot.character_offset,
                    snapshot.captured_at.isoformat(),
                ),
            )
            await connection.commit()
        except (aiosqlite.Error, StoreUnavailableError) as e:
            logger.warning(f"Failed to save position for {document_id}: {e}")
            return False

        logger.debug(
            f"Saved position for {document_id}: sentence {snapshot.sentence_index}"
        )
        return True

    async def clear(self, document_id: str) -> bool:
        """Forget the stored position. Returns True if a row was removed."""
        try:
            connection = await self._require()
            cursor = await connection.execute(
                "DELETE FROM positions WHERE document_id = ?",
                (document_id,),
            )
            await connection.commit()
        except (aiosqlite.Error, StoreUnavailableError) as e:
            logger.warning(f"Failed to clear position for {document_id}: {e}")
            return False
        return cursor.rowcount > 0

    async def list_documents(self) -> list[PositionSnapshot]:
        """All stored positions, most recent first."""
        connection = await self._require()
        cursor = await connection.execute(
            "SELECT * FROM positions ORDER BY captured_at DESC"
        )
        rows = await cursor.fetchall()
        await cursor.close()
        return [self._row_to_snapshot(row) for row in rows]


class InMemoryPositionStore:
    """Process-local store, used when persistence is switched off."""

    def __init__(self) -> None:
        self._snapshots: dict[str, PositionSnapshot] = {}

    async def load(self, document_id: str) -> PositionSnapshot | None:
        return self._snapshots.get(document_id)

    async def save(self, document_id: str, snapshot: PositionSnapshot) -> bool:
        self._snapshots[document_id] = snapshot
        return True

    async def clear(self, document_id: str) -> bool:
        return self._snapshots.pop(document_id, None) is not None


__all__ = ["InMemoryPositionStore", "PositionRepository", "PositionStore"]
