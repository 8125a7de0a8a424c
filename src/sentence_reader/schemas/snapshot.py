"""Persisted reading position schema."""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class PositionSnapshot(BaseModel):
    """Where a document was left off.

    Serialized with camelCase keys::

        {"documentIdentity": "...", "sentenceIndex": 3,
         "characterOffset": 0, "capturedAt": "2024-05-26T12:34:56+00:00"}
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )

    document_identity: str = Field(min_length=1)
    sentence_index: int = Field(default=0, ge=0)
    character_offset: int = Field(default=0, ge=0)
    captured_at: AwareDatetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    def clamped_index(self, sentence_count: int) -> int:
        """Return ``sentence_index`` clamped to ``[0, sentence_count - 1]``."""
        if sentence_count <= 0:
            return 0
        return min(max(self.sentence_index, 0), sentence_count - 1)

    def same_position(self, other: PositionSnapshot | None) -> bool:
        """True when ``other`` points at the same place in the same document."""
        if other is None:
            return False
        return (
            self.document_identity == other.document_identity
            and self.sentence_index == other.sentence_index
            and self.character_offset == other.character_offset
        )

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)

    @classmethod
    def from_json(cls, payload: str) -> PositionSnapshot:
        return cls.model_validate_json(payload)


__all__ = ["PositionSnapshot"]
