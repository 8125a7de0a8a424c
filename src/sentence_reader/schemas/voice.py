"""Voice and reading preference schemas."""

from pydantic import BaseModel, Field


RATE_RANGE = (0.1, 2.0)
PITCH_RANGE = (0.5, 2.0)
VOLUME_RANGE = (0.0, 1.0)
MEDITATION_PAUSE_RANGE = (0.5, 30.0)


class VoiceParams(BaseModel):
    """Parameters applied to every utterance."""

    voice_id: str | None = Field(
        default=None,
        description="Engine-specific voice identifier. None lets the engine choose.",
    )

    rate: float = Field(
        default=1.0,
        ge=RATE_RANGE[0],
        le=RATE_RANGE[1],
        description="Speaking rate multiplier (1.0 = engine default).",
    )

    pitch: float = Field(
        default=1.0,
        ge=PITCH_RANGE[0],
        le=PITCH_RANGE[1],
        description="Pitch multiplier. Ignored by engines that cannot change pitch.",
    )

    volume: float = Field(
        default=1.0,
        ge=VOLUME_RANGE[0],
        le=VOLUME_RANGE[1],
        description="Output volume between silent (0.0) and full (1.0).",
    )

    language: str | None = Field(
        default=None,
        description="BCP-47 language tag, e.g. 'en-US' or 'pt-BR'.",
    )


class VoiceParamsUpdate(BaseModel):
    """Partial update schema - all fields optional."""

    voice_id: str | None = Field(default=None)
    rate: float | None = Field(default=None, ge=RATE_RANGE[0], le=RATE_RANGE[1])
    pitch: float | None = Field(default=None, ge=PITCH_RANGE[0], le=PITCH_RANGE[1])
    volume: float | None = Field(
        default=None, ge=VOLUME_RANGE[0], le=VOLUME_RANGE[1]
    )
    language: str | None = Field(default=None)


class ReaderPreferences(BaseModel):
    """Voice plus meditation preferences, persisted between sessions."""

    voice: VoiceParams = Field(default_factory=VoiceParams)

    meditation_mode: bool = Field(
        default=False,
        description="Insert a silent gap between consecutive sentences.",
    )

    meditation_pause_seconds: float = Field(
        default=3.0,
        ge=MEDITATION_PAUSE_RANGE[0],
        le=MEDITATION_PAUSE_RANGE[1],
        description="Length of the silent gap in seconds.",
    )


class ReaderPreferencesUpdate(BaseModel):
    """Partial update for reader preferences."""

    voice: VoiceParamsUpdate | None = Field(default=None)
    meditation_mode: bool | None = Field(default=None)
    meditation_pause_seconds: float | None = Field(
        default=None,
        ge=MEDITATION_PAUSE_RANGE[0],
        le=MEDITATION_PAUSE_RANGE[1],
    )


def merge_voice(current: VoiceParams, update: VoiceParamsUpdate) -> VoiceParams:
    """Apply the non-None fields of ``update`` on top of ``current``."""
    return current.model_copy(update=update.model_dump(exclude_none=True))


__all__ = [
    "MEDITATION_PAUSE_RANGE",
    "PITCH_RANGE",
    "RATE_RANGE",
    "ReaderPreferences",
    "ReaderPreferencesUpdate",
    "VOLUME_RANGE",
    "VoiceParams",
    "VoiceParamsUpdate",
    "merge_voice",
]
