"""
Speech engine adapters.

- base: SpeechEngine contract, EngineVoice and default voice selection
- pyttsx3_engine: local system voices through pyttsx3
"""

from .base import EmitFn, EngineVoice, SpeechEngine, language_prefix, pick_default_voice

__all__ = [
    "EmitFn",
    "EngineVoice",
    "SpeechEngine",
    "language_prefix",
    "pick_default_voice",
]
