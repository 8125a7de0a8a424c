"""Sentence-by-sentence speech playback for arbitrary prose."""

__version__ = "0.3.0"
