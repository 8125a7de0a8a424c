"""Helpers for parsing the simple logging settings file.

Example ``logging_settings.conf``::

    # where log records go
    terminal = warning
    sessions = debug
    retention_hours = 72
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from pathlib import Path

_LEVEL_MAP: dict[str, int | None] = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "off": None,
}

_DEFAULT_KEYS = ("terminal", "sessions")
_DEFAULT_LEVELS = {"terminal": "warning", "sessions": "info"}
_DEFAULT_RETENTION_HOURS = 168


@dataclass(frozen=True)
class LoggingSettings:
    terminal_level: int | None
    sessions_level: int | None
    retention_hours: int

    @property
    def lowest_level(self) -> int | None:
        levels = [lvl for lvl in (self.terminal_level, self.sessions_level) if lvl is not None]
        return min(levels) if levels else None

    def with_terminal_override(self, value: str | None) -> "LoggingSettings":
        """Apply a LOG_LEVEL style override to the terminal level only."""
        if not value:
            return self
        normalized = value.strip().lower()
        if normalized in _LEVEL_MAP:
            return replace(self, terminal_level=_LEVEL_MAP[normalized])
        level = logging.getLevelName(normalized.upper())
        if isinstance(level, int):
            return replace(self, terminal_level=level)
        return self


def _resolve_level(key: str, value: str) -> int | None:
    normalized = value.strip().lower()
    if normalized in _LEVEL_MAP:
        return _LEVEL_MAP[normalized]
    return _LEVEL_MAP[_DEFAULT_LEVELS[key]]


def parse_logging_settings(path: Path) -> LoggingSettings:
    """Parse the human-readable logging settings file."""

    levels: dict[str, int | None] = {
        key: _LEVEL_MAP[_DEFAULT_LEVELS[key]] for key in _DEFAULT_KEYS
    }
    retention_hours = _DEFAULT_RETENTION_HOURS

    if path.exists():
        for raw_line in path.read_text(encoding="utf-8").splitlines():
            line = raw_line.split("#", 1)[0].strip()
            if not line or "=" not in line:
                continue
            key, value = (part.strip() for part in line.split("=", 1))
            normalized_key = key.lower()
            if normalized_key == "retention_hours":
                try:
                    retention_hours = max(0, int(value))
                except ValueError:
                    retention_hours = _DEFAULT_RETENTION_HOURS
            elif normalized_key in _DEFAULT_KEYS:
                levels[normalized_key] = _resolve_level(normalized_key, value)

    return LoggingSettings(
        terminal_level=levels["terminal"],
        sessions_level=levels["sessions"],
        retention_hours=retention_hours,
    )


__all__ = ["LoggingSettings", "parse_logging_settings"]
