"""Log handlers for per-session reading logs."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path


class SessionFileHandler(logging.FileHandler):
    """Writes one log file per reading session, grouped by local date.

    ``<directory>/<YYYY-MM-DD>/<prefix>_<YYYY-MM-DD_HH-MM-SS>.log``
    """

    def __init__(
        self,
        directory: str | Path = "logs/sessions",
        *,
        prefix: str = "reader",
        encoding: str | None = "utf-8",
        delay: bool = False,
        current_time: datetime | None = None,
    ) -> None:
        started = (current_time or datetime.now(timezone.utc)).astimezone()
        session_dir = Path(directory).resolve() / started.strftime("%Y-%m-%d")
        session_dir.mkdir(parents=True, exist_ok=True)
        self.session_path = session_dir / f"{prefix}_{started.strftime('%Y-%m-%d_%H-%M-%S')}.log"
        super().__init__(self.session_path, mode="a", encoding=encoding, delay=delay)


def cleanup_old_logs(
    log_directories: list[str | Path],
    retention_hours: int,
    logger: logging.Logger | None = None,
) -> tuple[int, int]:
    """
    Delete ``*.log`` files older than the retention period.

    Empty date folders left behind are removed too.

    Args:
        log_directories: Directories to clean
        retention_hours: Age limit in hours (0 = disabled)
        logger: Optional logger for reporting cleanup activity

    Returns:
        Tuple of (files_deleted, errors_encountered)
    """
    if retention_hours <= 0:
        return (0, 0)

    cutoff = datetime.now(timezone.utc) - timedelta(hours=retention_hours)
    deleted = 0
    errors = 0

    for directory in log_directories:
        root = Path(directory).resolve()
        if not root.is_dir():
            continue

        for log_file in root.rglob("*.log"):
            try:
                modified = datetime.fromtimestamp(log_file.stat().st_mtime, tz=timezone.utc)
                if modified < cutoff:
                    log_file.unlink()
                    deleted += 1
            except OSError as e:
                errors += 1
                if logger:
                    logger.warning(f"Failed to delete {log_file}: {e}")

        for date_dir in root.iterdir():
            if date_dir.is_dir() and not any(date_dir.iterdir()):
                try:
                    date_dir.rmdir()
                except OSError as e:
                    errors += 1
                    if logger:
                        logger.debug(f"Could not remove {date_dir}: {e}")

    if logger and deleted:
        logger.info(f"Log cleanup: {deleted} file(s) deleted, {errors} error(s)")

    return (deleted, errors)


__all__ = ["SessionFileHandler", "cleanup_old_logs"]
