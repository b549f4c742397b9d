"""
Retry, corruption recovery and integrity checking for the SQLite store.

- ``with_retry`` re-runs an async operation on lock contention with a linear
  backoff (``attempt * base_delay``).
- ``recover_corrupted_database`` moves an unreadable store aside as
  ``<name>.backup.<epoch-ms>`` so a fresh one can be created in its place.
- ``cleanup_old_backups`` keeps only the newest backups.
- ``check_integrity`` runs ``PRAGMA integrity_check``.

None of the repositories retry on their own; callers wrap whole operations.
"""

from __future__ import annotations

import asyncio
import shutil
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, List, Optional, TypeVar

import aiosqlite

from watchquota.database.errors import is_retryable_error
from watchquota.util.logger import get_logger

logger = get_logger("database_resilience")

T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BASE_DELAY = 0.1
DEFAULT_BACKUP_KEEP = 5
BACKUP_MARKER = ".backup."

# SQLite side files that belong to a database and must go with it
_SIDE_FILE_SUFFIXES = ("-wal", "-shm", "-journal")


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    base_delay: float = DEFAULT_BASE_DELAY,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """
    Await ``operation()`` up to ``max_attempts`` times.

    Retryable failures (see :func:`is_retryable_error`) sleep
    ``attempt * base_delay`` seconds before the next attempt. A non-retryable
    failure, or the failure of the last attempt, is re-raised unchanged.

    Args:
        operation: Zero-argument callable returning a fresh awaitable per call
        max_attempts: Total number of attempts, at least 1
        base_delay: Backoff unit in seconds
        sleep: Awaitable sleep function (replaced in tests)

    Returns:
        Whatever the first successful attempt returns.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    attempt = 1
    while True:
        try:
            return await operation()
        except Exception as exc:
            retryable = is_retryable_error(exc)
            logger.warning(
                "[RESILIENCE] Database operation failed (attempt %d/%d): %s",
                attempt, max_attempts, exc,
            )
            if not retryable or attempt >= max_attempts:
                raise
            await sleep(attempt * base_delay)
            attempt += 1


# ----------------------------------------------------------------------
# Backups
# ----------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class BackupFile:
    """A corrupted-store backup found next to the database file."""
    path: Path
    timestamp_ms: int


def backup_path_for(db_path: Path, timestamp_ms: Optional[int] = None) -> Path:
    """Return ``<db_path>.backup.<timestamp_ms>``."""
    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)
    return db_path.with_name(f"{db_path.name}{BACKUP_MARKER}{timestamp_ms}")


def list_backups(db_path: Path) -> List[BackupFile]:
    """Return backups of ``db_path`` newest first.

    Files whose suffix is not an integer sort as timestamp 0, i.e. oldest.
    """
    prefix = db_path.name + BACKUP_MARKER
    if not db_path.parent.is_dir():
        return []

    backups: List[BackupFile] = []
    for candidate in db_path.parent.iterdir():
        if not candidate.is_file() or not candidate.name.startswith(prefix):
            continue
        suffix = candidate.name[len(prefix):]
        try:
            timestamp_ms = int(suffix)
        except ValueError:
            timestamp_ms = 0
        backups.append(BackupFile(path=candidate, timestamp_ms=timestamp_ms))

    backups.sort(key=lambda backup: backup.timestamp_ms, reverse=True)
    return backups


def cleanup_old_backups(db_path: Path, keep_count: int = DEFAULT_BACKUP_KEEP) -> int:
    """
    Delete all but the ``keep_count`` newest backups of ``db_path``.

    A file that cannot be removed is logged and skipped.

    Returns:
        Number of backups deleted.
    """
    deleted = 0
    for backup in list_backups(db_path)[max(keep_count, 0):]:
        try:
            backup.path.unlink()
            deleted += 1
            logger.info("[RESILIENCE] Cleaned up old backup file: %s", backup.path.name)
        except OSError as exc:
            logger.error("[RESILIENCE] Failed to delete backup file %s: %s", backup.path.name, exc)
    return deleted


def recover_corrupted_database(db_path: Path, keep_count: int = DEFAULT_BACKUP_KEEP) -> Optional[Path]:
    """
    Move a corrupted store out of the way.

    The file is copied to a timestamped backup, the original and its
    WAL/SHM side files are removed, and old backups are pruned. The caller
    reopens the path afterwards, which creates an empty store.

    Returns:
        Path of the backup, or None if there was no file to back up.
    """
    backup_path: Optional[Path] = None

    if db_path.exists():
        backup_path = backup_path_for(db_path)
        # Two recoveries inside the same millisecond must not overwrite each other
        while backup_path.exists():
            backup_path = backup_path_for(db_path, int(backup_path.name.rsplit(".", 1)[1]) + 1)

        shutil.copy2(db_path, backup_path)
        logger.warning("[RESILIENCE] Corrupted database backed up to: %s", backup_path)
        db_path.unlink()
        logger.warning("[RESILIENCE] Corrupted database file removed: %s", db_path)

    for suffix in _SIDE_FILE_SUFFIXES:
        side_file = db_path.with_name(db_path.name + suffix)
        if side_file.exists():
            side_file.unlink()

    cleanup_old_backups(db_path, keep_count)
    return backup_path


# ----------------------------------------------------------------------
# Integrity
# ----------------------------------------------------------------------

async def check_integrity(conn: aiosqlite.Connection) -> bool:
    """
    Run ``PRAGMA integrity_check`` on ``conn``.

    Returns:
        True if SQLite reports ``ok``. Errors are logged and reported as False.
    """
    try:
        cursor = await conn.execute("PRAGMA integrity_check")
        rows = await cursor.fetchall()
        await cursor.close()
    except Exception as exc:
        logger.error("[RESILIENCE] Database integrity check failed: %s", exc)
        return False

    results = [str(row[0]) for row in rows]
    healthy = results == ["ok"]
    if not healthy:
        logger.warning("[RESILIENCE] Database integrity check reported problems: %s", results[:10])
    return healthy
