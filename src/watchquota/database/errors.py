"""
Exception taxonomy for the persistence layer.

Raw ``sqlite3`` errors coming out of aiosqlite are mapped onto these types by
:func:`classify_error` so callers can tell a busy database (retry it) from a
corrupted one (recover it) from a programming error (propagate it).
"""

from __future__ import annotations

import sqlite3

# Message fragments reported by SQLite for a file that is not a usable database
CORRUPTION_SIGNATURES = (
    "file is not a database",
    "database disk image is malformed",
    "SQLITE_NOTADB",
    "SQLITE_CORRUPT",
)

# Fragments for conditions that usually clear up on their own
RETRYABLE_SIGNATURES = (
    "database is locked",
    "database table is locked",
    "database disk image is malformed",
    "SQLITE_BUSY",
    "SQLITE_LOCKED",
)


class DatabaseError(Exception):
    """Base class for every error raised by the persistence layer."""


class NotInitializedError(DatabaseError):
    """An operation was attempted before the store was opened."""

    def __init__(self, message: str = "Database not initialized") -> None:
        super().__init__(message)


class CorruptionError(DatabaseError):
    """The store file is unreadable or malformed."""


class FatalInitializationError(DatabaseError):
    """The store could not be opened even after corruption recovery."""


class TransientStorageError(DatabaseError):
    """Lock contention or a busy store; safe to retry."""


class ValidationError(DatabaseError):
    """A caller-supplied value was rejected before reaching the store."""


def _error_text(exc: BaseException) -> str:
    parts = [str(exc)]
    # Python 3.11+ exposes the SQLite result code name on sqlite3 errors
    code_name = getattr(exc, "sqlite_errorname", None)
    if code_name:
        parts.append(str(code_name))
    return " ".join(parts)


def is_corruption_error(exc: BaseException) -> bool:
    """Return True if ``exc`` carries a corruption signature."""
    if isinstance(exc, CorruptionError):
        return True
    text = _error_text(exc)
    return any(signature in text for signature in CORRUPTION_SIGNATURES)


def is_retryable_error(exc: BaseException) -> bool:
    """Return True if ``exc`` is a transient condition worth retrying."""
    if isinstance(exc, TransientStorageError):
        return True
    if isinstance(exc, (NotInitializedError, ValidationError, FatalInitializationError)):
        return False
    text = _error_text(exc)
    return any(signature in text for signature in RETRYABLE_SIGNATURES)


def classify_error(exc: BaseException) -> BaseException:
    """Map a raw ``sqlite3`` error onto the taxonomy.

    Errors that already belong to the taxonomy, and errors that are not
    ``sqlite3`` errors at all, are returned unchanged. The original error is
    kept as ``__cause__`` of the mapped one.
    """
    if isinstance(exc, DatabaseError) or not isinstance(exc, sqlite3.Error):
        return exc

    if is_corruption_error(exc):
        mapped: DatabaseError = CorruptionError(str(exc))
    elif is_retryable_error(exc):
        mapped = TransientStorageError(str(exc))
    else:
        return exc
    mapped.__cause__ = exc
    return mapped
