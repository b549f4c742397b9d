import sqlite3

from watchquota.database.errors import (
    CorruptionError,
    FatalInitializationError,
    NotInitializedError,
    TransientStorageError,
    ValidationError,
    classify_error,
    is_corruption_error,
    is_retryable_error,
)


def test_corruption_signatures_detected():
    assert is_corruption_error(sqlite3.DatabaseError("file is not a database"))
    assert is_corruption_error(sqlite3.DatabaseError("database disk image is malformed"))
    assert not is_corruption_error(sqlite3.OperationalError("database is locked"))


def test_retryable_signatures_detected():
    assert is_retryable_error(sqlite3.OperationalError("database is locked"))
    assert is_retryable_error(sqlite3.OperationalError("database table is locked"))
    assert is_retryable_error(sqlite3.DatabaseError("database disk image is malformed"))
    assert is_retryable_error(TransientStorageError("busy"))
    assert not is_retryable_error(sqlite3.OperationalError("no such table: quotas"))
    assert not is_retryable_error(ValueError("nope"))


def test_taxonomy_errors_never_retried():
    assert not is_retryable_error(NotInitializedError())
    assert not is_retryable_error(ValidationError("database is locked"))
    assert not is_retryable_error(FatalInitializationError("database is locked"))


def test_classify_maps_sqlite_errors():
    locked = sqlite3.OperationalError("database is locked")
    mapped = classify_error(locked)
    assert isinstance(mapped, TransientStorageError)
    assert mapped.__cause__ is locked

    corrupt = classify_error(sqlite3.DatabaseError("file is not a database"))
    assert isinstance(corrupt, CorruptionError)


def test_classify_leaves_other_errors_alone():
    syntax = sqlite3.OperationalError("near \"SELEC\": syntax error")
    assert classify_error(syntax) is syntax

    value_error = ValueError("x")
    assert classify_error(value_error) is value_error

    already = NotInitializedError()
    assert classify_error(already) is already


def test_not_initialized_default_message():
    assert str(NotInitializedError()) == "Database not initialized"
