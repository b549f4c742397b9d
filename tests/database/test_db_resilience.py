"""
Tests for retry, corruption recovery, backup pruning and integrity checks.
"""

import sqlite3
from unittest.mock import AsyncMock

import pytest

from watchquota.database import db_resilience
from watchquota.database.database import Database
from watchquota.database.errors import FatalInitializationError, ValidationError
from watchquota.database.db_resilience import (
    backup_path_for,
    cleanup_old_backups,
    list_backups,
    recover_corrupted_database,
    with_retry,
)


def locked_error():
    return sqlite3.OperationalError("database is locked")


# ---------------------------------------------------------------------------
# with_retry
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_retry_succeeds_on_third_attempt():
    operation = AsyncMock(side_effect=[locked_error(), locked_error(), "done"])
    sleep = AsyncMock()

    result = await with_retry(operation, max_attempts=3, base_delay=0.1, sleep=sleep)

    assert result == "done"
    assert operation.await_count == 3
    delays = [call.args[0] for call in sleep.await_args_list]
    assert delays == [pytest.approx(0.1), pytest.approx(0.2)]


@pytest.mark.asyncio
async def test_retry_gives_up_after_max_attempts():
    operation = AsyncMock(side_effect=locked_error())
    sleep = AsyncMock()

    with pytest.raises(sqlite3.OperationalError, match="database is locked"):
        await with_retry(operation, max_attempts=3, base_delay=0.1, sleep=sleep)

    assert operation.await_count == 3
    assert sleep.await_count == 2


@pytest.mark.asyncio
async def test_non_retryable_error_propagates_immediately():
    operation = AsyncMock(side_effect=ValueError("bad input"))
    sleep = AsyncMock()

    with pytest.raises(ValueError):
        await with_retry(operation, sleep=sleep)

    assert operation.await_count == 1
    sleep.assert_not_awaited()


@pytest.mark.asyncio
async def test_validation_error_is_not_retried():
    operation = AsyncMock(side_effect=ValidationError("database is locked"))
    with pytest.raises(ValidationError):
        await with_retry(operation, sleep=AsyncMock())
    assert operation.await_count == 1


@pytest.mark.asyncio
async def test_retry_rejects_zero_attempts():
    with pytest.raises(ValueError):
        await with_retry(AsyncMock(), max_attempts=0)


@pytest.mark.asyncio
async def test_execute_with_retry_uses_configured_attempts(database):
    operation = AsyncMock(side_effect=[locked_error(), 7])

    assert await database.execute_with_retry(operation) == 7
    assert operation.await_count == 2


# ---------------------------------------------------------------------------
# Backups
# ---------------------------------------------------------------------------

def test_list_backups_newest_first(tmp_path):
    db_path = tmp_path / "bot_data.db"
    for stamp in (100, 300, 200):
        backup_path_for(db_path, stamp).write_bytes(b"x")
    db_path.with_name("bot_data.db.backup.garbage").write_bytes(b"x")
    (tmp_path / "other.db.backup.999").write_bytes(b"x")

    backups = list_backups(db_path)

    assert [b.timestamp_ms for b in backups] == [300, 200, 100, 0]


def test_cleanup_old_backups_keeps_newest(tmp_path):
    db_path = tmp_path / "bot_data.db"
    for stamp in range(1, 8):
        backup_path_for(db_path, stamp).write_bytes(b"x")

    deleted = cleanup_old_backups(db_path, keep_count=5)

    assert deleted == 2
    assert [b.timestamp_ms for b in list_backups(db_path)] == [7, 6, 5, 4, 3]


def test_recover_moves_file_and_side_files(tmp_path):
    db_path = tmp_path / "bot_data.db"
    db_path.write_bytes(b"corrupted contents")
    db_path.with_name("bot_data.db-wal").write_bytes(b"wal")
    db_path.with_name("bot_data.db-shm").write_bytes(b"shm")

    backup = recover_corrupted_database(db_path)

    assert backup is not None and backup.read_bytes() == b"corrupted contents"
    assert not db_path.exists()
    assert not db_path.with_name("bot_data.db-wal").exists()
    assert not db_path.with_name("bot_data.db-shm").exists()


def test_recover_twice_does_not_overwrite_backup(tmp_path):
    db_path = tmp_path / "bot_data.db"
    db_path.write_bytes(b"first")
    first = recover_corrupted_database(db_path)
    db_path.write_bytes(b"second")
    second = recover_corrupted_database(db_path)

    assert first != second
    assert first.read_bytes() == b"first"
    assert second.read_bytes() == b"second"


def test_recover_missing_file_returns_none(tmp_path):
    assert recover_corrupted_database(tmp_path / "absent.db") is None


# ---------------------------------------------------------------------------
# Corruption at startup
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_corrupted_file_is_backed_up_and_recreated(tmp_path):
    db_path = tmp_path / "bot_data.db"
    db_path.write_bytes(b"this is definitely not sqlite " * 64)

    db = Database(db_path)
    await db.initialize_database()
    try:
        backups = list_backups(db_path)
        assert len(backups) == 1
        assert backups[0].path.read_bytes().startswith(b"this is definitely not sqlite")

        await db.set_quota("g1", 3)
        assert await db.get_quota("g1") == 3
        assert await db.increment_message_count("g1", "u1") == 1
        assert await db.check_integrity() is True
    finally:
        await db.close()


@pytest.mark.asyncio
async def test_corruption_recovery_prunes_old_backups(tmp_path):
    db_path = tmp_path / "bot_data.db"
    for stamp in range(1, 6):
        backup_path_for(db_path, stamp).write_bytes(b"old")
    db_path.write_bytes(b"garbage " * 128)

    db = Database(db_path, backup_keep_count=5)
    await db.initialize_database()
    await db.close()

    backups = list_backups(db_path)
    assert len(backups) == 5
    assert 1 not in {b.timestamp_ms for b in backups}


@pytest.mark.asyncio
async def test_unopenable_path_is_fatal(tmp_path):
    blocker = tmp_path / "not_a_dir"
    blocker.write_text("file in the way")

    db = Database(blocker / "bot_data.db")
    with pytest.raises(FatalInitializationError):
        await db.initialize_database()
    assert not db.is_initialized


@pytest.mark.asyncio
async def test_recover_database_starts_empty(database):
    await database.set_quota("g1", 8)

    backup = await database.recover_database()

    assert backup is not None and backup.exists()
    assert database.is_initialized
    assert await database.get_quota("g1") == 0


# ---------------------------------------------------------------------------
# Integrity
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_integrity_check_on_healthy_store(database):
    assert await database.check_integrity() is True


@pytest.mark.asyncio
async def test_integrity_check_reports_failure():
    conn = AsyncMock()
    cursor = AsyncMock()
    cursor.fetchall.return_value = [("*** in database main ***",), ("row 3 missing from index",)]
    conn.execute.return_value = cursor

    assert await db_resilience.check_integrity(conn) is False


@pytest.mark.asyncio
async def test_integrity_check_error_is_false():
    conn = AsyncMock()
    conn.execute.side_effect = sqlite3.DatabaseError("database disk image is malformed")

    assert await db_resilience.check_integrity(conn) is False
