"""
Database connection management: one long-lived aiosqlite connection.

Design rationale
----------------
SQLite performs best with a **single long-lived connection** rather than
opening/closing a connection per operation:
  - Avoids repeated handshake and pragma setup overhead
  - Keeps the page cache warm across operations
  - WAL mode lets readers proceed while one writer commits

Concurrency model
-----------------
The connection runs in autocommit mode, so every statement is its own
transaction and SQLite's locking is the only mutual exclusion between
writers. Counters are incremented with a single
``INSERT ... ON CONFLICT DO UPDATE ... RETURNING`` statement, which makes the
upsert and the re-read one atomic step; no per-key locks are needed.

``_statement_lock`` only keeps a statement and the fetch of its rows
together on the shared connection. ``_open_lock`` serializes ``open`` and
``recover`` so overlapping callers share one connection.

Corruption
----------
If opening the file, applying pragmas or running the ``on_open`` hook fails
with a corruption signature, the file is moved aside (see
:mod:`watchquota.database.db_resilience`) and opening is retried exactly once.

Usage
-----
    manager = ConnectionManager(path)
    await manager.open(on_open=SchemaManager.initialize_schema)

    row = await manager.query_one("SELECT ... WHERE guild_id = ?", (guild_id,))
    changed = await manager.execute("DELETE FROM ... WHERE date < ?", (cutoff,))

    await manager.close()
"""

from __future__ import annotations

import asyncio
import sqlite3
from pathlib import Path
from typing import Any, Awaitable, Callable, List, Optional, Sequence

import aiosqlite

from watchquota.database.db_resilience import DEFAULT_BACKUP_KEEP, recover_corrupted_database
from watchquota.database.errors import (
    FatalInitializationError,
    NotInitializedError,
    classify_error,
    is_corruption_error,
)
from watchquota.util.logger import get_logger

logger = get_logger("database_connection")

OnOpenHook = Callable[[aiosqlite.Connection], Awaitable[None]]
Params = Sequence[Any]

# ── Pragmas applied once when the connection is opened ──────────────────────
_PRAGMAS = [
    "PRAGMA journal_mode = WAL",
    "PRAGMA synchronous = NORMAL",    # safe with WAL; faster than FULL
    "PRAGMA temp_store = MEMORY",
]


class ConnectionManager:
    """
    Owner of the single aiosqlite connection to the store file.

    Every query method raises :class:`NotInitializedError` until
    :meth:`open` has completed, and maps raw ``sqlite3`` failures onto the
    error taxonomy of :mod:`watchquota.database.errors`.
    """

    def __init__(
        self,
        path: Path,
        busy_timeout_ms: int = 5000,
        backup_keep_count: int = DEFAULT_BACKUP_KEEP,
    ) -> None:
        self._path = Path(path)
        self._busy_timeout_ms = busy_timeout_ms
        self._backup_keep_count = backup_keep_count
        self._conn: aiosqlite.Connection | None = None
        self._on_open: OnOpenHook | None = None
        self._statement_lock = asyncio.Lock()
        self._open_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def path(self) -> Path:
        return self._path

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    async def open(self, on_open: OnOpenHook | None = None) -> None:
        """
        Open (or create) the store and run ``on_open`` against it.

        A corruption failure triggers one backup-and-recreate cycle followed
        by a second attempt.

        Raises:
            FatalInitializationError: If the store cannot be opened, or
                cannot be opened again after recovery.
        """
        async with self._open_lock:
            if self._conn is not None:
                logger.debug("[DB CONNECTION] open() called but connection already exists, ignoring")
                return
            await self._open_locked(on_open)

    async def _open_locked(self, on_open: OnOpenHook | None) -> None:
        self._on_open = on_open
        try:
            await self._connect(on_open)
            return
        except Exception as exc:
            if not is_corruption_error(exc):
                logger.critical("[DB CONNECTION] Failed to open database %s: %s", self._path, exc)
                raise FatalInitializationError(f"Could not open database at {self._path}: {exc}") from exc
            logger.error("[DB CONNECTION] Database at %s is corrupted (%s); attempting recovery", self._path, exc)

        try:
            recover_corrupted_database(self._path, self._backup_keep_count)
            await self._connect(on_open)
        except Exception as exc:
            logger.critical("[DB CONNECTION] Database recovery failed for %s: %s", self._path, exc)
            raise FatalInitializationError(f"Could not recover database at {self._path}: {exc}") from exc

        logger.warning("[DB CONNECTION] Database recreated at %s after corruption", self._path)

    async def _connect(self, on_open: OnOpenHook | None) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)

        conn = await aiosqlite.connect(self._path, isolation_level=None)
        try:
            conn.row_factory = aiosqlite.Row
            await conn.execute(f"PRAGMA busy_timeout = {int(self._busy_timeout_ms)}")
            for pragma in _PRAGMAS:
                await conn.execute(pragma)
            if on_open is not None:
                await on_open(conn)
        except BaseException:
            await conn.close()
            raise

        self._conn = conn
        logger.info("[DB CONNECTION] Opened connection to %s", self._path)

    async def close(self) -> None:
        """
        Checkpoint the WAL and close the connection.

        Calling it on a closed manager does nothing.
        """
        if self._conn is None:
            return

        conn = self._conn
        self._conn = None
        async with self._statement_lock:
            try:
                await conn.execute("PRAGMA wal_checkpoint(TRUNCATE)")
            except Exception:
                logger.exception("[DB CONNECTION] WAL checkpoint failed during close")
            finally:
                await conn.close()
                logger.info("[DB CONNECTION] Connection closed")

    async def recover(self) -> Optional[Path]:
        """
        Close the connection, move the store aside and open a fresh one.

        Used when corruption is detected after startup.

        Returns:
            Path of the backup that was written, if any.
        """
        async with self._open_lock:
            await self.close()
            backup = recover_corrupted_database(self._path, self._backup_keep_count)
            try:
                await self._connect(self._on_open)
            except Exception as exc:
                raise FatalInitializationError(f"Could not recreate database at {self._path}: {exc}") from exc
            return backup

    # ------------------------------------------------------------------
    # Connection access
    # ------------------------------------------------------------------

    @property
    def connection(self) -> aiosqlite.Connection:
        """
        The raw aiosqlite connection.

        Raises:
            NotInitializedError: If the connection has not been opened yet.
        """
        if self._conn is None:
            raise NotInitializedError(
                "Database not initialized: call initialize_database() at startup."
            )
        return self._conn

    # ------------------------------------------------------------------
    # Parameterized statements
    # ------------------------------------------------------------------

    async def _run(self, sql: str, params: Params, fetch: str) -> Any:
        conn = self.connection
        async with self._statement_lock:
            try:
                cursor = await conn.execute(sql, tuple(params))
                try:
                    if fetch == "one":
                        return await cursor.fetchone()
                    if fetch == "all":
                        return list(await cursor.fetchall())
                    if fetch == "lastrowid":
                        return int(cursor.lastrowid or 0)
                    return cursor.rowcount
                finally:
                    await cursor.close()
            except sqlite3.Error as exc:
                mapped = classify_error(exc)
                if mapped is exc:
                    raise
                raise mapped from exc

    async def execute(self, sql: str, params: Params = ()) -> int:
        """Run a write statement and return the number of rows it changed."""
        return await self._run(sql, params, "rowcount")

    async def execute_insert(self, sql: str, params: Params = ()) -> int:
        """Run an INSERT and return the rowid of the new row."""
        return await self._run(sql, params, "lastrowid")

    async def query_one(self, sql: str, params: Params = ()) -> Optional[aiosqlite.Row]:
        """Return the first row of ``sql`` (also used for ``RETURNING`` writes)."""
        return await self._run(sql, params, "one")

    async def query_all(self, sql: str, params: Params = ()) -> List[aiosqlite.Row]:
        """Return every row of ``sql``."""
        return await self._run(sql, params, "all")
