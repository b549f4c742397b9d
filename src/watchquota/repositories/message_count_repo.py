"""
Persistent storage for daily message counters.

One row per (guild_id, user_id, date) where ``date`` is a ``YYYY-MM-DD`` UTC
day. Increments are a single upsert with ``RETURNING``, so the new value is
read in the same statement that writes it and concurrent increments of one
key can neither lose an update nor observe the same value twice.
"""

from __future__ import annotations

from watchquota.database.db_connection import ConnectionManager
from watchquota.util.dates import days_ago_utc, format_timestamp
from watchquota.util.logger import get_logger

logger = get_logger("message_count_repo")


class MessageCountRepo:
    """Low-level CRUD for the ``daily_messages`` table."""

    @staticmethod
    async def increment_and_get(conn: ConnectionManager, guild_id: str, user_id: str, date: str) -> int:
        """Create or increment the counter and return its new value."""
        row = await conn.query_one(
            """
            INSERT INTO daily_messages (guild_id, user_id, date, message_count, last_updated)
            VALUES (?, ?, ?, 1, ?)
            ON CONFLICT(guild_id, user_id, date) DO UPDATE SET
                message_count = message_count + 1,
                last_updated  = excluded.last_updated
            RETURNING message_count
            """,
            (str(guild_id), str(user_id), date, format_timestamp()),
        )
        count = int(row["message_count"]) if row is not None else 1
        logger.debug(
            "[COUNTER] increment for guild %s, user %s, date %s: %d",
            guild_id, user_id, date, count,
        )
        return count

    @staticmethod
    async def get_count(conn: ConnectionManager, guild_id: str, user_id: str, date: str) -> int:
        """Return the stored count, or 0 if the key has never been written."""
        row = await conn.query_one(
            "SELECT message_count FROM daily_messages WHERE guild_id = ? AND user_id = ? AND date = ?",
            (str(guild_id), str(user_id), date),
        )
        return int(row["message_count"] or 0) if row is not None else 0

    @staticmethod
    async def reset_count(conn: ConnectionManager, guild_id: str, user_id: str, date: str) -> None:
        """Set the counter to 0, creating the row if needed."""
        await conn.execute(
            """
            INSERT INTO daily_messages (guild_id, user_id, date, message_count, last_updated)
            VALUES (?, ?, ?, 0, ?)
            ON CONFLICT(guild_id, user_id, date) DO UPDATE SET
                message_count = 0,
                last_updated  = excluded.last_updated
            """,
            (str(guild_id), str(user_id), date, format_timestamp()),
        )
        logger.debug("[COUNTER] reset for guild %s, user %s, date %s", guild_id, user_id, date)

    @staticmethod
    async def cleanup_older_than(conn: ConnectionManager, days: int) -> int:
        """Delete counters whose ``date`` is strictly before today (UTC) minus ``days``."""
        cutoff = days_ago_utc(days)
        deleted = await conn.execute("DELETE FROM daily_messages WHERE date < ?", (cutoff,))
        logger.info("[COUNTER] Cleaned up %d message counters dated before %s", deleted, cutoff)
        return deleted
