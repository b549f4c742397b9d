"""
Database schema initialization.

Creates the four tables of the quota system and their indexes. Every
statement is CREATE ... IF NOT EXISTS, so running it on each startup is safe.
Column names match the stores written by earlier versions of the bot.
"""

import aiosqlite
from watchquota.util.logger import get_logger

logger = get_logger("database_schema")

TABLE_NAMES = ("quotas", "daily_messages", "logs", "command_usage")


class SchemaManager:
    """Creates tables and indexes for the quota-and-audit store."""

    @staticmethod
    async def initialize_schema(db: aiosqlite.Connection) -> None:
        """
        Create all tables and indexes that do not exist yet.

        Args:
            db: Open database connection
        """
        await SchemaManager._create_tables(db)
        await SchemaManager._create_indexes(db)
        await db.commit()
        logger.info("[SCHEMA] Database schema initialized")

    @staticmethod
    async def _create_tables(db: aiosqlite.Connection) -> None:
        """Create all required database tables."""
        # Per-guild daily quota; 0 disables tracking
        await db.execute("""
            CREATE TABLE IF NOT EXISTS quotas (
                guild_id TEXT PRIMARY KEY,
                daily_limit INTEGER NOT NULL DEFAULT 0,
                updated_at DATETIME DEFAULT CURRENT_TIMESTAMP,
                updated_by TEXT,
                updated_by_username TEXT
            )
        """)

        # Per-guild, per-user, per-UTC-day message counters
        await db.execute("""
            CREATE TABLE IF NOT EXISTS daily_messages (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                guild_id TEXT NOT NULL,
                user_id TEXT NOT NULL,
                date TEXT NOT NULL,
                message_count INTEGER DEFAULT 0,
                last_updated DATETIME DEFAULT CURRENT_TIMESTAMP,
                UNIQUE(guild_id, user_id, date)
            )
        """)

        # Append-only audit trail
        await db.execute("""
            CREATE TABLE IF NOT EXISTS logs (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                guild_id TEXT NOT NULL,
                action_type TEXT NOT NULL,
                moderator_id TEXT,
                moderator_username TEXT,
                target_user_id TEXT,
                target_username TEXT,
                details TEXT,
                timestamp DATETIME DEFAULT CURRENT_TIMESTAMP
            )
        """)

        await db.execute("""
            CREATE TABLE IF NOT EXISTS command_usage (
                command_name TEXT PRIMARY KEY,
                usage_count INTEGER NOT NULL DEFAULT 0
            )
        """)

    @staticmethod
    async def _create_indexes(db: aiosqlite.Connection) -> None:
        """Create indexes used by retention cleanup and chronological reads."""
        await db.execute("CREATE INDEX IF NOT EXISTS idx_daily_messages_date ON daily_messages(date)")
        await db.execute("CREATE INDEX IF NOT EXISTS idx_logs_guild_timestamp ON logs(guild_id, timestamp, id)")
        await db.execute("CREATE INDEX IF NOT EXISTS idx_logs_timestamp ON logs(timestamp)")

    @staticmethod
    async def list_tables(db: aiosqlite.Connection) -> list[str]:
        """Return the names of the quota system tables present in ``db``."""
        placeholders = ",".join("?" * len(TABLE_NAMES))
        cursor = await db.execute(
            f"SELECT name FROM sqlite_master WHERE type = 'table' AND name IN ({placeholders}) ORDER BY name",
            TABLE_NAMES,
        )
        rows = await cursor.fetchall()
        await cursor.close()
        return [row[0] for row in rows]
