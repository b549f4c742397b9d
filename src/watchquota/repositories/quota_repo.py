"""
Persistent storage for per-guild daily quotas.

A guild without a row has a quota of 0, which means tracking is disabled.
"""

from __future__ import annotations

from typing import Dict, Optional

from watchquota.database.db_connection import ConnectionManager
from watchquota.datatypes.quota_datatypes import QuotaSetting
from watchquota.util.dates import format_timestamp
from watchquota.util.logger import get_logger

logger = get_logger("quota_repo")


class QuotaRepo:
    """Low-level CRUD for the ``quotas`` table."""

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    @staticmethod
    async def set_quota(
        conn: ConnectionManager,
        guild_id: str,
        limit: int,
        updated_by: Optional[str],
        updated_by_name: Optional[str],
    ) -> None:
        """Insert or overwrite the guild's quota, stamping ``updated_at``.

        The limit is stored as given; range checks belong to the caller.
        """
        await conn.execute(
            """
            INSERT INTO quotas (guild_id, daily_limit, updated_at, updated_by, updated_by_username)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(guild_id) DO UPDATE SET
                daily_limit         = excluded.daily_limit,
                updated_at          = excluded.updated_at,
                updated_by          = excluded.updated_by,
                updated_by_username = excluded.updated_by_username
            """,
            (str(guild_id), limit, format_timestamp(), updated_by, updated_by_name),
        )
        logger.debug("[QUOTA] Set quota for guild %s to %s", guild_id, limit)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @staticmethod
    async def get_quota(conn: ConnectionManager, guild_id: str) -> int:
        """Return the guild's daily limit, or 0 when none is stored."""
        row = await conn.query_one(
            "SELECT daily_limit FROM quotas WHERE guild_id = ?",
            (str(guild_id),),
        )
        return int(row["daily_limit"]) if row is not None else 0

    @staticmethod
    async def get_setting(conn: ConnectionManager, guild_id: str) -> Optional[QuotaSetting]:
        """Return the full row for a guild including who changed it last."""
        row = await conn.query_one(
            "SELECT guild_id, daily_limit, updated_at, updated_by, updated_by_username "
            "FROM quotas WHERE guild_id = ?",
            (str(guild_id),),
        )
        if row is None:
            return None
        return QuotaSetting(
            guild_id=str(row["guild_id"]),
            daily_limit=int(row["daily_limit"]),
            updated_at=row["updated_at"],
            updated_by=row["updated_by"],
            updated_by_name=row["updated_by_username"],
        )

    @staticmethod
    async def load_all(conn: ConnectionManager) -> Dict[str, int]:
        """Return ``{guild_id: daily_limit}`` for every stored guild."""
        rows = await conn.query_all("SELECT guild_id, daily_limit FROM quotas")
        return {str(row["guild_id"]): int(row["daily_limit"]) for row in rows}
