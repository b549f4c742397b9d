"""
Append-only audit log of moderation actions.

``details`` is stored as JSON text; ``None`` is stored as SQL NULL rather than
the string ``"null"``. Entries are never updated. Reads are ordered by
``timestamp`` then ``id``, so entries written in one process come back in the
order they were appended.
"""

from __future__ import annotations

import json
from datetime import timedelta
from typing import Any, List, Mapping, Optional

from watchquota.database.db_connection import ConnectionManager
from watchquota.datatypes.quota_datatypes import AuditActionType, AuditLogEntry
from watchquota.util.dates import format_timestamp, utc_now
from watchquota.util.logger import get_logger

logger = get_logger("audit_log_repo")


def _encode_details(details: Optional[Mapping[str, Any]]) -> Optional[str]:
    if details is None:
        return None
    return json.dumps(details, default=str)


def _decode_details(raw: Optional[str]) -> Optional[dict]:
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except (TypeError, ValueError):
        logger.warning("[AUDIT] Could not decode details payload: %r", raw)
        return {"raw": raw}


class AuditLogRepo:
    """Low-level access to the ``logs`` table."""

    @staticmethod
    async def append(
        conn: ConnectionManager,
        guild_id: str,
        action_type: AuditActionType | str,
        moderator_id: Optional[str] = None,
        moderator_name: Optional[str] = None,
        target_user_id: Optional[str] = None,
        target_user_name: Optional[str] = None,
        details: Optional[Mapping[str, Any]] = None,
    ) -> int:
        """Insert one entry and return its id."""
        action_value = action_type.value if isinstance(action_type, AuditActionType) else str(action_type)
        entry_id = await conn.execute_insert(
            """
            INSERT INTO logs (guild_id, action_type, moderator_id, moderator_username,
                              target_user_id, target_username, details, timestamp)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                str(guild_id),
                action_value,
                moderator_id,
                moderator_name,
                target_user_id,
                target_user_name,
                _encode_details(details),
                format_timestamp(),
            ),
        )
        logger.debug("[AUDIT] Logged %s in guild %s (entry %d)", action_value, guild_id, entry_id)
        return entry_id

    @staticmethod
    async def get_entries(
        conn: ConnectionManager,
        guild_id: Optional[str] = None,
        action_type: AuditActionType | str | None = None,
        limit: Optional[int] = None,
    ) -> List[AuditLogEntry]:
        """Return entries in chronological order, optionally filtered."""
        clauses: List[str] = []
        params: List[Any] = []
        if guild_id is not None:
            clauses.append("guild_id = ?")
            params.append(str(guild_id))
        if action_type is not None:
            clauses.append("action_type = ?")
            params.append(action_type.value if isinstance(action_type, AuditActionType) else str(action_type))

        sql = (
            "SELECT id, guild_id, action_type, moderator_id, moderator_username, "
            "target_user_id, target_username, details, timestamp FROM logs"
        )
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += " ORDER BY timestamp ASC, id ASC"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(int(limit))

        rows = await conn.query_all(sql, params)
        return [
            AuditLogEntry(
                id=int(row["id"]),
                guild_id=str(row["guild_id"]),
                action_type=str(row["action_type"]),
                moderator_id=row["moderator_id"],
                moderator_name=row["moderator_username"],
                target_user_id=row["target_user_id"],
                target_user_name=row["target_username"],
                details=_decode_details(row["details"]),
                timestamp=str(row["timestamp"]),
            )
            for row in rows
        ]

    @staticmethod
    async def cleanup_older_than(conn: ConnectionManager, days: int) -> int:
        """Delete entries whose ``timestamp`` is older than ``days`` days."""
        cutoff = format_timestamp(utc_now() - timedelta(days=days))
        deleted = await conn.execute("DELETE FROM logs WHERE timestamp < ?", (cutoff,))
        logger.info("[AUDIT] Cleaned up %d log entries older than %d days", deleted, days)
        return deleted
