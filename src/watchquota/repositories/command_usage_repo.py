"""Persistent per-command invocation counters."""

from __future__ import annotations

from watchquota.database.db_connection import ConnectionManager


class CommandUsageRepo:
    """Low-level access to the ``command_usage`` table."""

    @staticmethod
    async def increment_usage(conn: ConnectionManager, command_name: str) -> int:
        """Increment the counter for ``command_name`` and return the new value."""
        row = await conn.query_one(
            """
            INSERT INTO command_usage (command_name, usage_count)
            VALUES (?, 1)
            ON CONFLICT(command_name) DO UPDATE SET usage_count = usage_count + 1
            RETURNING usage_count
            """,
            (command_name,),
        )
        return int(row["usage_count"]) if row is not None else 1

    @staticmethod
    async def get_usage(conn: ConnectionManager, command_name: str) -> int:
        row = await conn.query_one(
            "SELECT usage_count FROM command_usage WHERE command_name = ?",
            (command_name,),
        )
        return int(row["usage_count"]) if row is not None else 0
