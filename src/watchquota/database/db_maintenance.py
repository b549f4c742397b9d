"""
Database maintenance operations.

Retention cleanup of old counters and audit entries, and the aggregate
statistics reported by ``get_database_stats``.
"""

from watchquota.database.db_connection import ConnectionManager
from watchquota.database.db_perf_mon import DatabasePerformanceMonitor
from watchquota.datatypes.quota_datatypes import DatabaseStats
from watchquota.repositories import AuditLogRepo, MessageCountRepo
from watchquota.util.logger import get_logger

logger = get_logger("database_maintenance")


class MaintenanceOperations:
    """Retention cleanup and statistics over an open connection."""

    def __init__(self, performance: DatabasePerformanceMonitor):
        self._performance = performance

    async def cleanup_old_message_counts(self, conn: ConnectionManager, days_to_keep: int = 7) -> int:
        """
        Delete daily counters dated more than ``days_to_keep`` days ago.

        Returns:
            Number of rows deleted
        """
        with self._performance.timed("cleanup_old_message_counts"):
            return await MessageCountRepo.cleanup_older_than(conn, days_to_keep)

    async def cleanup_old_logs(self, conn: ConnectionManager, days_to_keep: int = 30) -> int:
        """
        Delete audit entries older than ``days_to_keep`` days.

        Returns:
            Number of rows deleted
        """
        with self._performance.timed("cleanup_old_logs"):
            return await AuditLogRepo.cleanup_older_than(conn, days_to_keep)

    async def get_stats(self, conn: ConnectionManager) -> DatabaseStats:
        """Collect row counts and the oldest counter date / log timestamp."""
        with self._performance.timed("get_database_stats"):
            quota_row = await conn.query_one("SELECT COUNT(*) AS count FROM quotas")
            message_row = await conn.query_one(
                "SELECT COUNT(*) AS count, MIN(date) AS oldest_date FROM daily_messages"
            )
            log_row = await conn.query_one(
                "SELECT COUNT(*) AS count, MIN(timestamp) AS oldest_timestamp FROM logs"
            )

        return DatabaseStats(
            quota_count=int(quota_row["count"]),
            message_record_count=int(message_row["count"]),
            log_count=int(log_row["count"]),
            oldest_message_date=message_row["oldest_date"],
            oldest_log_timestamp=log_row["oldest_timestamp"],
        )
