"""
Central coordinator for the quota-and-audit store.

The Database class owns one ConnectionManager and exposes every operation
the bot needs, delegating to specialized modules:
- db_connection: the aiosqlite connection, corruption-safe open/close
- db_schema: table and index creation
- repositories: quotas, daily counters, audit log, command usage
- db_resilience: retry wrapper, backups, integrity check
- db_maintenance: retention cleanup and statistics
- db_cache: read-through quota cache
- db_perf_mon: operation timing

One instance is created at startup and passed to everything that needs it.
Methods do not retry on their own; wrap them in ``execute_with_retry``.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, TypeVar

from watchquota.configuration.app_configuration import AppConfig
from watchquota.database import db_resilience
from watchquota.database.db_cache import QuotaCache
from watchquota.database.db_connection import ConnectionManager
from watchquota.database.db_maintenance import MaintenanceOperations
from watchquota.database.db_perf_mon import DatabasePerformanceMonitor
from watchquota.database.db_schema import SchemaManager
from watchquota.datatypes.quota_datatypes import (
    AuditActionType,
    AuditLogEntry,
    DatabaseStats,
    QuotaSetting,
)
from watchquota.repositories import AuditLogRepo, CommandUsageRepo, MessageCountRepo, QuotaRepo
from watchquota.util.dates import today_utc
from watchquota.util.logger import get_logger

logger = get_logger("database")

T = TypeVar("T")

DB_PATH = Path("./data/bot_data.db").resolve()


class Database:
    """
    Persistence layer for quotas, daily counters, the audit log and command
    usage counters.

    Lifecycle:
        1. ``await initialize_database()`` at program startup
        2. call the operations below
        3. ``await close()`` at shutdown (idempotent)
    """

    def __init__(
        self,
        db_path: Path = DB_PATH,
        retry_max_attempts: int = db_resilience.DEFAULT_MAX_ATTEMPTS,
        retry_base_delay: float = db_resilience.DEFAULT_BASE_DELAY,
        backup_keep_count: int = db_resilience.DEFAULT_BACKUP_KEEP,
        quota_cache_ttl_seconds: float = 60.0,
        busy_timeout_ms: int = 5000,
    ):
        self.db_path = Path(db_path)
        self.retry_max_attempts = retry_max_attempts
        self.retry_base_delay = retry_base_delay
        self.backup_keep_count = backup_keep_count

        self._conn = ConnectionManager(
            self.db_path,
            busy_timeout_ms=busy_timeout_ms,
            backup_keep_count=backup_keep_count,
        )
        self.db_perf_mon = DatabasePerformanceMonitor()
        self._quota_cache = QuotaCache(ttl_seconds=quota_cache_ttl_seconds)
        self._maintenance = MaintenanceOperations(self.db_perf_mon)

    @classmethod
    def from_config(cls, config: AppConfig) -> "Database":
        """Build a Database from the application configuration."""
        return cls(
            db_path=config.database_path,
            retry_max_attempts=config.retry_max_attempts,
            retry_base_delay=config.retry_base_delay_seconds,
            backup_keep_count=config.backup_keep_count,
            quota_cache_ttl_seconds=config.quota_cache_ttl_seconds,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def is_initialized(self) -> bool:
        return self._conn.is_open

    @property
    def connection(self) -> ConnectionManager:
        return self._conn

    async def initialize_database(self) -> None:
        """
        Open the store and create the schema.

        Safe to call more than once. A corrupted file is backed up and
        replaced with a fresh store.

        Raises:
            FatalInitializationError: If no usable store could be opened.
        """
        if self._conn.is_open:
            logger.debug("[DATABASE] Already initialized, skipping")
            return

        await self._conn.open(on_open=SchemaManager.initialize_schema)
        logger.info("[DATABASE] Database initialized at %s", self.db_path)

    async def close(self) -> None:
        """Close the store. Calling it again is a no-op."""
        if not self._conn.is_open:
            return
        await self._conn.close()
        self._quota_cache.invalidate()
        logger.info("[DATABASE] Database shutdown complete")

    async def recover_database(self) -> Optional[Path]:
        """
        Back up the current file and start over with an empty store.

        Returns:
            Path of the backup, or None if no file existed.
        """
        self._quota_cache.invalidate()
        backup = await self._conn.recover()
        logger.warning("[DATABASE] Database recovered; backup at %s", backup)
        return backup

    # ------------------------------------------------------------------
    # Resilience
    # ------------------------------------------------------------------

    async def execute_with_retry(
        self,
        operation: Callable[[], Awaitable[T]],
        max_attempts: Optional[int] = None,
    ) -> T:
        """
        Run ``operation`` with the configured retry policy.

        Args:
            operation: Zero-argument callable returning a new awaitable per call,
                e.g. ``lambda: db.get_quota(guild_id)``
            max_attempts: Overrides the configured number of attempts
        """
        return await db_resilience.with_retry(
            operation,
            max_attempts=max_attempts or self.retry_max_attempts,
            base_delay=self.retry_base_delay,
        )

    async def check_integrity(self) -> bool:
        """Return True if ``PRAGMA integrity_check`` reports ``ok``."""
        with self.db_perf_mon.timed("check_integrity"):
            return await db_resilience.check_integrity(self._conn.connection)

    def cleanup_old_backups(self, keep_count: Optional[int] = None) -> int:
        """Prune corrupted-store backups to the newest ``keep_count``."""
        keep = self.backup_keep_count if keep_count is None else keep_count
        return db_resilience.cleanup_old_backups(self.db_path, keep)

    # ------------------------------------------------------------------
    # Quotas
    # ------------------------------------------------------------------

    async def get_quota(self, guild_id: str) -> int:
        """Return the guild's daily limit (0 when not set)."""
        guild_id = str(guild_id)
        cached = self._quota_cache.get(guild_id)
        if cached is not None:
            return cached

        with self.db_perf_mon.timed("get_quota"):
            quota = await QuotaRepo.get_quota(self._conn, guild_id)
        self._quota_cache.set(guild_id, quota)
        return quota

    async def set_quota(
        self,
        guild_id: str,
        limit: int,
        updated_by: Optional[str] = None,
        updated_by_name: Optional[str] = None,
    ) -> None:
        """Store the guild's daily limit with who changed it and when."""
        guild_id = str(guild_id)
        self._quota_cache.invalidate(guild_id)
        try:
            with self.db_perf_mon.timed("set_quota"):
                await QuotaRepo.set_quota(self._conn, guild_id, limit, updated_by, updated_by_name)
        finally:
            # A concurrent reader may have cached the old value mid-write
            self._quota_cache.invalidate(guild_id)

    async def get_quota_setting(self, guild_id: str) -> Optional[QuotaSetting]:
        """Return the full quota row including provenance, or None."""
        with self.db_perf_mon.timed("get_quota_setting"):
            return await QuotaRepo.get_setting(self._conn, str(guild_id))

    async def load_all_quotas(self) -> Dict[str, int]:
        """Return ``{guild_id: daily_limit}`` for every configured guild."""
        with self.db_perf_mon.timed("load_all_quotas"):
            quotas = await QuotaRepo.load_all(self._conn)
        logger.info("[DATABASE] Loaded %d quota settings from database", len(quotas))
        return quotas

    # ------------------------------------------------------------------
    # Daily message counters
    # ------------------------------------------------------------------

    async def increment_message_count(self, guild_id: str, user_id: str, date: Optional[str] = None) -> int:
        """Atomically increment the counter for the day (default: today UTC) and return it."""
        with self.db_perf_mon.timed("increment_message_count"):
            return await MessageCountRepo.increment_and_get(
                self._conn, str(guild_id), str(user_id), date or today_utc()
            )

    async def get_message_count(self, guild_id: str, user_id: str, date: Optional[str] = None) -> int:
        """Return the counter for the day (default: today UTC), 0 if absent."""
        with self.db_perf_mon.timed("get_message_count"):
            return await MessageCountRepo.get_count(
                self._conn, str(guild_id), str(user_id), date or today_utc()
            )

    async def reset_message_count(self, guild_id: str, user_id: str, date: Optional[str] = None) -> None:
        """Set the counter for the day (default: today UTC) back to 0."""
        with self.db_perf_mon.timed("reset_message_count"):
            await MessageCountRepo.reset_count(
                self._conn, str(guild_id), str(user_id), date or today_utc()
            )

    # ------------------------------------------------------------------
    # Audit log
    # ------------------------------------------------------------------

    async def log_action(
        self,
        guild_id: str,
        action_type: AuditActionType | str,
        moderator_id: Optional[str] = None,
        moderator_name: Optional[str] = None,
        target_user_id: Optional[str] = None,
        target_user_name: Optional[str] = None,
        details: Optional[Mapping[str, Any]] = None,
    ) -> int:
        """Append one audit entry and return its id."""
        with self.db_perf_mon.timed("log_action"):
            return await AuditLogRepo.append(
                self._conn,
                str(guild_id),
                action_type,
                moderator_id,
                moderator_name,
                target_user_id,
                target_user_name,
                details,
            )

    async def log_quota_set(
        self,
        guild_id: str,
        moderator_id: Optional[str],
        moderator_name: Optional[str],
        old_quota: int,
        new_quota: int,
    ) -> int:
        return await self.log_action(
            guild_id, AuditActionType.QUOTA_SET, moderator_id, moderator_name, None, None,
            {"oldQuota": old_quota, "newQuota": new_quota},
        )

    async def log_timeout(
        self,
        guild_id: str,
        moderator_id: Optional[str],
        moderator_name: Optional[str],
        target_user_id: str,
        target_user_name: Optional[str],
        reason: str,
        duration_ms: int,
    ) -> int:
        return await self.log_action(
            guild_id, AuditActionType.TIMEOUT, moderator_id, moderator_name, target_user_id, target_user_name,
            {"reason": reason, "durationMs": duration_ms},
        )

    async def log_free(
        self,
        guild_id: str,
        moderator_id: Optional[str],
        moderator_name: Optional[str],
        target_user_id: str,
        target_user_name: Optional[str],
        reason: str,
    ) -> int:
        return await self.log_action(
            guild_id, AuditActionType.FREE, moderator_id, moderator_name, target_user_id, target_user_name,
            {"reason": reason},
        )

    async def log_auto_timeout(
        self,
        guild_id: str,
        target_user_id: str,
        target_user_name: Optional[str],
        message_count: int,
        quota_limit: int,
    ) -> int:
        """Record a timeout applied automatically for exceeding the quota."""
        return await self.log_action(
            guild_id, AuditActionType.AUTO_TIMEOUT, None, None, target_user_id, target_user_name,
            {"messageCount": message_count, "quotaLimit": quota_limit},
        )

    async def log_quota_reset(
        self,
        guild_id: str,
        moderator_id: Optional[str],
        moderator_name: Optional[str],
        target_user_id: str,
        target_user_name: Optional[str],
        reason: str,
    ) -> int:
        return await self.log_action(
            guild_id, AuditActionType.QUOTA_RESET, moderator_id, moderator_name, target_user_id, target_user_name,
            {"reason": reason},
        )

    async def log_watchlist_role_created(
        self,
        guild_id: str,
        guild_name: str,
        automatic: bool = True,
        on_join: Optional[bool] = None,
    ) -> int:
        """Record creation of the watchlist role; ``onJoin`` is only written when given."""
        details: Dict[str, Any] = {"guildName": guild_name, "automatic": automatic}
        if on_join is not None:
            details["onJoin"] = on_join
        return await self.log_action(guild_id, AuditActionType.WATCHLIST_ROLE_CREATED, details=details)

    async def get_action_logs(
        self,
        guild_id: Optional[str] = None,
        action_type: AuditActionType | str | None = None,
        limit: Optional[int] = None,
    ) -> List[AuditLogEntry]:
        """Return audit entries oldest first, optionally filtered."""
        with self.db_perf_mon.timed("get_action_logs"):
            return await AuditLogRepo.get_entries(self._conn, guild_id, action_type, limit)

    # ------------------------------------------------------------------
    # Command usage
    # ------------------------------------------------------------------

    async def increment_command_usage(self, command_name: str) -> int:
        with self.db_perf_mon.timed("increment_command_usage"):
            return await CommandUsageRepo.increment_usage(self._conn, command_name)

    async def get_command_usage(self, command_name: str) -> int:
        return await CommandUsageRepo.get_usage(self._conn, command_name)

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    async def cleanup_old_message_counts(self, days_to_keep: int = 7) -> int:
        return await self._maintenance.cleanup_old_message_counts(self._conn, days_to_keep)

    async def cleanup_old_logs(self, days_to_keep: int = 30) -> int:
        return await self._maintenance.cleanup_old_logs(self._conn, days_to_keep)

    async def get_database_stats(self) -> DatabaseStats:
        return await self._maintenance.get_stats(self._conn)

    def get_db_performance_stats(self) -> Dict[str, Dict[str, float]]:
        return self.db_perf_mon.get_statistics()
