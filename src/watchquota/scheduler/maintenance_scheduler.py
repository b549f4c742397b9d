"""Periodic database maintenance.

Runs an integrity check and the retention cleanup on a fixed interval.
The first cycle runs right after ``start`` so problems are reported at
startup. Nothing in a cycle is fatal: failures are logged (and, for a check
that raises, written to the audit log) and the loop carries on.
"""

from __future__ import annotations

import asyncio

from watchquota.database.database import Database
from watchquota.datatypes.quota_datatypes import AuditActionType
from watchquota.services.bookkeeping import record_best_effort
from watchquota.util.dates import utc_now
from watchquota.util.logger import get_logger

logger = get_logger("maintenance_scheduler")

SYSTEM_GUILD_ID = "system"


class MaintenanceScheduler:
    """
    Background task for integrity checks and retention cleanup.

    Args:
        database: Initialized Database to maintain
        interval_seconds: Delay between cycles
        message_retention_days: Age after which daily counters are deleted
        log_retention_days: Age after which audit entries are deleted
    """

    def __init__(
        self,
        database: Database,
        interval_seconds: float = 86400.0,
        message_retention_days: int = 7,
        log_retention_days: int = 30,
    ) -> None:
        self._database = database
        self._interval = interval_seconds
        self._message_retention_days = message_retention_days
        self._log_retention_days = log_retention_days
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_integrity_check(self) -> bool:
        """Check the store once; returns the health verdict (False on error)."""
        logger.info("[MAINTENANCE] Running database integrity check...")
        try:
            healthy = await self._database.check_integrity()
        except Exception as exc:
            logger.error("[MAINTENANCE] Error during database integrity check: %s", exc)
            await record_best_effort(
                self._database,
                "log integrity check error",
                lambda: self._database.log_action(
                    SYSTEM_GUILD_ID,
                    AuditActionType.INTEGRITY_CHECK_ERROR,
                    details={"error": str(exc), "timestamp": utc_now().isoformat()},
                ),
            )
            return False

        if healthy:
            logger.info("[MAINTENANCE] Database integrity check passed")
        else:
            logger.warning("[MAINTENANCE] Database integrity check failed")
        return healthy

    async def run_retention_cleanup(self) -> tuple[int, int]:
        """Delete expired counters and audit entries; returns both counts."""
        db = self._database
        try:
            counters = await db.execute_with_retry(
                lambda: db.cleanup_old_message_counts(self._message_retention_days)
            )
            logs = await db.execute_with_retry(
                lambda: db.cleanup_old_logs(self._log_retention_days)
            )
        except Exception as exc:
            logger.error("[MAINTENANCE] Retention cleanup failed: %s", exc)
            return 0, 0
        return counters, logs

    async def run_once(self) -> None:
        await self.run_integrity_check()
        await self.run_retention_cleanup()

    async def _run_loop(self) -> None:
        """Infinite loop: maintain, sleep, repeat."""
        logger.info("[MAINTENANCE] Starting periodic maintenance (interval=%.1fs)", self._interval)
        try:
            while True:
                try:
                    await self.run_once()
                except asyncio.CancelledError:
                    raise
                except Exception as exc:
                    logger.error("[MAINTENANCE] Unexpected error during maintenance: %s", exc)
                await asyncio.sleep(self._interval)
        except asyncio.CancelledError:
            logger.info("[MAINTENANCE] Periodic maintenance cancelled")
            raise

    def start(self) -> None:
        """Start the background task if it is not already running."""
        if self.running:
            logger.warning("[MAINTENANCE] Maintenance task already running")
            return
        self._task = asyncio.create_task(self._run_loop())

    async def shutdown(self) -> None:
        """Cancel the background task and wait for it to finish."""
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        logger.info("[MAINTENANCE] Scheduler shutdown complete")
