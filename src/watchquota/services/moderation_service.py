"""
Moderator-initiated operations on the quota store.

Each method performs the primary change first and then writes the audit
trail on a best-effort basis. The one exception is ``set_daily_quota``: the
quota itself is the primary change, so a failed write propagates and nothing
is kept in memory in its place.

Slash commands and other moderator tooling call this service (exported from
:mod:`watchquota.services`) rather than the Database directly, so every
moderator action leaves the same audit trail.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from watchquota.database.database import Database
from watchquota.database.errors import ValidationError
from watchquota.datatypes.quota_datatypes import AuditActionType
from watchquota.services.bookkeeping import record_best_effort
from watchquota.util.dates import today_utc
from watchquota.util.logger import get_logger

logger = get_logger("moderation_service")

DEFAULT_MAX_DAILY_QUOTA = 10000


@dataclass(slots=True)
class QuotaChange:
    guild_id: str
    old_quota: int
    new_quota: int


class ModerationService:
    """Quota changes, frees, manual timeouts and watchlist bookkeeping."""

    def __init__(self, database: Database, max_daily_quota: int = DEFAULT_MAX_DAILY_QUOTA) -> None:
        self._database = database
        self._max_daily_quota = max_daily_quota

    def validate_quota(self, limit: object) -> int:
        """
        Return ``limit`` as an int if it is within ``0..max_daily_quota``.

        Raises:
            ValidationError: For non-integers, negatives and values above the maximum.
        """
        if isinstance(limit, bool) or not isinstance(limit, int):
            raise ValidationError(f"Quota must be a whole number, got {limit!r}")
        if limit < 0:
            raise ValidationError("Quota cannot be negative")
        if limit > self._max_daily_quota:
            raise ValidationError(f"Quota cannot exceed {self._max_daily_quota} messages per day")
        return limit

    async def set_daily_quota(
        self,
        guild_id: str,
        limit: int,
        moderator_id: Optional[str],
        moderator_name: Optional[str],
    ) -> QuotaChange:
        """
        Validate and persist a new quota, then log the change.

        Raises:
            ValidationError: If ``limit`` is out of range.
            Exception: Any storage error from reading or writing the quota.
        """
        limit = self.validate_quota(limit)
        db = self._database

        old_quota = await db.execute_with_retry(lambda: db.get_quota(guild_id))
        await db.execute_with_retry(lambda: db.set_quota(guild_id, limit, moderator_id, moderator_name))
        logger.info("[MODERATION] Quota for guild %s changed from %d to %d by %s", guild_id, old_quota, limit, moderator_id)

        await record_best_effort(
            db, "log quota change",
            lambda: db.log_quota_set(guild_id, moderator_id, moderator_name, old_quota, limit),
        )
        await self.record_command_usage("dailyMessageQuota")
        return QuotaChange(str(guild_id), old_quota, limit)

    async def free_user(
        self,
        guild_id: str,
        target_user_id: str,
        target_user_name: Optional[str],
        moderator_id: Optional[str],
        moderator_name: Optional[str],
        reason: str,
        remove_timeout: Optional[Callable[[], Awaitable[object]]] = None,
    ) -> None:
        """
        Lift a member's timeout and give them a fresh quota for today.

        ``remove_timeout`` is the primary action and its errors propagate.
        Resetting the counter and the audit entries are best effort.
        """
        if remove_timeout is not None:
            await remove_timeout()

        db = self._database
        day = today_utc()
        await record_best_effort(
            db, "reset message count",
            lambda: db.reset_message_count(guild_id, target_user_id, day),
        )
        await record_best_effort(
            db, "log free",
            lambda: db.log_free(guild_id, moderator_id, moderator_name, target_user_id, target_user_name, reason),
        )
        await record_best_effort(
            db, "log quota reset",
            lambda: db.log_quota_reset(
                guild_id, moderator_id, moderator_name, target_user_id, target_user_name,
                f"Manual free by moderator: {reason}",
            ),
        )
        await self.record_command_usage("free")

    async def record_manual_timeout(
        self,
        guild_id: str,
        target_user_id: str,
        target_user_name: Optional[str],
        moderator_id: Optional[str],
        moderator_name: Optional[str],
        reason: str,
        duration_ms: int,
    ) -> None:
        """Audit a timeout a moderator already applied."""
        db = self._database
        await record_best_effort(
            db, "log timeout",
            lambda: db.log_timeout(
                guild_id, moderator_id, moderator_name, target_user_id, target_user_name, reason, duration_ms,
            ),
        )
        await self.record_command_usage("timeout")

    async def record_watchlist_change(
        self,
        guild_id: str,
        target_user_id: str,
        target_user_name: Optional[str],
        moderator_id: Optional[str],
        moderator_name: Optional[str],
        added: bool,
    ) -> None:
        """Audit a member being added to or removed from the watchlist."""
        action = AuditActionType.WATCHLIST_ADD if added else AuditActionType.WATCHLIST_REMOVE
        db = self._database
        await record_best_effort(
            db, f"log {action.value}",
            lambda: db.log_action(
                guild_id, action, moderator_id, moderator_name, target_user_id, target_user_name,
                {"reason": "Added to watchlist" if added else "Removed from watchlist"},
            ),
        )
        await self.record_command_usage("watchlist" if added else "unwatchlist")

    async def record_watchlist_role_created(
        self,
        guild_id: str,
        guild_name: str,
        on_join: Optional[bool] = None,
    ) -> None:
        db = self._database
        await record_best_effort(
            db, "log watchlist role creation",
            lambda: db.log_watchlist_role_created(guild_id, guild_name, automatic=True, on_join=on_join),
        )

    async def record_command_usage(self, command_name: str) -> Optional[int]:
        """Bump the usage counter for a command; failures are only logged."""
        db = self._database
        return await record_best_effort(
            db, f"increment usage of {command_name}",
            lambda: db.increment_command_usage(command_name),
        )
