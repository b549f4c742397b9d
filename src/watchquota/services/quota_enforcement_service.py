"""
Quota enforcement for incoming messages.

For each message from a guild member the service:
1. reads the guild's quota (0 means disabled, nothing else happens),
2. skips members that are not watchlisted,
3. atomically increments today's counter,
4. once the count exceeds the quota, asks the caller to time the member out
   until the next midnight UTC and records the outcome in the audit log.

The service knows nothing about the chat SDK; the caller supplies the
watchlist flag and a coroutine that applies the timeout.
"""

from __future__ import annotations

import traceback
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Awaitable, Callable, Optional

from watchquota.database.database import Database
from watchquota.datatypes.quota_datatypes import AuditActionType
from watchquota.services.bookkeeping import record_best_effort
from watchquota.util.dates import next_midnight_utc, today_utc, utc_now
from watchquota.util.logger import get_logger

logger = get_logger("quota_enforcement")

# Called with (until, reason); returns True if the timeout was applied
TimeoutApplier = Callable[[datetime, str], Awaitable[bool]]


class EnforcementOutcome(Enum):
    """What happened to a single message."""

    NOT_TRACKED = "not_tracked"
    COUNTED = "counted"
    TIMED_OUT = "timed_out"
    TIMEOUT_FAILED = "timeout_failed"
    ERROR = "error"


@dataclass(slots=True)
class EnforcementResult:
    outcome: EnforcementOutcome
    message_count: int = 0
    quota_limit: int = 0
    timeout_until: Optional[datetime] = None


class QuotaEnforcementService:
    """Counts watchlisted members' messages and times out quota violators."""

    def __init__(self, database: Database) -> None:
        self._database = database

    async def handle_message(
        self,
        guild_id: str,
        user_id: str,
        user_name: Optional[str],
        is_watchlisted: bool,
        apply_timeout: TimeoutApplier,
        can_timeout: bool = True,
        already_timed_out: bool = False,
        now: Optional[datetime] = None,
    ) -> EnforcementResult:
        """
        Process one message.

        Args:
            guild_id: Guild the message was sent in
            user_id: Author ID
            user_name: Author display name, stored in the audit log
            is_watchlisted: Whether the author carries the watchlist role
            apply_timeout: Coroutine that times the author out
            can_timeout: False when the bot lacks permission over the author
            already_timed_out: True when the author is currently timed out
            now: Reference time (defaults to the current UTC time)

        Returns:
            EnforcementResult describing the outcome. Errors are logged and
            reported as ``ERROR``; this method does not raise.
        """
        now = now or utc_now()
        try:
            quota_limit = await self._database.execute_with_retry(
                lambda: self._database.get_quota(guild_id)
            )
            if not quota_limit or not is_watchlisted:
                return EnforcementResult(EnforcementOutcome.NOT_TRACKED, quota_limit=quota_limit or 0)

            day = today_utc(now)
            message_count = await self._database.execute_with_retry(
                lambda: self._database.increment_message_count(guild_id, user_id, day)
            )

            if message_count <= quota_limit or not can_timeout or already_timed_out:
                return EnforcementResult(EnforcementOutcome.COUNTED, message_count, quota_limit)

            return await self._timeout_violator(
                guild_id, user_id, user_name, message_count, quota_limit, apply_timeout, now,
            )
        except Exception as exc:
            logger.error("[QUOTA] Error tracking message in guild %s from user %s: %s", guild_id, user_id, exc)
            await record_best_effort(
                self._database,
                "log message tracking error",
                lambda: self._database.log_action(
                    guild_id or "unknown",
                    AuditActionType.MESSAGE_TRACKING_ERROR,
                    target_user_id=user_id or "unknown",
                    target_user_name=user_name,
                    details={
                        "error": str(exc),
                        "stack": "".join(traceback.format_exception(exc)),
                        "timestamp": now.isoformat(),
                    },
                ),
            )
            return EnforcementResult(EnforcementOutcome.ERROR)

    async def _timeout_violator(
        self,
        guild_id: str,
        user_id: str,
        user_name: Optional[str],
        message_count: int,
        quota_limit: int,
        apply_timeout: TimeoutApplier,
        now: datetime,
    ) -> EnforcementResult:
        until = next_midnight_utc(now)
        reason = f"Exceeded daily message quota ({quota_limit} messages)"

        try:
            applied = await apply_timeout(until, reason)
        except Exception as exc:
            logger.error("[QUOTA] Timeout of user %s in guild %s raised: %s", user_id, guild_id, exc)
            applied = False

        if applied:
            logger.info(
                "[QUOTA] Timed out user %s in guild %s until %s (%d/%d messages)",
                user_id, guild_id, until.isoformat(), message_count, quota_limit,
            )
            await record_best_effort(
                self._database,
                "log auto timeout",
                lambda: self._database.log_auto_timeout(guild_id, user_id, user_name, message_count, quota_limit),
            )
            return EnforcementResult(EnforcementOutcome.TIMED_OUT, message_count, quota_limit, until)

        logger.warning("[QUOTA] Could not time out user %s in guild %s", user_id, guild_id)
        await record_best_effort(
            self._database,
            "log timeout failure",
            lambda: self._database.log_action(
                guild_id,
                AuditActionType.TIMEOUT_FAILED,
                target_user_id=user_id,
                target_user_name=user_name,
                details={
                    "reason": "Quota exceeded but timeout failed",
                    "messageCount": message_count,
                    "quotaLimit": quota_limit,
                },
            ),
        )
        return EnforcementResult(EnforcementOutcome.TIMEOUT_FAILED, message_count, quota_limit)
