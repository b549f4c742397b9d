"""Shared helper for best-effort writes that follow a moderation action."""

from __future__ import annotations

from typing import Awaitable, Callable, Optional, TypeVar

from watchquota.database.database import Database
from watchquota.util.logger import get_logger

logger = get_logger("bookkeeping")

T = TypeVar("T")


async def record_best_effort(
    database: Database,
    description: str,
    operation: Callable[[], Awaitable[T]],
) -> Optional[T]:
    """
    Run a bookkeeping write with retries and never let it fail the caller.

    Used after the primary moderation action has already happened: the
    action stands even if the audit trail cannot be written.

    Returns:
        The operation's result, or None if every attempt failed.
    """
    try:
        return await database.execute_with_retry(operation)
    except Exception as exc:
        logger.error("[BOOKKEEPING] Failed to %s after retries: %s", description, exc)
        return None
