"""
Record types for the quota-and-audit store.

This module defines the AuditActionType enum and the dataclasses returned by
the repositories and the Database coordinator.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


class AuditActionType(Enum):
    """Stable ``action_type`` tags written to the audit log."""

    QUOTA_SET = "quota_set"
    TIMEOUT = "timeout"
    FREE = "free"
    AUTO_TIMEOUT = "auto_timeout"
    QUOTA_RESET = "quota_reset"
    WATCHLIST_ROLE_CREATED = "watchlist_role_created"
    WATCHLIST_ADD = "watchlist_add"
    WATCHLIST_REMOVE = "watchlist_remove"
    TIMEOUT_FAILED = "timeout_failed"
    MESSAGE_TRACKING_ERROR = "message_tracking_error"
    INTEGRITY_CHECK_ERROR = "integrity_check_error"

    def __str__(self) -> str:
        return self.value


@dataclass(slots=True)
class QuotaSetting:
    """One row of the ``quotas`` table.

    Attributes:
        guild_id: Guild the quota applies to
        daily_limit: Messages allowed per UTC day (0 disables the quota)
        updated_at: UTC timestamp string of the last change
        updated_by: ID of the moderator who made the change, if any
        updated_by_name: Display name of that moderator, if any
    """
    guild_id: str
    daily_limit: int
    updated_at: Optional[str] = None
    updated_by: Optional[str] = None
    updated_by_name: Optional[str] = None


@dataclass(slots=True)
class AuditLogEntry:
    """One immutable row of the ``logs`` table with ``details`` decoded."""
    id: int
    guild_id: str
    action_type: str
    moderator_id: Optional[str]
    moderator_name: Optional[str]
    target_user_id: Optional[str]
    target_user_name: Optional[str]
    details: Optional[Dict[str, Any]]
    timestamp: str


@dataclass(slots=True)
class DatabaseStats:
    """Aggregate row counts used for maintenance reporting."""
    quota_count: int
    message_record_count: int
    log_count: int
    oldest_message_date: Optional[str]
    oldest_log_timestamp: Optional[str]
