"""
Repositories for the quota-and-audit store.

Each repository wraps exactly one table and takes the shared
:class:`~watchquota.database.db_connection.ConnectionManager` as its first
argument. None of them retry or cache; that is the Database coordinator's job.
"""

from watchquota.repositories.audit_log_repo import AuditLogRepo
from watchquota.repositories.command_usage_repo import CommandUsageRepo
from watchquota.repositories.message_count_repo import MessageCountRepo
from watchquota.repositories.quota_repo import QuotaRepo

__all__ = [
    "AuditLogRepo",
    "CommandUsageRepo",
    "MessageCountRepo",
    "QuotaRepo",
]
