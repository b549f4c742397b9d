"""
Platform-agnostic services built on the Database coordinator.

- **quota_enforcement_service.py**: per-message counting and automatic timeouts.
- **moderation_service.py**: quota changes, frees, manual timeouts and
  watchlist bookkeeping. This is the entry point for the moderator command
  layer; commands call it instead of writing to the Database directly.
- **bookkeeping.py**: best-effort audit writes that never fail the caller.
"""

from watchquota.services.moderation_service import ModerationService, QuotaChange
from watchquota.services.quota_enforcement_service import (
    EnforcementOutcome,
    EnforcementResult,
    QuotaEnforcementService,
)

__all__ = [
    "EnforcementOutcome",
    "EnforcementResult",
    "ModerationService",
    "QuotaChange",
    "QuotaEnforcementService",
]
