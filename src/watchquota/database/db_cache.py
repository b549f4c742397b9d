"""
Read-through cache for per-guild quotas.

``get_quota`` runs on every incoming message, so a short TTL cache saves a
query per message. The store stays the only source of truth: every write
invalidates the guild's entry before returning, a failed write also
invalidates it, and recovery clears the whole cache.
"""

from typing import Dict, Optional, Tuple
import time

from watchquota.util.logger import get_logger

logger = get_logger("database_cache")


class QuotaCache:
    """
    TTL cache mapping guild IDs to daily limits.

    A TTL of 0 or less disables caching entirely.
    """

    def __init__(self, ttl_seconds: float = 60.0):
        self._cache: Dict[str, Tuple[float, int]] = {}
        self._ttl_seconds = ttl_seconds

    @property
    def enabled(self) -> bool:
        return self._ttl_seconds > 0

    def get(self, guild_id: str) -> Optional[int]:
        """Return the cached limit if still fresh, otherwise None."""
        if not self.enabled:
            return None
        entry = self._cache.get(guild_id)
        if entry is None:
            return None
        stored_at, limit = entry
        if time.monotonic() - stored_at < self._ttl_seconds:
            return limit
        del self._cache[guild_id]
        logger.debug("[CACHE] Expired quota for guild %s", guild_id)
        return None

    def set(self, guild_id: str, limit: int) -> None:
        if self.enabled:
            self._cache[guild_id] = (time.monotonic(), limit)

    def invalidate(self, guild_id: Optional[str] = None) -> int:
        """
        Drop one guild's entry, or every entry when ``guild_id`` is None.

        Returns:
            Number of entries removed
        """
        if guild_id is None:
            count = len(self._cache)
            self._cache.clear()
            logger.debug("[CACHE] Cleared all %d entries", count)
            return count
        return 1 if self._cache.pop(guild_id, None) is not None else 0

    def get_cache_stats(self) -> Dict[str, float]:
        return {
            "size": len(self._cache),
            "ttl_seconds": self._ttl_seconds,
        }
