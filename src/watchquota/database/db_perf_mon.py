"""
Timing statistics for database operations.

Each Database method records its duration under its own name; operations
slower than the threshold are logged as warnings.
"""

import time
from contextlib import contextmanager
from typing import Dict, Iterator

from watchquota.util.logger import get_logger

logger = get_logger("database_perf_mon")


class DatabasePerformanceMonitor:
    """Records count, total, min and max duration per operation name."""

    def __init__(self, slow_query_threshold_ms: float = 100.0):
        self._query_stats: Dict[str, Dict[str, float]] = {}
        self._slow_query_threshold = slow_query_threshold_ms / 1000.0

    def track(self, query_name: str, duration: float) -> None:
        """
        Record one execution.

        Args:
            query_name: Name of the operation
            duration: Execution time in seconds
        """
        stats = self._query_stats.setdefault(
            query_name,
            {"count": 0, "total_time": 0.0, "min_time": float("inf"), "max_time": 0.0},
        )
        stats["count"] += 1
        stats["total_time"] += duration
        stats["min_time"] = min(stats["min_time"], duration)
        stats["max_time"] = max(stats["max_time"], duration)

        if duration > self._slow_query_threshold:
            logger.warning(
                "[PERFORMANCE] Slow query: %s took %.2fms",
                query_name, duration * 1000,
            )

    @contextmanager
    def timed(self, query_name: str) -> Iterator[None]:
        """Track the duration of the enclosed block, whether or not it raises."""
        start = time.perf_counter()
        try:
            yield
        finally:
            self.track(query_name, time.perf_counter() - start)

    def get_statistics(self) -> Dict[str, Dict[str, float]]:
        """Return per-operation statistics including the average."""
        result = {}
        for query_name, stats in self._query_stats.items():
            result[query_name] = {
                "count": stats["count"],
                "total_time": stats["total_time"],
                "avg_time": stats["total_time"] / stats["count"] if stats["count"] > 0 else 0,
                "min_time": stats["min_time"] if stats["min_time"] != float("inf") else 0,
                "max_time": stats["max_time"],
            }
        return result

    def reset(self) -> None:
        self._query_stats.clear()
        logger.info("[PERFORMANCE] Statistics reset")
