from __future__ import annotations
from pathlib import Path
import fcntl
from typing import Any, Dict
import yaml

from watchquota.util.logger import get_logger

logger = get_logger("app_configuration")


CONFIG_PATH = Path("./config/app_config.yml").resolve()

DEFAULT_DATABASE_PATH = "./data/bot_data.db"


class AppConfig:
    """File-lock based accessor around the YAML application configuration.

    The class caches the contents of ``./config/app_config.yml`` and exposes
    typed properties for the database, retention, retry and scheduler
    settings. Every property falls back to a default when the key is missing
    or has the wrong shape, so a missing file yields a usable configuration.
    """

    def __init__(self, config_path: Path) -> None:
        self.config_path = config_path
        self._data: Dict[str, Any] = {}
        self.reload()

    # --------------------------
    # Private helpers
    # --------------------------
    def load_from_disk(self) -> Dict[str, Any]:
        try:
            with self.config_path.open("r", encoding="utf-8") as f:
                fcntl.flock(f.fileno(), fcntl.LOCK_SH)
                try:
                    data = yaml.safe_load(f)
                finally:
                    fcntl.flock(f.fileno(), fcntl.LOCK_UN)
        except FileNotFoundError:
            logger.error("[APP CONFIGURATION] Config file %s not found.", self.config_path)
            return {}
        except Exception as exc:
            logger.error("[APP CONFIGURATION] Failed to load config %s: %s", self.config_path, exc)
            return {}

        if data is None:
            return {}
        if not isinstance(data, dict):
            logger.error("[APP CONFIGURATION] Config %s is not a mapping; ignoring it.", self.config_path)
            return {}
        return data

    def _section(self, name: str) -> Dict[str, Any]:
        section = self._data.get(name, {})
        return section if isinstance(section, dict) else {}

    def _number(self, section: str, key: str, default: float) -> float:
        value = self._section(section).get(key, default)
        try:
            return float(value)
        except (TypeError, ValueError):
            logger.warning(
                "[APP CONFIGURATION] Invalid value %r for %s.%s, using %s",
                value, section, key, default,
            )
            return float(default)

    # --------------------------
    # Public API
    # --------------------------
    def reload(self) -> Dict[str, Any]:
        """Reload configuration from disk and return the loaded mapping.

        Returns an empty dict when the file is missing or malformed.
        """
        self._data = self.load_from_disk()
        return self._data

    @property
    def data(self) -> Dict[str, Any]:
        """Return the cached configuration mapping (do not mutate)."""
        return self._data

    def get(self, key: str, default: Any = None) -> Any:
        """Safe lookup for top-level configuration keys."""
        return self._data.get(key, default)

    # --------------------------
    # Database
    # --------------------------
    @property
    def database_path(self) -> Path:
        """Location of the SQLite store. Default ``./data/bot_data.db``."""
        value = self._section("database").get("path") or DEFAULT_DATABASE_PATH
        return Path(str(value)).resolve()

    @property
    def message_retention_days(self) -> int:
        """Days of daily message counters to keep. Default 7."""
        return int(self._number("database", "message_retention_days", 7))

    @property
    def log_retention_days(self) -> int:
        """Days of audit log entries to keep. Default 30."""
        return int(self._number("database", "log_retention_days", 30))

    @property
    def backup_keep_count(self) -> int:
        """Number of corrupted-database backups kept on disk. Default 5."""
        return int(self._number("database", "backup_keep_count", 5))

    @property
    def quota_cache_ttl_seconds(self) -> float:
        """TTL of the read-through quota cache; 0 disables it. Default 60."""
        return self._number("database", "quota_cache_ttl_seconds", 60.0)

    # --------------------------
    # Retry
    # --------------------------
    @property
    def retry_max_attempts(self) -> int:
        """Total attempts made by the retry wrapper. Default 3."""
        return max(1, int(self._number("retry", "max_attempts", 3)))

    @property
    def retry_base_delay_seconds(self) -> float:
        """Base of the linear backoff (``attempt * base``). Default 0.1s."""
        return self._number("retry", "base_delay_seconds", 0.1)

    # --------------------------
    # Maintenance / quota
    # --------------------------
    @property
    def integrity_check_interval_seconds(self) -> float:
        """Interval of the recurring integrity check. Default 24 hours."""
        return self._number("maintenance", "integrity_check_interval_seconds", 86400.0)

    @property
    def max_daily_quota(self) -> int:
        """Upper bound accepted when a moderator sets a quota. Default 10000."""
        return int(self._number("quota", "max_daily_quota", 10000))

    @property
    def watchlist_role_name(self) -> str:
        """Name of the role marking watchlisted members (case-insensitive)."""
        value = self._section("quota").get("watchlist_role_name") or "watchlist"
        return str(value)
