from __future__ import annotations
from pathlib import Path
import fcntl
from typing import Any, Dict
import yaml

from scanguard.configuration.detection_settings import DetectionSettings, EscalationSettings
from scanguard.util.logger import get_logger

logger = get_logger("app_configuration")


CONFIG_PATH = Path("./config/app_config.yml").resolve()


class AppConfig:
    """File-lock based accessor around the YAML-based application configuration.

    The class caches contents of ``./config/app_config.yml``, exposes dictionary-like
    access helpers, and resolves the detection and escalation sections through
    :class:`DetectionSettings` and :class:`EscalationSettings`.
    Uses fcntl file locks for safe concurrent access across processes.
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
                data = yaml.safe_load(f)
                fcntl.flock(f.fileno(), fcntl.LOCK_UN)
                return data if isinstance(data, dict) else {}
        except FileNotFoundError:
            logger.error("[APP CONFIGURATION] Config file %s not found.", self.config_path)
        except Exception as exc:
            logger.error("[APP CONFIGURATION] Failed to load config %s: %s", self.config_path, exc)
        return {}

    def _warn_on_inverted_thresholds(self) -> None:
        settings = self.detection_settings
        if settings.review_threshold >= settings.detection_threshold:
            logger.warning(
                "[APP CONFIGURATION] review_threshold (%.2f) is not below detection_threshold (%.2f); "
                "the review band is empty.",
                settings.review_threshold,
                settings.detection_threshold,
            )

    def _warn_on_unbound_review_channel(self) -> None:
        settings = self.escalation_settings
        if settings.review_channel_id is not None and settings.review_guild_id is None:
            logger.warning(
                "[APP CONFIGURATION] review_channel_id is set without review_guild_id; "
                "global-ban decisions fall back to the guild the offense came from."
            )

    # --------------------------
    # Public API
    # --------------------------
    def reload(self) -> Dict[str, Any]:
        """Reload configuration from disk and return the loaded mapping.

        Returns the raw mapping that was loaded (which will be an empty dict on error).
        """
        self._data = self.load_from_disk()
        self._warn_on_inverted_thresholds()
        self._warn_on_unbound_review_channel()
        return self._data

    @property
    def data(self) -> Dict[str, Any]:
        """Return the current cached configuration mapping.

        The returned dict is the internal cache. Callers should not mutate it.
        """
        return self._data

    def get(self, key: str, default: Any = None) -> Any:
        """Safe lookup for top-level configuration keys."""
        return self._data.get(key, default)

    # --------------------------
    # High-level shortcuts
    # --------------------------
    @property
    def detection_settings(self) -> DetectionSettings:
        """Return the ``detection`` section wrapped in a DetectionSettings helper."""
        section = self._data.get("detection", {})
        if not isinstance(section, dict):
            section = {}
        return DetectionSettings(section)

    @property
    def escalation_settings(self) -> EscalationSettings:
        """Return the ``escalation`` section wrapped in an EscalationSettings helper."""
        section = self._data.get("escalation", {})
        if not isinstance(section, dict):
            section = {}
        return EscalationSettings(section)

    @property
    def database_path(self) -> Path:
        """Return the SQLite database path (default ``./data/app.db``)."""
        return Path(str(self._data.get("database_path") or "./data/app.db")).resolve()


# Shared application-wide configuration instance
app_config = AppConfig(CONFIG_PATH)
