import os
from typing import Any, Dict, List

DEFAULT_PROVIDER_PRIORITY: List[str] = ["worker", "cloudflare", "sightengine"]


class DetectionSettings:
    """Typed accessors for the ``detection`` section of the app configuration.

    Thresholds and limits come from YAML; provider credentials are read from the
    environment so they never have to live in the config file.
    """

    def __init__(self, data: Dict[str, Any] | None = None) -> None:
        self.data: Dict[str, Any] = data or {}

    def get(self, key: str, default: Any = None) -> Any:
        """Return the value for `key` or `default` if missing."""
        return self.data.get(key, default)

    def as_dict(self) -> Dict[str, Any]:
        return self.data

    @property
    def detection_threshold(self) -> float:
        return float(self.data.get("detection_threshold", 0.85))

    @property
    def review_threshold(self) -> float:
        return float(self.data.get("review_threshold", 0.70))

    @property
    def max_concurrent_scans(self) -> int:
        return max(1, int(self.data.get("max_concurrent_scans", 2)))

    @property
    def image_max_size_mb(self) -> int:
        return int(self.data.get("image_max_size_mb", 10))

    @property
    def image_max_size_bytes(self) -> int:
        return self.image_max_size_mb * 1024 * 1024

    @property
    def hash_match_threshold(self) -> float:
        return float(self.data.get("hash_match_threshold", 0.95))

    @property
    def hash_size(self) -> int:
        return int(self.data.get("hash_size", 16))

    @property
    def provider_timeout_seconds(self) -> float:
        return float(self.data.get("provider_timeout_seconds", 10.0))

    @property
    def download_timeout_seconds(self) -> float:
        return float(self.data.get("download_timeout_seconds", 10.0))

    @property
    def provider_priority(self) -> List[str]:
        value = self.data.get("provider_priority")
        if not isinstance(value, list) or not value:
            return list(DEFAULT_PROVIDER_PRIORITY)
        return [str(name).strip().lower() for name in value]

    # Provider credentials (environment only)
    @property
    def worker_url(self) -> str | None:
        return os.getenv("WORKER_URL") or None

    @property
    def worker_api_key(self) -> str | None:
        return os.getenv("WORKER_API_KEY") or None

    @property
    def cloudflare_account_id(self) -> str | None:
        return os.getenv("CLOUDFLARE_ACCOUNT_ID") or None

    @property
    def cloudflare_api_token(self) -> str | None:
        return os.getenv("CLOUDFLARE_API_TOKEN") or None

    @property
    def sightengine_api_user(self) -> str | None:
        return os.getenv("SIGHTENGINE_API_USER") or None

    @property
    def sightengine_api_secret(self) -> str | None:
        return os.getenv("SIGHTENGINE_API_SECRET") or None


class EscalationSettings:
    """Typed accessors for the ``escalation`` section of the app configuration."""

    def __init__(self, data: Dict[str, Any] | None = None) -> None:
        self.data: Dict[str, Any] = data or {}

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)

    @property
    def first_offense_action(self) -> str:
        """Either ``"ban"`` or ``"timeout"``; anything else falls back to ban."""
        value = str(self.data.get("first_offense_action", "ban")).strip().lower()
        return value if value in ("ban", "timeout") else "ban"

    @property
    def first_offense_duration_minutes(self) -> int:
        return int(self.data.get("first_offense_duration_minutes", 7 * 24 * 60))

    @property
    def review_guild_id(self) -> int | None:
        value = self.data.get("review_guild_id")
        return int(value) if value else None

    @property
    def review_channel_id(self) -> int | None:
        value = self.data.get("review_channel_id")
        return int(value) if value else None
