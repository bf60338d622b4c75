from pathlib import Path

import pytest
import yaml

from scanguard.configuration.app_configuration import AppConfig
from scanguard.configuration.detection_settings import DEFAULT_PROVIDER_PRIORITY


@pytest.fixture()
def config_path(tmp_path: Path) -> Path:
    return tmp_path / "app_config.yml"


def write_config(path: Path, payload) -> None:
    path.write_text(yaml.safe_dump(payload), encoding="utf-8")


def test_app_config_reload_parses_yaml(config_path: Path) -> None:
    write_config(config_path, {
        "database_path": str(config_path.parent / "db.sqlite"),
        "detection": {
            "detection_threshold": 0.9,
            "review_threshold": 0.6,
            "max_concurrent_scans": 4,
            "image_max_size_mb": 5,
            "hash_match_threshold": 0.97,
            "provider_priority": ["Sightengine", "worker"],
        },
        "escalation": {
            "first_offense_action": "timeout",
            "first_offense_duration_minutes": 30,
            "review_channel_id": 555,
        },
    })

    config = AppConfig(config_path)

    detection = config.detection_settings
    assert detection.detection_threshold == pytest.approx(0.9)
    assert detection.review_threshold == pytest.approx(0.6)
    assert detection.max_concurrent_scans == 4
    assert detection.image_max_size_bytes == 5 * 1024 * 1024
    assert detection.hash_match_threshold == pytest.approx(0.97)
    assert detection.provider_priority == ["sightengine", "worker"]

    escalation = config.escalation_settings
    assert escalation.first_offense_action == "timeout"
    assert escalation.first_offense_duration_minutes == 30
    assert escalation.review_channel_id == 555
    assert escalation.review_guild_id is None

    assert config.database_path == (config_path.parent / "db.sqlite").resolve()


def test_app_config_missing_file_returns_defaults(tmp_path: Path) -> None:
    config = AppConfig(tmp_path / "does_not_exist.yml")

    assert config.data == {}
    detection = config.detection_settings
    assert detection.detection_threshold == pytest.approx(0.85)
    assert detection.review_threshold == pytest.approx(0.70)
    assert detection.max_concurrent_scans == 2
    assert detection.image_max_size_mb == 10
    assert detection.hash_size == 16
    assert detection.provider_priority == DEFAULT_PROVIDER_PRIORITY

    escalation = config.escalation_settings
    assert escalation.first_offense_action == "ban"
    assert escalation.first_offense_duration_minutes == 7 * 24 * 60


def test_app_config_ignores_malformed_sections(config_path: Path) -> None:
    write_config(config_path, {
        "detection": ["not", "a", "mapping"],
        "escalation": {"first_offense_action": "kick", "max_concurrent_scans": 0},
    })

    config = AppConfig(config_path)

    assert config.detection_settings.as_dict() == {}
    assert config.escalation_settings.first_offense_action == "ban"


def test_max_concurrent_scans_floor(config_path: Path) -> None:
    write_config(config_path, {"detection": {"max_concurrent_scans": 0}})
    assert AppConfig(config_path).detection_settings.max_concurrent_scans == 1


def test_inverted_thresholds_warn(config_path: Path, monkeypatch) -> None:
    write_config(config_path, {"detection": {"detection_threshold": 0.5, "review_threshold": 0.8}})
    warnings = []
    from scanguard.configuration import app_configuration

    monkeypatch.setattr(app_configuration.logger, "warning", lambda msg, *args: warnings.append(msg % args))

    config = AppConfig(config_path)

    assert config.detection_settings.review_threshold == pytest.approx(0.8)
    assert any("review band is empty" in w for w in warnings)


def test_reload_picks_up_changes(config_path: Path) -> None:
    write_config(config_path, {"detection": {"detection_threshold": 0.9}})
    config = AppConfig(config_path)
    write_config(config_path, {"detection": {"detection_threshold": 0.95}})

    data = config.reload()

    assert data["detection"]["detection_threshold"] == 0.95
    assert config.detection_settings.detection_threshold == pytest.approx(0.95)


def test_provider_credentials_come_from_environment(monkeypatch) -> None:
    from scanguard.configuration.detection_settings import DetectionSettings

    monkeypatch.setenv("WORKER_URL", "https://worker.example.com")
    monkeypatch.setenv("WORKER_API_KEY", "")
    settings = DetectionSettings({})

    assert settings.worker_url == "https://worker.example.com"
    assert settings.worker_api_key is None


def test_review_channel_without_review_guild_warns(config_path: Path, monkeypatch) -> None:
    write_config(config_path, {"escalation": {"review_channel_id": 99}})
    warnings = []
    from scanguard.configuration import app_configuration

    monkeypatch.setattr(app_configuration.logger, "warning", lambda msg, *args: warnings.append(msg % args))

    AppConfig(config_path)

    assert any("review_guild_id" in w for w in warnings)
