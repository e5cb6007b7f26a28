"""Tests de carga de configuración desde el entorno."""

import pytest

from common.config import get_settings
from tracking_api.alerts import AggregatorConfig, AlertPolicy
from tracking_api.errors import ConfigurationError

ENV_VARS = (
    "SENSOR_ID",
    "ALERT_POLICY",
    "ALERT_HISTORY_CAP",
    "INCIDENT_STORE",
    "INCIDENT_QUERY_LIMIT",
    "STALE_AFTER_SECONDS",
    "SMTP_USERNAME",
    "SMTP_FROM",
    "SMTP_USE_TLS",
    "LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("BREATHE_ENV_FILE", str(tmp_path / "missing.env"))


class TestGetSettings:

    def test_defaults(self):
        settings = get_settings()
        assert settings.alert_policy == "replace_merge"
        assert settings.alert_history_cap == 6
        assert settings.incident_store == "memory"
        assert settings.incident_query_limit == 30
        assert settings.stale_after_seconds == 60.0
        assert settings.smtp_use_tls is True
        assert settings.log_level == "INFO"

    def test_insert_new_only_default_cap(self, monkeypatch):
        monkeypatch.setenv("ALERT_POLICY", "INSERT_NEW_ONLY")
        settings = get_settings()
        assert settings.alert_policy == "insert_new_only"
        assert settings.alert_history_cap == 4
        assert AggregatorConfig.from_settings(settings).policy == AlertPolicy.INSERT_NEW_ONLY

    def test_explicit_cap(self, monkeypatch):
        monkeypatch.setenv("ALERT_HISTORY_CAP", "10")
        assert get_settings().alert_history_cap == 10

    def test_smtp_from_falls_back_to_username(self, monkeypatch):
        monkeypatch.setenv("SMTP_USERNAME", "bot@example.com")
        assert get_settings().smtp_from == "bot@example.com"

    def test_env_file_is_loaded(self, monkeypatch, tmp_path):
        env_file = tmp_path / "session.env"
        env_file.write_text("SENSOR_ID=77\n")
        monkeypatch.setenv("BREATHE_ENV_FILE", str(env_file))
        try:
            assert get_settings().sensor_id == "77"
        finally:
            monkeypatch.delenv("SENSOR_ID", raising=False)

    @pytest.mark.parametrize(
        "name, value",
        [
            ("ALERT_POLICY", "newest_first"),
            ("INCIDENT_STORE", "firestore"),
            ("ALERT_HISTORY_CAP", "0"),
            ("ALERT_HISTORY_CAP", "six"),
            ("STALE_AFTER_SECONDS", "soon"),
        ],
    )
    def test_invalid_values(self, monkeypatch, name, value):
        monkeypatch.setenv(name, value)
        with pytest.raises(ConfigurationError):
            get_settings()
