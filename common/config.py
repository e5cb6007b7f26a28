from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from tracking_api.errors import ConfigurationError


def _default_env_file() -> str:
    # .env junto a la raíz del repo; el entorno real siempre tiene prioridad.
    repo_root = Path(__file__).resolve().parents[1]
    return str(repo_root / ".env")


ALERT_POLICIES = ("replace_merge", "insert_new_only")
INCIDENT_STORES = ("memory", "redis")

# Caps observados en las dos variantes de la pantalla de notificaciones.
DEFAULT_HISTORY_CAP = {
    "replace_merge": 6,
    "insert_new_only": 4,
}


@dataclass(frozen=True)
class Settings:
    sensor_id: str

    alert_policy: str
    alert_history_cap: int

    incident_store: str
    incident_query_limit: int
    incident_summary_cap: int
    submitted_history_cap: int
    stale_after_seconds: float

    redis_url: str

    mqtt_broker_host: str
    mqtt_broker_port: int
    mqtt_username: Optional[str]
    mqtt_password: Optional[str]
    mqtt_topic: str

    backend_url: str
    internal_api_key: Optional[str]

    smtp_host: Optional[str]
    smtp_port: int
    smtp_username: Optional[str]
    smtp_password: Optional[str]
    smtp_from: Optional[str]
    smtp_use_tls: bool
    admin_email: Optional[str]

    log_level: str


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name, str(default))
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}")


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name, str(default))
    try:
        return float(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}")


def _bool_env(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("true", "1", "yes", "on")


def get_settings() -> Settings:
    # Carga el env file (si existe) sin pisar variables reales del entorno.
    env_file = os.getenv("BREATHE_ENV_FILE", _default_env_file())
    if env_file and Path(env_file).exists():
        load_dotenv(env_file, override=False)

    alert_policy = os.getenv("ALERT_POLICY", "replace_merge").strip().lower()
    if alert_policy not in ALERT_POLICIES:
        raise ConfigurationError(
            f"ALERT_POLICY must be one of {ALERT_POLICIES}, got {alert_policy!r}"
        )

    alert_history_cap = _int_env("ALERT_HISTORY_CAP", DEFAULT_HISTORY_CAP[alert_policy])
    if alert_history_cap < 1:
        raise ConfigurationError("ALERT_HISTORY_CAP must be >= 1")

    incident_store = os.getenv("INCIDENT_STORE", "memory").strip().lower()
    if incident_store not in INCIDENT_STORES:
        raise ConfigurationError(
            f"INCIDENT_STORE must be one of {INCIDENT_STORES}, got {incident_store!r}"
        )

    username = os.getenv("SMTP_USERNAME") or None

    return Settings(
        sensor_id=os.getenv("SENSOR_ID", "").strip(),
        alert_policy=alert_policy,
        alert_history_cap=alert_history_cap,
        incident_store=incident_store,
        incident_query_limit=_int_env("INCIDENT_QUERY_LIMIT", 30),
        incident_summary_cap=_int_env("INCIDENT_SUMMARY_CAP", 4),
        submitted_history_cap=_int_env("SUBMITTED_HISTORY_CAP", 4),
        stale_after_seconds=_float_env("STALE_AFTER_SECONDS", 60.0),
        redis_url=os.getenv("REDIS_URL", "redis://localhost:6379/0"),
        mqtt_broker_host=os.getenv("MQTT_BROKER_HOST", "localhost"),
        mqtt_broker_port=_int_env("MQTT_BROKER_PORT", 1883),
        mqtt_username=os.getenv("MQTT_USERNAME") or None,
        mqtt_password=os.getenv("MQTT_PASSWORD") or None,
        mqtt_topic=os.getenv("MQTT_TOPIC", "breathe/sensors/+/readings"),
        backend_url=os.getenv("BACKEND_URL", "http://localhost:3000"),
        internal_api_key=os.getenv("INTERNAL_API_KEY") or None,
        smtp_host=os.getenv("SMTP_HOST") or None,
        smtp_port=_int_env("SMTP_PORT", 587),
        smtp_username=username,
        smtp_password=os.getenv("SMTP_PASSWORD") or None,
        smtp_from=os.getenv("SMTP_FROM") or username,
        smtp_use_tls=_bool_env("SMTP_USE_TLS", True),
        admin_email=os.getenv("ADMIN_EMAIL") or None,
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )
