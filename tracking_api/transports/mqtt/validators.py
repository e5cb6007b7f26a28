"""Validadores de payloads MQTT del sensor.

Formato esperado (campos de medida opcionales):
{
    "sensorId": "42",
    "timestamp": "2026-01-31T08:00:00Z",   # ISO-8601 o epoch (s o ms)
    "ozone": 0.42,
    "co2": 640,
    "temperature": 22.5,
    "battery": 87,
    "rssi": -67,
    "location": "Lab 2"
}
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ...classification import MetricKind, Reading

logger = logging.getLogger(__name__)

# campo del payload → magnitud
PAYLOAD_METRICS = (
    ("ozone", MetricKind.OZONE),
    ("co2", MetricKind.CO2),
    ("temperature", MetricKind.TEMPERATURE),
    ("battery", MetricKind.BATTERY),
    ("rssi", MetricKind.SIGNAL),
)


class ReadingPayload(BaseModel):
    """Schema de validación para paquetes de lecturas."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    sensor_id: str = Field(..., alias="sensorId")
    timestamp: Optional[datetime] = None
    ozone: Optional[float] = None
    co2: Optional[float] = None
    temperature: Optional[float] = None
    battery: Optional[float] = Field(default=None, ge=0, le=100)
    rssi: Optional[float] = None
    location: Optional[str] = None

    @field_validator("sensor_id", mode="before")
    @classmethod
    def validate_sensor_id(cls, v):
        if v is None:
            raise ValueError("sensorId is required")
        v = str(v).strip()
        if not v:
            raise ValueError("sensorId is required")
        return v

    @field_validator("timestamp", mode="before")
    @classmethod
    def parse_timestamp(cls, v):
        if v is None or v == "":
            return None
        if isinstance(v, (int, float)):
            seconds = v / 1000 if v > 1e12 else v
            try:
                return datetime.fromtimestamp(seconds, tz=timezone.utc)
            except (OverflowError, OSError, ValueError):
                raise ValueError("Invalid timestamp")
        if isinstance(v, str):
            dt = datetime.fromisoformat(v.replace("Z", "+00:00"))
            return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)
        return v

    @field_validator("ozone", "co2", "temperature", "battery", "rssi")
    @classmethod
    def validate_finite(cls, v):
        if v is not None and not math.isfinite(v):
            raise ValueError("Value must be finite")
        return v

    @field_validator("location")
    @classmethod
    def strip_location(cls, v):
        if v is None:
            return None
        return v.strip() or None

    @property
    def observed_at(self) -> datetime:
        return self.timestamp or datetime.now(timezone.utc)

    def to_readings(self) -> list[Reading]:
        observed_at = self.observed_at
        readings = []
        for name, metric in PAYLOAD_METRICS:
            value = getattr(self, name)
            if value is not None:
                readings.append(Reading(metric=metric, value=value, observed_at=observed_at))
        return readings


@dataclass
class ValidationResult:
    """Resultado de validación."""

    valid: bool
    payload: Optional[ReadingPayload] = None
    error: Optional[str] = None
    warnings: list[str] = field(default_factory=list)


def validate_sensor_reading(data: Any) -> ValidationResult:
    """Valida el payload de un paquete de lecturas.

    Args:
        data: Diccionario ya parseado del mensaje MQTT

    Returns:
        ValidationResult con payload validado o error
    """
    if not isinstance(data, dict):
        return ValidationResult(valid=False, error=f"Payload must be an object, got {type(data).__name__}")

    warnings = []
    if "sensorId" not in data and "sensor_id" in data:
        data = {**data, "sensorId": data["sensor_id"]}
        warnings.append("Used snake_case sensor_id instead of sensorId")

    try:
        payload = ReadingPayload.model_validate(data)
    except ValidationError as e:
        return ValidationResult(valid=False, error=str(e))

    if not payload.to_readings():
        warnings.append("Packet carries no measurements")

    return ValidationResult(valid=True, payload=payload, warnings=warnings)
