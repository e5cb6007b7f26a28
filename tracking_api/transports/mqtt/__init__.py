from .receiver import DEFAULT_TOPIC, SensorMQTTReceiver
from .validators import ReadingPayload, ValidationResult, validate_sensor_reading

__all__ = [
    "DEFAULT_TOPIC",
    "SensorMQTTReceiver",
    "ReadingPayload",
    "ValidationResult",
    "validate_sensor_reading",
]
