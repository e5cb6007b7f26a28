"""Taxonomía de errores del motor de alertas/incidencias.

- SubscriptionError: fallo recuperable al establecer o mantener un watch remoto.
- ConfigurationError: tabla de umbrales o configuración inválida (fatal al arrancar).
- CapacityInvariantViolation: bug interno, el historial rompió su cota o tiene duplicados.
- IncidentValidationError: formulario de reporte incompleto.
"""

from __future__ import annotations

from typing import Optional


class TrackingError(Exception):
    """Base de los errores propios del servicio."""


class SubscriptionError(TrackingError):
    """Error de red/permisos en una suscripción remota.

    Recuperable: el núcleo no reintenta, el estado previo sigue visible.
    """

    def __init__(
        self,
        message: str,
        *,
        incident_id: Optional[str] = None,
        sensor_id: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ):
        self.incident_id = incident_id
        self.sensor_id = sensor_id
        self.cause = cause
        super().__init__(message)


class ConfigurationError(TrackingError):
    """Configuración inválida detectada al arrancar."""


class IncidentValidationError(TrackingError):
    """Reporte de incidencia con campos vacíos."""


class CapacityInvariantViolation(AssertionError):
    """El historial de alertas superó su cota o contiene duplicados."""
