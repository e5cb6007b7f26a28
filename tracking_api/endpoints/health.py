"""Health, readiness y métricas Prometheus."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from ..session import TrackingSession
from .deps import get_session

router = APIRouter(tags=["health"])


@router.get("/health")
def health():
    """Liveness probe: ok si el proceso responde."""
    return {"status": "ok"}


@router.get("/ready")
def ready(session: TrackingSession = Depends(get_session)):
    """Readiness probe: comprueba que el almacén de incidencias responde."""
    if not session.incident_store.ping():
        raise HTTPException(status_code=503, detail="incident store not reachable")
    return {
        "status": "ready",
        "sensorId": session.settings.sensor_id or None,
        "alertPolicy": session.aggregator.config.policy.value,
        "incidentStore": session.settings.incident_store,
        "dispatcher": session.dispatcher.metrics,
        "notifications": session.notifier.stats,
    }


@router.get("/metrics")
def metrics():
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
