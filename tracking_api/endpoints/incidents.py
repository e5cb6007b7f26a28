"""Reporte y seguimiento de incidencias."""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, ConfigDict, Field

from ..errors import IncidentValidationError
from ..incidents import IncidentDraft
from ..session import TrackingSession
from .deps import get_session

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/incidents", tags=["incidents"])


class IncidentReportIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    sensor_id: Optional[str] = Field(default=None, alias="sensorId")
    title: str = ""
    message: str = ""
    location: str = ""


class IncidentOut(BaseModel):
    id: str
    sensorId: str
    title: str
    status: str
    createdAt: Optional[str] = None


class IncidentReportOut(BaseModel):
    incident: IncidentOut
    warnings: list[str] = Field(default_factory=list)


@router.post("", status_code=status.HTTP_201_CREATED, response_model=IncidentReportOut)
def report_incident(body: IncidentReportIn, session: TrackingSession = Depends(get_session)):
    draft = IncidentDraft(
        sensor_id=body.sensor_id or session.settings.sensor_id,
        title=body.title,
        message=body.message,
        location=body.location,
    )
    try:
        result = session.call(session.reporter.submit, draft)
    except IncidentValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))

    if not result.ok:
        raise HTTPException(status_code=502, detail=f"Incident store unavailable: {result.error}")

    incident = result.incident
    return IncidentReportOut(
        incident=IncidentOut(
            id=incident.id,
            sensorId=incident.sensor_id,
            title=incident.title,
            status=incident.status.value,
            createdAt=incident.created_at.isoformat() if incident.created_at else None,
        ),
        warnings=result.warnings,
    )


@router.get("/draft/disconnect")
def disconnect_draft(session: TrackingSession = Depends(get_session)):
    """Borrador pre-rellenado para reportar la desconexión del sensor."""
    draft = session.reporter.disconnect_draft(
        session.settings.sensor_id,
        session.sensor.location,
        session.sensor.last_seen,
    )
    return {
        "sensorId": draft.sensor_id,
        "title": draft.title,
        "message": draft.message,
        "location": draft.location,
    }


@router.get("/watch")
def watch_state(session: TrackingSession = Depends(get_session)):
    return {
        "state": session.tracker.state.value,
        "incidentId": session.tracker.incident_id,
    }


@router.post("/watch/cancel")
def cancel_watch(session: TrackingSession = Depends(get_session)):
    session.call(session.tracker.cancel_watch)
    return {"state": session.tracker.state.value}
