"""Lectura de los canales de la sesión para el shell de UI."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from ..session import TrackingSession
from ..state import Channel
from .deps import get_session

router = APIRouter(prefix="/session", tags=["session"])


@router.get("/channels")
def list_channels(session: TrackingSession = Depends(get_session)):
    return session.state.snapshot_all()


@router.get("/channels/{name}")
def get_channel(name: str, session: TrackingSession = Depends(get_session)):
    try:
        channel = Channel(name)
    except ValueError:
        raise HTTPException(status_code=404, detail=f"Unknown channel '{name}'")

    snap = session.state.snapshot(channel)
    return {
        "channel": channel.value,
        "value": snap.value if snap else None,
        "version": snap.version if snap else 0,
    }
