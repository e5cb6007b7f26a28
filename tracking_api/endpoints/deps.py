"""Dependencias compartidas por los routers."""

from __future__ import annotations

from fastapi import HTTPException, Request

from ..session import TrackingSession


def get_session(request: Request) -> TrackingSession:
    session = getattr(request.app.state, "session", None)
    if session is None:
        raise HTTPException(status_code=503, detail="session not started")
    return session
