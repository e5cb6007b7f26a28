from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from common.config import get_settings

from .endpoints import health_router, incidents_router, session_router
from .session import TrackingSession, create_session

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
    )


def create_app(session: Optional[TrackingSession] = None) -> FastAPI:
    """App HTTP del motor.

    Sin ``session`` se crea una al arrancar (settings del entorno, MQTT
    activo) y se cierra al apagar.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = None
        if getattr(app.state, "session", None) is None:
            settings = get_settings()
            configure_logging(settings.log_level)
            owned = create_session(settings, enable_mqtt=True)
            app.state.session = owned
        try:
            yield
        finally:
            if owned is not None:
                owned.close()
                app.state.session = None

    app = FastAPI(title="Breathe Tracking Service", version="0.1.0", lifespan=lifespan)
    app.state.session = session
    app.include_router(health_router)
    app.include_router(session_router)
    app.include_router(incidents_router)
    return app


app = create_app()
