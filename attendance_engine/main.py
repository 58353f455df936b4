# attendance_engine/main.py
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from attendance_engine.api.routes import analytics, health
from attendance_engine.core.config import get_settings
from attendance_engine.core.logging import setup_logging
from attendance_engine.db.session import init_db_for_startup
from attendance_engine.services.errors import (
    ParticipantSourceError,
    RecalculationError,
    SessionNotFoundError,
)

logger = logging.getLogger(__name__)


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(SessionNotFoundError)
    async def _not_found(request: Request, exc: SessionNotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(ParticipantSourceError)
    async def _provider_failed(request: Request, exc: ParticipantSourceError) -> JSONResponse:
        logger.warning("Participant source failure on %s: %s", request.url.path, exc)
        return JSONResponse(status_code=502, content={"detail": str(exc)})

    @app.exception_handler(RecalculationError)
    async def _recalculation_failed(request: Request, exc: RecalculationError) -> JSONResponse:
        logger.error("Recalculation failure on %s: %s", request.url.path, exc)
        return JSONResponse(status_code=500, content={"detail": str(exc)})

    @app.exception_handler(ValueError)
    async def _invalid_input(request: Request, exc: ValueError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"detail": str(exc)})


def create_app() -> FastAPI:
    """
    Application factory for the Session Attendance Engine.
    """
    settings = get_settings()
    setup_logging()

    app = FastAPI(
        title=settings.APP_NAME,
        description=(
            "Computes per-student attendance for recorded live sessions, detects the\n"
            "moment a session substantively ended (the attendance cliff) and lets an\n"
            "admin apply or dismiss that effective end."
        ),
        version="0.1.0",
    )

    app.include_router(health.router)
    app.include_router(analytics.router)

    _register_exception_handlers(app)

    @app.on_event("startup")
    async def on_startup() -> None:  # pragma: no cover
        await init_db_for_startup()

    return app


app = create_app()
