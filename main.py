from __future__ import annotations

import logging
import os

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.v1.router import api_router
from core.config import settings
from core.errors import (
    BookingNotFoundError,
    BookingValidationError,
    IntegrationErrorKind,
    ProvisioningError,
    TransitionError,
)
from core.logging import configure_logging
from db.database import close_database
from services.calendar.client import CalendarSession


configure_logging(os.getenv("LOG_LEVEL", "INFO"))
logger = logging.getLogger(__name__)

PROVISIONING_STATUS = {
    IntegrationErrorKind.unauthenticated: 401,
    IntegrationErrorKind.forbidden: 403,
    IntegrationErrorKind.not_found: 404,
    IntegrationErrorKind.internal: 500,
}


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(BookingValidationError)
    async def _validation(_: Request, exc: BookingValidationError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"detail": str(exc), "fields": exc.fields})

    @app.exception_handler(BookingNotFoundError)
    async def _not_found(_: Request, exc: BookingNotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(TransitionError)
    async def _transition(_: Request, exc: TransitionError) -> JSONResponse:
        return JSONResponse(
            status_code=409,
            content={
                "detail": str(exc),
                "booking_id": exc.booking_id,
                "current_status": exc.current_status,
                "target_status": exc.target_status,
            },
        )

    @app.exception_handler(ProvisioningError)
    async def _provisioning(_: Request, exc: ProvisioningError) -> JSONResponse:
        return JSONResponse(status_code=PROVISIONING_STATUS[exc.kind], content=exc.to_dict())


def create_app() -> FastAPI:
    app = FastAPI(title="Booking Operations Backend", version="0.1.0")

    origins_env = settings.allowed_origins.strip()
    allow_all_origins = origins_env in {"*", '"*"'}
    if allow_all_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=False,
            allow_methods=["*"],
            allow_headers=["*"],
        )
    else:
        allowed_origins = [o.strip() for o in origins_env.split(",") if o.strip()]
        app.add_middleware(
            CORSMiddleware,
            allow_origins=allowed_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    register_exception_handlers(app)
    app.include_router(api_router, prefix="/api/v1")
    app.state.calendar = None

    @app.on_event("startup")
    async def _calendar_acquire() -> None:
        if not settings.calendar_enabled:
            logger.info("calendar.disabled")
            return
        try:
            session = CalendarSession.acquire(settings)
        except ProvisioningError as exc:
            logger.warning("calendar.unavailable", extra={"kind": exc.kind.value, "detail": exc.detail})
            return
        app.state.calendar = session
        try:
            await session.verify()
        except ProvisioningError:
            # Kept open so /calendars/status can re-check; availability falls back until it verifies
            pass

    @app.on_event("shutdown")
    async def _calendar_release() -> None:
        session = getattr(app.state, "calendar", None)
        if session is not None:
            session.release()
            app.state.calendar = None
        await close_database()

    @app.get("/")
    async def root_health() -> dict[str, str]:
        return {"status": "ok"}

    logger.info("Application initialized")
    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
