"""
FastAPI application entry point.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from callcenter import __version__
from callcenter.calls.dispatcher import CallDispatcher
from callcenter.calls.ledger import CallLedger
from callcenter.calls.router import router as calls_router
from callcenter.config import get_settings
from callcenter.shared.correlation import CorrelationIdMiddleware
from callcenter.shared.database import get_database_manager
from callcenter.shared.exceptions import NotFoundError, ValidationError
from callcenter.shared.logging import get_logger, setup_logging
from callcenter.telephony.config import get_telephony_config
from callcenter.telephony.factory import build_backends

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    setup_logging()
    settings = get_settings()
    db_manager = get_database_manager()

    logger.info("Application starting", extra={"env": settings.app_env})

    if settings.database_create_all:
        await db_manager.create_all()
        logger.info("Database tables ensured")

    ledger = CallLedger(db_manager.session_factory, settings.ledger_timezone)
    telephony_cfg = get_telephony_config()
    dispatcher = CallDispatcher(build_backends(telephony_cfg), telephony_cfg, ledger=ledger)

    app.state.ledger = ledger
    app.state.dispatcher = dispatcher

    yield

    logger.info("Shutting down application")

    # Flushes pending ledger writes before the engine goes away.
    await dispatcher.aclose()
    await db_manager.close()
    logger.info("Application shutdown complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="CRM Call Center API",
        description="Outbound call dispatch and call attempt statistics",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
    )

    # Map domain exceptions to HTTP responses
    @app.exception_handler(NotFoundError)
    async def _not_found(_: Request, exc: NotFoundError) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={"detail": {"code": exc.code, "message": exc.message}},
        )

    @app.exception_handler(ValidationError)
    async def _validation(_: Request, exc: ValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={
                "detail": {"code": exc.code, "message": exc.message, **exc.details},
            },
        )

    # Request validation (FastAPI/Pydantic) -> consistent 422 payload
    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request,
        exc: RequestValidationError,
    ) -> JSONResponse:
        errors = []
        for error in exc.errors():
            field = ".".join(str(loc) for loc in error["loc"])
            errors.append(
                {
                    "field": field,
                    "message": error["msg"],
                    "type": error["type"],
                }
            )
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={
                "detail": {
                    "code": "VALIDATION_ERROR",
                    "message": "Request validation failed",
                    "errors": errors,
                }
            },
        )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(CorrelationIdMiddleware)

    app.include_router(calls_router)

    @app.get("/health")
    async def health_check() -> dict[str, str]:
        return {"status": "healthy"}

    return app


app = create_app()
