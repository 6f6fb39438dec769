"""
Paperfolio Main Application
FastAPI application with all routers, middleware, and configurations.
"""

import logging
import sys
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncGenerator

import structlog
from fastapi import APIRouter, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from paperfolio.config.settings import settings
from paperfolio.database.connection import (
    check_database_health,
    close_database,
    get_db_context,
    init_database,
)
from paperfolio.dependencies.services import close_clients, get_stream_hub
from paperfolio.exceptions import PaperfolioError
from paperfolio.middleware.logging import (
    ErrorLoggingMiddleware,
    RequestLoggingMiddleware,
    StructuredLoggingMiddleware,
)
from paperfolio.routers import api_router
from paperfolio.services.passcodes import PasscodeService


def setup_logging() -> None:
    """Configure stdlib logging and structlog for the application."""
    logging.basicConfig(
        format=settings.logging.format,
        level=getattr(logging, settings.logging.level.upper()),
        stream=sys.stdout,
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer() if settings.logging.json_format else structlog.dev.ConsoleRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


setup_logging()
logger = structlog.get_logger("paperfolio.app")


# ============================================================================
# Lifespan Events
# ============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Startup: create tables, seed the registration passcode, connect the
    price stream. Shutdown runs the same steps in reverse.
    """
    logger.info(
        "Starting Paperfolio",
        app_name=settings.app_name,
        version=settings.app_version,
        environment=settings.environment,
        debug=settings.debug,
    )

    try:
        await init_database()
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error("Failed to initialize database", error=str(e))
        raise

    async with get_db_context() as session:
        await PasscodeService(session).seed(settings.registration.passcode)

    hub = get_stream_hub()
    await hub.start()

    logger.info("Paperfolio started successfully")

    yield

    logger.info("Shutting down Paperfolio")

    try:
        await hub.stop()
        await close_clients()
        await close_database()
        logger.info("Connections closed")
    except Exception as e:
        logger.error("Error during shutdown", error=str(e))

    logger.info("Paperfolio shutdown complete")


# ============================================================================
# Exception Handlers
# ============================================================================

async def paperfolio_exception_handler(request: Request, exc: PaperfolioError) -> JSONResponse:
    """Translate domain errors to their HTTP status."""
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        "Domain error",
        path=request.url.path,
        status_code=exc.status_code,
        error_type=type(exc).__name__,
        detail=exc.message,
    )

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": exc.title,
            "detail": exc.message,
        },
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.warning(
        "Validation error",
        path=request.url.path,
        errors=exc.errors(),
    )

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error": "Validation error",
            "detail": jsonable_errors(exc),
        },
    )


def jsonable_errors(exc: RequestValidationError) -> list:
    """Validation errors with non-JSON context values stringified."""
    errors = []
    for error in exc.errors():
        error = dict(error)
        if "ctx" in error:
            error["ctx"] = {key: str(value) for key, value in error["ctx"].items()}
        errors.append(error)
    return errors


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    logger.warning(
        "HTTP exception",
        path=request.url.path,
        status_code=exc.status_code,
        detail=exc.detail,
    )

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": "HTTP error",
            "detail": exc.detail,
        },
        headers=getattr(exc, "headers", None),
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(
        "Unhandled exception",
        path=request.url.path,
        error_type=type(exc).__name__,
        error=str(exc),
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "Internal server error",
            "detail": "An unexpected error occurred" if not settings.debug else str(exc),
        },
    )


# ============================================================================
# Health Check Router
# ============================================================================

health_router = APIRouter(tags=["Health"])


@health_router.get("/health", status_code=status.HTTP_200_OK)
async def health_check() -> dict:
    db_health = await check_database_health()
    hub = get_stream_hub()

    return {
        "status": "healthy" if db_health["connected"] else "unhealthy",
        "service": settings.app_name,
        "version": settings.app_version,
        "environment": settings.environment,
        "database": db_health,
        "price_stream": {
            "connected": hub.is_connected,
            "subscriptions": len(hub.subscribed_symbols()),
        },
    }


@health_router.get("/ready", status_code=status.HTTP_200_OK)
async def readiness_check() -> dict:
    return {
        "ready": True,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@health_router.get("/live", status_code=status.HTTP_200_OK)
async def liveness_check() -> dict:
    return {
        "alive": True,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


# ============================================================================
# Application Factory
# ============================================================================

def create_application() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        FastAPI: Configured FastAPI application.
    """
    app = FastAPI(
        title=settings.app_name,
        description="Paperfolio - paper-trading portfolio simulator",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
        lifespan=lifespan,
    )

    # ==========================================================================
    # Middleware (last added runs first)
    # ==========================================================================

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
    )

    app.add_middleware(GZipMiddleware, minimum_size=1000)

    app.add_middleware(StructuredLoggingMiddleware)

    app.add_middleware(RequestLoggingMiddleware)

    app.add_middleware(ErrorLoggingMiddleware, include_traceback=settings.debug)

    # ==========================================================================
    # Exception Handlers
    # ==========================================================================

    app.add_exception_handler(PaperfolioError, paperfolio_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    # ==========================================================================
    # Routers
    # ==========================================================================

    app.include_router(health_router)
    app.include_router(api_router)

    @app.get("/", tags=["Root"])
    async def root() -> dict:
        return {
            "name": settings.app_name,
            "version": settings.app_version,
            "documentation": "/docs" if settings.debug else None,
            "health": "/health",
            "api": "/api",
        }

    return app


app = create_application()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "paperfolio.app:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        workers=settings.workers if not settings.debug else 1,
        log_level=settings.logging.level.lower(),
    )
