"""llamaio - users and tasks record-management API."""

import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from llamaio.core.config import settings
from llamaio.core.db_client import DatabaseError, close_connection, get_db_path, init_db
from llamaio.core.errors import ServiceError
from llamaio.core.logging import configure_logfire, instrument_fastapi
from llamaio.interface.api_router import error_response
from llamaio.interface.api_router import router as api_router


logger = logging.getLogger(__name__)


async def validate_startup_configuration() -> None:
    """Validate credentials and open the database, failing fast with a clear message.

    Raises:
        SystemExit: If a production credential is missing or the database cannot be opened
    """
    logger.info("startup_validation_begin")

    try:
        if settings.environment == "production":
            settings.require_credential("database_token", "Database")
        await init_db()
        logger.info("startup_validation", extra={"stage": "database", "db_path": str(get_db_path()), "status": "ok"})
    except (ValueError, DatabaseError) as e:
        logger.error("startup_validation_failed", extra={"error": str(e)})
        print(f"\n❌ Startup validation failed: {e}\n", file=sys.stderr)  # noqa: T201
        sys.exit(1)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan context manager."""
    # Configure logging first so validation logs are captured
    configure_logfire()

    await validate_startup_configuration()
    logger.info("Database initialized")

    yield

    await close_connection()


app = FastAPI(
    title="llamaio",
    description="Users and tasks record-management API",
    version="0.1.0",
    lifespan=lifespan,
)

# Instrument FastAPI with Logfire
instrument_fastapi(app)

# Register routers
app.include_router(api_router)


@app.exception_handler(ServiceError)
async def service_error_handler(_request: Request, exc: ServiceError) -> JSONResponse:
    """Map validation and not-found errors to the response envelope."""
    return error_response(exc)


@app.exception_handler(DatabaseError)
async def database_error_handler(_request: Request, exc: DatabaseError) -> JSONResponse:
    """Map storage errors to the response envelope."""
    return error_response(exc)


@app.exception_handler(Exception)
async def unhandled_error_handler(_request: Request, exc: Exception) -> JSONResponse:
    """Map anything else to a 500 envelope."""
    logger.exception("unhandled_error")
    return error_response(exc)


@app.get("/health")
async def health_check() -> JSONResponse:
    """Health check endpoint."""
    return JSONResponse(content={"status": "healthy"}, status_code=200)


def run() -> None:
    """Serve the API with uvicorn."""
    uvicorn.run("llamaio.main:app", host="0.0.0.0", port=8000)  # noqa: S104
