"""growthally - family task and reward tracker."""

import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from src.core.config import DEV_SECRET_KEY, settings
from src.core.db_client import close_connection, init_db
from src.core.logging import configure_logfire, instrument_fastapi
from src.interface.api_router import install_error_handlers, routers


logger = logging.getLogger(__name__)


def validate_startup_configuration() -> None:
    """Validate credentials before serving requests.

    In production the session signing key must be set and must not be the
    development default.

    Raises:
        ValueError: If a required credential is missing or unsafe
    """
    logger.info("startup_validation_begin")

    if settings.is_production:
        secret_key = settings.require_credential("secret_key", "Session signing key")
        if secret_key == DEV_SECRET_KEY:
            msg = "Session signing key is the development default. Set SECRET_KEY for production."
            raise ValueError(msg)
        logger.info("startup_validation", extra={"stage": "credentials", "status": "ok"})
    else:
        logger.info("startup_validation", extra={"stage": "credentials", "status": "skipped"})

    logger.info("startup_validation_complete", extra={"status": "ok"})


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan context manager."""
    # Startup
    # Configure logging first so validation logs are captured
    configure_logfire()

    try:
        validate_startup_configuration()
    except ValueError as e:
        logger.error("startup_validation_failed", extra={"error": str(e)})
        print(f"\nStartup validation failed: {e}\n", file=sys.stderr)  # noqa: T201
        sys.exit(1)

    await init_db()
    logger.info("Database initialized")

    yield
    # Shutdown
    await close_connection()


app = FastAPI(
    title="growthally",
    description="Family task and reward tracker",
    version="0.1.0",
    lifespan=lifespan,
)

# Instrument FastAPI with Logfire
instrument_fastapi(app)

install_error_handlers(app)

# Register routers
for router in routers:
    app.include_router(router)


@app.get("/health")
async def health_check() -> JSONResponse:
    """Health check endpoint."""
    return JSONResponse(content={"status": "healthy"}, status_code=200)
