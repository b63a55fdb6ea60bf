"""FastAPI application for the reference management API.

This module creates and configures the FastAPI application with:
- Change token issuance
- Rule group and activated rule endpoints
- Organization policy endpoints

Usage:
    uvicorn policysync.server.app:app_factory --factory --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from policysync import __version__
from policysync.server.api.router import router as api_router
from policysync.server.database import ApiFault, Database

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

logger = logging.getLogger(__name__)


def setup_logging(log_path: Path | None = None) -> None:
    """Configure logging to stdout and, optionally, a file.

    Args:
        log_path: Path to the log file, or None for stdout only.
    """
    formatter = logging.Formatter(LOG_FORMAT)

    # Root logger for policysync
    root_logger = logging.getLogger("policysync")
    root_logger.setLevel(logging.INFO)

    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setFormatter(formatter)
    root_logger.addHandler(stdout_handler)

    if log_path is not None:
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

        # Also capture uvicorn logs to file
        for uvicorn_name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
            logging.getLogger(uvicorn_name).addHandler(file_handler)


def create_app(db: Database, api_key: str | None = None) -> FastAPI:
    """Create FastAPI application with a given database.

    Args:
        db: Database instance.
        api_key: Bearer key required on API routes, or None to disable auth.

    Returns:
        Configured FastAPI application.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan handler for startup/shutdown."""
        logger.info("Management API starting")
        logger.info("  Database: %s", db.path)
        logger.info("  Region:   %s", db.region)
        logger.info("  Auth:     %s", "api key" if api_key else "disabled")

        yield

        logger.info("Management API shutting down")

    application = FastAPI(
        title="policysync management API",
        description="Reference rule group and organization policy API",
        version=__version__,
        lifespan=lifespan,
    )

    application.state.db = db
    application.state.api_key = api_key

    @application.exception_handler(ApiFault)
    async def api_fault_handler(request: Request, exc: ApiFault) -> JSONResponse:
        logger.info(
            "%s %s -> %s: %s", request.method, request.url.path, exc.code, exc.message
        )
        return JSONResponse(
            status_code=exc.status_code,
            content={"code": exc.code, "message": exc.message},
        )

    application.include_router(api_router)

    return application


def app_factory() -> FastAPI:
    """Factory function for uvicorn --factory mode.

    Reads POLICYSYNC_DB_PATH, POLICYSYNC_LOG_PATH, POLICYSYNC_API_KEY and
    POLICYSYNC_FINALIZING_SECONDS from the environment.
    """
    log_path = os.environ.get("POLICYSYNC_LOG_PATH")
    setup_logging(Path(log_path) if log_path else None)

    db = Database(Path(os.environ.get("POLICYSYNC_DB_PATH", "policysync.db")))
    finalizing = float(os.environ.get("POLICYSYNC_FINALIZING_SECONDS", "0"))
    if finalizing > 0:
        db.set_finalizing(finalizing)

    return create_app(db, api_key=os.environ.get("POLICYSYNC_API_KEY") or None)
