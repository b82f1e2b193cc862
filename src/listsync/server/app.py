"""FastAPI application for the listsync server.

This module creates and configures the FastAPI application with:
- POST /api/sync and GET /api/sync/initial for delta synchronization
- Read-only listing routes for spaces, categories, items and devices

Usage:
    uvicorn --factory listsync.server.app:app_factory --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

import logging
import sys
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from listsync.core.config import ServerConfig
from listsync.server.api.router import router as api_router
from listsync.server.database import Database
from listsync.server.sync import StoreUnavailable

logger = logging.getLogger(__name__)


def setup_logging(log_path: Path | None) -> None:
    """Configure logging to output to both file and stdout.

    Args:
        log_path: Path to the log file, or None for stdout only.
    """
    log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    formatter = logging.Formatter(log_format)

    # Root logger for listsync
    root_logger = logging.getLogger("listsync")
    root_logger.setLevel(logging.INFO)

    # Stdout handler
    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setFormatter(formatter)
    root_logger.addHandler(stdout_handler)

    if log_path is None:
        return

    # File handler
    file_handler = logging.FileHandler(log_path, encoding="utf-8")
    file_handler.setFormatter(formatter)
    root_logger.addHandler(file_handler)

    # Also capture uvicorn logs to file
    for uvicorn_name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        uvicorn_logger = logging.getLogger(uvicorn_name)
        uvicorn_logger.addHandler(file_handler)


async def store_unavailable_handler(request: Request, exc: Exception) -> JSONResponse:
    """Map a lost database to 503 for every route."""
    logger.error("Store unavailable on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": "Store unavailable"},
    )


def create_app(db: Database, config: ServerConfig | None = None) -> FastAPI:
    """Create FastAPI application with a custom database.

    This is primarily used for testing with isolated databases.

    Args:
        db: Database instance.
        config: Server configuration (defaults apply when omitted).

    Returns:
        Configured FastAPI application.
    """
    config = config or ServerConfig(db_path=db.path)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan handler for startup/shutdown."""
        # Startup
        logger.info("=" * 60)
        logger.info("listsync server starting")
        logger.info("=" * 60)
        logger.info("  Database:   %s", db.path)
        logger.info("  Clock skew: %s", config.max_clock_skew or "unbounded")
        logger.info("  Logs:       %s", config.log_path.absolute())
        logger.info("=" * 60)

        yield

        # Shutdown
        logger.info("listsync server shutting down")

    application = FastAPI(
        title="listsync server",
        description="Offline-first delta synchronization for spaces, categories and items",
        version="0.1.0",
        lifespan=lifespan,
    )

    application.state.db = db
    application.state.config = config

    application.add_exception_handler(StoreUnavailable, store_unavailable_handler)
    application.include_router(api_router)

    return application


def app_factory() -> FastAPI:
    """Factory function for uvicorn --factory mode."""
    config = ServerConfig.from_env()
    setup_logging(config.log_path)
    return create_app(db=Database(config.db_path), config=config)
