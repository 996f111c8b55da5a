"""
GoldLedger FastAPI application.
Main entry point for the backend API.
"""
import sqlite3
import subprocess
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from backend.app.api.v1.router import router as api_v1_router
from backend.app.config import get_settings, set_test_mode, is_test_mode
from backend.app.logging_config import configure_logging, get_logger
from backend.app.services.errors import LedgerError, LedgerErrorKind

# Check for --test flag in command line arguments
# This must be done before any imports that might use settings
if "--test" in sys.argv:
    set_test_mode(True)
    print("[GoldLedger] Test mode enabled (--test flag detected)")
    sys.argv.remove("--test")  # Remove flag so uvicorn doesn't complain

# Get settings after test mode is set
settings = get_settings()

# Configure logging with settings
configure_logging(settings.LOG_LEVEL)
logger = get_logger(__name__)

PROJECT_ROOT = Path(__file__).parent.parent.parent

# HTTP status for each ledger error kind
ERROR_STATUS_CODES = {
    LedgerErrorKind.NOT_FOUND: 404,
    LedgerErrorKind.NO_ACTIVE_RATE: 404,
    LedgerErrorKind.INSUFFICIENT_HOLDINGS: 400,
    LedgerErrorKind.INVALID_REQUEST: 422,
    LedgerErrorKind.INVALID_STATE_TRANSITION: 409,
    LedgerErrorKind.CANNOT_REVERSE: 409,
    LedgerErrorKind.CONFLICT: 409,
    }


def _sqlite_path(db_url: str) -> Path | None:
    """Filesystem path of a sqlite:/// URL (relative paths resolve from the project root)."""
    if not db_url.startswith("sqlite:///"):
        return None
    db_path = Path(db_url.replace("sqlite:///", ""))
    return db_path if db_path.is_absolute() else PROJECT_ROOT / db_path


def _has_tables(db_path: Path) -> bool:
    conn = sqlite3.connect(str(db_path))
    try:
        cursor = conn.execute("SELECT count(*) FROM sqlite_master WHERE type='table' AND name NOT LIKE 'sqlite_%'")
        return cursor.fetchone()[0] > 0
    finally:
        conn.close()


def ensure_database_exists():
    """
    Ensure database exists and is migrated.
    If the database file is missing, empty or has no tables, run
    `alembic upgrade head` before serving requests.
    """
    # Get settings at call time to respect test mode
    db_path = _sqlite_path(get_settings().DATABASE_URL)
    if db_path is None:
        return

    if not db_path.exists() or db_path.stat().st_size == 0:
        logger.warning("Database file missing or empty, running migrations", db_path=str(db_path))
    else:
        try:
            if _has_tables(db_path):
                logger.info("Database initialized", db_path=str(db_path))
                return
            logger.warning("Database has no tables, running migrations", db_path=str(db_path))
        except sqlite3.DatabaseError as e:
            logger.warning("Database appears corrupted, running migrations", db_path=str(db_path), error=str(e))

    db_path.parent.mkdir(parents=True, exist_ok=True)

    logger.info("Running Alembic migrations...")
    result = subprocess.run(
        ["alembic", "-c", str(PROJECT_ROOT / "backend" / "alembic.ini"), "upgrade", "head"],
        cwd=PROJECT_ROOT,
        capture_output=True,
        text=True,
        )
    if result.returncode != 0:
        logger.error("Failed to create database", stderr=result.stderr)
        sys.exit(1)
    logger.info("Database created and migrated successfully")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan context manager.
    Handles startup and shutdown events.
    """
    # Startup
    logger.info(
        "Starting GoldLedger",
        version=settings.VERSION,
        database_url=settings.DATABASE_URL.split("///")[-1],  # Hide full path in logs
        test_mode=is_test_mode(),
        )

    # Ensure database exists and is migrated
    ensure_database_exists()

    yield
    # Shutdown
    logger.info("Shutting down GoldLedger")


# Create FastAPI app
app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    openapi_url=f"{settings.API_V1_PREFIX}/openapi.json",
    docs_url=f"{settings.API_V1_PREFIX}/docs",
    redoc_url=f"{settings.API_V1_PREFIX}/redoc",
    lifespan=lifespan,
    )

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.BACKEND_CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    )


@app.exception_handler(LedgerError)
async def ledger_error_handler(request: Request, exc: LedgerError) -> JSONResponse:
    """Map ledger error kinds to HTTP responses: {"error": kind, "detail": message}."""
    return JSONResponse(
        status_code=ERROR_STATUS_CODES.get(exc.kind, 400),
        content={"error": exc.kind.value, "detail": exc.message},
        )


# Mount API v1 router
app.include_router(api_v1_router, prefix=settings.API_V1_PREFIX)


@app.get("/")
async def root():
    """
    Root endpoint.
    Provides basic API information.
    """
    return {
        "name": settings.PROJECT_NAME,
        "version": settings.VERSION,
        "docs": f"{settings.API_V1_PREFIX}/docs",
        }


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=settings.PORT)
