"""
Prior deed web API
FastAPI
"""
import traceback
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from loguru import logger

from app.web.routers import api
from priordeed.utils.logging_config import setup_default_logging

setup_default_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    logger.info("Prior deed API starting up...")
    yield
    logger.info("Prior deed API shutting down...")


app = FastAPI(
    title="priordeed",
    description="Prior deed retrieval as a single PDF",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(api.router, prefix="/api")


# =============================================================================
# Error Handlers
# =============================================================================

def _generate_error_id() -> str:
    """Generate a short error ID for tracking."""
    return str(uuid.uuid4())[:8].upper()


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    error_id = _generate_error_id()
    if exc.status_code >= 400:
        log_fn = logger.warning if exc.status_code < 500 else logger.error
        log_fn(f"HTTP {exc.status_code} [ID: {error_id}]: {exc.detail} - {request.method} {request.url}")

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "error": exc.detail,
            "error_id": error_id,
            "path": str(request.url.path),
        },
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    """Log the traceback under an error ID and answer with JSON."""
    error_id = _generate_error_id()
    tb = traceback.format_exc()
    logger.error(
        f"Unhandled exception [ID: {error_id}]\n"
        f"Request: {request.method} {request.url}\n"
        f"Exception: {type(exc).__name__}: {exc}\n"
        f"Traceback:\n{tb}"
    )
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": f"An unexpected error occurred: {type(exc).__name__}",
            "error_id": error_id,
            "details": str(exc),
            "path": str(request.url.path),
        },
    )


@app.get("/health")
async def health():
    return {"status": "ok"}
