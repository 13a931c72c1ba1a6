"""
FastAPI application entry point for the job board backend.
"""

from __future__ import annotations

import logging

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from jobboard.config import get_settings
from jobboard.errors import JobBoardError
from jobboard.routes import router
from jobboard.schemas import HealthResponse, validation_errors

logger = logging.getLogger(__name__)


async def handle_job_board_error(request: Request, exc: JobBoardError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s (%s)", request.method, request.url.path, exc, exc.detail)
    elif exc.detail:
        logger.info("%s %s rejected: %s (%s)", request.method, request.url.path, exc, exc.detail)
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


async def handle_request_validation_error(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    return JSONResponse(
        status_code=422, content={"validation error": validation_errors(exc.errors())}
    )


async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={"error": "An unexpected error occurred", "message": str(exc)},
    )


def create_app() -> FastAPI:
    settings = get_settings()
    logging.basicConfig(level=settings.log_level.upper())

    app = FastAPI(title="Job Board Backend (FastAPI)", version="0.1.0")
    app.add_exception_handler(JobBoardError, handle_job_board_error)
    app.add_exception_handler(RequestValidationError, handle_request_validation_error)
    app.add_exception_handler(Exception, handle_unexpected_error)
    app.include_router(router, prefix=settings.api_prefix)

    @app.get("/health", response_model=HealthResponse)
    def health():
        return HealthResponse(status="healthy")

    return app


app = create_app()


def run() -> None:
    """Serve the API with uvicorn (``jobboard-serve``)."""
    settings = get_settings()
    uvicorn.run(app, host=settings.host, port=settings.port)
