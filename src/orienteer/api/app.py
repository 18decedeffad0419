# src/orienteer/api/app.py
"""
FastAPI application wiring.

This file creates the `FastAPI` instance and maps engine errors onto HTTP responses.
Business logic lives in `orienteer.checkin.local` (served by `orienteer.api.routes`).
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from orienteer import __version__
from orienteer.core.logging import configure_logging
from orienteer.errors import (
    AttemptInProgressError,
    HuntError,
    InvalidArgumentError,
    InvalidHuntError,
    NotEligibleError,
    PermissionDeniedError,
    RemoteError,
    SessionClosedError,
)
from orienteer.remote.dto import ApiError

from .routes import router

configure_logging()

logger = logging.getLogger(__name__)

app = FastAPI(title="Orienteer API", version=__version__)
app.include_router(router)

_STATUS_BY_ERROR: tuple[tuple[type[HuntError], int], ...] = (
    (NotEligibleError, 409),
    (AttemptInProgressError, 409),
    (SessionClosedError, 409),
    (InvalidArgumentError, 400),
    (InvalidHuntError, 400),
    (PermissionDeniedError, 403),
)


def status_for(exc: HuntError) -> int:
    """HTTP status for an engine error (remote errors keep their own status code)."""
    if isinstance(exc, RemoteError):
        return exc.status_code or 502
    for error_type, status in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status
    return 500


@app.exception_handler(HuntError)
async def hunt_error_handler(request: Request, exc: HuntError) -> JSONResponse:
    status = status_for(exc)
    if status >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    else:
        logger.info("%s %s rejected (%d): %s", request.method, request.url.path, status, exc.message)
    body = ApiError(error=exc.code, message=exc.message)
    return JSONResponse(status_code=status, content=body.model_dump())
