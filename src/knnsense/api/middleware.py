"""Middleware: API key authentication and error-to-response mapping."""

from __future__ import annotations

import logging
import secrets
from typing import TYPE_CHECKING, Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from knnsense.errors import KnnSenseError, ModelNotReady, PreconditionFailure, ResourceUnavailable

if TYPE_CHECKING:
    from fastapi import FastAPI

    from knnsense.config import Settings

logger = logging.getLogger(__name__)

_bearer_scheme = HTTPBearer(auto_error=False)

_ERROR_STATUS: dict[type[KnnSenseError], int] = {
    PreconditionFailure: status.HTTP_409_CONFLICT,
    ResourceUnavailable: status.HTTP_503_SERVICE_UNAVAILABLE,
    ModelNotReady: status.HTTP_503_SERVICE_UNAVAILABLE,
}


async def verify_api_key(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(_bearer_scheme)],
) -> None:
    """Check the Bearer token against the configured API key.

    If KNNSENSE_API_KEY is not set, all requests pass. Otherwise requests
    must include 'Authorization: Bearer <key>'.
    """
    settings: Settings = request.app.state.settings
    if settings.api_key is None:
        return

    if credentials is None or not secrets.compare_digest(credentials.credentials.encode(), settings.api_key.encode()):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing API key",
            headers={"WWW-Authenticate": "Bearer"},
        )


def status_for(exc: KnnSenseError) -> int:
    for error_type, code in _ERROR_STATUS.items():
        if isinstance(exc, error_type):
            return code
    return status.HTTP_400_BAD_REQUEST


async def _knnsense_error_handler(request: Request, exc: Exception) -> JSONResponse:
    assert isinstance(exc, KnnSenseError)
    code = status_for(exc)
    logger.info("%s %s -> %d: %s", request.method, request.url.path, code, exc.message)
    return JSONResponse(status_code=code, content={"detail": exc.message})


async def _timeout_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.warning("%s %s timed out waiting for the inference pool", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": "Inference queue is full, try again"},
    )


def install_error_handlers(app: FastAPI) -> None:
    """Register JSON error responses for user-facing failures."""
    app.add_exception_handler(KnnSenseError, _knnsense_error_handler)
    app.add_exception_handler(TimeoutError, _timeout_handler)
