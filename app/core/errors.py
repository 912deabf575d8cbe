"""
Inkhouse - Public API errors.

ApiError carries a taxonomy code and HTTP status; the exception handler
renders it as the public error envelope:

    {"success": false, "error": {"code": "...", "message": "..."}}
"""

import logging
from contextlib import contextmanager
from enum import Enum
from typing import Dict, Iterator, Optional

from fastapi import Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import DisconnectionError, InterfaceError, OperationalError, SQLAlchemyError

from app.core.database import DatabaseNotConfiguredError

logger = logging.getLogger(__name__)


class ErrorCode(str, Enum):
    UNAUTHORIZED = "UNAUTHORIZED"
    RATE_LIMITED = "RATE_LIMITED"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    FORBIDDEN = "FORBIDDEN"
    NOT_FOUND = "NOT_FOUND"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    INTERNAL_ERROR = "INTERNAL_ERROR"


STATUS_BY_CODE = {
    ErrorCode.UNAUTHORIZED: status.HTTP_401_UNAUTHORIZED,
    ErrorCode.RATE_LIMITED: status.HTTP_429_TOO_MANY_REQUESTS,
    ErrorCode.VALIDATION_ERROR: status.HTTP_400_BAD_REQUEST,
    ErrorCode.FORBIDDEN: status.HTTP_403_FORBIDDEN,
    ErrorCode.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.SERVICE_UNAVAILABLE: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorCode.INTERNAL_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


class ApiError(Exception):
    """A public API failure at a specific pipeline stage."""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        headers: Optional[Dict[str, str]] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.status_code = STATUS_BY_CODE[code]
        self.headers = headers or {}
        super().__init__(f"{code.value}: {message}")


def error_envelope(code: ErrorCode, message: str) -> dict:
    return {"success": False, "error": {"code": code.value, "message": message}}


def _rate_limit_headers(request: Request) -> Dict[str, str]:
    # Set by the public API pipeline once a request passes authentication
    rate_limit = getattr(request.state, "rate_limit", None)
    return rate_limit.headers() if rate_limit is not None else {}


def _background(request: Request):
    # Tasks queued by the pipeline, such as the API key last_used_at touch
    return getattr(request.state, "background", None)


async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    headers = {**_rate_limit_headers(request), **exc.headers}
    return JSONResponse(
        status_code=exc.status_code,
        content=error_envelope(exc.code, exc.message),
        headers=headers,
        background=_background(request),
    )


async def database_not_configured_handler(request: Request, exc: DatabaseNotConfiguredError) -> JSONResponse:
    logger.error(f"{request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content=error_envelope(ErrorCode.SERVICE_UNAVAILABLE, "Database not configured"),
        headers=_rate_limit_headers(request),
        background=_background(request),
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(f"Unhandled error on {request.method} {request.url.path}", exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_envelope(ErrorCode.INTERNAL_ERROR, "Internal server error"),
        headers=_rate_limit_headers(request),
        background=_background(request),
    )


@contextmanager
def translate_store_errors(action: str) -> Iterator[None]:
    """Map store failures to public errors without leaking internals."""
    try:
        yield
    except DatabaseNotConfiguredError:
        logger.error(f"Failed to {action}: database not configured")
        raise ApiError(ErrorCode.SERVICE_UNAVAILABLE, "Database not configured")
    except (OperationalError, InterfaceError, DisconnectionError):
        logger.exception(f"Failed to {action}: database unreachable")
        raise ApiError(ErrorCode.SERVICE_UNAVAILABLE, "Database unavailable")
    except SQLAlchemyError:
        logger.exception(f"Failed to {action}")
        raise ApiError(ErrorCode.INTERNAL_ERROR, f"Failed to {action}")
