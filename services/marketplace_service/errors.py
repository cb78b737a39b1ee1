"""Named error kinds and the uniform response envelope.

Every response body looks like ``{"success": bool, "data": ..., "error": str | None}``.
Business-rule failures are raised as :class:`MarketplaceError` and rendered by the
handlers registered in :func:`setup_exception_handlers`; anything unexpected is
logged and reported as ``INTERNAL_SERVER_ERROR`` without detail.
"""
import logging
from typing import Any, Optional

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

logger = logging.getLogger(__name__)

INVALID_REQUEST = "INVALID_REQUEST"
UNAUTHORIZED = "UNAUTHORIZED"
INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
FORBIDDEN = "FORBIDDEN"
EMAIL_ALREADY_EXISTS = "EMAIL_ALREADY_EXISTS"
PROJECT_NOT_FOUND = "PROJECT_NOT_FOUND"
PROJECT_NOT_OPEN = "PROJECT_NOT_OPEN"
PROPOSAL_NOT_FOUND = "PROPOSAL_NOT_FOUND"
PROPOSAL_ALREADY_EXISTS = "PROPOSAL_ALREADY_EXISTS"
PROPOSAL_ALREADY_PROCESSED = "PROPOSAL_ALREADY_PROCESSED"
CONTRACT_NOT_FOUND = "CONTRACT_NOT_FOUND"
CONTRACT_NOT_COMPLETED = "CONTRACT_NOT_COMPLETED"
MILESTONE_NOT_FOUND = "MILESTONE_NOT_FOUND"
MILESTONE_ALREADY_SUBMITTED = "MILESTONE_ALREADY_SUBMITTED"
MILESTONE_ALREADY_APPROVED = "MILESTONE_ALREADY_APPROVED"
PREVIOUS_MILESTONE_INCOMPLETE = "PREVIOUS_MILESTONE_INCOMPLETE"
ALREADY_REVIEWED = "ALREADY_REVIEWED"
NOT_FOUND = "NOT_FOUND"
INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"

STATUS_CODES = {
    INVALID_REQUEST: status.HTTP_400_BAD_REQUEST,
    UNAUTHORIZED: status.HTTP_401_UNAUTHORIZED,
    INVALID_CREDENTIALS: status.HTTP_401_UNAUTHORIZED,
    FORBIDDEN: status.HTTP_403_FORBIDDEN,
    EMAIL_ALREADY_EXISTS: status.HTTP_400_BAD_REQUEST,
    PROJECT_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    PROJECT_NOT_OPEN: status.HTTP_400_BAD_REQUEST,
    PROPOSAL_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    PROPOSAL_ALREADY_EXISTS: status.HTTP_400_BAD_REQUEST,
    PROPOSAL_ALREADY_PROCESSED: status.HTTP_400_BAD_REQUEST,
    CONTRACT_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    CONTRACT_NOT_COMPLETED: status.HTTP_400_BAD_REQUEST,
    MILESTONE_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    MILESTONE_ALREADY_SUBMITTED: status.HTTP_400_BAD_REQUEST,
    MILESTONE_ALREADY_APPROVED: status.HTTP_400_BAD_REQUEST,
    PREVIOUS_MILESTONE_INCOMPLETE: status.HTTP_400_BAD_REQUEST,
    ALREADY_REVIEWED: status.HTTP_400_BAD_REQUEST,
    NOT_FOUND: status.HTTP_404_NOT_FOUND,
    INTERNAL_SERVER_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
}

# Kinds used when FastAPI itself raises an HTTPException
_HTTP_FALLBACK_KINDS = {
    status.HTTP_401_UNAUTHORIZED: UNAUTHORIZED,
    status.HTTP_403_FORBIDDEN: FORBIDDEN,
    status.HTTP_404_NOT_FOUND: NOT_FOUND,
}


class MarketplaceError(Exception):
    """A named business-rule failure."""

    def __init__(self, kind: str, status_code: Optional[int] = None):
        super().__init__(kind)
        self.kind = kind
        self.status_code = status_code or STATUS_CODES.get(kind, status.HTTP_400_BAD_REQUEST)


def envelope(data: Any = None, error: Optional[str] = None) -> dict:
    return {"success": error is None, "data": data, "error": error}


def success(data: Any) -> dict:
    return envelope(data=jsonable_encoder(data))


def error_response(kind: str, status_code: Optional[int] = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code or STATUS_CODES.get(kind, status.HTTP_400_BAD_REQUEST),
        content=envelope(error=kind),
    )


def setup_exception_handlers(app: FastAPI):

    @app.exception_handler(MarketplaceError)
    async def marketplace_error_handler(request: Request, exc: MarketplaceError):
        return error_response(exc.kind, exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        logger.debug("Rejected request to %s: %s", request.url.path, exc.errors())
        return error_response(INVALID_REQUEST)

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        if exc.status_code >= 500:
            kind = INTERNAL_SERVER_ERROR
        else:
            kind = _HTTP_FALLBACK_KINDS.get(exc.status_code, INVALID_REQUEST)
        return error_response(kind, exc.status_code)

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return error_response(INTERNAL_SERVER_ERROR)
