"""Mapping of domain errors and unexpected failures onto HTTP responses.

This is the only place that turns an error kind into a status code and an
error body.
"""
from typing import Any, Dict, Optional

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.schemas import ErrorBody, ErrorResponse
from application.normalizer import describe_errors, summarize
from domain.errors import DomainError, ErrorKind
from infrastructure.logging import get_logger


logger = get_logger("order-service")

HTTP_STATUS_BY_KIND: Dict[ErrorKind, int] = {
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.DUPLICATE_ENTITY: status.HTTP_409_CONFLICT,
    ErrorKind.INVALID_INPUT: status.HTTP_400_BAD_REQUEST,
    ErrorKind.INVALID_ITEM_ID: status.HTTP_400_BAD_REQUEST,
    ErrorKind.UNAUTHORIZED: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.FORBIDDEN: status.HTTP_403_FORBIDDEN,
}

INTERNAL_ERROR_CODE = "INTERNAL_ERROR"


def status_for(kind: ErrorKind) -> int:
    return HTTP_STATUS_BY_KIND[kind]


def _request_id(request: Request) -> Optional[str]:
    return getattr(request.state, "request_id", None)


def error_response(
    status_code: int,
    code: str,
    message: str,
    request: Request,
    details: Any = None,
) -> JSONResponse:
    body = ErrorResponse(
        error=ErrorBody(code=code, message=message, details=details, requestId=_request_id(request))
    )
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True))


async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    status_code = status_for(exc.kind)
    logger.warning(
        f"{type(exc).__name__}: {exc.message}",
        path=request.url.path,
        code=exc.code,
        status=status_code,
    )
    return error_response(status_code, exc.code, exc.message, request, details=exc.details)


async def request_validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handle FastAPI request validation errors (query, path, body) as 400."""
    details = describe_errors(list(exc.errors()))
    logger.warning("Request validation failed", path=request.url.path, errors=details)
    return error_response(
        status.HTTP_400_BAD_REQUEST,
        ErrorKind.INVALID_INPUT.value,
        summarize(details),
        request,
        details=details,
    )


async def generic_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle generic exceptions with 500 status without exposing internals."""
    logger.error(
        f"Internal server error: {type(exc).__name__}",
        path=request.url.path,
        exc_info=True,
    )
    return error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        INTERNAL_ERROR_CODE,
        "Internal server error",
        request,
    )
