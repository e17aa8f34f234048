import logging
from typing import Dict, Type

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from restbridge.schemas.api import ErrorResponse
from restbridge.services.errors import (
    AggregateQueryNotSupportedError,
    BackendTimeoutError,
    DqlError,
    DqlNotAvailableError,
    GatewayConnectionError,
    ObjectNotFoundError,
    RestBridgeError,
    SessionNotFoundError,
)

logger = logging.getLogger(__name__)

# Most specific classes first; the first isinstance match wins.
STATUS_BY_ERROR: Dict[Type[RestBridgeError], int] = {
    BackendTimeoutError: status.HTTP_503_SERVICE_UNAVAILABLE,
    GatewayConnectionError: status.HTTP_503_SERVICE_UNAVAILABLE,
    SessionNotFoundError: status.HTTP_404_NOT_FOUND,
    ObjectNotFoundError: status.HTTP_404_NOT_FOUND,
    DqlNotAvailableError: status.HTTP_503_SERVICE_UNAVAILABLE,
    AggregateQueryNotSupportedError: status.HTTP_400_BAD_REQUEST,
    DqlError: status.HTTP_400_BAD_REQUEST,
}


def status_for(exc: RestBridgeError) -> int:
    for error_type, status_code in STATUS_BY_ERROR.items():
        if isinstance(exc, error_type):
            return status_code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def error_response(status_code: int, code: str, message: str, details: str | None = None) -> JSONResponse:
    body = ErrorResponse(code=code, message=message, details=details)
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))


def install_exception_handlers(app: FastAPI) -> None:
    """Render every failure as ErrorResponse with a fixed status per error class."""

    @app.exception_handler(RestBridgeError)
    async def _handle_bridge_error(_request: Request, exc: RestBridgeError) -> JSONResponse:
        status_code = status_for(exc)
        if status_code >= 500:
            logger.error("%s: %s", exc.code, exc.message)
        else:
            logger.debug("%s: %s", exc.code, exc.message)
        return error_response(status_code, exc.code, exc.message, exc.details)

    @app.exception_handler(RequestValidationError)
    async def _handle_validation_error(_request: Request, exc: RequestValidationError) -> JSONResponse:
        messages = [
            f"{'.'.join(str(part) for part in err.get('loc', ()))}: {err.get('msg')}"
            for err in exc.errors()
        ]
        return error_response(
            status.HTTP_400_BAD_REQUEST,
            "VALIDATION_ERROR",
            "Request validation failed",
            "; ".join(messages) or None,
        )

    @app.exception_handler(Exception)
    async def _handle_unexpected(_request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unexpected error")
        return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "INTERNAL_ERROR", "An unexpected error occurred")
