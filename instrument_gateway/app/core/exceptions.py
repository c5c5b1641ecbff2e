from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
import time

from instrument_gateway.app.core.gateway_exceptions import (
    GatewayError, ConfigurationError, TransportError, ProtocolError, ExpressionError,
    ItemNotFoundError, InvalidRequestError, NoReadingError
)
from instrument_gateway.app.utilities.telemetry import logger

from instrument_gateway.app.schemas.common import ErrorDetail, ErrorResponse


# Clients only see coarse outcomes; lookups walk the exception MRO
STATUS_CODE_MAP = {
    ItemNotFoundError: status.HTTP_400_BAD_REQUEST,
    InvalidRequestError: status.HTTP_400_BAD_REQUEST,
    NoReadingError: status.HTTP_503_SERVICE_UNAVAILABLE,
    TransportError: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ProtocolError: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ExpressionError: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ConfigurationError: status.HTTP_500_INTERNAL_SERVER_ERROR,
    GatewayError: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def status_code_for(exc: GatewayError) -> int:
    for exc_type in type(exc).__mro__:
        if exc_type in STATUS_CODE_MAP:
            return STATUS_CODE_MAP[exc_type]
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def setup_exception_handlers(app: FastAPI):
    """Setup custom exception handlers for the FastAPI app"""

    @app.exception_handler(GatewayError)
    async def gateway_exception_handler(request: Request, exc: GatewayError):
        """Handle gateway exceptions with appropriate HTTP status codes"""
        status_code = status_code_for(exc)

        error_detail = ErrorDetail(
            error_type=type(exc).__name__,
            message=str(exc),
            device_id=getattr(exc, 'device_id', None),
            item_id=getattr(exc, 'item_id', None),
            timestamp=time.time()
        )

        log = logger.warning if status_code < 500 else logger.error
        log(f"Gateway error: {error_detail.error_type} - {error_detail.message}", extra={
            "component": "api",
            "error_type": error_detail.error_type,
            "device_id": error_detail.device_id,
            "item_id": error_detail.item_id,
            "status_code": status_code,
            "request_path": request.url.path
        })

        return JSONResponse(
            status_code=status_code,
            content=ErrorResponse(detail=error_detail).model_dump()
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Handle unexpected exceptions gracefully"""
        error_detail = ErrorDetail(
            error_type="InternalServerError",
            message="An unexpected error occurred",
            timestamp=time.time()
        )

        logger.error(f"Unexpected error: {str(exc)}", extra={
            "component": "api",
            "error": str(exc),
            "request_path": request.url.path,
            "request_method": request.method
        }, exc_info=True)

        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=ErrorResponse(detail=error_detail).model_dump()
        )
