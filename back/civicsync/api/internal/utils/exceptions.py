# Third-party imports
from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
import sentry_sdk

# Local application imports
from civicsync.core.monitoring.logging import get_logger
from civicsync.schemas.common import BaseResponse
from civicsync.sync.exceptions import (
    ChannelDisconnected,
    InvalidPatchError,
    ReconciliationTimeout,
    SyncError,
    TransportError,
    UnknownReportError,
)

logger = get_logger(__name__)

# Sync failures and the status they are rendered with; checked in order
SYNC_ERROR_STATUS: list[tuple[type[SyncError], int]] = [
    (UnknownReportError, 404),
    (InvalidPatchError, 400),
    (TransportError, 502),
    (ChannelDisconnected, 503),
    (ReconciliationTimeout, 504),
]


def register_exception_handlers(app: FastAPI) -> None:
    # Map specific HTTP status codes to custom error codes
    error_map = {
        400: "bad_request",
        401: "unauthorized",
        403: "forbidden",
        404: "not_found",
        409: "conflict",
        422: "unprocessable_entity",
        429: "too_many_requests",
        500: "internal_server_error",
        502: "bad_gateway",
        503: "service_unavailable",
        504: "gateway_timeout",
    }

    @app.exception_handler(HTTPException)
    async def http_exception_handler(
        request: Request,  # noqa
        exc: HTTPException,
    ) -> JSONResponse:
        # Determine the error code based on the status code
        error_code = error_map.get(exc.status_code, "error")
        # Ensure the detail is a string; if not, convert it
        detail = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
        response = BaseResponse.failure(code=error_code, message=detail)
        return JSONResponse(status_code=exc.status_code, content=response.model_dump())

    @app.exception_handler(SyncError)
    async def sync_exception_handler(
        request: Request,  # noqa
        exc: SyncError,
    ) -> JSONResponse:
        status_code = next((code for cls, code in SYNC_ERROR_STATUS if isinstance(exc, cls)), 500)
        if status_code >= 500:
            logger.warning(f"{request.method} {request.url.path} failed: {exc}")
        response = BaseResponse.failure(code=error_map.get(status_code, "error"), message=str(exc))
        return JSONResponse(status_code=status_code, content=response.model_dump())

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request,  # noqa
        exc: RequestValidationError,
    ) -> JSONResponse:
        # Format validation errors into a more readable message
        error_details = []
        for error in exc.errors():
            message = error.get("msg", "")

            # Remove the "Value error, " prefix pydantic adds to validator messages
            val_error_prefix = "Value error, "
            if message.startswith(val_error_prefix):
                message = message[len(val_error_prefix) :]

            field = ".".join(str(part) for part in error.get("loc", ())[1:])
            error_details.append(f"{field}: {message}" if field else message)

        # Join all error messages or use a default if empty
        max_errors = 5
        shown = error_details[:max_errors]

        if len(error_details) > max_errors:
            shown.append("...and more errors")
        detail = "; ".join(shown) if shown else "Invalid request data"

        response = BaseResponse.failure(
            code="bad_request",
            message=detail,
        )
        return JSONResponse(status_code=400, content=response.model_dump())

    @app.exception_handler(Exception)
    async def generic_exception_handler(
        request: Request,  # noqa
        exc: Exception,
    ) -> JSONResponse:
        # Capture the exception in Sentry for monitoring
        sentry_sdk.capture_exception(exc)
        logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc!r}")
        response = BaseResponse.failure(
            code="internal_server_error",
            message="An unexpected error occurred. Please try again later.",
        )
        return JSONResponse(status_code=500, content=response.model_dump())
