"""Error taxonomy and the JSON error envelope.

API error format: ``{"success": false, "error": "<message>"}``.

HTTP status mapping:
- 400: InvalidArgument (malformed id, bad filter value, missing field)
- 401: Unauthorized (missing caller identity)
- 404: NotFound (entity or report job does not exist or is not visible)
- 409: Conflict (delete blocked by referencing rows)
- 429: RateLimited
- 500: DataStoreError (the store call itself failed)
- 503: ExportUnavailable (PDF rendering libraries missing)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class CrmError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Server internal error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class Unauthorized(CrmError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "User authentication required"


class InvalidArgument(CrmError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid argument"


class NotFound(CrmError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found"


class Conflict(CrmError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "Request conflicts with existing records"


class RateLimited(CrmError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    default_message = "Too many requests. Please wait before trying again."


class DataStoreError(CrmError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Data store request failed"


class ExportUnavailable(CrmError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_message = "Export format is currently unavailable"


@dataclass(frozen=True, slots=True)
class DataQualityWarning:
    """Non-fatal anomaly: a record contributed a coerced value to an aggregate."""

    record_id: str
    field: str
    message: str

    def to_dict(self) -> dict[str, str]:
        return {"record_id": self.record_id, "field": self.field, "message": self.message}


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})


def _validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()) if part not in {"body", "query", "path"})
    message = first.get("msg", "Invalid value")
    return f"{location}: {message}" if location else message


def register_exception_handlers(app: FastAPI) -> None:
    """Translate every error class into the API error envelope."""

    @app.exception_handler(CrmError)
    async def handle_crm_error(request: Request, exc: CrmError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return error_response(exc.status_code, exc.message)

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return error_response(exc.status_code, str(exc.detail))

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        return error_response(status.HTTP_400_BAD_REQUEST, _validation_message(exc))

    @app.exception_handler(SQLAlchemyError)
    async def handle_store_error(request: Request, exc: SQLAlchemyError) -> JSONResponse:
        logger.exception("Data store error on %s %s", request.method, request.url.path)
        return error_response(DataStoreError.status_code, DataStoreError.default_message)

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, CrmError.default_message)
