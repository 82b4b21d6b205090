"""Error taxonomy and the handlers that render it as JSON."""
import logging
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class AppError(Exception):
    """Base class for errors surfaced to API callers as {message, error?}."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, error: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.error = error

    def to_dict(self) -> dict:
        body = {"message": self.message}
        if self.error:
            body["error"] = self.error
        return body


class ValidationError(AppError):
    """Bad or missing input."""
    status_code = status.HTTP_400_BAD_REQUEST


class InvalidImage(ValidationError):
    """Image bytes could not be decoded."""


class AuthError(AppError):
    """Missing, invalid or expired credential."""
    status_code = status.HTTP_401_UNAUTHORIZED


class NotFound(AppError):
    """Record absent or not owned by the caller."""
    status_code = status.HTTP_404_NOT_FOUND


class Conflict(AppError):
    """A unique field is already taken."""
    status_code = status.HTTP_409_CONFLICT


class DuplicateHash(Conflict):
    def __init__(self, image_hash: str):
        super().__init__("Image hash already exists", error=image_hash)
        self.image_hash = image_hash


class ExternalServiceUnavailable(AppError):
    """An optional integration is not configured or did not answer."""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class InternalError(AppError):
    """Storage or database failure."""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message,
                     exc_info=exc if isinstance(exc, InternalError) else None)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    detail = "; ".join(
        f"{'.'.join(str(part) for part in err.get('loc', ()))}: {err.get('msg')}" for err in errors
    )
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"message": "Invalid request", "error": detail},
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"message": "Internal server error", "error": str(exc)},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
