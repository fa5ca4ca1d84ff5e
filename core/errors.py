import logging
from typing import Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class AppError(Exception):
    """
    Base class for errors that map onto an HTTP status and a JSON body
    of the form {"error": message}.
    """

    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: Optional[str] = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    @property
    def headers(self) -> Optional[Dict[str, str]]:
        return None


class ValidationError(AppError):
    status_code = 400
    default_message = "Invalid request"


class AuthError(AppError):
    status_code = 401
    default_message = "Unauthorized"


class MissingCredentialError(AuthError):
    status_code = 401
    default_message = "No token provided"


class AuthenticationFailedError(AuthError):
    status_code = 401
    default_message = "Invalid credentials"


class InvalidCredentialError(AuthError):
    status_code = 403
    default_message = "Invalid token"


class NotFoundError(AppError):
    status_code = 404
    default_message = "Not found"


class PayloadTooLargeError(AppError):
    status_code = 413
    default_message = "Payload too large"


class RangeNotSatisfiableError(AppError):
    status_code = 416
    default_message = "Requested range not satisfiable"

    def __init__(self, size: int, message: Optional[str] = None) -> None:
        self.size = size
        super().__init__(message)

    @property
    def headers(self) -> Dict[str, str]:
        return {"Content-Range": f"bytes */{self.size}"}


class StorageError(AppError):
    status_code = 500
    default_message = "Storage failure"


def _error_response(status_code: int, message: str, headers=None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message}, headers=headers)


def register_exception_handlers(app: FastAPI, debug: bool = False) -> None:
    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
        return _error_response(exc.status_code, exc.message, exc.headers)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        if errors:
            first = errors[0]
            field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
            message = f"{field}: {first.get('msg')}" if field else first.get("msg")
        else:
            message = ValidationError.default_message
        return _error_response(400, message)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return _error_response(exc.status_code, str(exc.detail), getattr(exc, "headers", None))

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=True)
        message = str(exc) if debug else "Internal server error"
        return _error_response(500, message)
