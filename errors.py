import logging

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pymongo.errors import PyMongoError
from starlette.exceptions import HTTPException

logger = logging.getLogger(__name__)


class ServiceError(Exception):
    """Base class for failures that map onto an HTTP status."""

    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(ServiceError):
    status_code = 400
    default_message = "Invalid request"


class Unauthorized(ServiceError):
    status_code = 401
    default_message = "Unauthorized"


class Forbidden(ServiceError):
    status_code = 403
    default_message = "Admin access required"


class NotFound(ServiceError):
    status_code = 404
    default_message = "Not found"


class InvalidState(ServiceError):
    status_code = 400
    default_message = "Operation not allowed in the current state"


class InternalError(ServiceError):
    status_code = 500


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def _first_validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    err = errors[0]
    location = ".".join(str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path", "form"))
    msg = err.get("msg", "Invalid value")
    return f"{location}: {msg}" if location else msg


def register_error_handlers(app):
    @app.exception_handler(ServiceError)
    async def service_error(request: Request, exc: ServiceError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message, exc_info=exc)
        else:
            logger.warning("%s %s -> %s: %s", request.method, request.url.path, exc.status_code, exc.message)
        return error_response(exc.status_code, exc.message)

    @app.exception_handler(HTTPException)
    async def http_error(request: Request, exc: HTTPException):
        return error_response(exc.status_code, str(exc.detail))

    @app.exception_handler(RequestValidationError)
    async def request_validation_error(request: Request, exc: RequestValidationError):
        message = _first_validation_message(exc)
        logger.warning("%s %s -> 400: %s", request.method, request.url.path, message)
        return error_response(400, message)

    @app.exception_handler(PyMongoError)
    async def database_error(request: Request, exc: PyMongoError):
        logger.error("%s %s database failure", request.method, request.url.path, exc_info=exc)
        return error_response(500, "Database error")

    @app.exception_handler(Exception)
    async def unexpected_error(request: Request, exc: Exception):
        logger.error("%s %s crashed", request.method, request.url.path, exc_info=exc)
        return error_response(500, "Internal server error")
