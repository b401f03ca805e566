import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from ienerzy.services.errors import RateLimitError, ServiceError

LOGGER = logging.getLogger(__name__)


def _error_response(status_code: int, error: str, headers: dict | None = None, **extra):
    content = {"error": error}
    content.update(extra)
    return JSONResponse(status_code=status_code, content=content, headers=headers)


def _validation_message(exc: RequestValidationError) -> str:
    messages = []
    for error in exc.errors():
        location = [str(part) for part in error.get("loc", ()) if part != "body"]
        message = error.get("msg", "Invalid value")
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        messages.append(f"{'.'.join(location)}: {message}" if location else message)
    return "; ".join(messages) or "Invalid request"


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(RateLimitError)
    async def handle_rate_limit(request: Request, exc: RateLimitError):
        LOGGER.warning(
            "Rate limit exceeded path=%s action=%s retry_after=%s",
            request.url.path,
            exc.action,
            exc.retry_after,
        )
        return _error_response(
            exc.status_code,
            exc.message,
            headers={"Retry-After": str(exc.retry_after)},
            message=f"Too many {exc.action} attempts. Please try again later.",
            retryAfter=exc.retry_after,
            resetTime=exc.reset_at.isoformat(),
        )

    @app.exception_handler(ServiceError)
    async def handle_service_error(request: Request, exc: ServiceError):
        log = LOGGER.error if exc.status_code >= 500 else LOGGER.info
        log(
            "Request failed path=%s method=%s status=%s error=%s",
            request.url.path,
            request.method,
            exc.status_code,
            exc.message,
        )
        return _error_response(exc.status_code, exc.message)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        return _error_response(400, _validation_message(exc))

    @app.exception_handler(HTTPException)
    async def handle_http_exception(request: Request, exc: HTTPException):
        message = exc.detail if isinstance(exc.detail, str) else "Request failed"
        return _error_response(exc.status_code, message, headers=exc.headers)

    @app.exception_handler(Exception)
    async def handle_uncaught(request: Request, exc: Exception):
        LOGGER.exception(
            "Unhandled error path=%s method=%s", request.url.path, request.method
        )
        return _error_response(500, "Internal server error")
