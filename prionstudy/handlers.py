import logging
import uuid
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException
from prionstudy.config import get_settings
from prionstudy.exceptions import PrionStudyError

logger = logging.getLogger(__name__)


def _error_body(message: str, **extra) -> dict:
    return {"ok": False, "success": False, "error": message, **extra}


async def prionstudy_error_handler(request: Request, exc: PrionStudyError):
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=_error_body(exc.message, **exc.details))


async def http_exception_handler(request: Request, exc: HTTPException):
    return JSONResponse(status_code=exc.status_code, content=_error_body(str(exc.detail)))


async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    field_name = ".".join(str(p) for p in errors[0]["loc"][1:]) if errors else ""
    message = f"Invalid parameter '{field_name}'" if field_name else "Invalid payload"
    return JSONResponse(status_code=400, content=_error_body(message))


async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    return JSONResponse(status_code=429, content=_error_body(f"Too many requests: {exc.detail}"))


async def unhandled_exception_handler(request: Request, exc: Exception):
    """No stack traces to the client; log with an error_id for correlation."""
    error_id = str(uuid.uuid4())
    logger.error("Unhandled exception %s: %s", error_id, exc, exc_info=True)
    extra = {"error_id": error_id}
    if not get_settings().is_production:
        extra["message"] = str(exc)
    return JSONResponse(status_code=500, content=_error_body("Internal server error", **extra))


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(PrionStudyError, prionstudy_error_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(RateLimitExceeded, rate_limit_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
