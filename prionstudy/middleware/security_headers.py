from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from prionstudy.config import get_settings


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Adds the hardening headers the public endpoints are expected to carry."""
    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "no-referrer"
        response.headers["Content-Security-Policy"] = (
            "default-src 'self'; style-src 'self' 'unsafe-inline'; "
            "script-src 'self' 'unsafe-inline'; img-src 'self' data: https:"
        )
        if get_settings().is_production:
            response.headers["Strict-Transport-Security"] = "max-age=15552000; includeSubDomains"
        return response


class NoCacheMiddleware(BaseHTTPMiddleware):
    """Middleware to add no-cache headers so patient data never sits in a browser cache."""
    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        if request.url.path.startswith("/api/"):
            response.headers["Cache-Control"] = "no-store, no-cache, must-revalidate, proxy-revalidate, max-age=0"
            response.headers["Expires"] = "0"
            response.headers["Pragma"] = "no-cache"
        return response
