"""
Browser-facing protections: response security headers and double-submit
CSRF checks for requests authenticated by the `vc_session` cookie.
"""

from __future__ import annotations

import secrets

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from app.core.errors import CSRFValidationError, error_response

SESSION_COOKIE = "vc_session"
CSRF_COOKIE = "vc_csrf"
CSRF_HEADER = "X-CSRF-Token"

SAFE_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})

# The player page needs blob: media and the notification socket needs ws(s):
SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "X-XSS-Protection": "0",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Permissions-Policy": "camera=(), microphone=(), geolocation=()",
    "Content-Security-Policy": (
        "default-src 'self'; "
        "script-src 'self' 'unsafe-inline' https://cdn.jsdelivr.net; "
        "style-src 'self' 'unsafe-inline' https://cdn.jsdelivr.net; "
        "img-src 'self' data: https://fastapi.tiangolo.com; "
        "media-src 'self' blob:; "
        "connect-src 'self' ws: wss:; "
        "frame-ancestors 'none';"
    ),
    "Strict-Transport-Security": "max-age=63072000; includeSubDomains; preload",
}


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        response = await call_next(request)
        response.headers.update(SECURITY_HEADERS)
        return response


def needs_csrf_check(request: Request) -> bool:
    """Only unsafe requests that ride on the session cookie are checked.

    Bearer clients and requests without a session cookie cannot be forged
    by a third-party page.
    """
    return (
        request.method not in SAFE_METHODS
        and not request.headers.get("Authorization")
        and SESSION_COOKIE in request.cookies
    )


def csrf_token_matches(request: Request) -> bool:
    cookie_token = request.cookies.get(CSRF_COOKIE) or ""
    header_token = request.headers.get(CSRF_HEADER) or ""
    return bool(cookie_token) and secrets.compare_digest(
        cookie_token.encode(), header_token.encode()
    )


class CSRFMiddleware(BaseHTTPMiddleware):
    """Double-submit cookie check: the `vc_csrf` cookie must be echoed in
    the `X-CSRF-Token` header."""

    async def dispatch(self, request: Request, call_next) -> Response:
        if needs_csrf_check(request) and not csrf_token_matches(request):
            return error_response(CSRFValidationError())
        return await call_next(request)
