"""Security helpers for the prompt search MCP server."""

from __future__ import annotations

import secrets
from collections.abc import Awaitable, Callable, Iterable

from starlette.middleware import Middleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.types import ASGIApp

SECRET_HEADER = "x-mcp-secret"
HEALTH_PATH = "/mcp/health"


class SharedSecretMiddleware(BaseHTTPMiddleware):
    """Reject requests that do not carry the configured shared secret."""

    def __init__(
        self, app: ASGIApp, secret: str, exempt_paths: Iterable[str] = (HEALTH_PATH,)
    ) -> None:
        super().__init__(app)
        if not secret:
            raise ValueError("Shared secret must be configured")
        self._secret = secret
        self._exempt = frozenset(exempt_paths)

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        if request.method == "OPTIONS" or request.url.path in self._exempt:
            return await call_next(request)

        provided = request.headers.get(SECRET_HEADER, "")
        if not secrets.compare_digest(provided.encode(), self._secret.encode()):
            return JSONResponse({"detail": "Unauthorized"}, status_code=401)

        return await call_next(request)


def build_security_middleware(secret: str | None) -> list[Middleware]:
    """Create the middleware stack for the HTTP transport.

    CORS is always permissive; the shared secret check is added in front of
    it only when a secret is configured.
    """

    middleware: list[Middleware] = [
        Middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_methods=["GET", "POST"],
            allow_headers=["*"],
        )
    ]

    if secret:
        middleware.insert(0, Middleware(SharedSecretMiddleware, secret=secret))

    return middleware
