"""ASGI middleware for the proxy event endpoints."""

from __future__ import annotations

import secrets
from typing import TYPE_CHECKING

from starlette.responses import JSONResponse

if TYPE_CHECKING:
    from starlette.types import ASGIApp, Receive, Scope, Send

PUBLIC_PATHS = frozenset({"/health"})


class ApiKeyMiddleware:
    """Reject HTTP requests whose X-API-Key header does not match the shared key.

    Paths in PUBLIC_PATHS are always served so that liveness checks work
    without the secret.
    """

    def __init__(self, app: ASGIApp, *, api_key: str) -> None:
        self.app = app
        self._api_key = api_key.encode()

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or scope["path"] in PUBLIC_PATHS:
            await self.app(scope, receive, send)
            return

        provided = b""
        for name, value in scope.get("headers", []):
            if name == b"x-api-key":
                provided = value
                break

        if not secrets.compare_digest(provided, self._api_key):
            response = JSONResponse({"error": "Invalid or missing API key"}, status_code=401)
            await response(scope, receive, send)
            return

        await self.app(scope, receive, send)
