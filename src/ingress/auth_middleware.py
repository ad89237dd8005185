"""ASGI middleware guarding the log-read endpoints with a Bearer token."""

from __future__ import annotations

import hmac
import logging

from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.types import ASGIApp, Receive, Scope, Send

logger = logging.getLogger(__name__)

# Path prefixes that require the logs token
PROTECTED_PREFIXES = ("/logs",)
# Webhooks posted to a "logs" channel still reach the relay
PROTECTED_METHODS = frozenset({"GET", "HEAD"})


class LogsAuthMiddleware:
    """Validates Bearer tokens for protected reads using constant-time comparison.

    With no token configured the protected paths are closed entirely.
    """

    def __init__(
        self,
        app: ASGIApp,
        token: str,
        protected_prefixes: tuple[str, ...] = PROTECTED_PREFIXES,
        protected_methods: frozenset[str] = PROTECTED_METHODS,
    ) -> None:
        self.app = app
        self._token = token.encode()
        self._prefixes = protected_prefixes
        self._methods = protected_methods

    def _is_protected(self, method: str, path: str) -> bool:
        if method not in self._methods:
            return False
        return any(path == p or path.startswith(f"{p}/") for p in self._prefixes)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request = Request(scope)
        path = request.url.path

        if not self._is_protected(request.method, path):
            await self.app(scope, receive, send)
            return

        if not self._token:
            response = JSONResponse({"error": "Log access disabled"}, status_code=403)
            await response(scope, receive, send)
            return

        auth_header = request.headers.get("authorization", "")
        if not auth_header.startswith("Bearer "):
            response = JSONResponse({"error": "Authentication required"}, status_code=401)
            self._log_failure(request, "missing_token" if not auth_header else "invalid_format")
            await response(scope, receive, send)
            return

        provided_token = auth_header[7:].encode()
        if not hmac.compare_digest(provided_token, self._token):
            response = JSONResponse({"error": "Access denied"}, status_code=403)
            self._log_failure(request, "invalid_token")
            await response(scope, receive, send)
            return

        await self.app(scope, receive, send)

    def _log_failure(self, request: Request, reason: str) -> None:
        logger.warning(
            "Rejected %s %s from %s: %s",
            request.method,
            request.url.path,
            request.client.host if request.client else "unknown",
            reason,
        )
