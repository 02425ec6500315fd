"""Bearer token gate in front of the payments tool route.

Only the money-moving route is gated; health checks, docs and CORS
preflights pass through untouched.
"""

from __future__ import annotations

import hmac
from collections.abc import Collection

from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.types import ASGIApp, Receive, Scope, Send

from outbound.audit.logger import AuditLogger
from outbound.models import AuditEvent, AuditEventType, RiskLevel

# reason -> (status, public error); the public error never echoes the token
REJECTIONS: dict[str, tuple[int, str]] = {
    "missing_token": (401, "Authentication required"),
    "invalid_format": (401, "Authentication required"),
    "invalid_token": (403, "Access denied"),
}


def rejection_reason(auth_header: str, token: bytes) -> str | None:
    """Why an Authorization header is refused, or None when it carries the token."""
    if not auth_header:
        return "missing_token"
    if not auth_header.startswith("Bearer "):
        return "invalid_format"
    if not hmac.compare_digest(auth_header[7:].encode(), token):
        return "invalid_token"
    return None


class AuthMiddleware:
    """Requires the relay token on ``protected_paths`` (exact match)."""

    def __init__(
        self,
        app: ASGIApp,
        token: str,
        protected_paths: Collection[str],
        audit_logger: AuditLogger | None = None,
    ) -> None:
        self.app = app
        self._token = token.encode()
        self._protected = frozenset(protected_paths)
        self.audit_logger = audit_logger

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request = Request(scope)
        if request.url.path not in self._protected or request.method == "OPTIONS":
            await self.app(scope, receive, send)
            return

        reason = rejection_reason(request.headers.get("authorization", ""), self._token)
        if reason is None:
            await self.app(scope, receive, send)
            return

        self._log_failure(request, reason)
        status, error = REJECTIONS[reason]
        await JSONResponse({"error": error}, status_code=status)(scope, receive, send)

    def _log_failure(self, request: Request, reason: str) -> None:
        if self.audit_logger:
            self.audit_logger.log(AuditEvent(
                event_type=AuditEventType.AUTH_FAILURE,
                source_ip=request.client.host if request.client else None,
                route=request.url.path,
                result="failure",
                risk_level=RiskLevel.HIGH,
                status_code=REJECTIONS[reason][0],
                error=reason,
            ))
