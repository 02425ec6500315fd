"""Tests for the CORS and auth middlewares."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from httpx import ASGITransport, AsyncClient
from starlette.applications import Starlette
from starlette.responses import JSONResponse, PlainTextResponse
from starlette.routing import Route

from outbound.api.auth_middleware import AuthMiddleware, rejection_reason
from outbound.api.cors_middleware import CORS_HEADERS, CorsMiddleware
from outbound.models import AuditEventType

TOKEN = "test-relay-token-12345"


def _inner_app() -> Starlette:
    async def tool(request):  # noqa: ANN001
        return PlainTextResponse("OK")

    async def broken(request):  # noqa: ANN001
        return JSONResponse({"error": "nope"}, status_code=404)

    async def health(request):  # noqa: ANN001
        return PlainTextResponse("healthy")

    return Starlette(routes=[
        Route("/tool", tool, methods=["POST"]),
        Route("/broken", broken),
        Route("/health", health),
    ])


def _assert_cors(headers) -> None:  # noqa: ANN001
    for name, value in CORS_HEADERS.items():
        assert headers[name] == value


class TestCorsMiddleware:
    @pytest.mark.asyncio
    async def test_preflight_answered_with_empty_body(self) -> None:
        app = CorsMiddleware(_inner_app())
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            resp = await client.options("/tool")
        assert resp.status_code == 200
        assert resp.json() == {}
        _assert_cors(resp.headers)

    @pytest.mark.asyncio
    async def test_headers_on_success_and_error(self) -> None:
        app = CorsMiddleware(_inner_app())
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            ok = await client.post("/tool")
            missing = await client.get("/broken")
        _assert_cors(ok.headers)
        assert missing.status_code == 404
        _assert_cors(missing.headers)

    @pytest.mark.asyncio
    async def test_headers_are_not_duplicated(self) -> None:
        app = CorsMiddleware(_inner_app())
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            resp = await client.post("/tool")
        assert len(resp.headers.get_list("access-control-allow-origin")) == 1


class TestRejectionReason:
    @pytest.mark.parametrize(("header", "reason"), [
        ("", "missing_token"),
        ("Token abc", "invalid_format"),
        (TOKEN, "invalid_format"),
        ("Bearer wrong", "invalid_token"),
        (f"Bearer {TOKEN}", None),
    ])
    def test_reasons(self, header: str, reason: str | None) -> None:
        assert rejection_reason(header, TOKEN.encode()) == reason


class TestAuthMiddleware:
    def _app(self, audit_logger: MagicMock | None = None) -> object:
        return CorsMiddleware(AuthMiddleware(
            _inner_app(), token=TOKEN, protected_paths={"/tool"}, audit_logger=audit_logger,
        ))

    @pytest.mark.asyncio
    async def test_valid_token_passes(self) -> None:
        transport = ASGITransport(app=self._app())
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            resp = await client.post("/tool", headers={"Authorization": f"Bearer {TOKEN}"})
        assert resp.status_code == 200

    @pytest.mark.asyncio
    async def test_missing_token_returns_401_with_cors(self) -> None:
        transport = ASGITransport(app=self._app())
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            resp = await client.post("/tool")
        assert resp.status_code == 401
        assert resp.json() == {"error": "Authentication required"}
        _assert_cors(resp.headers)

    @pytest.mark.asyncio
    async def test_invalid_token_returns_403_without_leaking(self) -> None:
        transport = ASGITransport(app=self._app())
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            resp = await client.post("/tool", headers={"Authorization": "Bearer wrong"})
        assert resp.status_code == 403
        assert "wrong" not in resp.text
        assert TOKEN not in resp.text

    @pytest.mark.asyncio
    async def test_unprotected_paths_and_preflight_skip_auth(self) -> None:
        transport = ASGITransport(app=self._app())
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            health = await client.get("/health")
            other = await client.get("/broken")
            preflight = await client.options("/tool")
        assert health.status_code == 200
        assert other.status_code == 404
        assert preflight.status_code == 200

    @pytest.mark.asyncio
    async def test_failure_logged_with_route_and_reason(self) -> None:
        audit = MagicMock()
        transport = ASGITransport(app=self._app(audit_logger=audit))
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            await client.post("/tool", headers={"Authorization": "Token abc"})

        event = audit.log.call_args[0][0]
        assert event.event_type == AuditEventType.AUTH_FAILURE
        assert event.route == "/tool"
        assert event.error == "invalid_format"
        assert event.status_code == 401

    @pytest.mark.asyncio
    async def test_unprotected_path_is_not_audited(self) -> None:
        audit = MagicMock()
        transport = ASGITransport(app=self._app(audit_logger=audit))
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            await client.get("/health")
        audit.log.assert_not_called()
