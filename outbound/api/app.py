"""FastAPI application exposing the payments tool relay."""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Callable

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from outbound.api.auth_middleware import AuthMiddleware
from outbound.api.cors_middleware import CorsMiddleware
from outbound.audit.logger import AuditLogger
from outbound.relay.dispatcher import ToolDispatcher, build_dispatcher
from outbound.relay.errors import ConfigurationError, InvalidInputError, RelayError

logger = logging.getLogger(__name__)

TOOL_ROUTE = "/api/stripe/call-stripe-tool"

DispatcherFactory = Callable[[str, AuditLogger | None], ToolDispatcher]


def create_app_from_env() -> FastAPI:
    """Factory for uvicorn --factory: reads config from environment variables.

    STRIPE_SECRET_KEY is read per request, so a missing key surfaces as a
    configuration error on the call instead of a failed startup.
    """
    audit_log = os.environ.get("AUDIT_LOG_PATH")
    return create_app(
        secret_key_provider=lambda: os.environ.get("STRIPE_SECRET_KEY"),
        token=os.environ.get("RELAY_TOKEN") or None,
        audit_logger=AuditLogger.from_env(audit_log) if audit_log else None,
    )


def create_app(
    secret_key_provider: Callable[[], str | None],
    token: str | None = None,
    audit_logger: AuditLogger | None = None,
    dispatcher_factory: DispatcherFactory = build_dispatcher,
) -> FastAPI:
    """Create the relay app; CORS applies to every response, auth only if a token is set."""
    app = FastAPI(docs_url=None, redoc_url=None)

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.post(TOOL_ROUTE)
    async def call_tool(request: Request) -> JSONResponse:
        try:
            secret_key = secret_key_provider()
            if not secret_key:
                raise ConfigurationError("STRIPE_SECRET_KEY not configured")

            tool_name, parameters = await _read_tool_request(request)
            dispatcher = dispatcher_factory(secret_key, audit_logger)
            source_ip = request.client.host if request.client else None
            outcome = await run_in_threadpool(
                dispatcher.dispatch, tool_name, parameters, source_ip,
            )
            return JSONResponse(outcome.to_body())
        except RelayError as e:
            if e.status_code >= 500:
                logger.error("Error calling Stripe tool: %s", e.message)
            return JSONResponse({"error": e.message}, status_code=e.status_code)
        except Exception as e:
            logger.exception("Unexpected error calling Stripe tool")
            return JSONResponse(
                {"error": str(e) or "Failed to call Stripe tool"}, status_code=500,
            )

    if token:
        app.add_middleware(
            AuthMiddleware, token=token, protected_paths={TOOL_ROUTE}, audit_logger=audit_logger,
        )
    # Added last so it wraps auth: pre-flight and 401s get CORS headers too
    app.add_middleware(CorsMiddleware)

    return app


async def _read_tool_request(request: Request) -> tuple[str, dict[str, object]]:
    try:
        body = await request.json()
    except json.JSONDecodeError as e:
        raise InvalidInputError("Request body must be valid JSON") from e
    if not isinstance(body, dict):
        raise InvalidInputError("Request body must be a JSON object")

    tool_name = body.get("toolName")
    if not tool_name or not isinstance(tool_name, str):
        raise InvalidInputError("toolName is required")

    parameters = body.get("parameters") or {}
    if not isinstance(parameters, dict):
        raise InvalidInputError("parameters must be an object")
    return tool_name, parameters
