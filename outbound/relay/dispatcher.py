"""Tool dispatch for the payments relay.

Routing is a declarative table, checked in this order:

1. exact refund / capture aliases (plus the ``capture_payment_intent``
   substring, which outranks the catalog)
2. the tool catalog
3. substring fallback: ``refund`` then ``capture``

A name nothing matches is a ``NotFoundError``.
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Collection, Mapping
from enum import Enum
from typing import TYPE_CHECKING, Any

from outbound.models import AuditEvent, AuditEventType, RiskLevel
from outbound.relay.catalog import DEFAULT_ACTIONS, ToolCall, ToolCatalog
from outbound.relay.errors import NotFoundError, RelayError
from outbound.relay.payments import StripeGateway
from outbound.relay.resolvers import CaptureResolver, RefundResolver, ToolResult

if TYPE_CHECKING:
    from outbound.audit.logger import AuditLogger

logger = logging.getLogger(__name__)


class Route(str, Enum):
    REFUND = "refund"
    CAPTURE = "capture"
    CATALOG = "catalog"


EXACT_ROUTES: dict[str, Route] = {
    "refunds_create": Route.REFUND,
    "create_refund": Route.REFUND,
    "stripe_refunds_create": Route.REFUND,
    "paymentIntents_capture": Route.CAPTURE,
    "capture_payment_intent": Route.CAPTURE,
    "stripe_paymentIntents_capture": Route.CAPTURE,
    "capturePaymentIntent": Route.CAPTURE,
    "stripe_capture_payment_intent": Route.CAPTURE,
}

# Substring rules that still take priority over the catalog
PRIORITY_SUBSTRINGS: tuple[tuple[str, Route], ...] = (
    ("capture_payment_intent", Route.CAPTURE),
)

# Lowest priority, only for names the catalog does not know
FALLBACK_SUBSTRINGS: tuple[tuple[str, Route], ...] = (
    ("refund", Route.REFUND),
    ("capture", Route.CAPTURE),
)

_AUDIT_TYPES = {
    Route.REFUND: AuditEventType.REFUND,
    Route.CAPTURE: AuditEventType.CAPTURE,
    Route.CATALOG: AuditEventType.CATALOG_TOOL,
}


def _match_substring(tool_name: str, rules: tuple[tuple[str, Route], ...]) -> Route | None:
    for fragment, route in rules:
        if fragment in tool_name:
            return route
    return None


def route_for(tool_name: str, catalog_names: Collection[str]) -> Route:
    """Pick the handler for a tool name."""
    route = EXACT_ROUTES.get(tool_name) or _match_substring(tool_name, PRIORITY_SUBSTRINGS)
    if route is not None:
        return route
    if tool_name in catalog_names:
        return Route.CATALOG
    route = _match_substring(tool_name, FALLBACK_SUBSTRINGS)
    if route is not None:
        return route
    raise NotFoundError(f"Tool {tool_name} not found")


def _risk(route: Route) -> RiskLevel:
    return RiskLevel.MEDIUM if route is Route.CATALOG else RiskLevel.HIGH


def _money_fields(route: Route, result: Any) -> dict[str, Any]:
    """Ids and amount of the refund or captured intent, as the provider reported them."""
    if not isinstance(result, Mapping):
        return {}
    if route is Route.REFUND:
        return {
            "refund_id": result.get("id"),
            "amount": result.get("amount"),
            "currency": result.get("currency"),
        }
    if route is Route.CAPTURE:
        return {
            "payment_intent_id": result.get("id"),
            "amount": result.get("amount_received"),
            "currency": result.get("currency"),
        }
    return {}


class ToolDispatcher:
    """Routes a named tool invocation to a resolver or the catalog."""

    def __init__(
        self,
        catalog: ToolCatalog,
        refunds: RefundResolver,
        captures: CaptureResolver,
        audit_logger: AuditLogger | None = None,
    ) -> None:
        self._catalog = catalog
        self._refunds = refunds
        self._captures = captures
        self._audit = audit_logger

    def dispatch(
        self,
        tool_name: str,
        parameters: Mapping[str, Any],
        source_ip: str | None = None,
    ) -> ToolResult:
        try:
            route = route_for(tool_name, self._catalog.names())
        except NotFoundError as e:
            self._log(AuditEvent(
                event_type=AuditEventType.TOOL_REJECTED,
                source_ip=source_ip,
                tool_name=tool_name,
                result="failure",
                risk_level=RiskLevel.LOW,
                status_code=e.status_code,
                error=e.message,
            ))
            raise

        try:
            if route is Route.REFUND:
                outcome = self._refunds.resolve(parameters)
            elif route is Route.CAPTURE:
                outcome = self._captures.resolve(parameters)
            else:
                outcome = self._call_catalog(tool_name, parameters)
        except RelayError as e:
            self._log(AuditEvent(
                event_type=_AUDIT_TYPES[route],
                source_ip=source_ip,
                tool_name=tool_name,
                route=route.value,
                result="failure",
                risk_level=_risk(route),
                status_code=e.status_code,
                error=e.message,
            ))
            raise

        details = None
        if route is Route.REFUND and outcome.charge_id:
            earlier = self._earlier_refunds(outcome.charge_id)
            if earlier:
                logger.warning(
                    "Charge %s refunded again; earlier refunds: %s",
                    outcome.charge_id, ", ".join(earlier),
                )
                details = {"earlier_refund_ids": earlier}

        self._log(AuditEvent(
            event_type=_AUDIT_TYPES[route],
            source_ip=source_ip,
            tool_name=tool_name,
            route=outcome.route,
            result="success",
            risk_level=_risk(route),
            status_code=200,
            charge_id=outcome.charge_id,
            details=details,
            **_money_fields(route, outcome.result),
        ))
        return outcome

    def _earlier_refunds(self, charge_id: str) -> list[str]:
        if self._audit is None:
            return []
        return [str(entry.get("refund_id")) for entry in self._audit.refunds_for_charge(charge_id)]

    def _call_catalog(self, tool_name: str, parameters: Mapping[str, Any]) -> ToolResult:
        tool_call = ToolCall(
            id=f"call_{int(time.time() * 1000)}",
            name=tool_name,
            arguments=json.dumps(dict(parameters)),
        )
        message = self._catalog.handle_tool_call(tool_call)
        return ToolResult(result=message.content, route="catalog")

    def _log(self, event: AuditEvent) -> None:
        if self._audit is not None:
            self._audit.log(event)


def build_dispatcher(
    secret_key: str,
    audit_logger: AuditLogger | None = None,
) -> ToolDispatcher:
    """Wire a dispatcher against the live Stripe API."""
    gateway = StripeGateway(secret_key)
    return ToolDispatcher(
        catalog=ToolCatalog(gateway, DEFAULT_ACTIONS),
        refunds=RefundResolver(gateway),
        captures=CaptureResolver(gateway),
        audit_logger=audit_logger,
    )
