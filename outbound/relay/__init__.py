"""Payments tool relay.

This package forwards tool invocations from a conversational agent to the
payments provider:
- Tool routing (aliases, catalog, substring fallback)
- Refund resolution from charge / payment intent / order / customer ids
- Payment intent capture
"""

from outbound.relay.catalog import DEFAULT_ACTIONS, ToolCall, ToolCatalog, ToolMessage
from outbound.relay.dispatcher import Route, ToolDispatcher, build_dispatcher, route_for
from outbound.relay.errors import (
    ConfigurationError,
    InvalidInputError,
    InvalidStateError,
    NotFoundError,
    RelayError,
    UpstreamError,
)
from outbound.relay.payments import PaymentInfo, StripeGateway
from outbound.relay.references import ChargeId, ChargeRef, ExpandedCharge, charge_id_of
from outbound.relay.resolvers import CaptureResolver, RefundResolver, ToolResult

__all__ = [
    # Errors
    "ConfigurationError",
    "InvalidInputError",
    "InvalidStateError",
    "NotFoundError",
    "RelayError",
    "UpstreamError",
    # Components
    "CaptureResolver",
    "RefundResolver",
    "StripeGateway",
    "ToolCatalog",
    "ToolDispatcher",
    "build_dispatcher",
    "route_for",
    # Models
    "ChargeId",
    "ChargeRef",
    "DEFAULT_ACTIONS",
    "ExpandedCharge",
    "PaymentInfo",
    "Route",
    "ToolCall",
    "ToolMessage",
    "ToolResult",
    "charge_id_of",
]
