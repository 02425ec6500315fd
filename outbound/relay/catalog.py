"""Payments tool catalog exposed to the calling agent.

The catalog is a declarative table of tools over ``StripeGateway``. Which
tools are reachable is decided once, at construction, from an actions
configuration shaped like::

    {"refunds": {"create": True, "read": True}, "customers": {"read": True}}

Tool calls arrive in the OpenAI function-calling shape (a name plus JSON
encoded arguments) and come back as a tool message whose content is JSON.
"""

from __future__ import annotations

import json
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict

from outbound.relay.errors import InvalidInputError, NotFoundError
from outbound.relay.payments import StripeGateway

ActionsConfig = Mapping[str, Mapping[str, bool]]

# The three capability groups the relay is allowed to reach.
DEFAULT_ACTIONS: dict[str, dict[str, bool]] = {
    "refunds": {"create": True, "read": True},
    "customers": {"read": True},
    "payment_intents": {"read": True, "update": True},
}


class ToolCall(BaseModel):
    """A single function-style invocation of a catalog tool."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    arguments: str  # JSON-encoded object


class ToolMessage(BaseModel):
    model_config = ConfigDict(frozen=True)

    tool_call_id: str
    content: str


@dataclass(frozen=True)
class CatalogTool:
    name: str
    resource: str
    action: str
    description: str
    handler: Callable[[StripeGateway, dict[str, Any]], Any]


def _require(arguments: dict[str, Any], field: str) -> str:
    value = arguments.get(field)
    if not value:
        raise InvalidInputError(f"{field} is required")
    return str(value)


def _without(arguments: dict[str, Any], *fields: str) -> dict[str, Any]:
    return {k: v for k, v in arguments.items() if k not in fields}


def _create_refund(gateway: StripeGateway, args: dict[str, Any]) -> Any:
    charge = args.get("charge") or args.get("charge_id")
    if not charge:
        raise InvalidInputError("charge is required")
    return gateway.create_refund(
        str(charge),
        amount=args.get("amount"),
        reason=args.get("reason") or "requested_by_customer",
        metadata=args.get("metadata"),
    )


TOOLS: tuple[CatalogTool, ...] = (
    # The dispatcher routes the `create_refund` name to RefundResolver before
    # the catalog is consulted; this entry only serves direct catalog calls.
    CatalogTool(
        "create_refund", "refunds", "create",
        "Refund a charge, fully or partially.",
        _create_refund,
    ),
    CatalogTool(
        "list_refunds", "refunds", "read",
        "List refunds, optionally filtered by charge or payment intent.",
        lambda gw, args: gw.list_refunds(**args),
    ),
    CatalogTool(
        "retrieve_refund", "refunds", "read",
        "Fetch one refund by id.",
        lambda gw, args: gw.retrieve_refund(_require(args, "refund")),
    ),
    CatalogTool(
        "list_customers", "customers", "read",
        "List customers, optionally filtered by e-mail.",
        lambda gw, args: gw.list_customers(**args),
    ),
    CatalogTool(
        "retrieve_customer", "customers", "read",
        "Fetch one customer by id.",
        lambda gw, args: gw.retrieve_customer(_require(args, "customer")),
    ),
    CatalogTool(
        "list_payment_intents", "payment_intents", "read",
        "List payment intents, optionally filtered by customer.",
        lambda gw, args: gw.list_payment_intents(**args),
    ),
    CatalogTool(
        "retrieve_payment_intent", "payment_intents", "read",
        "Fetch one payment intent by id.",
        lambda gw, args: gw.retrieve_payment_intent(_require(args, "payment_intent")),
    ),
    CatalogTool(
        "update_payment_intent", "payment_intents", "update",
        "Update metadata, description or amount of a payment intent.",
        lambda gw, args: gw.update_payment_intent(
            _require(args, "payment_intent"), **_without(args, "payment_intent"),
        ),
    ),
)


def _is_enabled(tool: CatalogTool, actions: ActionsConfig) -> bool:
    return bool(actions.get(tool.resource, {}).get(tool.action, False))


class ToolCatalog:
    """The set of payments tools enabled for this relay."""

    def __init__(
        self,
        gateway: StripeGateway,
        actions: ActionsConfig = DEFAULT_ACTIONS,
    ) -> None:
        self._gateway = gateway
        self._tools = {tool.name: tool for tool in TOOLS if _is_enabled(tool, actions)}

    def names(self) -> list[str]:
        return sorted(self._tools)

    def get(self, name: str) -> CatalogTool | None:
        return self._tools.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def describe(self) -> list[dict[str, Any]]:
        """Tool definitions in the OpenAI function-calling format."""
        return [
            {
                "type": "function",
                "function": {"name": tool.name, "description": tool.description},
            }
            for tool in sorted(self._tools.values(), key=lambda t: t.name)
        ]

    def handle_tool_call(self, tool_call: ToolCall) -> ToolMessage:
        tool = self._tools.get(tool_call.name)
        if tool is None:
            raise NotFoundError(f"Tool {tool_call.name} not found")

        try:
            arguments = json.loads(tool_call.arguments) if tool_call.arguments else {}
        except json.JSONDecodeError as e:
            raise InvalidInputError(f"Invalid tool arguments: {e}") from e
        if not isinstance(arguments, dict):
            raise InvalidInputError("Tool arguments must be a JSON object")

        result = tool.handler(self._gateway, arguments)
        return ToolMessage(tool_call_id=tool_call.id, content=json.dumps(result))
