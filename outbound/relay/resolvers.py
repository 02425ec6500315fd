"""Refund and capture resolution.

``RefundResolver`` turns whichever identifier the agent supplied into exactly
one charge and refunds it. Precedence, first match wins::

    charge_id  >  payment_intent_id  >  order identifier  >  customer identifier

``CaptureResolver`` captures a payment intent, fully or partially.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

from outbound.relay.errors import InvalidInputError, InvalidStateError, NotFoundError
from outbound.relay.payments import PaymentInfo, StripeGateway
from outbound.relay.references import charge_id_of, charge_ref, latest_charge_of

logger = logging.getLogger(__name__)

DEFAULT_REFUND_REASON = "requested_by_customer"

ORDER_IDENTIFIER_FIELDS = ("order_identifier", "orderIdentifier")
CUSTOMER_IDENTIFIER_FIELDS = ("customer_identifier", "customerIdentifier")
PAYMENT_INTENT_ID_FIELDS = ("payment_intent_id", "paymentIntentId", "intent_id", "id")

CustomerLookup = Callable[[str], dict[str, Any] | None]
PaymentLookup = Callable[[str], PaymentInfo | None]


@dataclass
class ToolResult:
    """Successful relay outcome, rendered as ``{"result": ..., "message": ...}``."""

    result: Any
    message: str | None = None
    route: str = "catalog"
    charge_id: str | None = None

    def to_body(self) -> dict[str, Any]:
        body: dict[str, Any] = {"result": self.result}
        if self.message is not None:
            body["message"] = self.message
        return body


def _first_present(parameters: Mapping[str, Any], fields: tuple[str, ...]) -> Any:
    for name in fields:
        value = parameters.get(name)
        if value:
            return value
    return None


class RefundResolver:
    """Resolves a refund request to a single charge and refunds it."""

    def __init__(
        self,
        gateway: StripeGateway,
        find_customer: CustomerLookup | None = None,
        find_payment: PaymentLookup | None = None,
    ) -> None:
        self._gateway = gateway
        self._find_customer = find_customer or gateway.find_customer_by_identifier
        self._find_payment = find_payment or gateway.find_payment_by_identifier

    def resolve(self, parameters: Mapping[str, Any]) -> ToolResult:
        if parameters.get("charge_id"):
            return self._refund(str(parameters["charge_id"]), parameters)

        if parameters.get("payment_intent_id"):
            return self._refund_payment_intent(str(parameters["payment_intent_id"]), parameters)

        order_identifier = _first_present(parameters, ORDER_IDENTIFIER_FIELDS)
        customer_identifier = _first_present(parameters, CUSTOMER_IDENTIFIER_FIELDS)

        if order_identifier:
            payment = self._find_payment(str(order_identifier))
            if payment is not None:
                return self._refund_order(str(order_identifier), payment, parameters)
            logger.info("Order %s not found", order_identifier)

        if customer_identifier:
            return self._refund_latest_for_customer(str(customer_identifier), parameters)

        raise InvalidInputError(
            "Please provide either charge_id, payment_intent_id, "
            "customer_identifier, or order_identifier",
        )

    def _refund_payment_intent(
        self, payment_intent_id: str, parameters: Mapping[str, Any],
    ) -> ToolResult:
        intent = self._gateway.retrieve_payment_intent(payment_intent_id)
        ref = latest_charge_of(intent)
        if ref is None:
            raise InvalidStateError("Payment intent has no charge to refund")
        return self._refund(charge_id_of(ref), parameters, route="refund:payment_intent")

    def _refund_order(
        self, order_identifier: str, payment: PaymentInfo, parameters: Mapping[str, Any],
    ) -> ToolResult:
        ref = charge_ref(payment.charge) or latest_charge_of(payment.payment_intent)
        if ref is None:
            raise InvalidStateError("Could not find charge to refund")
        result = self._refund(charge_id_of(ref), parameters, route="refund:order")
        result.message = f"Refund processed for order {order_identifier}"
        return result

    def _refund_latest_for_customer(
        self, customer_identifier: str, parameters: Mapping[str, Any],
    ) -> ToolResult:
        customer = self._find_customer(customer_identifier)
        if not customer:
            raise NotFoundError(f"Customer not found: {customer_identifier}")

        charges = self._gateway.list_recent_charges(customer["id"])
        if not charges:
            raise NotFoundError("No charges found for this customer")

        latest = charges[0]
        result = self._refund(latest["id"], parameters, route="refund:customer")
        result.message = (
            f"Refund processed for customer {customer['id']} on charge {latest['id']}"
        )
        return result

    def _refund(
        self, charge_id: str, parameters: Mapping[str, Any], route: str = "refund:charge",
    ) -> ToolResult:
        refund = self._gateway.create_refund(
            charge_id,
            amount=parameters.get("amount"),
            reason=parameters.get("reason") or DEFAULT_REFUND_REASON,
            metadata=parameters.get("metadata") or {},
        )
        logger.info("Refund issued on charge %s via %s", charge_id, route)
        return ToolResult(result=refund, route=route, charge_id=charge_id)


def parse_capture_amount(value: object) -> int | None:
    """Rounded capture amount, or ``None`` when no usable amount was given.

    Numeric strings are accepted; anything unparsable, non-finite or zero
    means "capture the full amount".
    """
    if isinstance(value, bool) or value is None or value == "":
        return None
    if isinstance(value, int | float):
        amount = float(value)
    elif isinstance(value, str):
        try:
            amount = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    if not math.isfinite(amount) or amount == 0:
        return None
    return math.floor(amount + 0.5)


class CaptureResolver:
    """Captures an authorized payment intent."""

    def __init__(self, gateway: StripeGateway) -> None:
        self._gateway = gateway

    def resolve(self, parameters: Mapping[str, Any]) -> ToolResult:
        payment_intent_id = _first_present(parameters, PAYMENT_INTENT_ID_FIELDS)
        if not payment_intent_id:
            raise InvalidInputError("payment_intent_id is required to capture a payment")

        amount = parse_capture_amount(parameters.get("amount"))
        captured = self._gateway.capture_payment_intent(
            str(payment_intent_id), amount_to_capture=amount,
        )
        logger.info(
            "Captured payment intent %s (%s)",
            payment_intent_id, "full" if amount is None else amount,
        )
        return ToolResult(result=captured, route="capture")
