"""Stripe-backed payments gateway.

The resolvers and the tool catalog only talk to the provider through this
class, which keeps every SDK call (and the translation of SDK failures into
``UpstreamError``) in one place.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any

import stripe

from outbound.relay.errors import UpstreamError

logger = logging.getLogger(__name__)

_CHARGE_HISTORY_LIMIT = 10


@dataclass(frozen=True)
class PaymentInfo:
    """What an order lookup found: a charge, a payment intent, or both."""

    charge: dict[str, Any] | None = None
    payment_intent: dict[str, Any] | None = None


@contextmanager
def _upstream(operation: str) -> Iterator[None]:
    try:
        yield
    except stripe.StripeError as exc:
        logger.warning("Stripe %s failed: %s", operation, exc)
        message = getattr(exc, "user_message", None) or str(exc) or f"Stripe {operation} failed"
        raise UpstreamError(message) from exc


def _plain(obj: stripe.StripeObject) -> dict[str, Any]:
    return obj.to_dict(for_json=True)


def _plain_page(
    page: stripe.ListObject[Any] | stripe.SearchResultObject[Any],
) -> list[dict[str, Any]]:
    return [_plain(item) for item in page.data]


def _search_literal(value: str) -> str:
    return value.replace("\\", "\\\\").replace("'", "\\'")


class StripeGateway:
    """Thin wrapper around ``stripe.StripeClient``.

    SDK objects never leave this class: every method returns plain dicts
    (recursively, JSON-safe) so callers can use ``.get`` and serialize them.
    """

    def __init__(self, secret_key: str, client: stripe.StripeClient | None = None) -> None:
        self._client = client or stripe.StripeClient(secret_key)

    # --- Refunds ---

    def create_refund(
        self,
        charge_id: str,
        amount: int | None = None,
        reason: str = "requested_by_customer",
        metadata: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        params: dict[str, Any] = {
            "charge": charge_id,
            "reason": reason,
            "metadata": metadata or {},
        }
        if amount is not None:
            params["amount"] = amount
        with _upstream("refund create"):
            return _plain(self._client.refunds.create(params=params))

    def list_refunds(self, **filters: Any) -> list[dict[str, Any]]:
        with _upstream("refund list"):
            return _plain_page(self._client.refunds.list(params=filters))

    def retrieve_refund(self, refund_id: str) -> dict[str, Any]:
        with _upstream("refund retrieve"):
            return _plain(self._client.refunds.retrieve(refund_id))

    # --- Payment intents ---

    def retrieve_payment_intent(
        self, payment_intent_id: str, expand_latest_charge: bool = False,
    ) -> dict[str, Any]:
        params = {"expand": ["latest_charge"]} if expand_latest_charge else {}
        with _upstream("payment intent retrieve"):
            return _plain(self._client.payment_intents.retrieve(payment_intent_id, params=params))

    def list_payment_intents(self, **filters: Any) -> list[dict[str, Any]]:
        with _upstream("payment intent list"):
            return _plain_page(self._client.payment_intents.list(params=filters))

    def update_payment_intent(self, payment_intent_id: str, **changes: Any) -> dict[str, Any]:
        with _upstream("payment intent update"):
            return _plain(self._client.payment_intents.update(payment_intent_id, params=changes))

    def capture_payment_intent(
        self, payment_intent_id: str, amount_to_capture: int | None = None,
    ) -> dict[str, Any]:
        params: dict[str, Any] = {}
        if amount_to_capture is not None:
            params["amount_to_capture"] = amount_to_capture
        with _upstream("payment intent capture"):
            return _plain(self._client.payment_intents.capture(payment_intent_id, params=params))

    # --- Charges and customers ---

    def list_recent_charges(
        self, customer_id: str, limit: int = _CHARGE_HISTORY_LIMIT,
    ) -> list[dict[str, Any]]:
        """Most recent first, as returned by the provider."""
        with _upstream("charge list"):
            page = self._client.charges.list(params={"customer": customer_id, "limit": limit})
            return _plain_page(page)

    def list_customers(self, **filters: Any) -> list[dict[str, Any]]:
        with _upstream("customer list"):
            return _plain_page(self._client.customers.list(params=filters))

    def retrieve_customer(self, customer_id: str) -> dict[str, Any]:
        with _upstream("customer retrieve"):
            return _plain(self._client.customers.retrieve(customer_id))

    # --- Identifier lookups ---

    def find_customer_by_identifier(self, identifier: str) -> dict[str, Any] | None:
        """Resolve a customer id, e-mail, phone number or name to a customer."""
        identifier = identifier.strip()
        if not identifier:
            return None

        with _upstream("customer lookup"):
            if identifier.startswith("cus_"):
                try:
                    customer = _plain(self._client.customers.retrieve(identifier))
                except stripe.InvalidRequestError:
                    return None
                return None if customer.get("deleted") else customer

            if "@" in identifier:
                page = self._client.customers.list(params={"email": identifier, "limit": 1})
                return _plain(page.data[0]) if page.data else None

            literal = _search_literal(identifier)
            for query in (f"phone:'{literal}'", f"name:'{literal}'"):
                result = self._client.customers.search(params={"query": query, "limit": 1})
                if result.data:
                    return _plain(result.data[0])
        return None

    def find_payment_by_identifier(self, identifier: str) -> PaymentInfo | None:
        """Resolve a charge id, payment intent id or order id to a payment."""
        identifier = identifier.strip()
        if not identifier:
            return None

        with _upstream("payment lookup"):
            try:
                if identifier.startswith("ch_"):
                    return PaymentInfo(charge=_plain(self._client.charges.retrieve(identifier)))
                if identifier.startswith("pi_"):
                    intent = self._client.payment_intents.retrieve(
                        identifier, params={"expand": ["latest_charge"]},
                    )
                    return PaymentInfo(payment_intent=_plain(intent))
            except stripe.InvalidRequestError:
                return None

            query = f"metadata['order_id']:'{_search_literal(identifier)}'"
            result = self._client.payment_intents.search(
                params={"query": query, "limit": 1, "expand": ["data.latest_charge"]},
            )
            if result.data:
                return PaymentInfo(payment_intent=_plain(result.data[0]))
        return None
