"""Shared test fixtures for outbound."""

from __future__ import annotations

from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import pytest
import stripe

from outbound.audit.logger import AuditLogger
from outbound.models import AuditEvent, AuditEventType, BatchCall, BatchCallDetails, Recipient, RiskLevel
from outbound.relay.payments import StripeGateway

# 2026-01-05 15:04:00 UTC
CREATED_AT = 1767625440

STRIPE_KEY = "sk_test_123"


@pytest.fixture
def gateway() -> MagicMock:
    """Payments gateway double; refunds and captures echo their input."""
    mock = MagicMock(spec=StripeGateway)
    mock.create_refund.side_effect = lambda charge_id, **kw: {
        "id": "re_1", "object": "refund", "charge": charge_id, **kw,
    }
    mock.capture_payment_intent.side_effect = lambda pi, amount_to_capture=None: {
        "id": pi, "object": "payment_intent", "status": "succeeded",
        "amount_received": amount_to_capture,
    }
    return mock


@pytest.fixture
def stripe_client() -> MagicMock:
    """``StripeClient`` double whose services return real SDK objects."""
    client = MagicMock()
    client.refunds.create.side_effect = lambda params: stripe_object(
        {"id": "re_1", "object": "refund", "status": "succeeded", **params},
    )
    client.payment_intents.capture.side_effect = lambda pi, params: stripe_object({
        "id": pi, "object": "payment_intent", "status": "succeeded",
        "amount_received": params.get("amount_to_capture", 2000),
    })
    return client


@pytest.fixture
def sdk_gateway(stripe_client: MagicMock) -> StripeGateway:
    return StripeGateway(STRIPE_KEY, client=stripe_client)


@pytest.fixture
def mock_audit_logger() -> MagicMock:
    return MagicMock(spec=AuditLogger)


@pytest.fixture
def audit_log_path(tmp_path: Path) -> Path:
    return tmp_path / "audit" / "relay.jsonl"


# --- Factory functions for test data ---


def make_audit_event(**kwargs: Any) -> AuditEvent:
    """Factory for AuditEvent with sensible defaults."""
    defaults: dict[str, object] = {
        "event_type": AuditEventType.REFUND,
        "tool_name": "create_refund",
        "route": "refund:charge",
        "result": "success",
        "risk_level": RiskLevel.HIGH,
        "charge_id": "ch_1",
        "refund_id": "re_1",
        "amount": 500,
        "currency": "usd",
    }
    defaults.update(kwargs)
    return AuditEvent(**defaults)  # type: ignore[arg-type]


def make_batch_call(**kwargs: Any) -> BatchCall:
    """Factory for BatchCall with sensible defaults."""
    defaults: dict[str, Any] = {
        "id": "btcal_1",
        "name": "Spring renewals",
        "agent_id": "agent_1",
        "agent_name": "Renewals agent",
        "created_at_unix": CREATED_AT,
        "scheduled_time_unix": CREATED_AT,
        "total_calls_dispatched": 3,
        "total_calls_scheduled": 10,
        "last_updated_at_unix": CREATED_AT,
        "status": "in_progress",
        "phone_number_id": None,
        "phone_provider": None,
    }
    defaults.update(kwargs)
    return BatchCall(**defaults)


def make_recipient(**kwargs: Any) -> Recipient:
    """Factory for Recipient with sensible defaults."""
    defaults: dict[str, Any] = {
        "id": "rcp_1",
        "phone_number": "+15550001111",
        "whatsapp_user_id": None,
        "status": "completed",
        "conversation_id": "conv_1234567890",
        "created_at_unix": CREATED_AT,
        "updated_at_unix": CREATED_AT,
    }
    defaults.update(kwargs)
    return Recipient(**defaults)


def make_batch_call_details(
    recipients: list[Recipient] | None = None, **kwargs: Any,
) -> BatchCallDetails:
    batch = make_batch_call(**kwargs)
    return BatchCallDetails(
        **batch.model_dump(),
        recipients=[make_recipient()] if recipients is None else recipients,
    )


def stripe_object(values: dict[str, Any]) -> stripe.StripeObject:
    """An SDK object as the client returns it; nested dicts become objects too."""
    return stripe.StripeObject.construct_from(values, STRIPE_KEY)


def stripe_page(*items: dict[str, Any]) -> stripe.ListObject:
    return stripe.ListObject.construct_from(
        {"object": "list", "data": list(items), "has_more": False, "url": "/v1/test"},
        STRIPE_KEY,
    )


def stripe_search(*items: dict[str, Any]) -> stripe.SearchResultObject:
    return stripe.SearchResultObject.construct_from(
        {"object": "search_result", "data": list(items), "has_more": False, "url": "/v1/test"},
        STRIPE_KEY,
    )
