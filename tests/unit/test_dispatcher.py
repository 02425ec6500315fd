"""Tests for tool routing and dispatch."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from outbound.audit.logger import AuditLogger
from outbound.models import AuditEventType, RiskLevel
from outbound.relay.catalog import ToolCatalog, ToolMessage
from outbound.relay.dispatcher import Route, ToolDispatcher, build_dispatcher, route_for
from outbound.relay.errors import InvalidInputError, NotFoundError
from outbound.relay.resolvers import CaptureResolver, RefundResolver, ToolResult
from tests.conftest import make_audit_event

CATALOG_NAMES = ["list_customers", "retrieve_payment_intent", "update_payment_intent"]


class TestRouteFor:
    @pytest.mark.parametrize("name", ["refunds_create", "create_refund", "stripe_refunds_create"])
    def test_refund_aliases(self, name: str) -> None:
        assert route_for(name, CATALOG_NAMES + [name]) is Route.REFUND

    @pytest.mark.parametrize("name", [
        "paymentIntents_capture",
        "capture_payment_intent",
        "stripe_paymentIntents_capture",
        "capturePaymentIntent",
        "stripe_capture_payment_intent",
        "my_capture_payment_intent_v2",
    ])
    def test_capture_aliases(self, name: str) -> None:
        assert route_for(name, CATALOG_NAMES) is Route.CAPTURE

    def test_capture_payment_intent_substring_outranks_catalog(self) -> None:
        name = "custom_capture_payment_intent"
        assert route_for(name, [*CATALOG_NAMES, name]) is Route.CAPTURE

    def test_catalog_tool(self) -> None:
        assert route_for("list_customers", CATALOG_NAMES) is Route.CATALOG

    def test_catalog_outranks_substring_fallback(self) -> None:
        assert route_for("list_refunds", ["list_refunds"]) is Route.CATALOG

    @pytest.mark.parametrize(("name", "route"), [
        ("issue_refund_now", Route.REFUND),
        ("capture_funds", Route.CAPTURE),
        ("partial_capture", Route.CAPTURE),
        ("refund_and_capture", Route.REFUND),
    ])
    def test_substring_fallback(self, name: str, route: Route) -> None:
        assert route_for(name, CATALOG_NAMES) is route

    def test_unknown_tool(self) -> None:
        with pytest.raises(NotFoundError, match="Tool delete_everything not found"):
            route_for("delete_everything", CATALOG_NAMES)


def _dispatcher(**kwargs: object) -> tuple[ToolDispatcher, dict[str, MagicMock]]:
    mocks = {
        "catalog": MagicMock(spec=ToolCatalog),
        "refunds": MagicMock(spec=RefundResolver),
        "captures": MagicMock(spec=CaptureResolver),
    }
    mocks["catalog"].names.return_value = CATALOG_NAMES
    mocks["refunds"].resolve.return_value = ToolResult(
        result={"id": "re_1", "amount": 500, "currency": "usd", "charge": "ch_1"},
        route="refund:charge",
        charge_id="ch_1",
    )
    mocks["captures"].resolve.return_value = ToolResult(
        result={"id": "pi_1", "amount_received": 151, "currency": "eur"}, route="capture",
    )
    mocks["catalog"].handle_tool_call.return_value = ToolMessage(
        tool_call_id="call_1", content='{"data": []}',
    )
    dispatcher = ToolDispatcher(
        catalog=mocks["catalog"],
        refunds=mocks["refunds"],
        captures=mocks["captures"],
        **kwargs,  # type: ignore[arg-type]
    )
    return dispatcher, mocks


class TestToolDispatcher:
    def test_refund_alias_goes_to_refund_resolver(self) -> None:
        dispatcher, mocks = _dispatcher()
        outcome = dispatcher.dispatch("refunds_create", {"charge_id": "ch_1"})

        mocks["refunds"].resolve.assert_called_once_with({"charge_id": "ch_1"})
        mocks["catalog"].handle_tool_call.assert_not_called()
        assert outcome.result["id"] == "re_1"

    def test_unknown_capture_name_goes_to_capture_resolver(self) -> None:
        dispatcher, mocks = _dispatcher()
        dispatcher.dispatch("agent_capture_tool", {"payment_intent_id": "pi_1"})

        mocks["captures"].resolve.assert_called_once()
        mocks["catalog"].handle_tool_call.assert_not_called()

    def test_catalog_call_is_synthesized(self) -> None:
        dispatcher, mocks = _dispatcher()
        outcome = dispatcher.dispatch("list_customers", {"email": "a@b.c"})

        tool_call = mocks["catalog"].handle_tool_call.call_args[0][0]
        assert tool_call.name == "list_customers"
        assert tool_call.id.startswith("call_")
        assert json.loads(tool_call.arguments) == {"email": "a@b.c"}
        assert outcome.result == '{"data": []}'
        assert outcome.message is None

    def test_unknown_tool_raises_not_found(self) -> None:
        dispatcher, mocks = _dispatcher()
        with pytest.raises(NotFoundError):
            dispatcher.dispatch("send_wire", {})
        mocks["refunds"].resolve.assert_not_called()
        mocks["captures"].resolve.assert_not_called()

    def test_successful_refund_is_audited(self, mock_audit_logger: MagicMock) -> None:
        dispatcher, _ = _dispatcher(audit_logger=mock_audit_logger)
        dispatcher.dispatch("create_refund", {"charge_id": "ch_1"}, source_ip="10.0.0.1")

        event = mock_audit_logger.log.call_args[0][0]
        assert event.event_type == AuditEventType.REFUND
        assert event.result == "success"
        assert event.risk_level == RiskLevel.HIGH
        assert event.source_ip == "10.0.0.1"
        assert event.route == "refund:charge"
        assert (event.charge_id, event.refund_id) == ("ch_1", "re_1")
        assert (event.amount, event.currency) == (500, "usd")
        assert event.details is None

    def test_failed_call_is_audited_and_reraised(self, mock_audit_logger: MagicMock) -> None:
        dispatcher, mocks = _dispatcher(audit_logger=mock_audit_logger)
        mocks["captures"].resolve.side_effect = InvalidInputError("payment_intent_id is required")

        with pytest.raises(InvalidInputError):
            dispatcher.dispatch("capturePaymentIntent", {})

        event = mock_audit_logger.log.call_args[0][0]
        assert event.event_type == AuditEventType.CAPTURE
        assert event.result == "failure"
        assert event.status_code == 400
        assert event.error == "payment_intent_id is required"

    def test_unresolved_tool_is_audited(self, mock_audit_logger: MagicMock) -> None:
        dispatcher, _ = _dispatcher(audit_logger=mock_audit_logger)
        with pytest.raises(NotFoundError):
            dispatcher.dispatch("send_wire", {})
        event = mock_audit_logger.log.call_args[0][0]
        assert event.event_type == AuditEventType.TOOL_REJECTED
        assert event.tool_name == "send_wire"
        assert event.status_code == 404

    def test_capture_records_amount_received(self, mock_audit_logger: MagicMock) -> None:
        dispatcher, _ = _dispatcher(audit_logger=mock_audit_logger)
        dispatcher.dispatch("capturePaymentIntent", {"payment_intent_id": "pi_1"})

        event = mock_audit_logger.log.call_args[0][0]
        assert event.payment_intent_id == "pi_1"
        assert (event.amount, event.currency) == (151, "eur")
        assert event.refund_id is None

    def test_catalog_call_has_no_money_fields(self, mock_audit_logger: MagicMock) -> None:
        dispatcher, _ = _dispatcher(audit_logger=mock_audit_logger)
        dispatcher.dispatch("list_customers", {})

        event = mock_audit_logger.log.call_args[0][0]
        assert event.event_type == AuditEventType.CATALOG_TOOL
        assert event.risk_level == RiskLevel.MEDIUM
        assert event.amount is None

    def test_repeat_refund_of_a_charge_is_flagged(
        self, audit_log_path: Path, caplog: pytest.LogCaptureFixture,
    ) -> None:
        audit = AuditLogger(str(audit_log_path))
        audit.log(make_audit_event(charge_id="ch_1", refund_id="re_0"))
        dispatcher, _ = _dispatcher(audit_logger=audit)

        with caplog.at_level(logging.WARNING, logger="outbound.relay.dispatcher"):
            dispatcher.dispatch("create_refund", {"charge_id": "ch_1"})

        assert "Charge ch_1 refunded again; earlier refunds: re_0" in caplog.text
        latest = audit.entries()[-1]
        assert latest["refund_id"] == "re_1"
        assert latest["details"] == {"earlier_refund_ids": ["re_0"]}

    def test_first_refund_of_a_charge_is_not_flagged(
        self, audit_log_path: Path, caplog: pytest.LogCaptureFixture,
    ) -> None:
        audit = AuditLogger(str(audit_log_path))
        audit.log(make_audit_event(charge_id="ch_other", refund_id="re_0"))
        dispatcher, _ = _dispatcher(audit_logger=audit)

        with caplog.at_level(logging.WARNING, logger="outbound.relay.dispatcher"):
            dispatcher.dispatch("create_refund", {"charge_id": "ch_1"})

        assert "refunded again" not in caplog.text
        assert "details" not in audit.entries()[-1]


def test_build_dispatcher_scopes_catalog() -> None:
    dispatcher = build_dispatcher("sk_test_123")
    names = dispatcher._catalog.names()
    assert "create_refund" in names
    assert "retrieve_payment_intent" in names
    assert "update_payment_intent" in names
    assert not any(name.startswith("create_customer") for name in names)
