"""Shared Pydantic data models for outbound."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# --- Enums ---


class BatchCallStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class RecipientStatus(str, Enum):
    PENDING = "pending"
    INITIATED = "initiated"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    VOICEMAIL = "voicemail"


class AuditEventType(str, Enum):
    AUTH_FAILURE = "auth_failure"
    REFUND = "refund"
    CAPTURE = "capture"
    CATALOG_TOOL = "catalog_tool"
    TOOL_REJECTED = "tool_rejected"


class RiskLevel(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INFO = "info"


# --- Batch call models ---
#
# Status and provider fields stay plain strings: the backend owns those sets and the
# console has to render values it does not know about.


class Recipient(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    phone_number: str | None = None
    whatsapp_user_id: str | None = None
    status: str = RecipientStatus.PENDING.value
    conversation_id: str | None = None
    created_at_unix: int = 0
    updated_at_unix: int = 0
    conversation_initiation_client_data: dict[str, Any] | None = None

    @property
    def address(self) -> str:
        return self.phone_number or self.whatsapp_user_id or "N/A"


class BatchCall(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    agent_id: str
    agent_name: str | None = None
    created_at_unix: int = 0
    scheduled_time_unix: int | None = None
    total_calls_dispatched: int = Field(default=0, ge=0)
    total_calls_scheduled: int = Field(default=0, ge=0)
    last_updated_at_unix: int | None = None
    status: str = BatchCallStatus.PENDING.value
    phone_number_id: str | None = None
    phone_provider: str | None = None

    @property
    def agent_label(self) -> str:
        return self.agent_name or self.agent_id


class BatchCallDetails(BatchCall):
    recipients: list[Recipient] = Field(default_factory=list)


# --- Audit Models ---


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


class AuditEvent(BaseModel):
    """One relay call, or one rejected caller.

    Money movements carry the ids and amount the provider reported, so the
    log alone answers "what was refunded or captured, and how was it found".
    """

    timestamp: str = Field(default_factory=_now_iso)
    event_type: AuditEventType
    source_ip: str | None = None
    tool_name: str | None = None
    route: str | None = None  # resolution key, e.g. "refund:order"
    result: str  # "success" | "failure"
    risk_level: RiskLevel
    status_code: int | None = None
    error: str | None = None
    charge_id: str | None = None
    payment_intent_id: str | None = None
    refund_id: str | None = None
    amount: int | None = None  # smallest currency unit
    currency: str | None = None
    details: dict[str, object] | None = None
