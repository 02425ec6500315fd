"""Charge references as returned by the payments provider.

A ``latest_charge`` (or ``charge``) field is either a bare id or, when the
request asked for expansion, the full charge object. ``ChargeRef`` makes the
two cases explicit and ``charge_id_of`` is the only place that reads an id
out of one.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class ChargeId:
    id: str


@dataclass(frozen=True)
class ExpandedCharge:
    charge: Mapping[str, Any]


ChargeRef = ChargeId | ExpandedCharge


def charge_ref(value: object) -> ChargeRef | None:
    """Wrap a raw provider field; ``None`` when nothing usable is attached."""
    if isinstance(value, str):
        return ChargeId(value) if value else None
    if isinstance(value, Mapping) and value.get("id"):
        return ExpandedCharge(value)
    return None


def charge_id_of(ref: ChargeRef) -> str:
    if isinstance(ref, ChargeId):
        return ref.id
    return str(ref.charge["id"])


def latest_charge_of(payment_intent: Mapping[str, Any] | None) -> ChargeRef | None:
    if not payment_intent:
        return None
    return charge_ref(payment_intent.get("latest_charge"))
