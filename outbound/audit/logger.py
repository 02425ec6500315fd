"""Relay audit trail: a ledger of agent-triggered money movements.

Every refund, capture and catalog tool call that reaches the payments
provider leaves one JSON line here with the ids and amount the provider
reported. Lines are hash-chained and the file rotates by size; lookups such
as ``refunds_for_charge`` read the rotated backups too, oldest first.
"""

from __future__ import annotations

import fcntl
import hashlib
import json
import os
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from outbound.models import AuditEvent, AuditEventType


@dataclass
class ChainValidationResult:
    valid: bool
    broken_at_line: int | None = None


def _digest(line: str) -> str:
    return hashlib.sha256(line.encode()).hexdigest()


def validate_audit_chain(log_path: Path) -> ChainValidationResult:
    """Check that every entry's prev_hash matches the line before it.

    The first entry is not checked: after rotation it links to the last line
    of the backup file.
    """
    text = log_path.read_text().strip()
    if not text:
        return ChainValidationResult(valid=True)

    previous: str | None = None
    for number, line in enumerate(text.split("\n"), start=1):
        record = json.loads(line)
        if previous is not None and record.get("prev_hash") != _digest(previous):
            return ChainValidationResult(valid=False, broken_at_line=number)
        previous = line

    return ChainValidationResult(valid=True)


class AuditLogger:
    """Append-only ledger of relay calls."""

    def __init__(
        self,
        log_path: str,
        max_bytes: int = 10_485_760,
        backup_count: int = 5,
    ) -> None:
        self.log_path = Path(log_path)
        self._max_bytes = max_bytes
        self._backup_count = backup_count
        self._last_line: str | None = self._read_last_line()

    @classmethod
    def from_env(cls, log_path: str) -> AuditLogger:
        return cls(
            log_path=log_path,
            max_bytes=int(os.environ.get("AUDIT_LOG_MAX_BYTES", "10485760")),
            backup_count=int(os.environ.get("AUDIT_LOG_BACKUP_COUNT", "5")),
        )

    def _read_last_line(self) -> str | None:
        # Continue the chain of an existing log across restarts
        if not self.log_path.exists():
            return None
        text = self.log_path.read_text().strip()
        return text.split("\n")[-1] if text else None

    def _backup(self, index: int) -> Path:
        return self.log_path.with_name(f"{self.log_path.name}.{index}")

    def _files(self, include_rotated: bool) -> list[Path]:
        """Existing log files, oldest first."""
        files: list[Path] = []
        if include_rotated:
            files = [
                self._backup(index)
                for index in range(self._backup_count, 0, -1)
                if self._backup(index).exists()
            ]
        if self.log_path.exists():
            files.append(self.log_path)
        return files

    def _maybe_rotate(self) -> None:
        if not self.log_path.exists() or self.log_path.stat().st_size < self._max_bytes:
            return

        self._backup(self._backup_count).unlink(missing_ok=True)
        for index in range(self._backup_count - 1, 0, -1):
            if self._backup(index).exists():
                self._backup(index).rename(self._backup(index + 1))
        self.log_path.rename(self._backup(1))

    def log(self, event: AuditEvent) -> None:
        self.log_path.parent.mkdir(parents=True, exist_ok=True)

        record: dict[str, Any] = json.loads(event.model_dump_json(exclude_none=True))
        record["prev_hash"] = _digest(self._last_line) if self._last_line is not None else None
        line = json.dumps(record, separators=(",", ":"))

        lock_file = self.log_path.with_name(f".{self.log_path.name}.lock")
        with open(lock_file, "w") as lf:
            fcntl.flock(lf, fcntl.LOCK_EX)
            try:
                self._maybe_rotate()
                with open(self.log_path, "a") as f:
                    f.write(line + "\n")
            finally:
                fcntl.flock(lf, fcntl.LOCK_UN)

        self._last_line = line

    def _iter_entries(self, include_rotated: bool) -> Iterator[dict[str, Any]]:
        for path in self._files(include_rotated):
            for line in path.read_text().splitlines():
                if line.strip():
                    yield json.loads(line)

    def entries(self, include_rotated: bool = False) -> list[dict[str, Any]]:
        """Logged entries, oldest first; only the live file unless asked otherwise."""
        return list(self._iter_entries(include_rotated))

    def refunds_for_charge(self, charge_id: str) -> list[dict[str, Any]]:
        """Successful refunds already recorded against a charge, across backups."""
        return [
            entry
            for entry in self._iter_entries(include_rotated=True)
            if entry.get("event_type") == AuditEventType.REFUND.value
            and entry.get("result") == "success"
            and entry.get("charge_id") == charge_id
        ]
