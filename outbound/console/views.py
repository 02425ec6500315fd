"""Text views for the batch-call console.

``ListView`` renders the searchable campaign table, ``DetailView`` one
campaign's stat cards and recipients. Both re-fetch from the backend after
every mutation; nothing is cached between calls.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime, tzinfo

import click

from outbound.console.client import BatchCallsAPIError, BatchCallsClient
from outbound.models import BatchCall, BatchCallDetails, BatchCallStatus, Recipient

logger = logging.getLogger(__name__)

STATUS_STYLES: dict[str, str] = {
    "pending": "yellow",
    "initiated": "blue",
    "in_progress": "blue",
    "completed": "green",
    "failed": "red",
    "cancelled": "bright_black",
    "voicemail": "magenta",
}
DEFAULT_STATUS_STYLE = STATUS_STYLES["pending"]

RETRYABLE = {BatchCallStatus.FAILED.value, BatchCallStatus.COMPLETED.value}
CANCELLABLE = {BatchCallStatus.PENDING.value, BatchCallStatus.IN_PROGRESS.value}

EMPTY_TITLE = "No batch calls found"
EMPTY_DESCRIPTION = "You have not created any batch calls yet."
NO_RESULTS = "No batch calls found."
NO_RECIPIENTS = "No recipients found."
NOT_FOUND = "Batch call not found"


@dataclass(frozen=True)
class StatusBadge:
    label: str
    color: str

    def render(self) -> str:
        return click.style(self.label, fg=self.color, bold=True)


def status_badge(status: str | None) -> StatusBadge:
    """Badge for a status; unknown values get the pending style."""
    status = status or BatchCallStatus.PENDING.value
    return StatusBadge(
        label=status.replace("_", " "),
        color=STATUS_STYLES.get(status, DEFAULT_STATUS_STYLE),
    )


def available_actions(status: str) -> tuple[str, ...]:
    actions = ["view"]
    if status in RETRYABLE:
        actions.append("retry")
    if status in CANCELLABLE:
        actions.append("cancel")
    return tuple(actions)


def filter_batch_calls(batch_calls: Iterable[BatchCall], query: str) -> list[BatchCall]:
    """Case-insensitive substring match on name, in memory."""
    needle = query.lower()
    return [batch for batch in batch_calls if needle in batch.name.lower()]


# --- Timestamps ---


def _local(unix: int, tz: tzinfo | None) -> datetime:
    return datetime.fromtimestamp(unix, tz=tz)


def _clock(dt: datetime) -> str:
    hour = dt.hour % 12 or 12
    return f"{hour}:{dt.minute:02d} {'AM' if dt.hour < 12 else 'PM'}"


def format_date(unix: int, tz: tzinfo | None = None) -> str:
    """``MMM d, yyyy``"""
    dt = _local(unix, tz)
    return f"{dt:%b} {dt.day}, {dt.year}"


def format_time(unix: int, tz: tzinfo | None = None) -> str:
    """``h:mm a``"""
    return _clock(_local(unix, tz))


def format_datetime(unix: int, tz: tzinfo | None = None) -> str:
    """``MMM d, yyyy, h:mm a``"""
    return f"{format_date(unix, tz)}, {format_time(unix, tz)}"


def format_short_datetime(unix: int, tz: tzinfo | None = None) -> str:
    """``MMM d, h:mm a``"""
    dt = _local(unix, tz)
    return f"{dt:%b} {dt.day}, {_clock(dt)}"


# --- Tables ---


def render_table(
    headers: Sequence[str],
    rows: Sequence[Sequence[str]],
    empty_message: str,
) -> str:
    """Plain text table; cells may carry ANSI styling."""
    if not rows:
        width = max(len(" | ".join(headers)), len(empty_message))
        return "\n".join([
            " | ".join(headers),
            "-" * width,
            empty_message.center(width).rstrip(),
        ])

    widths = [len(h) for h in headers]
    for row in rows:
        for i, cell in enumerate(row):
            widths[i] = max(widths[i], len(click.unstyle(cell)))

    def line(cells: Sequence[str]) -> str:
        padded = [
            cell + " " * (widths[i] - len(click.unstyle(cell)))
            for i, cell in enumerate(cells)
        ]
        return " | ".join(padded).rstrip()

    separator = "-+-".join("-" * w for w in widths)
    return "\n".join([line(headers), separator, *(line(row) for row in rows)])


class ListView:
    """Searchable table of batch calls."""

    HEADERS = ("Name", "Agent", "Status", "Calls", "Created", "Actions")

    def __init__(self, client: BatchCallsClient, tz: tzinfo | None = None) -> None:
        self._client = client
        self._tz = tz

    def load(self) -> list[BatchCall]:
        try:
            return self._client.list_batch_calls()
        except BatchCallsAPIError as e:
            logger.error("Error loading batch calls: %s", e)
            return []

    def render(self, batch_calls: Sequence[BatchCall], query: str = "") -> str:
        heading = "Batch Calling\nCreate and manage batch calling campaigns"
        if not batch_calls and not query:
            return f"{heading}\n\n{EMPTY_TITLE}\n{EMPTY_DESCRIPTION}"

        rows = [self._row(batch) for batch in filter_batch_calls(batch_calls, query)]
        table = render_table(self.HEADERS, rows, NO_RESULTS)
        search = f"Search: {query}\n" if query else ""
        return f"{heading}\n\n{search}{table}"

    def _row(self, batch: BatchCall) -> list[str]:
        return [
            batch.name,
            batch.agent_label,
            status_badge(batch.status).render(),
            f"{batch.total_calls_dispatched} / {batch.total_calls_scheduled}",
            format_datetime(batch.created_at_unix, self._tz),
            ", ".join(available_actions(batch.status)),
        ]

    def cancel(self, batch_id: str) -> list[BatchCall]:
        """Cancel, then reload the list. Backend errors propagate."""
        self._client.cancel_batch_call(batch_id)
        return self.load()

    def retry(self, batch_id: str) -> list[BatchCall]:
        self._client.retry_batch_call(batch_id)
        return self.load()


class DetailView:
    """One batch call: stat cards and recipients."""

    HEADERS = ("Phone Number", "Status", "Conversation ID", "Updated")

    def __init__(self, client: BatchCallsClient, tz: tzinfo | None = None) -> None:
        self._client = client
        self._tz = tz

    def load(self, batch_id: str) -> BatchCallDetails | None:
        if not batch_id:
            return None
        try:
            return self._client.get_batch_call(batch_id)
        except BatchCallsAPIError as e:
            logger.error("Error loading batch call %s: %s", batch_id, e)
            return None

    def render(self, batch: BatchCallDetails | None) -> str:
        if batch is None:
            return f"{NOT_FOUND}\nBack to Batch Calls: outbound list"

        actions = [a for a in available_actions(batch.status) if a != "view"]
        cards = [
            ("Status", status_badge(batch.status).render()),
            ("Total Calls", str(batch.total_calls_scheduled)),
            ("Dispatched", str(batch.total_calls_dispatched)),
            (
                "Created",
                f"{format_date(batch.created_at_unix, self._tz)} "
                f"{format_time(batch.created_at_unix, self._tz)}",
            ),
        ]
        lines = [batch.name, batch.agent_label]
        if actions:
            lines.append(f"Actions: {', '.join(actions)}")
        lines.append("")
        lines.extend(f"{title}: {value}" for title, value in cards)
        lines.append("")
        lines.append(f"Recipients ({len(batch.recipients)})")
        lines.append(render_table(
            self.HEADERS,
            [self._row(recipient) for recipient in batch.recipients],
            NO_RECIPIENTS,
        ))
        return "\n".join(lines)

    def _row(self, recipient: Recipient) -> list[str]:
        conversation = (
            f"{recipient.conversation_id[:8]}..." if recipient.conversation_id else "-"
        )
        return [
            recipient.address,
            status_badge(recipient.status).render(),
            conversation,
            format_short_datetime(recipient.updated_at_unix, self._tz),
        ]

    def cancel(self, batch_id: str) -> None:
        # The detail view leaves for the list afterwards; nothing to reload here
        self._client.cancel_batch_call(batch_id)

    def retry(self, batch_id: str) -> BatchCallDetails | None:
        self._client.retry_batch_call(batch_id)
        return self.load(batch_id)
