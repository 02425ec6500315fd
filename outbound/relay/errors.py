"""Relay error taxonomy; each error knows the HTTP status it maps to."""

from __future__ import annotations


class RelayError(Exception):
    """Base class for failures the relay reports back to the calling agent."""

    status_code = 500

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class InvalidInputError(RelayError):
    """A required field is missing or the request body is malformed."""

    status_code = 400


class NotFoundError(RelayError):
    """Unknown tool, customer, order or an empty charge history."""

    status_code = 404


class InvalidStateError(RelayError):
    """The identifier resolved, but there is no charge attached to refund."""

    status_code = 400


class UpstreamError(RelayError):
    """The payments provider rejected the call."""

    status_code = 500


class ConfigurationError(RelayError):
    status_code = 500
