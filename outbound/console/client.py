"""HTTP client for the batch-calling backend (``/api/batch-calls``)."""

from __future__ import annotations

import logging

import httpx
from pydantic import ValidationError

from outbound.models import BatchCall, BatchCallDetails

logger = logging.getLogger(__name__)


class BatchCallsAPIError(Exception):
    """Raised when the backend is unreachable or answers with an error."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class BatchCallsClient:
    """Fetch, cancel and retry batch calls. Always reads from the backend."""

    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self._client = httpx.Client(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    def __enter__(self) -> BatchCallsClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    def _request(self, method: str, path: str, failure: str) -> httpx.Response:
        try:
            resp = self._client.request(method, path)
        except httpx.HTTPError as e:
            raise BatchCallsAPIError(f"{failure}: {e}") from e
        if resp.status_code >= 400:
            raise BatchCallsAPIError(failure, status_code=resp.status_code)
        return resp

    def list_batch_calls(self) -> list[BatchCall]:
        resp = self._request("GET", "/api/batch-calls", "Failed to fetch batch calls")
        try:
            items = resp.json().get("batch_calls") or []
            return [BatchCall.model_validate(item) for item in items]
        except (ValueError, AttributeError, ValidationError) as e:
            raise BatchCallsAPIError(f"Failed to fetch batch calls: {e}") from e

    def get_batch_call(self, batch_id: str) -> BatchCallDetails:
        resp = self._request("GET", f"/api/batch-calls/{batch_id}", "Failed to fetch batch call")
        try:
            return BatchCallDetails.model_validate(resp.json())
        except (ValueError, ValidationError) as e:
            raise BatchCallsAPIError(f"Failed to fetch batch call: {e}") from e

    def cancel_batch_call(self, batch_id: str) -> None:
        self._request("DELETE", f"/api/batch-calls/{batch_id}", "Failed to cancel batch call")
        logger.info("Cancelled batch call %s", batch_id)

    def retry_batch_call(self, batch_id: str) -> None:
        self._request(
            "POST", f"/api/batch-calls/{batch_id}/retry", "Failed to retry batch call",
        )
        logger.info("Retried batch call %s", batch_id)
