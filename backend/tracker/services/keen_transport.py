"""
Request Tracker: Keen Collector Transport
==========================================

What:  Concrete CollectorTransport for the Keen event-collection REST API.
How:   One POST of the whole batch to the project's multi-event endpoint,
       authenticated with a write-capable key, over a shared
       httpx.AsyncClient.
Who:   Built by the Dispatcher when it is enabled and no transport was
       injected; closed by Dispatcher.aclose() at app shutdown.

Wire format:
    POST {base_url}/{api_version}/projects/{project_id}/events
    Authorization: <write key or master key>
    Content-Type: application/json

    {"request": [{"path": "/a"}, {"path": "/b"}]}

    The collector answers 200/201 with a per-event status report:
    {"request": [{"success": true}, {"success": false, "error": {...}}]}

Error mapping:
    httpx.TimeoutException      → CollectorTimeoutError
    other httpx.HTTPError       → CollectorConnectionError
    HTTP status >= 400          → CollectorRejectedError(status_code)
    2xx with success == false   → CollectorRejectedError(status_code)
"""

import logging
from typing import Any, Optional

import httpx

from tracker.exceptions import (
    CollectorConnectionError,
    CollectorRejectedError,
    CollectorTimeoutError,
)
from tracker.schemas.events import EventBatch
from tracker.services.transport_base import CollectorTransport

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.keen.io"
DEFAULT_API_VERSION = "3.0"


class KeenTransport(CollectorTransport):
    """
    Keen multi-event endpoint client.

    httpx.AsyncClient is safe to share between concurrent requests, so one
    instance serves the whole process.
    """

    concurrency_safe = True

    def __init__(
        self,
        project_id: str,
        api_key: str,
        base_url: str = DEFAULT_BASE_URL,
        api_version: str = DEFAULT_API_VERSION,
        timeout: float = 5.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Args:
            project_id:  Keen project identifier.
            api_key:     Write key (or master key) sent as Authorization.
            base_url:    Collector root, without trailing slash.
            api_version: API version path segment.
            timeout:     Connect/read/write timeout for the HTTP client.
            client:      Pre-built client (tests, shared pools). An injected
                         client belongs to the caller and is not closed here.
        """
        self.project_id = project_id
        self._api_key = api_key
        self.url = (
            f"{base_url.rstrip('/')}/{api_version}/projects/{project_id}/events"
        )
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(timeout))

    async def send_events(self, batch: EventBatch) -> None:
        try:
            response = await self._client.post(
                self.url,
                json=batch,
                headers={
                    "Authorization": self._api_key,
                    "Content-Type": "application/json",
                },
            )
        except httpx.TimeoutException as e:
            raise CollectorTimeoutError(
                message=f"Timed out sending events to {self.url}: {e}",
                context={"project_id": self.project_id},
            ) from e
        except httpx.HTTPError as e:
            raise CollectorConnectionError(
                message=f"Could not reach event collector: {e}",
                context={"project_id": self.project_id},
            ) from e

        if response.status_code >= 400:
            raise CollectorRejectedError(
                status_code=response.status_code,
                message=self._error_message(response),
                context={"project_id": self.project_id},
            )

        rejected = self._count_rejected(response)
        if rejected:
            raise CollectorRejectedError(
                status_code=response.status_code,
                message=f"Event collector rejected {rejected} event(s)",
                context={"project_id": self.project_id, "rejected": rejected},
            )

        logger.debug(
            "Sent %d event collection(s) to project %s (HTTP %d)",
            len(batch),
            self.project_id,
            response.status_code,
        )

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        """Prefer the collector's own `message`; fall back to the status line."""
        default = f"Event collector rejected the batch (HTTP {response.status_code})"
        try:
            body: Any = response.json()
        except ValueError:
            return default
        if isinstance(body, dict) and body.get("message"):
            return f"{default}: {body['message']}"
        return default

    @staticmethod
    def _count_rejected(response: httpx.Response) -> int:
        # Per-event report: {"name": [{"success": bool, ...}, ...]}
        try:
            body: Any = response.json()
        except ValueError:
            return 0
        if not isinstance(body, dict):
            return 0
        rejected = 0
        for results in body.values():
            if not isinstance(results, list):
                continue
            for result in results:
                if isinstance(result, dict) and result.get("success") is False:
                    rejected += 1
        return rejected

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
