"""
Request Tracker: Event Dispatcher
==================================

What:  Makes one best-effort delivery attempt per batch and reports the
       result as a value instead of raising.
How:   Checks for the two no-op cases (disabled mode, empty batch), then
       calls the transport exactly once under a send timeout. Anything the
       transport raises becomes DeliveryOutcome.failed(reason).
Who:   Created once per process by the app factory; persist() is called by
       RequestTrackingMiddleware after each response has been sent.

Delivery guarantees:
    - At most one send per persist() call. There is no retry: a failed
      batch is gone, and a caller that wants another attempt must build
      a new batch.
    - Tracking never breaks the request path. persist() does not raise for
      any delivery fault, timeouts included. Only task cancellation
      propagates, because it is not a delivery fault.
    - The dispatcher does not log. Callers that care inspect the returned
      DeliveryOutcome and route it to their own diagnostic sink.

Disabled mode:
    Without a project id, or without either a master key or a write key, the
    dispatcher never resolves a transport and every persist() returns
    skipped. Environments without analytics credentials need no
    conditional logic at call sites.
"""

import asyncio
from typing import Mapping, Optional, Set, Union

from tracker.config import Settings
from tracker.exceptions import CollectorTimeoutError
from tracker.schemas.events import DeliveryOutcome, EventBatch
from tracker.services.event_buffer import EventBuffer
from tracker.services.keen_transport import (
    DEFAULT_API_VERSION,
    DEFAULT_BASE_URL,
    KeenTransport,
)
from tracker.services.transport_base import CollectorTransport

DEFAULT_SEND_TIMEOUT = 5.0


class Dispatcher:
    """
    Delivers drained event batches to the configured collector.

    Thread Safety:
        Safe to share across concurrent requests within one event loop. If
        the transport declares `concurrency_safe = False`, sends are
        serialized behind an asyncio.Lock.
    """

    def __init__(
        self,
        project_id: Optional[str] = None,
        master_key: Optional[str] = None,
        write_key: Optional[str] = None,
        transport: Optional[CollectorTransport] = None,
        send_timeout: float = DEFAULT_SEND_TIMEOUT,
        base_url: str = DEFAULT_BASE_URL,
        api_version: str = DEFAULT_API_VERSION,
    ):
        """
        Args:
            project_id:   Collector project identifier.
            master_key:   Master key; used for writing when no write key is set.
            write_key:    Write key; preferred over the master key.
            transport:    Pre-built transport (tests, alternative collectors).
                          Ignored in disabled mode. Not closed by aclose().
            send_timeout: Seconds allowed for one send before it counts as failed.
            base_url, api_version: Passed to the KeenTransport built when
                          no transport is injected.
        """
        self.project_id = project_id
        self.send_timeout = send_timeout
        self.enabled = bool(project_id and (master_key or write_key))

        self._transport: Optional[CollectorTransport] = None
        self._owns_transport = False
        if self.enabled:
            if transport is not None:
                self._transport = transport
            else:
                self._transport = KeenTransport(
                    project_id=project_id,
                    api_key=write_key or master_key,
                    base_url=base_url,
                    api_version=api_version,
                    timeout=send_timeout,
                )
                self._owns_transport = True

        self._lock: Optional[asyncio.Lock] = None
        if self._transport is not None and not self._transport.concurrency_safe:
            self._lock = asyncio.Lock()

        # Strong references to fire-and-forget deliveries until they finish
        self._pending: Set[asyncio.Task] = set()
        self._closed = False

    @property
    def transport(self) -> Optional[CollectorTransport]:
        return self._transport

    @property
    def pending(self) -> int:
        """Number of scheduled deliveries that have not finished yet."""
        return len(self._pending)

    async def persist(
        self, batch: Union[EventBatch, EventBuffer, Mapping]
    ) -> DeliveryOutcome:
        """
        Make one delivery attempt for a completed batch.

        Args:
            batch: An EventBatch, or an EventBuffer which is drained here.

        Returns:
            DeliveryOutcome.skipped()   disabled mode or nothing to send
            DeliveryOutcome.delivered() the transport accepted the batch
            DeliveryOutcome.failed(msg) the transport raised or timed out
        """
        if isinstance(batch, EventBuffer):
            batch = batch.drain()

        if not self.enabled or self._transport is None:
            return DeliveryOutcome.skipped("tracking disabled")
        if not batch:
            return DeliveryOutcome.skipped("empty batch")

        try:
            if self._lock is not None:
                async with self._lock:
                    await self._send(batch)
            else:
                await self._send(batch)
        except Exception as e:
            return DeliveryOutcome.failed(str(e) or type(e).__name__)

        return DeliveryOutcome.delivered()

    async def _send(self, batch: EventBatch) -> None:
        """
        Run one send under the dispatcher's own deadline.

        Only an expired deadline is reported as a dispatcher timeout. A
        TimeoutError raised by the transport itself keeps its own message.
        """
        task = asyncio.ensure_future(self._transport.send_events(batch))
        try:
            done, _ = await asyncio.wait({task}, timeout=self.send_timeout)
        except asyncio.CancelledError:
            task.cancel()
            raise

        if not done:
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
            raise CollectorTimeoutError(
                message=f"delivery timed out after {self.send_timeout:g}s",
                context={"project_id": self.project_id},
            )

        task.result()

    def schedule(
        self, batch: Union[EventBatch, EventBuffer, Mapping]
    ) -> Optional[asyncio.Task]:
        """
        Fire-and-forget variant of persist(). Must be called from a running
        event loop.

        Returns:
            The background task, or None when the delivery would be skipped
            anyway (disabled mode, empty batch) or the dispatcher is closed.
        """
        if isinstance(batch, EventBuffer):
            batch = batch.drain()
        if self._closed or not self.enabled or not batch:
            return None

        task = asyncio.create_task(self.persist(batch))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def aclose(self) -> None:
        """
        Wait for scheduled deliveries, then release the transport.

        Called once at app shutdown. Safe to call more than once.
        """
        if self._closed:
            return
        self._closed = True
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
        if self._owns_transport and self._transport is not None:
            await self._transport.aclose()


def create_dispatcher(settings: Settings) -> Dispatcher:
    """Build the process-wide Dispatcher from application settings."""
    return Dispatcher(
        project_id=settings.keen_project_id,
        master_key=settings.keen_master_key,
        write_key=settings.keen_write_key,
        send_timeout=settings.keen_timeout,
        base_url=settings.keen_base_url,
        api_version=settings.keen_api_version,
    )
