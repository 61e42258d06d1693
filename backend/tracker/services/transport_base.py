"""
Request Tracker: Abstract Collector Transport
==============================================

What:  Abstract base class for the network client that ships a batch to the
       remote event collector.
How:   Concrete implementations inherit from CollectorTransport and implement
       send_events(). The Dispatcher depends only on this interface.
Who:   Called by Dispatcher.persist(), once per non-empty batch.

Implementations:
    - KeenTransport: Keen event-collection REST API over httpx
    - Test doubles in backend/tests/conftest.py (recording, failing, slow)
"""

from abc import ABC, abstractmethod

from tracker.schemas.events import EventBatch


class CollectorTransport(ABC):
    """
    Abstract interface for delivering an EventBatch to a collector.

    Contract:
        - send_events() performs exactly one delivery attempt and returns
          None on success.
        - Failures are raised, preferably as TransportError subclasses. The
          transport does NOT swallow them: absorbing faults is the
          Dispatcher's job.
        - send_events() must not mutate the batch.

    Concurrency:
        `concurrency_safe` tells the Dispatcher whether send_events() may run
        for several requests at once. When False, the Dispatcher serializes
        calls behind a lock.
    """

    concurrency_safe: bool = True

    @abstractmethod
    async def send_events(self, batch: EventBatch) -> None:
        """
        Deliver a whole batch in a single call.

        Args:
            batch: Event name -> ordered list of parameter sets. Never empty
                   when called by the Dispatcher.

        Raises:
            TransportError: The collector was unreachable, timed out, or
                rejected the batch.
        """
        ...

    async def aclose(self) -> None:
        """Release network resources. Default: nothing to release."""
        return None
