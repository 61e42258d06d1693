"""
Request Tracker: Exception Hierarchy
=====================================

What:  Application-specific exceptions for the delivery path.
How:   Each exception carries a message and an optional context dict.
       Transports raise these; the Dispatcher catches them (and anything else
       a transport raises) and turns them into a failed DeliveryOutcome.
Who:   Raised by collector transports; handled by the Dispatcher.

Exception Hierarchy:
    TrackerError (base)
    └── TransportError                 any fault while sending a batch
        ├── CollectorConnectionError   network unreachable, DNS, reset
        ├── CollectorTimeoutError      connect/read/write timeout
        └── CollectorRejectedError     collector answered with an error

Missing credentials are deliberately absent from this list: an unconfigured
Dispatcher runs in disabled mode and never raises. An empty batch is not an
error either; it is reported as a skipped delivery.
"""

from typing import Any, Dict, Optional


class TrackerError(Exception):
    """
    Base exception for all request-tracker errors.

    Attributes:
        message:  Human-readable error description.
        context:  Additional debug info (status codes, project id, ...).
    """

    def __init__(
        self,
        message: str = "An unexpected tracking error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class TransportError(TrackerError):
    """
    Raised by a collector transport when a batch could not be delivered.

    The Dispatcher never lets this escape; it becomes the `reason` of a
    failed DeliveryOutcome.
    """

    def __init__(
        self,
        message: str = "Event delivery failed",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class CollectorConnectionError(TransportError):
    """The collector could not be reached (DNS, refused, reset, TLS)."""

    def __init__(
        self,
        message: str = "Could not connect to the event collector",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class CollectorTimeoutError(TransportError):
    """The HTTP client gave up waiting for the collector."""

    def __init__(
        self,
        message: str = "Timed out talking to the event collector",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class CollectorRejectedError(TransportError):
    """
    The collector answered, but refused the batch.

    What:  Auth failure (401/403), malformed payload (400), server error (5xx),
           or a 2xx response that flags individual events as unsuccessful.

    Attributes:
        status_code: HTTP status returned by the collector.
    """

    def __init__(
        self,
        status_code: int,
        message: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        ctx["status_code"] = status_code
        super().__init__(
            message=message or f"Event collector rejected the batch (HTTP {status_code})",
            context=ctx,
        )
        self.status_code = status_code
