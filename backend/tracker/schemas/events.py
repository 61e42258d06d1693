"""
Request Tracker: Event and Delivery Schemas
============================================

What:  Data shapes shared by the buffer, the dispatcher and the middleware.
How:   Plain type aliases for the schema-free event payloads, Pydantic models
       for the values the pipeline hands back to its callers.

Event payloads are intentionally NOT Pydantic models. The producer decides
what a `request` event contains; the pipeline only guarantees that whatever
JSON-compatible mapping it is given reaches the collector untouched.
"""

from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Union

from pydantic import BaseModel, Field


# ══════════════════════════════════════════════════════════════════════════
# Event Payloads
# ══════════════════════════════════════════════════════════════════════════

# What: Closed set of values the collector's JSON body can carry.
JSONValue = Union[str, int, float, bool, None, Dict[str, Any], List[Any]]

# What: One occurrence of an event, e.g. {"path": "/a", "method": "GET"}
EventParameters = Dict[str, JSONValue]

# What: Event name -> occurrences, in the order they were recorded.
# Wire format: {"request": [{"path": "/a"}, {"path": "/b"}]}
EventBatch = Dict[str, List[EventParameters]]


# ══════════════════════════════════════════════════════════════════════════
# Delivery Outcome
# ══════════════════════════════════════════════════════════════════════════


class DeliveryStatus(str, Enum):
    DELIVERED = "delivered"
    SKIPPED = "skipped"
    FAILED = "failed"


class DeliveryOutcome(BaseModel):
    """
    What:  Result of one Dispatcher.persist() call.
    Who:   Returned to the caller; the tracking middleware logs it.

    Delivery faults surface here and nowhere else. `reason` holds the
    transport's message for failures and an optional note for skips.

    Example:
        {"status": "failed", "reason": "Event collector rejected the batch (HTTP 401)"}
    """
    status: DeliveryStatus = Field(description="delivered, skipped or failed")
    reason: Optional[str] = Field(default=None, description="Diagnostic message")

    model_config = {"frozen": True}

    @classmethod
    def delivered(cls) -> "DeliveryOutcome":
        return cls(status=DeliveryStatus.DELIVERED)

    @classmethod
    def skipped(cls, reason: Optional[str] = None) -> "DeliveryOutcome":
        return cls(status=DeliveryStatus.SKIPPED, reason=reason)

    @classmethod
    def failed(cls, reason: str) -> "DeliveryOutcome":
        return cls(status=DeliveryStatus.FAILED, reason=reason)

    @property
    def is_delivered(self) -> bool:
        return self.status is DeliveryStatus.DELIVERED

    @property
    def is_skipped(self) -> bool:
        return self.status is DeliveryStatus.SKIPPED

    @property
    def is_failed(self) -> bool:
        return self.status is DeliveryStatus.FAILED


# ══════════════════════════════════════════════════════════════════════════
# Tracking Policy
# ══════════════════════════════════════════════════════════════════════════


class TrackingPolicy(BaseModel):
    """
    What:  Which requests the middleware records, and which collector-side
           enrichment addons it asks for.
    Who:   Built by Settings.tracking_policy(); consumed by
           RequestTrackingMiddleware.

    This is policy for the request-event producer only. The buffer and the
    dispatcher never look at it.
    """
    track_requests: bool = Field(default=True)
    skip_status_codes: FrozenSet[int] = Field(
        default=frozenset({100, 101, 301, 302, 307, 308}),
        description="Responses with these status codes are not recorded",
    )
    enrich_ip_to_geo: bool = Field(default=False)
    enrich_user_agent: bool = Field(default=False)
    enrich_referrer: bool = Field(default=False)

    model_config = {"frozen": True}
