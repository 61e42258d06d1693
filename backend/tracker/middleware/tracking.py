"""
Request Tracker: Request Tracking Middleware
=============================================

What:  Records every HTTP request as a `request` event and ships the
       request's events to the collector once the response has been sent.
How:   Creates one EventBuffer per request and exposes it to route handlers,
       builds the `request` event from the request/response pair, then
       attaches a background task that hands the buffer to the Dispatcher.
Who:   Registered by the app factory with the process-wide Dispatcher and
       the TrackingPolicy from settings.
When:  Inside RequestIDMiddleware, so the correlation ID is available.

Event shape (fields present depend on the request and the policy):
    {
        "method": "GET",
        "host": "https://example.com",
        "path": "/items/42",
        "params": {"q": "shoes", "item_id": "42"},
        "ip": "203.0.113.7",
        "user_agent": "Mozilla/5.0 ...",
        "request_id": "a1b2c3d4",
        "response": {"time": 0.0132, "code": 200},
        "route": {"name": "read_item", "path": "/items/{item_id}", "fingerprint": "..."},
        "keen": {"addons": [...]}
    }

Route handlers add their own events through the same buffer:

    @router.post("/signup")
    async def signup(events: EventBuffer = Depends(get_event_buffer)):
        events.add_event("signup", {"plan": "free"})

Those events are persisted even when the policy skips the `request` event
for this response (tracking disabled, redirect status, ...).
"""

import hashlib
import logging
import time
from typing import Any, Dict, Optional

from starlette.background import BackgroundTask, BackgroundTasks
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from tracker.schemas.events import DeliveryOutcome, TrackingPolicy
from tracker.services.dispatcher import Dispatcher
from tracker.services.event_buffer import EventBuffer
from tracker.services.request_event import (
    IP_TO_GEO_ADDON,
    REFERRER_PARSER_ADDON,
    UA_PARSER_ADDON,
    RequestEventBuilder,
)

logger = logging.getLogger("tracker.tracking")

REQUEST_EVENT = "request"


class RequestTrackingMiddleware(BaseHTTPMiddleware):
    """
    Per-request event buffering with post-response delivery.

    Override `should_run()` or `build_request_event()` in a subclass to
    change what gets tracked.
    """

    def __init__(
        self,
        app: ASGIApp,
        dispatcher: Dispatcher,
        policy: Optional[TrackingPolicy] = None,
    ):
        super().__init__(app)
        self.dispatcher = dispatcher
        self.policy = policy or TrackingPolicy()

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        start_time = time.perf_counter()

        buffer = EventBuffer()
        request.state.events = buffer

        try:
            response = await call_next(request)
        except Exception:
            # The app failed without a response; ship whatever handlers
            # recorded before re-raising.
            await self._persist(buffer)
            raise

        if self.should_run(request, response):
            try:
                event = self.build_request_event(
                    request, response, time.perf_counter() - start_time
                )
            except Exception:
                logger.exception("Could not build request event for %s", request.url.path)
            else:
                buffer.add_event(REQUEST_EVENT, event)

        self._attach_background(response, BackgroundTask(self._persist, buffer))
        return response

    def should_run(self, request: Request, response: Response) -> bool:
        """Decide whether this request/response pair becomes a `request` event."""
        if not self.policy.track_requests:
            return False
        if response.status_code in self.policy.skip_status_codes:
            return False
        return True

    def build_request_event(
        self, request: Request, response: Response, duration: float
    ) -> Dict[str, Any]:
        """
        Collect the `request` event parameters.

        Args:
            duration: Seconds between middleware entry and response return.
        """
        host = f"{request.url.scheme}://{request.url.netloc}"
        ip = request.client.host if request.client else None
        user_agent = request.headers.get("user-agent")

        builder = (
            RequestEventBuilder()
            .add_data("method", request.method)
            .add_data("host", host)
            .add_data("path", request.url.path)
            .add_params(dict(request.query_params))
            .add_data("ip", ip)
            .add_data("user_agent", user_agent)
            .add_data("request_id", getattr(request.state, "request_id", None))
            .add_data("response", {
                "time": round(duration, 6),
                "code": response.status_code,
            })
        )

        # Routing has already run, so the shared scope carries the match
        route = request.scope.get("route")
        if route is not None:
            route_path = getattr(route, "path", None)
            builder.add_params(request.path_params).add_data("route", {
                "name": getattr(route, "name", None),
                "path": route_path,
                "fingerprint": route_fingerprint(request.method, host, route_path, ip),
            })

            prefix = request.scope.get("root_path")
            if prefix:
                builder.add_data("path_prefix", prefix)

        if self.policy.enrich_ip_to_geo:
            builder.enrich(IP_TO_GEO_ADDON)

        if self.policy.enrich_user_agent:
            builder.enrich(UA_PARSER_ADDON)

        referrer = request.headers.get("referer")
        if self.policy.enrich_referrer and referrer:
            builder.add_data("page_url", str(request.url)).add_data("referrer_url", referrer)
            builder.enrich(REFERRER_PARSER_ADDON)

        return builder.build()

    async def _persist(self, buffer: EventBuffer) -> DeliveryOutcome:
        outcome = await self.dispatcher.persist(buffer)
        if outcome.is_failed:
            logger.warning("Event delivery failed: %s", outcome.reason)
        else:
            logger.debug(
                "Event delivery %s%s",
                outcome.status.value,
                f" ({outcome.reason})" if outcome.reason else "",
            )
        return outcome

    @staticmethod
    def _attach_background(response: Response, task: BackgroundTask) -> None:
        # Keep any background work the response already carries
        existing = response.background
        if existing is None:
            response.background = task
        elif isinstance(existing, BackgroundTasks):
            existing.tasks.append(task)
        else:
            response.background = BackgroundTasks(tasks=[existing, task])


def route_fingerprint(
    method: str, host: str, route_path: Optional[str], ip: Optional[str]
) -> str:
    """Stable SHA-1 identifying one route as hit from one client."""
    raw = "|".join([method, host, route_path or "", ip or ""])
    return hashlib.sha1(raw.encode("utf-8")).hexdigest()


def get_event_buffer(request: Request) -> EventBuffer:
    """
    FastAPI dependency returning the current request's EventBuffer.

    Without RequestTrackingMiddleware installed, a detached buffer is
    returned so handlers keep working; its events are never sent.
    """
    buffer = getattr(request.state, "events", None)
    if buffer is None:
        logger.debug("No tracking middleware installed; events for %s are dropped", request.url.path)
        return EventBuffer()
    return buffer
