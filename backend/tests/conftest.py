"""
Request Tracker: Test Configuration (conftest.py)
==================================================

What:  Shared fixtures and collector transport test doubles.
How:   Transports are small in-memory CollectorTransport subclasses, so no
       test touches the network. App tests route HTTPX requests straight to
       the ASGI app through ASGITransport.

Fixture Inventory:
    ├── recording_transport: accepts every batch and remembers it
    ├── failing_transport: raises a CollectorRejectedError on every send
    ├── dispatcher: enabled Dispatcher wired to recording_transport
    ├── tracking_settings: Settings isolated from the environment
    └── make_client: builds an HTTPX AsyncClient for a FastAPI app
"""

import asyncio
import os
from typing import List

# Settings are read at import time; keep the developer's real credentials
# and .env out of the test run.
for _var in ("KEEN_PROJECT_ID", "KEEN_MASTER_KEY", "KEEN_WRITE_KEY"):
    os.environ.pop(_var, None)
os.environ["LOG_LEVEL"] = "WARNING"

import pytest
from httpx import ASGITransport, AsyncClient

from tracker.config import Settings
from tracker.exceptions import CollectorRejectedError
from tracker.schemas.events import EventBatch
from tracker.services.dispatcher import Dispatcher
from tracker.services.transport_base import CollectorTransport


# ══════════════════════════════════════════════════════════════════════════
# Transport Test Doubles
# ══════════════════════════════════════════════════════════════════════════

class RecordingTransport(CollectorTransport):
    """Accepts every batch and records it."""

    def __init__(self):
        self.calls: List[EventBatch] = []
        self.closed = False

    async def send_events(self, batch: EventBatch) -> None:
        self.calls.append(batch)

    async def aclose(self) -> None:
        self.closed = True


class FailingTransport(CollectorTransport):
    """Raises the given exception on every send."""

    def __init__(self, exc: Exception):
        self.exc = exc
        self.calls = 0

    async def send_events(self, batch: EventBatch) -> None:
        self.calls += 1
        raise self.exc


class SlowTransport(CollectorTransport):
    """Sleeps before accepting; tracks how many sends overlap."""

    def __init__(self, delay: float, concurrency_safe: bool = True):
        self.delay = delay
        self.concurrency_safe = concurrency_safe
        self.calls: List[EventBatch] = []
        self.active = 0
        self.max_active = 0

    async def send_events(self, batch: EventBatch) -> None:
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(self.delay)
            self.calls.append(batch)
        finally:
            self.active -= 1


# ══════════════════════════════════════════════════════════════════════════
# Fixtures
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def recording_transport():
    return RecordingTransport()


@pytest.fixture
def failing_transport():
    return FailingTransport(
        CollectorRejectedError(status_code=401, message="Invalid write key")
    )


@pytest.fixture
def dispatcher(recording_transport):
    """Enabled Dispatcher delivering into recording_transport."""
    return Dispatcher(project_id="p", write_key="w", transport=recording_transport)


@pytest.fixture
def tracking_settings():
    """
    Settings built without reading .env.

    Usage:
        def test_x(tracking_settings):
            s = tracking_settings(track_requests=False)
    """
    def _build(**overrides) -> Settings:
        return Settings(_env_file=None, **overrides)
    return _build


@pytest.fixture
def make_client():
    """
    Provides an HTTPX AsyncClient factory bound to a FastAPI app.

    Usage:
        async with make_client(app) as client:
            response = await client.get("/health")
    """
    def _make(app, raise_app_exceptions: bool = True, root_path: str = "") -> AsyncClient:
        transport = ASGITransport(
            app=app, raise_app_exceptions=raise_app_exceptions, root_path=root_path
        )
        return AsyncClient(transport=transport, base_url="http://test")
    return _make
