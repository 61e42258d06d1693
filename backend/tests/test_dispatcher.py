"""
Request Tracker: Dispatcher Unit Tests
=======================================

What:  Tests for Dispatcher.persist() and its fire-and-forget companions.
How:   In-memory transport doubles from conftest.py; no network.

What we test:
    ✅ Disabled mode and empty batches are skipped without a transport call
    ✅ A working transport receives the batch once, unchanged → delivered
    ✅ Any transport fault (or timeout) → failed(reason), never raised
    ✅ Sends are serialized for transports that are not concurrency safe
    ✅ schedule() / aclose() lifecycle
    ❌ Real collector calls (see test_keen_transport.py for HTTP mapping)
"""

import asyncio

import pytest

from conftest import FailingTransport, RecordingTransport, SlowTransport
from tracker.config import Settings
from tracker.exceptions import CollectorConnectionError, TransportError
from tracker.schemas.events import DeliveryOutcome, DeliveryStatus
from tracker.services.dispatcher import Dispatcher, create_dispatcher
from tracker.services.event_buffer import EventBuffer
from tracker.services.keen_transport import KeenTransport


class TestDispatcherSkips:
    """Cases where persist() must not touch the transport."""

    @pytest.mark.parametrize(
        "project_id, master_key, write_key",
        [
            (None, None, None),
            (None, "m", "w"),
            ("", "m", "w"),
            ("p", None, None),
            ("p", "", ""),
        ],
    )
    @pytest.mark.asyncio
    async def test_missing_credentials_is_disabled_mode(
        self, project_id, master_key, write_key, recording_transport
    ):
        dispatcher = Dispatcher(
            project_id=project_id,
            master_key=master_key,
            write_key=write_key,
            transport=recording_transport,
        )
        assert dispatcher.enabled is False
        assert dispatcher.transport is None

        outcome = await dispatcher.persist({"request": [{"path": "/a"}]})

        assert outcome.status is DeliveryStatus.SKIPPED
        assert recording_transport.calls == []

    def test_disabled_mode_never_builds_a_transport(self):
        assert Dispatcher(project_id="p").transport is None

    @pytest.mark.asyncio
    async def test_empty_batch_is_skipped(self, dispatcher, recording_transport):
        outcome = await dispatcher.persist({})

        assert outcome.is_skipped
        assert recording_transport.calls == []

    @pytest.mark.asyncio
    async def test_empty_buffer_is_skipped(self, dispatcher, recording_transport):
        outcome = await dispatcher.persist(EventBuffer())

        assert outcome == DeliveryOutcome.skipped("empty batch")
        assert recording_transport.calls == []


class TestDispatcherDelivery:
    """Cases where the transport accepts the batch."""

    @pytest.mark.asyncio
    async def test_two_requests_delivered_in_one_call(self, dispatcher, recording_transport):
        buffer = EventBuffer()
        buffer.add_event("request", {"path": "/a"})
        buffer.add_event("request", {"path": "/b"})

        outcome = await dispatcher.persist(buffer)

        assert outcome.is_delivered
        assert outcome.reason is None
        assert recording_transport.calls == [
            {"request": [{"path": "/a"}, {"path": "/b"}]}
        ]

    @pytest.mark.asyncio
    async def test_payload_is_passed_unchanged(self, dispatcher, recording_transport):
        batch = {
            "signup": [{"plan": "free", "tags": ["a", "b"]}],
            "request": [{"path": "/z"}, {"path": "/a"}, {"path": "/m"}],
        }

        await dispatcher.persist(batch)

        sent = recording_transport.calls[0]
        assert sent == batch
        assert list(sent) == ["signup", "request"]
        assert [p["path"] for p in sent["request"]] == ["/z", "/a", "/m"]

    @pytest.mark.asyncio
    async def test_persist_drains_the_buffer(self, dispatcher):
        buffer = EventBuffer().add_event("request", {"path": "/a"})
        await dispatcher.persist(buffer)
        assert buffer.is_empty()

    @pytest.mark.asyncio
    async def test_master_key_alone_enables_delivery(self, recording_transport):
        dispatcher = Dispatcher(project_id="p", master_key="m", transport=recording_transport)

        outcome = await dispatcher.persist({"request": [{}]})

        assert outcome.is_delivered
        assert len(recording_transport.calls) == 1

    @pytest.mark.asyncio
    async def test_each_persist_makes_exactly_one_attempt(self, dispatcher, recording_transport):
        for _ in range(3):
            await dispatcher.persist({"request": [{}]})
        assert len(recording_transport.calls) == 3


class TestDispatcherFailureIsolation:
    """Transport faults must come back as values, never as exceptions."""

    @pytest.mark.asyncio
    async def test_fault_message_becomes_reason(self):
        transport = FailingTransport(RuntimeError("collector exploded"))
        dispatcher = Dispatcher(project_id="p", write_key="w", transport=transport)

        outcome = await dispatcher.persist(
            EventBuffer().add_event("request", {"path": "/a"})
        )

        assert outcome == DeliveryOutcome.failed("collector exploded")
        assert transport.calls == 1

    @pytest.mark.asyncio
    async def test_rejection_is_absorbed(self, failing_transport):
        dispatcher = Dispatcher(project_id="p", write_key="w", transport=failing_transport)

        outcome = await dispatcher.persist({"request": [{}]})

        assert outcome.is_failed
        assert outcome.reason == "Invalid write key"

    @pytest.mark.parametrize(
        "exc",
        [
            CollectorConnectionError("connection refused"),
            TransportError("bad payload"),
            ValueError("not serializable"),
            KeyError("missing"),
            OSError("disk on fire"),
        ],
    )
    @pytest.mark.asyncio
    async def test_any_exception_type_is_absorbed(self, exc):
        dispatcher = Dispatcher(project_id="p", write_key="w", transport=FailingTransport(exc))

        outcome = await dispatcher.persist({"request": [{}]})

        assert outcome.is_failed
        assert outcome.reason

    @pytest.mark.asyncio
    async def test_empty_message_falls_back_to_exception_name(self):
        dispatcher = Dispatcher(
            project_id="p", write_key="w", transport=FailingTransport(RuntimeError())
        )

        outcome = await dispatcher.persist({"request": [{}]})

        assert outcome.reason == "RuntimeError"

    @pytest.mark.asyncio
    async def test_no_retry_after_failure(self):
        transport = FailingTransport(RuntimeError("down"))
        dispatcher = Dispatcher(project_id="p", write_key="w", transport=transport)

        await dispatcher.persist({"request": [{}]})

        assert transport.calls == 1

    @pytest.mark.asyncio
    async def test_slow_transport_times_out_as_failure(self):
        transport = SlowTransport(delay=1.0)
        dispatcher = Dispatcher(
            project_id="p", write_key="w", transport=transport, send_timeout=0.05
        )

        outcome = await dispatcher.persist({"request": [{}]})

        assert outcome == DeliveryOutcome.failed("delivery timed out after 0.05s")
        assert transport.calls == []

    @pytest.mark.asyncio
    async def test_transport_timeout_keeps_its_own_message(self):
        """A TimeoutError raised by the transport is not the send deadline."""
        transport = FailingTransport(TimeoutError("socket read timed out"))
        dispatcher = Dispatcher(project_id="p", write_key="w", transport=transport)

        outcome = await dispatcher.persist({"request": [{}]})

        assert outcome == DeliveryOutcome.failed("socket read timed out")
        assert transport.calls == 1


class TestDispatcherConcurrency:
    """Shared-transport behaviour across concurrent requests."""

    @pytest.mark.asyncio
    async def test_unsafe_transport_is_serialized(self):
        transport = SlowTransport(delay=0.01, concurrency_safe=False)
        dispatcher = Dispatcher(project_id="p", write_key="w", transport=transport)

        outcomes = await asyncio.gather(
            *[dispatcher.persist({"request": [{"n": i}]}) for i in range(5)]
        )

        assert all(o.is_delivered for o in outcomes)
        assert transport.max_active == 1
        assert len(transport.calls) == 5

    @pytest.mark.asyncio
    async def test_safe_transport_runs_concurrently(self):
        transport = SlowTransport(delay=0.01, concurrency_safe=True)
        dispatcher = Dispatcher(project_id="p", write_key="w", transport=transport)

        await asyncio.gather(
            *[dispatcher.persist({"request": [{"n": i}]}) for i in range(5)]
        )

        assert transport.max_active > 1


class TestDispatcherLifecycle:
    """schedule(), pending and aclose()."""

    @pytest.mark.asyncio
    async def test_schedule_then_aclose_delivers(self):
        transport = SlowTransport(delay=0.01)
        dispatcher = Dispatcher(project_id="p", write_key="w", transport=transport)

        task = dispatcher.schedule(EventBuffer().add_event("request", {"path": "/a"}))

        assert task is not None
        assert dispatcher.pending == 1

        await dispatcher.aclose()

        assert dispatcher.pending == 0
        assert transport.calls == [{"request": [{"path": "/a"}]}]
        assert task.result().is_delivered

    @pytest.mark.asyncio
    async def test_schedule_returns_none_when_nothing_to_send(self, dispatcher):
        assert dispatcher.schedule({}) is None
        assert Dispatcher().schedule({"request": [{}]}) is None
        assert dispatcher.pending == 0

    @pytest.mark.asyncio
    async def test_aclose_leaves_injected_transport_open(self, dispatcher, recording_transport):
        await dispatcher.aclose()
        assert recording_transport.closed is False

    @pytest.mark.asyncio
    async def test_aclose_is_idempotent(self, dispatcher):
        await dispatcher.aclose()
        await dispatcher.aclose()

    @pytest.mark.asyncio
    async def test_schedule_after_aclose_is_refused(self, dispatcher, recording_transport):
        await dispatcher.aclose()

        task = dispatcher.schedule({"request": [{"path": "/late"}]})

        assert task is None
        assert dispatcher.pending == 0
        assert recording_transport.calls == []

    @pytest.mark.asyncio
    async def test_builds_keen_transport_preferring_write_key(self):
        dispatcher = Dispatcher(project_id="proj", master_key="m", write_key="w")
        try:
            assert isinstance(dispatcher.transport, KeenTransport)
            assert dispatcher.transport.url == "https://api.keen.io/3.0/projects/proj/events"
            assert dispatcher.transport._api_key == "w"
        finally:
            await dispatcher.aclose()

    @pytest.mark.asyncio
    async def test_falls_back_to_master_key(self):
        dispatcher = Dispatcher(project_id="proj", master_key="m")
        try:
            assert dispatcher.transport._api_key == "m"
        finally:
            await dispatcher.aclose()


class TestCreateDispatcher:
    """Factory wiring from Settings."""

    @pytest.mark.asyncio
    async def test_configured_settings_enable_delivery(self):
        settings = Settings(
            _env_file=None,
            keen_project_id="p",
            keen_write_key="w",
            keen_base_url="http://collector.local/",
            keen_timeout=2.5,
        )
        dispatcher = create_dispatcher(settings)
        try:
            assert dispatcher.enabled
            assert dispatcher.send_timeout == 2.5
            assert dispatcher.transport.url == "http://collector.local/3.0/projects/p/events"
        finally:
            await dispatcher.aclose()

    def test_unconfigured_settings_disable_delivery(self):
        dispatcher = create_dispatcher(Settings(_env_file=None))
        assert dispatcher.enabled is False
        assert dispatcher.transport is None
