import asyncio
import threading
from typing import List, Tuple

import pytest

from svcwatch.discovery.browse_session import BrowseSession
from svcwatch.discovery.event_loop_observer import EventLoopObserver
from svcwatch.discovery.service_event import ServiceEventKind
from svcwatch.discovery.service_record import ServiceRecord
from svcwatch.test.fake_discovery_mechanism import FakeDiscoveryMechanism

HTTP_TYPE = "_http._tcp."
LOCAL = "local."


def test_none_arguments_rejected() -> None:
    loop = asyncio.new_event_loop()
    try:
        with pytest.raises(ValueError, match="callback cannot be None"):
            EventLoopObserver(None, loop)  # type: ignore[arg-type]
    finally:
        loop.close()

    async def callback(record: ServiceRecord, kind: ServiceEventKind) -> None:
        pass

    with pytest.raises(ValueError, match="event_loop cannot be None"):
        EventLoopObserver(callback, None)  # type: ignore[arg-type]


@pytest.mark.asyncio
async def test_events_from_other_thread_run_on_loop() -> None:
    loop = asyncio.get_running_loop()
    received: List[Tuple[ServiceRecord, ServiceEventKind]] = []
    loops_seen: List[asyncio.AbstractEventLoop] = []
    done = asyncio.Event()

    async def callback(record: ServiceRecord, kind: ServiceEventKind) -> None:
        loops_seen.append(asyncio.get_running_loop())
        received.append((record, kind))
        if len(received) == 2:
            done.set()

    session = BrowseSession(
        FakeDiscoveryMechanism(), observer=EventLoopObserver(callback, loop)
    )
    session.start(HTTP_TYPE, LOCAL)
    printer = ServiceRecord("printer1", HTTP_TYPE, LOCAL)

    def deliver() -> None:
        session.on_discovery_found(printer)
        session.on_discovery_found(printer)
        session.on_discovery_removed(printer)

    worker = threading.Thread(target=deliver)
    worker.start()
    worker.join(timeout=5.0)

    await asyncio.wait_for(done.wait(), timeout=5.0)

    assert received == [
        (printer, ServiceEventKind.ADDED),
        (printer, ServiceEventKind.REMOVED),
    ]
    assert loops_seen == [loop, loop]
    session.stop()


@pytest.mark.asyncio
async def test_pending_tracks_unfinished_callbacks() -> None:
    loop = asyncio.get_running_loop()
    release = asyncio.Event()

    async def callback(record: ServiceRecord, kind: ServiceEventKind) -> None:
        await release.wait()

    observer = EventLoopObserver(callback, loop)
    record = ServiceRecord("printer1", HTTP_TYPE, LOCAL)

    observer(record, ServiceEventKind.ADDED)
    assert len(observer.pending()) == 1

    release.set()
    futures = observer.pending()
    await asyncio.wait_for(asyncio.wrap_future(futures[0]), timeout=5.0)

    assert observer.pending() == []


def test_closed_loop_drops_event(caplog) -> None:
    loop = asyncio.new_event_loop()
    loop.close()

    async def callback(record: ServiceRecord, kind: ServiceEventKind) -> None:
        raise AssertionError("should not run")

    observer = EventLoopObserver(callback, loop)

    observer(
        ServiceRecord("printer1", HTTP_TYPE, LOCAL), ServiceEventKind.ADDED
    )

    assert observer.pending() == []
    assert "Event loop closed" in caplog.text


def test_pending_keeps_every_future_under_concurrent_calls() -> None:
    loop = asyncio.new_event_loop()
    loop_thread = threading.Thread(target=loop.run_forever, daemon=True)
    loop_thread.start()
    release = threading.Event()

    async def callback(record: ServiceRecord, kind: ServiceEventKind) -> None:
        while not release.is_set():
            await asyncio.sleep(0.01)

    observer = EventLoopObserver(callback, loop)
    record = ServiceRecord("printer1", HTTP_TYPE, LOCAL)
    threads_count, calls_per_thread = 8, 50

    def deliver() -> None:
        for _ in range(calls_per_thread):
            observer(record, ServiceEventKind.ADDED)

    workers = [threading.Thread(target=deliver) for _ in range(threads_count)]
    try:
        for worker in workers:
            worker.start()
        while any(worker.is_alive() for worker in workers):
            observer.pending()
        for worker in workers:
            worker.join(timeout=5.0)

        assert len(observer.pending()) == threads_count * calls_per_thread
    finally:
        release.set()
        for future in observer.pending():
            future.result(timeout=5.0)
        loop.call_soon_threadsafe(loop.stop)
        loop_thread.join(timeout=5.0)
        loop.close()
