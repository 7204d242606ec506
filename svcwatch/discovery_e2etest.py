import asyncio
import uuid
from typing import List, Tuple

import pytest

from svcwatch.discovery.browse_session import BrowseSession, BrowseState
from svcwatch.discovery.event_loop_observer import EventLoopObserver
from svcwatch.discovery.mdns.service_advertiser import ServiceAdvertiser
from svcwatch.discovery.mdns.zeroconf_mechanism import (
    ZeroconfDiscoveryMechanism,
)
from svcwatch.discovery.service_event import ServiceEventKind
from svcwatch.discovery.service_record import ServiceRecord

pytestmark = pytest.mark.e2e

DOMAIN = "local."


class EventCollector:
    __test__ = False

    def __init__(self) -> None:
        self.events: List[Tuple[ServiceRecord, ServiceEventKind]] = []
        self.changed = asyncio.Event()

    async def on_event(
        self, record: ServiceRecord, kind: ServiceEventKind
    ) -> None:
        self.events.append((record, kind))
        self.changed.set()

    async def wait_for(
        self, record: ServiceRecord, kind: ServiceEventKind, timeout: float
    ) -> None:
        async def wait() -> None:
            while (record, kind) not in self.events:
                self.changed.clear()
                await self.changed.wait()

        await asyncio.wait_for(wait(), timeout=timeout)


def unique_service_type() -> str:
    return f"_e2e-{uuid.uuid4().hex[:8]}._tcp."


@pytest.mark.asyncio
async def test_advertised_service_is_added_then_removed() -> None:
    service_type = unique_service_type()
    record = ServiceRecord(
        f"TestInstance_{uuid.uuid4().hex[:8]}", service_type, DOMAIN
    )
    collector = EventCollector()
    mechanism = ZeroconfDiscoveryMechanism()
    session = BrowseSession(
        mechanism,
        observer=EventLoopObserver(
            collector.on_event, asyncio.get_running_loop()
        ),
    )
    advertiser = ServiceAdvertiser(record, 50011)

    try:
        session.start(service_type, DOMAIN)
        assert session.state is BrowseState.SEARCHING

        await advertiser.publish()
        await collector.wait_for(record, ServiceEventKind.ADDED, timeout=10.0)
        assert session.snapshot() == [record]

        await advertiser.close()
        await collector.wait_for(
            record, ServiceEventKind.REMOVED, timeout=10.0
        )
        assert session.snapshot() == []
    finally:
        if advertiser.is_published:
            await advertiser.close()
        session.stop()
        mechanism.close()

    added = [r for r, k in collector.events if k is ServiceEventKind.ADDED]
    assert added == [record]


@pytest.mark.asyncio
async def test_other_service_types_are_not_reported() -> None:
    wanted_type = unique_service_type()
    other_type = unique_service_type()
    wanted = ServiceRecord("Wanted", wanted_type, DOMAIN)
    other = ServiceRecord("Other", other_type, DOMAIN)
    collector = EventCollector()
    mechanism = ZeroconfDiscoveryMechanism()
    session = BrowseSession(
        mechanism,
        observer=EventLoopObserver(
            collector.on_event, asyncio.get_running_loop()
        ),
    )
    other_advertiser = ServiceAdvertiser(other, 50012)
    wanted_advertiser = ServiceAdvertiser(wanted, 50013)

    try:
        session.start(wanted_type, DOMAIN)
        await other_advertiser.publish()
        await wanted_advertiser.publish()

        await collector.wait_for(wanted, ServiceEventKind.ADDED, timeout=10.0)
        await asyncio.sleep(0.5)
    finally:
        await other_advertiser.close()
        await wanted_advertiser.close()
        session.stop()
        mechanism.close()

    assert all(r.service_type == wanted_type for r, _ in collector.events)
