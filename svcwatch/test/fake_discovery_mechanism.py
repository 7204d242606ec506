import itertools
import threading
from typing import Dict, List, Optional, Tuple

from svcwatch.discovery.discovery_mechanism import (
    DiscoveryMechanism,
    SearchHandle,
)
from svcwatch.discovery.errors import DiscoveryMechanismError
from svcwatch.discovery.service_event import ServiceEventKind
from svcwatch.discovery.service_record import ServiceRecord


class FakeDiscoveryMechanism(DiscoveryMechanism):
    """In-memory mechanism; tests drive signals through the active client."""

    __test__ = False

    def __init__(self, begin_error: Optional[int] = None) -> None:
        self.begin_error = begin_error
        self.begin_calls: List[Tuple[str, str]] = []
        self.end_calls: List[SearchHandle] = []
        self.closed = False
        self.__ids = itertools.count(1)
        self.__lock = threading.Lock()
        self.__active: Dict[int, DiscoveryMechanism.Client] = {}

    def begin_search(
        self, service_type: str, domain: str, client: DiscoveryMechanism.Client
    ) -> SearchHandle:
        self.begin_calls.append((service_type, domain))
        if self.begin_error is not None:
            raise DiscoveryMechanismError(self.begin_error)
        handle = SearchHandle(next(self.__ids), service_type, domain)
        with self.__lock:
            self.__active[handle.search_id] = client
        return handle

    def end_search(self, handle: SearchHandle) -> None:
        self.end_calls.append(handle)
        with self.__lock:
            self.__active.pop(handle.search_id, None)

    def close(self) -> None:
        self.closed = True

    @property
    def active_search_count(self) -> int:
        with self.__lock:
            return len(self.__active)

    def client(self) -> DiscoveryMechanism.Client:
        with self.__lock:
            assert len(self.__active) == 1, "Expected exactly one active search."
            return next(iter(self.__active.values()))


class RecordingObserver:
    """Observer that remembers every (record, kind) it receives."""

    __test__ = False

    def __init__(self) -> None:
        self.events: List[Tuple[ServiceRecord, ServiceEventKind]] = []
        self.__lock = threading.Lock()

    def __call__(self, record: ServiceRecord, kind: ServiceEventKind) -> None:
        with self.__lock:
            self.events.append((record, kind))

    def of_kind(self, kind: ServiceEventKind) -> List[ServiceRecord]:
        with self.__lock:
            return [r for r, k in self.events if k is kind]
