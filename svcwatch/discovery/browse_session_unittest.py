import threading
from typing import List
from unittest.mock import MagicMock

import pytest

from svcwatch.discovery.browse_session import (
    BrowseSession,
    BrowseState,
    LoggingDiagnosticListener,
)
from svcwatch.discovery.discovery_mechanism import (
    DiscoveryMechanism,
    SearchHandle,
)
from svcwatch.discovery.errors import DiscoveryMechanismError, InvalidStateError
from svcwatch.discovery.service_event import ServiceEventKind
from svcwatch.discovery.service_record import ServiceRecord
from svcwatch.test.fake_discovery_mechanism import (
    FakeDiscoveryMechanism,
    RecordingObserver,
)

HTTP_TYPE = "_http._tcp."
LOCAL = "local."

ADDED = ServiceEventKind.ADDED
REMOVED = ServiceEventKind.REMOVED


def http_record(name: str) -> ServiceRecord:
    return ServiceRecord(name, HTTP_TYPE, LOCAL)


@pytest.fixture
def mechanism() -> FakeDiscoveryMechanism:
    return FakeDiscoveryMechanism()


@pytest.fixture
def observer() -> RecordingObserver:
    return RecordingObserver()


@pytest.fixture
def diagnostics(mocker) -> MagicMock:
    return mocker.create_autospec(
        BrowseSession.DiagnosticListener, instance=True
    )


@pytest.fixture
def session(
    mechanism: FakeDiscoveryMechanism,
    observer: RecordingObserver,
    diagnostics: MagicMock,
) -> BrowseSession:
    return BrowseSession(
        mechanism, observer=observer, diagnostic_listener=diagnostics
    )


# --- Construction ---


def test_new_session_is_idle(session: BrowseSession) -> None:
    assert session.state is BrowseState.IDLE
    assert session.snapshot() == []
    assert session.service_type is None
    assert session.domain is None


def test_mechanism_none_rejected() -> None:
    with pytest.raises(ValueError, match="mechanism cannot be None"):
        BrowseSession(None)  # type: ignore[arg-type]


def test_mechanism_wrong_type_rejected() -> None:
    with pytest.raises(TypeError, match="mechanism must be DiscoveryMechanism"):
        BrowseSession(object())  # type: ignore[arg-type]


# --- start() ---


def test_start_begins_search(
    session: BrowseSession,
    mechanism: FakeDiscoveryMechanism,
    diagnostics: MagicMock,
) -> None:
    session.start(HTTP_TYPE, LOCAL)

    assert session.state is BrowseState.SEARCHING
    assert session.service_type == HTTP_TYPE
    assert session.domain == LOCAL
    assert mechanism.begin_calls == [(HTTP_TYPE, LOCAL)]
    assert mechanism.client() is session
    diagnostics._on_will_search.assert_called_once_with(HTTP_TYPE, LOCAL)


def test_start_while_searching_fails_and_keeps_state(
    session: BrowseSession, mechanism: FakeDiscoveryMechanism
) -> None:
    session.start(HTTP_TYPE, LOCAL)
    session.on_discovery_found(http_record("printer1"))

    with pytest.raises(InvalidStateError, match="already searching"):
        session.start("_ipp._tcp.", LOCAL)

    assert session.state is BrowseState.SEARCHING
    assert session.service_type == HTTP_TYPE
    assert session.snapshot() == [http_record("printer1")]
    assert mechanism.begin_calls == [(HTTP_TYPE, LOCAL)]


def test_start_after_failed_start_is_allowed(session: BrowseSession) -> None:
    session.start(HTTP_TYPE, LOCAL)
    with pytest.raises(InvalidStateError):
        session.start(HTTP_TYPE, LOCAL)

    session.stop()
    session.start(HTTP_TYPE, LOCAL)
    assert session.state is BrowseState.SEARCHING


@pytest.mark.parametrize("service_type, domain", [("", LOCAL), (HTTP_TYPE, "")])
def test_start_rejects_empty_scope(
    session: BrowseSession, service_type: str, domain: str
) -> None:
    with pytest.raises(ValueError):
        session.start(service_type, domain)
    assert session.state is BrowseState.IDLE


def test_start_when_mechanism_cannot_begin(diagnostics: MagicMock) -> None:
    mechanism = FakeDiscoveryMechanism(begin_error=-72004)
    session = BrowseSession(mechanism, diagnostic_listener=diagnostics)

    session.start(HTTP_TYPE, LOCAL)

    assert session.state is BrowseState.STOPPED
    assert session.snapshot() == []
    diagnostics._on_will_search.assert_called_once_with(HTTP_TYPE, LOCAL)
    diagnostics._on_search_failed.assert_called_once()
    error = diagnostics._on_search_failed.call_args.args[0]
    assert isinstance(error, DiscoveryMechanismError)
    assert error.code == -72004
    assert mechanism.end_calls == []


class CrashingDiscoveryMechanism(FakeDiscoveryMechanism):
    __test__ = False

    def begin_search(
        self, service_type: str, domain: str, client: DiscoveryMechanism.Client
    ) -> SearchHandle:
        self.begin_calls.append((service_type, domain))
        raise RuntimeError("The event loop is not running")


def test_unexpected_mechanism_failure_leaves_session_stopped(
    diagnostics: MagicMock,
) -> None:
    mechanism = CrashingDiscoveryMechanism()
    session = BrowseSession(mechanism, diagnostic_listener=diagnostics)

    with pytest.raises(RuntimeError, match="event loop is not running"):
        session.start(HTTP_TYPE, LOCAL)

    assert session.state is BrowseState.STOPPED
    assert session.snapshot() == []
    diagnostics._on_search_failed.assert_not_called()

    # Not stuck in SEARCHING: a later start reaches the mechanism again.
    with pytest.raises(RuntimeError):
        session.start(HTTP_TYPE, LOCAL)
    assert mechanism.begin_calls == [(HTTP_TYPE, LOCAL), (HTTP_TYPE, LOCAL)]


def test_raising_will_search_listener_leaves_session_stopped(
    mechanism: FakeDiscoveryMechanism, diagnostics: MagicMock
) -> None:
    diagnostics._on_will_search.side_effect = ValueError("listener bug")
    session = BrowseSession(mechanism, diagnostic_listener=diagnostics)

    with pytest.raises(ValueError, match="listener bug"):
        session.start(HTTP_TYPE, LOCAL)

    assert session.state is BrowseState.STOPPED
    assert mechanism.begin_calls == []

    diagnostics._on_will_search.side_effect = None
    session.start(HTTP_TYPE, LOCAL)
    assert session.state is BrowseState.SEARCHING
    assert mechanism.active_search_count == 1


# --- stop() ---


def test_stop_when_idle_is_noop(
    session: BrowseSession,
    mechanism: FakeDiscoveryMechanism,
    diagnostics: MagicMock,
) -> None:
    session.stop()

    assert session.state is BrowseState.IDLE
    assert mechanism.end_calls == []
    diagnostics._on_search_stopped.assert_not_called()


def test_stop_detaches_and_clears(
    session: BrowseSession,
    mechanism: FakeDiscoveryMechanism,
    diagnostics: MagicMock,
) -> None:
    session.start(HTTP_TYPE, LOCAL)
    session.on_discovery_found(http_record("printer1"))
    session.on_discovery_found(http_record("printer2"))

    session.stop()

    assert session.state is BrowseState.STOPPED
    assert session.snapshot() == []
    assert len(mechanism.end_calls) == 1
    assert mechanism.active_search_count == 0
    diagnostics._on_search_stopped.assert_called_once_with()


def test_stop_twice_is_noop(
    session: BrowseSession, mechanism: FakeDiscoveryMechanism
) -> None:
    session.start(HTTP_TYPE, LOCAL)
    session.stop()
    session.stop()

    assert session.state is BrowseState.STOPPED
    assert len(mechanism.end_calls) == 1


def test_restart_has_clean_registry(
    session: BrowseSession,
    mechanism: FakeDiscoveryMechanism,
    observer: RecordingObserver,
) -> None:
    session.start(HTTP_TYPE, LOCAL)
    session.on_discovery_found(http_record("printer1"))
    session.stop()

    session.start(HTTP_TYPE, LOCAL)

    assert session.state is BrowseState.SEARCHING
    assert session.snapshot() == []
    assert len(mechanism.begin_calls) == 2

    # Previously known services are announced again after a restart.
    session.on_discovery_found(http_record("printer1"))
    assert observer.of_kind(ADDED) == [
        http_record("printer1"),
        http_record("printer1"),
    ]


# --- Signals ---


def test_printer_add_duplicate_remove_scenario(
    session: BrowseSession, observer: RecordingObserver
) -> None:
    printer = http_record("printer1")
    session.start(HTTP_TYPE, LOCAL)

    session.on_discovery_found(printer)
    assert observer.events == [(printer, ADDED)]

    session.on_discovery_found(http_record("printer1"))
    assert observer.events == [(printer, ADDED)]

    session.on_discovery_removed(printer)
    assert observer.events == [(printer, ADDED), (printer, REMOVED)]
    assert session.snapshot() == []


def test_remove_of_unknown_service_is_suppressed(
    session: BrowseSession, observer: RecordingObserver
) -> None:
    session.start(HTTP_TYPE, LOCAL)

    session.on_discovery_removed(http_record("ghost"))

    assert observer.events == []


def test_snapshot_while_searching_in_insertion_order(
    session: BrowseSession,
) -> None:
    session.start(HTTP_TYPE, LOCAL)
    for name in ["b", "a", "c"]:
        session.on_discovery_found(http_record(name))

    assert [r.name for r in session.snapshot()] == ["b", "a", "c"]


def test_signals_ignored_when_not_searching(
    session: BrowseSession, observer: RecordingObserver
) -> None:
    session.on_discovery_found(http_record("printer1"))
    session.on_discovery_removed(http_record("printer1"))
    session.on_discovery_error(-1)

    assert session.state is BrowseState.IDLE
    assert observer.events == []


def test_signal_for_other_type_is_ignored(
    session: BrowseSession, observer: RecordingObserver
) -> None:
    session.start(HTTP_TYPE, LOCAL)

    session.on_discovery_found(ServiceRecord("printer1", "_ipp._tcp.", LOCAL))

    assert observer.events == []
    assert session.snapshot() == []


def test_events_without_observer_are_dropped(
    mechanism: FakeDiscoveryMechanism,
) -> None:
    session = BrowseSession(mechanism)
    session.start(HTTP_TYPE, LOCAL)

    session.on_discovery_found(http_record("printer1"))

    assert session.snapshot() == [http_record("printer1")]


def test_new_observer_gets_no_replay(
    mechanism: FakeDiscoveryMechanism,
) -> None:
    session = BrowseSession(mechanism)
    session.start(HTTP_TYPE, LOCAL)
    session.on_discovery_found(http_record("printer1"))

    late_observer = RecordingObserver()
    session.set_observer(late_observer)
    assert late_observer.events == []

    session.on_discovery_found(http_record("printer2"))
    session.on_discovery_removed(http_record("printer1"))

    assert late_observer.events == [
        (http_record("printer2"), ADDED),
        (http_record("printer1"), REMOVED),
    ]


def test_set_observer_replaces_previous(
    session: BrowseSession, observer: RecordingObserver
) -> None:
    session.start(HTTP_TYPE, LOCAL)
    replacement = RecordingObserver()
    session.set_observer(replacement)

    session.on_discovery_found(http_record("printer1"))

    assert observer.events == []
    assert replacement.events == [(http_record("printer1"), ADDED)]


def test_set_observer_none_drops_events(
    session: BrowseSession, observer: RecordingObserver
) -> None:
    session.start(HTTP_TYPE, LOCAL)
    session.set_observer(None)

    session.on_discovery_found(http_record("printer1"))

    assert observer.events == []


def test_observer_exception_propagates_after_update(
    mechanism: FakeDiscoveryMechanism,
) -> None:
    def failing_observer(record: ServiceRecord, kind: ServiceEventKind) -> None:
        raise RuntimeError("observer failed")

    session = BrowseSession(mechanism, observer=failing_observer)
    session.start(HTTP_TYPE, LOCAL)

    with pytest.raises(RuntimeError, match="observer failed"):
        session.on_discovery_found(http_record("printer1"))

    assert session.snapshot() == [http_record("printer1")]
    assert session.state is BrowseState.SEARCHING


# --- Errors ---


def test_discovery_error_stops_session(
    session: BrowseSession,
    mechanism: FakeDiscoveryMechanism,
    observer: RecordingObserver,
    diagnostics: MagicMock,
) -> None:
    session.start(HTTP_TYPE, LOCAL)
    session.on_discovery_found(http_record("printer1"))

    session.on_discovery_error(-1)

    assert session.state is BrowseState.STOPPED
    assert session.snapshot() == []
    assert len(mechanism.end_calls) == 1
    diagnostics._on_search_failed.assert_called_once()
    assert diagnostics._on_search_failed.call_args.args[0].code == -1
    diagnostics._on_search_stopped.assert_not_called()
    assert observer.events == [(http_record("printer1"), ADDED)]

    session.on_discovery_found(http_record("printer2"))
    assert observer.events == [(http_record("printer1"), ADDED)]
    assert session.snapshot() == []


def test_discovery_error_then_restart(session: BrowseSession) -> None:
    session.start(HTTP_TYPE, LOCAL)
    session.on_discovery_error(-72007)

    session.start(HTTP_TYPE, LOCAL)

    assert session.state is BrowseState.SEARCHING
    assert session.snapshot() == []


def test_discovery_error_without_diagnostics_does_not_raise(
    mechanism: FakeDiscoveryMechanism,
) -> None:
    session = BrowseSession(mechanism)
    session.start(HTTP_TYPE, LOCAL)

    session.on_discovery_error(-1)

    assert session.state is BrowseState.STOPPED


def test_error_delivered_from_begin_search_is_handled() -> None:
    class FailingOnBeginMechanism(FakeDiscoveryMechanism):
        def begin_search(
            self,
            service_type: str,
            domain: str,
            client: DiscoveryMechanism.Client,
        ) -> SearchHandle:
            handle = super().begin_search(service_type, domain, client)
            client.on_discovery_error(-72000)
            return handle

    mechanism = FailingOnBeginMechanism()
    session = BrowseSession(mechanism)

    session.start(HTTP_TYPE, LOCAL)

    assert session.state is BrowseState.STOPPED
    assert mechanism.active_search_count == 0
    assert len(mechanism.end_calls) == 1


# --- Concurrency ---


def test_stop_from_inside_observer_does_not_deadlock(
    mechanism: FakeDiscoveryMechanism,
) -> None:
    received: List[ServiceRecord] = []
    session = BrowseSession(mechanism)

    def stopping_observer(record: ServiceRecord, kind: ServiceEventKind) -> None:
        received.append(record)
        session.stop()

    session.set_observer(stopping_observer)
    session.start(HTTP_TYPE, LOCAL)

    worker = threading.Thread(
        target=session.on_discovery_found, args=(http_record("printer1"),)
    )
    worker.start()
    worker.join(timeout=5.0)

    assert not worker.is_alive()
    assert received == [http_record("printer1")]
    assert session.state is BrowseState.STOPPED
    assert session.snapshot() == []
    assert len(mechanism.end_calls) == 1


def test_observer_calls_never_overlap(
    session: BrowseSession, mechanism: FakeDiscoveryMechanism
) -> None:
    active = 0
    max_active = 0
    seen: List[ServiceRecord] = []
    counter_lock = threading.Lock()

    def slow_observer(record: ServiceRecord, kind: ServiceEventKind) -> None:
        nonlocal active, max_active
        with counter_lock:
            active += 1
            max_active = max(max_active, active)
        threading.Event().wait(0.001)
        seen.append(record)
        with counter_lock:
            active -= 1

    session.set_observer(slow_observer)
    session.start(HTTP_TYPE, LOCAL)

    def deliver(thread_index: int) -> None:
        for i in range(25):
            session.on_discovery_found(http_record(f"svc-{thread_index}-{i}"))

    threads = [threading.Thread(target=deliver, args=(t,)) for t in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=10.0)

    assert max_active == 1
    assert len(seen) == 100
    assert len(session.snapshot()) == 100


def test_stop_racing_with_signals_leaves_no_partial_state(
    session: BrowseSession,
) -> None:
    session.start(HTTP_TYPE, LOCAL)
    go = threading.Event()

    def deliver() -> None:
        go.wait()
        for i in range(200):
            session.on_discovery_found(http_record(f"svc-{i}"))

    worker = threading.Thread(target=deliver)
    worker.start()
    go.set()
    session.stop()
    worker.join(timeout=10.0)

    assert session.state is BrowseState.STOPPED
    assert session.snapshot() == []


def test_independent_sessions_share_nothing() -> None:
    first_mechanism = FakeDiscoveryMechanism()
    second_mechanism = FakeDiscoveryMechanism()
    first_observer = RecordingObserver()
    second_observer = RecordingObserver()
    first = BrowseSession(first_mechanism, observer=first_observer)
    second = BrowseSession(second_mechanism, observer=second_observer)

    first.start(HTTP_TYPE, LOCAL)
    second.start(HTTP_TYPE, LOCAL)
    first.on_discovery_found(http_record("printer1"))
    first.stop()

    assert second.state is BrowseState.SEARCHING
    assert second_observer.events == []
    second.on_discovery_found(http_record("printer1"))
    assert second_observer.events == [(http_record("printer1"), ADDED)]


# --- LoggingDiagnosticListener ---


def test_logging_diagnostic_listener_logs(caplog) -> None:
    mechanism = FakeDiscoveryMechanism()
    session = BrowseSession(
        mechanism, diagnostic_listener=LoggingDiagnosticListener()
    )

    with caplog.at_level("INFO", logger="svcwatch.discovery.browse_session"):
        session.start(HTTP_TYPE, LOCAL)
        session.stop()
        session.start(HTTP_TYPE, LOCAL)
        session.on_discovery_error(-72003)

    messages = [r.getMessage() for r in caplog.records]
    assert "Will search for type '_http._tcp.' in domain 'local.'." in messages
    assert "Stopped searching." in messages
    assert any("error code -72003" in m for m in messages)
