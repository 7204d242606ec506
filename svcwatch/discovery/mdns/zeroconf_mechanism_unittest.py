import threading
from unittest.mock import MagicMock

import pytest
from zeroconf import (
    BadTypeInNameException,
    InterfaceChoice,
    IPVersion,
    NotRunningException,
)

from svcwatch.config.mdns_config import MdnsConfig
from svcwatch.discovery.browse_session import BrowseSession, BrowseState
from svcwatch.discovery.errors import DiscoveryMechanismError
from svcwatch.discovery.mdns import zeroconf_mechanism
from svcwatch.discovery.mdns.zeroconf_mechanism import (
    ERROR_BAD_TYPE,
    ERROR_INVALID,
    ERROR_UNKNOWN,
    ZeroconfDiscoveryMechanism,
)
from svcwatch.discovery.service_event import ServiceEventKind
from svcwatch.discovery.service_record import ServiceRecord
from svcwatch.test.fake_discovery_mechanism import RecordingObserver

MODULE = "svcwatch.discovery.mdns.zeroconf_mechanism"
HTTP_TYPE = "_http._tcp."
LOCAL = "local."
BROWSE_TYPE = "_http._tcp.local."


@pytest.fixture
def mock_zeroconf_class(mocker) -> MagicMock:
    return mocker.patch(f"{MODULE}.Zeroconf", autospec=True)


@pytest.fixture
def mock_browser_class(mocker) -> MagicMock:
    return mocker.patch(f"{MODULE}.ServiceBrowser", autospec=True)


def listener_of(mock_browser_class: MagicMock, call_index: int = 0):
    return mock_browser_class.call_args_list[call_index].kwargs["listener"]


def test_begin_search_creates_browser_on_owned_zeroconf(
    mock_zeroconf_class: MagicMock, mock_browser_class: MagicMock
) -> None:
    mechanism = ZeroconfDiscoveryMechanism(
        config=MdnsConfig(ip_version="all", interfaces="default")
    )
    mock_zeroconf_class.assert_not_called()
    client = MagicMock()

    handle = mechanism.begin_search(HTTP_TYPE, LOCAL, client)

    mock_zeroconf_class.assert_called_once_with(
        interfaces=InterfaceChoice.Default, ip_version=IPVersion.All
    )
    mock_browser_class.assert_called_once()
    args = mock_browser_class.call_args.args
    assert args == (mock_zeroconf_class.return_value, BROWSE_TYPE)
    assert handle.service_type == HTTP_TYPE
    assert handle.domain == LOCAL


def test_owned_zeroconf_is_reused_across_searches(
    mock_zeroconf_class: MagicMock, mock_browser_class: MagicMock
) -> None:
    mechanism = ZeroconfDiscoveryMechanism()

    first = mechanism.begin_search(HTTP_TYPE, LOCAL, MagicMock())
    second = mechanism.begin_search("_ipp._tcp.", LOCAL, MagicMock())

    mock_zeroconf_class.assert_called_once()
    assert first.search_id != second.search_id
    assert mock_browser_class.call_count == 2


def test_listener_forwards_add_and_remove(
    mock_zeroconf_class: MagicMock, mock_browser_class: MagicMock
) -> None:
    mechanism = ZeroconfDiscoveryMechanism()
    client = MagicMock()
    mechanism.begin_search(HTTP_TYPE, LOCAL, client)
    listener = listener_of(mock_browser_class)
    zc = mock_zeroconf_class.return_value

    listener.add_service(zc, BROWSE_TYPE, "printer1._http._tcp.local.")
    listener.update_service(zc, BROWSE_TYPE, "printer1._http._tcp.local.")
    listener.remove_service(zc, BROWSE_TYPE, "printer1._http._tcp.local.")

    expected = ServiceRecord("printer1", HTTP_TYPE, LOCAL)
    client.on_discovery_found.assert_called_once_with(expected)
    client.on_discovery_removed.assert_called_once_with(expected)


def test_listener_drops_malformed_and_foreign_names(
    mock_zeroconf_class: MagicMock, mock_browser_class: MagicMock
) -> None:
    mechanism = ZeroconfDiscoveryMechanism()
    client = MagicMock()
    mechanism.begin_search(HTTP_TYPE, LOCAL, client)
    listener = listener_of(mock_browser_class)
    zc = mock_zeroconf_class.return_value

    listener.add_service(zc, BROWSE_TYPE, "not-an-instance.local.")
    listener.add_service(zc, "_ipp._tcp.local.", "printer._ipp._tcp.local.")

    client.on_discovery_found.assert_not_called()


def test_listener_logs_client_failures(
    mock_zeroconf_class: MagicMock, mock_browser_class: MagicMock, caplog
) -> None:
    mechanism = ZeroconfDiscoveryMechanism()
    client = MagicMock()
    client.on_discovery_found.side_effect = RuntimeError("boom")
    mechanism.begin_search(HTTP_TYPE, LOCAL, client)
    listener = listener_of(mock_browser_class)

    listener.add_service(
        mock_zeroconf_class.return_value,
        BROWSE_TYPE,
        "printer1._http._tcp.local.",
    )

    assert "Client failed to handle signal" in caplog.text


def test_end_search_cancels_and_silences_listener(
    mock_zeroconf_class: MagicMock, mock_browser_class: MagicMock
) -> None:
    mechanism = ZeroconfDiscoveryMechanism()
    client = MagicMock()
    handle = mechanism.begin_search(HTTP_TYPE, LOCAL, client)
    listener = listener_of(mock_browser_class)
    browser = mock_browser_class.return_value

    mechanism.end_search(handle)
    mechanism.end_search(handle)

    browser.cancel.assert_called_once_with()
    listener.add_service(
        mock_zeroconf_class.return_value,
        BROWSE_TYPE,
        "printer1._http._tcp.local.",
    )
    client.on_discovery_found.assert_not_called()


def test_end_search_from_browser_thread_cancels_on_helper(
    mock_zeroconf_class: MagicMock, mock_browser_class: MagicMock
) -> None:
    mechanism = ZeroconfDiscoveryMechanism()
    cancelled_on = []
    cancelled = threading.Event()

    def record_cancel() -> None:
        cancelled_on.append(threading.current_thread())
        cancelled.set()

    # Stands in for the ServiceBrowser thread, which ends its own search.
    browser_thread = threading.Thread(
        target=lambda: mechanism.end_search(handle)
    )
    browser_thread.cancel = record_cancel  # type: ignore[attr-defined]
    mock_browser_class.return_value = browser_thread
    handle = mechanism.begin_search(HTTP_TYPE, LOCAL, MagicMock())

    browser_thread.start()
    browser_thread.join(timeout=5.0)

    assert cancelled.wait(timeout=5.0)
    assert cancelled_on[0] is not browser_thread
    assert cancelled_on[0].name.startswith("svcwatch-cancel-")


def test_bad_type_raises_bad_type_error(
    mock_zeroconf_class: MagicMock, mock_browser_class: MagicMock
) -> None:
    mock_browser_class.side_effect = BadTypeInNameException("bad type")
    mechanism = ZeroconfDiscoveryMechanism()

    with pytest.raises(DiscoveryMechanismError) as excinfo:
        mechanism.begin_search("_bad", LOCAL, MagicMock())

    assert excinfo.value.code == ERROR_BAD_TYPE


def test_socket_failure_raises_unknown(
    mock_zeroconf_class: MagicMock, mock_browser_class: MagicMock
) -> None:
    mock_zeroconf_class.side_effect = OSError("no multicast")
    mechanism = ZeroconfDiscoveryMechanism()

    with pytest.raises(DiscoveryMechanismError) as excinfo:
        mechanism.begin_search(HTTP_TYPE, LOCAL, MagicMock())

    assert excinfo.value.code == ERROR_UNKNOWN
    mock_browser_class.assert_not_called()


@pytest.mark.parametrize(
    "error",
    [
        RuntimeError("The event loop is not running"),
        NotRunningException(),
    ],
)
def test_closed_shared_zeroconf_raises_invalid(
    mock_zeroconf_class: MagicMock,
    mock_browser_class: MagicMock,
    error: Exception,
) -> None:
    mock_browser_class.side_effect = error
    mechanism = ZeroconfDiscoveryMechanism(zc_instance=MagicMock())

    with pytest.raises(DiscoveryMechanismError) as excinfo:
        mechanism.begin_search(HTTP_TYPE, LOCAL, MagicMock())

    assert excinfo.value.code == ERROR_INVALID


def test_session_on_closed_shared_zeroconf_ends_stopped(
    mock_zeroconf_class: MagicMock, mock_browser_class: MagicMock
) -> None:
    mock_browser_class.side_effect = RuntimeError(
        "The event loop is not running"
    )
    diagnostics = MagicMock(spec=BrowseSession.DiagnosticListener)
    session = BrowseSession(
        ZeroconfDiscoveryMechanism(zc_instance=MagicMock()),
        diagnostic_listener=diagnostics,
    )

    session.start(HTTP_TYPE, LOCAL)

    assert session.state is BrowseState.STOPPED
    error = diagnostics._on_search_failed.call_args.args[0]
    assert error.code == ERROR_INVALID


def test_begin_after_close_raises_invalid(
    mock_zeroconf_class: MagicMock, mock_browser_class: MagicMock
) -> None:
    mechanism = ZeroconfDiscoveryMechanism()
    mechanism.close()

    with pytest.raises(DiscoveryMechanismError) as excinfo:
        mechanism.begin_search(HTTP_TYPE, LOCAL, MagicMock())

    assert excinfo.value.code == ERROR_INVALID


def test_close_cancels_searches_and_closes_owned_zeroconf(
    mock_zeroconf_class: MagicMock, mock_browser_class: MagicMock
) -> None:
    mechanism = ZeroconfDiscoveryMechanism()
    mechanism.begin_search(HTTP_TYPE, LOCAL, MagicMock())

    mechanism.close()

    mock_browser_class.return_value.cancel.assert_called_once_with()
    mock_zeroconf_class.return_value.close.assert_called_once_with()


def test_close_leaves_shared_zeroconf_open(
    mock_zeroconf_class: MagicMock, mock_browser_class: MagicMock
) -> None:
    shared_zc = MagicMock()
    mechanism = ZeroconfDiscoveryMechanism(zc_instance=shared_zc)
    mechanism.begin_search(HTTP_TYPE, LOCAL, MagicMock())

    mechanism.close()

    mock_zeroconf_class.assert_not_called()
    assert mock_browser_class.call_args.args[0] is shared_zc
    shared_zc.close.assert_not_called()


def test_session_start_failure_is_reported_not_raised(
    mock_zeroconf_class: MagicMock, mock_browser_class: MagicMock
) -> None:
    mock_browser_class.side_effect = BadTypeInNameException("bad type")
    diagnostics = MagicMock(spec=BrowseSession.DiagnosticListener)
    session = BrowseSession(
        ZeroconfDiscoveryMechanism(), diagnostic_listener=diagnostics
    )

    session.start("_http._bogus.", LOCAL)

    assert session.state is BrowseState.STOPPED
    error = diagnostics._on_search_failed.call_args.args[0]
    assert error.code == zeroconf_mechanism.ERROR_BAD_TYPE


def test_session_receives_events_through_listener(
    mock_zeroconf_class: MagicMock, mock_browser_class: MagicMock
) -> None:
    observer = RecordingObserver()
    mechanism = ZeroconfDiscoveryMechanism()
    session = BrowseSession(mechanism, observer=observer)
    session.start(HTTP_TYPE, LOCAL)
    listener = listener_of(mock_browser_class)
    zc = mock_zeroconf_class.return_value

    listener.add_service(zc, BROWSE_TYPE, "printer1._http._tcp.local.")
    listener.add_service(zc, BROWSE_TYPE, "printer1._http._tcp.local.")
    listener.remove_service(zc, BROWSE_TYPE, "printer1._http._tcp.local.")
    session.stop()

    printer = ServiceRecord("printer1", HTTP_TYPE, LOCAL)
    assert observer.events == [
        (printer, ServiceEventKind.ADDED),
        (printer, ServiceEventKind.REMOVED),
    ]
    mock_browser_class.return_value.cancel.assert_called_once_with()


def test_stop_from_observer_on_browser_thread(
    mock_zeroconf_class: MagicMock, mock_browser_class: MagicMock
) -> None:
    mechanism = ZeroconfDiscoveryMechanism()
    session = BrowseSession(mechanism)
    session.set_observer(lambda record, kind: session.stop())
    session.start(HTTP_TYPE, LOCAL)
    listener = listener_of(mock_browser_class)

    worker = threading.Thread(
        target=listener.add_service,
        args=(
            mock_zeroconf_class.return_value,
            BROWSE_TYPE,
            "printer1._http._tcp.local.",
        ),
    )
    worker.start()
    worker.join(timeout=5.0)

    assert not worker.is_alive()
    assert session.state is BrowseState.STOPPED
    mock_browser_class.return_value.cancel.assert_called_once_with()
