"""Coordinates one service search and notifies an observer of changes."""

import enum
import logging
import threading
from abc import ABC, abstractmethod
from typing import List, Optional

from svcwatch.discovery.discovery_mechanism import (
    DiscoveryMechanism,
    SearchHandle,
)
from svcwatch.discovery.errors import DiscoveryMechanismError, InvalidStateError
from svcwatch.discovery.service_event import EventDecision, ServiceObserver
from svcwatch.discovery.service_record import (
    ServiceRecord,
    validate_search_scope,
)
from svcwatch.discovery.service_registry import ServiceRegistry

_logger = logging.getLogger(__name__)


class BrowseState(enum.Enum):
    """Lifecycle of a `BrowseSession`.

    IDLE --start()--> SEARCHING --stop() / error--> STOPPED --start()--> ...
    """

    IDLE = "idle"
    SEARCHING = "searching"
    STOPPED = "stopped"


class BrowseSession(DiscoveryMechanism.Client):
    """One logical search for services of a single type within one domain.

    The session owns a `ServiceRegistry` for as long as it is searching and
    connects the raw signals of a `DiscoveryMechanism` to it. Signals that
    change the set of known services are forwarded, synchronously, to the
    current observer as `observer(record, kind)`.

    Every entry point (`start`, `stop`, and the three `on_discovery_*`
    signals) runs under one reentrant lock, so the observer never sees
    concurrent or interleaved calls for the same session, and `stop()` never
    interleaves with a signal that is being delivered. The lock is
    reentrant so that `stop()` may be called from inside the observer.

    Failures of the mechanism never reach the observer. They are reported
    to the optional `DiagnosticListener`.
    """

    class DiagnosticListener(ABC):
        """Informational lifecycle notifications, distinct from the observer."""

        @abstractmethod
        def _on_will_search(self, service_type: str, domain: str) -> None:
            """Called when the session is about to begin a search."""
            raise NotImplementedError(
                "DiagnosticListener._on_will_search must be implemented by subclasses."
            )

        @abstractmethod
        def _on_search_stopped(self) -> None:
            """Called after the session detached from its search via `stop()`."""
            raise NotImplementedError(
                "DiagnosticListener._on_search_stopped must be implemented by subclasses."
            )

        @abstractmethod
        def _on_search_failed(self, error: DiscoveryMechanismError) -> None:
            """Called after the search ended because the mechanism failed.

            Args:
                error: Carries the mechanism's error code.
            """
            raise NotImplementedError(
                "DiagnosticListener._on_search_failed must be implemented by subclasses."
            )

    def __init__(
        self,
        mechanism: DiscoveryMechanism,
        *,
        observer: Optional[ServiceObserver] = None,
        diagnostic_listener: Optional["BrowseSession.DiagnosticListener"] = None,
    ) -> None:
        """Initializes an idle BrowseSession.

        Args:
            mechanism: Finds services and calls back into this session.
            observer: Initial observer, see `set_observer`.
            diagnostic_listener: Initial listener, see
                `set_diagnostic_listener`.

        Raises:
            ValueError: If `mechanism` is None.
            TypeError: If `mechanism` is not a `DiscoveryMechanism`.
        """
        if mechanism is None:
            raise ValueError("mechanism cannot be None for BrowseSession.")
        if not isinstance(mechanism, DiscoveryMechanism):
            raise TypeError(
                f"mechanism must be DiscoveryMechanism, got {type(mechanism).__name__}."
            )

        self.__mechanism: DiscoveryMechanism = mechanism
        self.__lock = threading.RLock()

        self.__state: BrowseState = BrowseState.IDLE
        self.__registry: Optional[ServiceRegistry] = None
        self.__handle: Optional[SearchHandle] = None
        self.__service_type: Optional[str] = None
        self.__domain: Optional[str] = None

        self.__observer: Optional[ServiceObserver] = observer
        self.__diagnostic_listener: Optional[
            BrowseSession.DiagnosticListener
        ] = diagnostic_listener

    @property
    def state(self) -> BrowseState:
        with self.__lock:
            return self.__state

    @property
    def service_type(self) -> Optional[str]:
        """Service type of the current or most recent search."""
        with self.__lock:
            return self.__service_type

    @property
    def domain(self) -> Optional[str]:
        """Domain of the current or most recent search."""
        with self.__lock:
            return self.__domain

    def set_observer(self, observer: Optional[ServiceObserver]) -> None:
        """Replaces the observer.

        Takes effect for subsequent events only. Past events are not
        replayed. Passing None drops all further events.
        """
        with self.__lock:
            self.__observer = observer

    def set_diagnostic_listener(
        self, listener: Optional["BrowseSession.DiagnosticListener"]
    ) -> None:
        with self.__lock:
            self.__diagnostic_listener = listener

    def start(self, service_type: str, domain: str) -> None:
        """Begins searching for `service_type` services within `domain`.

        Valid from IDLE or STOPPED. Every start gets a fresh, empty registry.
        If the mechanism cannot begin the search, the failure is reported as
        if `on_discovery_error` had been called, and the session ends up
        STOPPED.

        Args:
            service_type: Service tag, e.g. "_http._tcp.".
            domain: Search domain, e.g. "local.".

        Raises:
            InvalidStateError: If the session is already searching.
            ValueError: If an argument is None or empty.
            TypeError: If an argument is not a str.

        Any other exception from the diagnostic listener or the mechanism
        propagates after the session has moved to STOPPED.
        """
        validate_search_scope(service_type, domain)

        with self.__lock:
            if self.__state is BrowseState.SEARCHING:
                raise InvalidStateError(
                    f"Cannot start a search for '{service_type}' in '{domain}': "
                    f"already searching for '{self.__service_type}' in '{self.__domain}'."
                )

            registry = ServiceRegistry()
            self.__registry = registry
            self.__service_type = service_type
            self.__domain = domain
            self.__state = BrowseState.SEARCHING
            _logger.info(
                "Starting browse for type '%s' in domain '%s'.",
                service_type,
                domain,
            )

            try:
                listener = self.__diagnostic_listener
                if listener is not None:
                    listener._on_will_search(service_type, domain)

                handle = self.__mechanism.begin_search(
                    service_type, domain, self
                )
            except DiscoveryMechanismError as e:
                _logger.error(
                    "Discovery mechanism could not begin search for '%s' in '%s': %s",
                    service_type,
                    domain,
                    e,
                )
                if self.__registry is registry:
                    self.__detach_locked()
                    self.__report_failure(None, e)
                return
            except BaseException:
                _logger.error(
                    "Unexpected failure starting search for '%s' in '%s'.",
                    service_type,
                    domain,
                    exc_info=True,
                )
                if self.__registry is registry:
                    self.__detach_locked()
                raise

            # The mechanism may already have failed, or the search been
            # stopped, from within begin_search().
            if self.__registry is registry:
                self.__handle = handle
                return

        _logger.info(
            "Search for '%s' in '%s' ended while starting; releasing it.",
            service_type,
            domain,
        )
        self.__mechanism.end_search(handle)

    def stop(self) -> None:
        """Stops searching and forgets all known services.

        A no-op unless SEARCHING. Never fails. Safe to call from any thread,
        including from inside the observer of this session.
        """
        with self.__lock:
            if self.__state is not BrowseState.SEARCHING:
                _logger.debug(
                    "stop() called while %s; nothing to do.", self.__state.name
                )
                return

            _logger.info(
                "Stopping browse for type '%s' in domain '%s'.",
                self.__service_type,
                self.__domain,
            )
            handle = self.__detach_locked()
            listener = self.__diagnostic_listener

        if handle is not None:
            self.__mechanism.end_search(handle)

        if listener is not None:
            listener._on_search_stopped()

    def snapshot(self) -> List[ServiceRecord]:
        """Returns the services currently known, oldest first.

        Empty unless SEARCHING.
        """
        with self.__lock:
            if self.__registry is None:
                return []
            return self.__registry.snapshot()

    # --- DiscoveryMechanism.Client signal entry points ---

    def on_discovery_found(self, record: ServiceRecord) -> None:
        with self.__lock:
            registry = self.__registry_for_signal(record, "found")
            if registry is None:
                return
            self.__deliver_locked(registry.apply_found(record))

    def on_discovery_removed(self, record: ServiceRecord) -> None:
        with self.__lock:
            registry = self.__registry_for_signal(record, "removed")
            if registry is None:
                return
            self.__deliver_locked(registry.apply_removed(record))

    def on_discovery_error(self, code: int) -> None:
        """Ends the current search because the mechanism failed.

        Does not raise. The error is reported to the diagnostic listener,
        never to the observer.
        """
        with self.__lock:
            if self.__state is not BrowseState.SEARCHING:
                _logger.debug(
                    "Ignoring discovery error %s while %s.",
                    code,
                    self.__state.name,
                )
                return

            error = DiscoveryMechanismError(code)
            _logger.error(
                "Browse for type '%s' in domain '%s' failed: %s",
                self.__service_type,
                self.__domain,
                error,
            )
            handle = self.__detach_locked()

        self.__report_failure(handle, error)

    # --- Internals ---

    def __registry_for_signal(
        self, record: ServiceRecord, signal_name: str
    ) -> Optional[ServiceRegistry]:
        if self.__state is not BrowseState.SEARCHING or self.__registry is None:
            _logger.debug(
                "Ignoring '%s' signal for %s while %s.",
                signal_name,
                record,
                self.__state.name,
            )
            return None

        if (
            record.service_type != self.__service_type
            or record.domain != self.__domain
        ):
            _logger.debug(
                "Ignoring '%s' signal for %s: searching for '%s' in '%s'.",
                signal_name,
                record,
                self.__service_type,
                self.__domain,
            )
            return None

        return self.__registry

    def __deliver_locked(self, decision: EventDecision) -> None:
        if not decision.should_emit:
            return

        assert decision.kind is not None
        observer = self.__observer
        if observer is None:
            _logger.debug(
                "No observer set; dropping %s event for %s.",
                decision.kind.name,
                decision.record,
            )
            return

        observer(decision.record, decision.kind)

    def __detach_locked(self) -> Optional[SearchHandle]:
        """Moves to STOPPED and drops all search state.

        Returns:
            The handle of the search being left, for `end_search`.
        """
        if self.__registry is not None:
            self.__registry.clear()
        self.__registry = None
        self.__state = BrowseState.STOPPED

        handle = self.__handle
        self.__handle = None
        return handle

    def __report_failure(
        self,
        handle: Optional[SearchHandle],
        error: DiscoveryMechanismError,
    ) -> None:
        if handle is not None:
            self.__mechanism.end_search(handle)

        listener = self.__diagnostic_listener
        if listener is not None:
            listener._on_search_failed(error)


class LoggingDiagnosticListener(BrowseSession.DiagnosticListener):
    """Writes every diagnostic notification to the log."""

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self.__logger = logger or _logger

    def _on_will_search(self, service_type: str, domain: str) -> None:
        self.__logger.info(
            "Will search for type '%s' in domain '%s'.", service_type, domain
        )

    def _on_search_stopped(self) -> None:
        self.__logger.info("Stopped searching.")

    def _on_search_failed(self, error: DiscoveryMechanismError) -> None:
        self.__logger.error(
            "Failed to search: error code %d (%s).", error.code, error
        )
