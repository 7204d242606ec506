"""Initializes the svcwatch.discovery package and exposes its key components.

This package contains the discovery core: the record and event types, the
registry that deduplicates raw discovery signals, and the browse session
that connects a discovery mechanism to an observer.
"""

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
from svcwatch.discovery.event_loop_observer import EventLoopObserver
from svcwatch.discovery.service_event import (
    EventDecision,
    ServiceEventKind,
    ServiceObserver,
)
from svcwatch.discovery.service_record import ServiceRecord
from svcwatch.discovery.service_registry import ServiceRegistry

__all__ = [
    "BrowseSession",
    "BrowseState",
    "DiscoveryMechanism",
    "DiscoveryMechanismError",
    "EventDecision",
    "EventLoopObserver",
    "InvalidStateError",
    "LoggingDiagnosticListener",
    "SearchHandle",
    "ServiceEventKind",
    "ServiceObserver",
    "ServiceRecord",
    "ServiceRegistry",
]
