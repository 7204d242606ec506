"""Tracks which services are currently known to one browse session."""

import logging
from typing import Dict, List

from svcwatch.discovery.service_event import EventDecision, ServiceEventKind
from svcwatch.discovery.service_record import ServiceKey, ServiceRecord

_logger = logging.getLogger(__name__)


class ServiceRegistry:
    """Deduplicates raw discovery signals into observable events.

    Records are keyed by `ServiceRecord.key`. Adding a known record or
    removing an unknown one is a no-op that yields a suppressed decision,
    never an error.

    NOTE: Not thread-safe. The owning `BrowseSession` serializes access.
    """

    def __init__(self) -> None:
        # dict preserves insertion order, which `snapshot()` relies on.
        self.__records: Dict[ServiceKey, ServiceRecord] = {}

    def apply_found(self, record: ServiceRecord) -> EventDecision:
        """Inserts `record` if absent.

        Returns:
            An ADDED decision if `record` was newly inserted, else a
            suppressed decision.
        """
        key = record.key
        if key in self.__records:
            _logger.debug("Suppressing duplicate add of %s.", record)
            return EventDecision.suppress(record)

        self.__records[key] = record
        return EventDecision.emit(ServiceEventKind.ADDED, record)

    def apply_removed(self, record: ServiceRecord) -> EventDecision:
        """Removes `record` if present.

        Returns:
            A REMOVED decision if `record` was known, else a suppressed
            decision.
        """
        if self.__records.pop(record.key, None) is None:
            _logger.debug("Suppressing removal of unknown %s.", record)
            return EventDecision.suppress(record)

        return EventDecision.emit(ServiceEventKind.REMOVED, record)

    def clear(self) -> None:
        self.__records.clear()

    def snapshot(self) -> List[ServiceRecord]:
        """Returns a point-in-time copy of all known records, oldest first."""
        return list(self.__records.values())

    def __len__(self) -> int:
        return len(self.__records)

    def __contains__(self, record: object) -> bool:
        return (
            isinstance(record, ServiceRecord) and record.key in self.__records
        )
