"""Event kinds, registry decisions and the observer callback contract."""

import dataclasses
import enum
from typing import Callable, Optional

from svcwatch.discovery.service_record import ServiceRecord


class ServiceEventKind(enum.Enum):
    """Whether a service appeared on or disappeared from the network."""

    ADDED = "added"
    REMOVED = "removed"


@dataclasses.dataclass(frozen=True)
class EventDecision:
    """Outcome of applying one discovery signal to a `ServiceRegistry`.

    A decision either emits an event of `kind` for `record`, or suppresses
    the signal (in which case `kind` is None).
    """

    record: ServiceRecord
    kind: Optional[ServiceEventKind] = None

    @classmethod
    def emit(
        cls, kind: ServiceEventKind, record: ServiceRecord
    ) -> "EventDecision":
        return cls(record, kind)

    @classmethod
    def suppress(cls, record: ServiceRecord) -> "EventDecision":
        return cls(record, None)

    @property
    def should_emit(self) -> bool:
        return self.kind is not None


# Called as observer(record, kind) for every net-new addition or removal.
ServiceObserver = Callable[[ServiceRecord, ServiceEventKind], None]
