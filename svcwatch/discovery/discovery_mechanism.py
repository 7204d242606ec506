"""Defines the interface of the mechanism that actually finds services."""

import dataclasses
from abc import ABC, abstractmethod

from svcwatch.discovery.service_record import ServiceRecord


@dataclasses.dataclass(frozen=True)
class SearchHandle:
    """Opaque token for one search started by a `DiscoveryMechanism`."""

    search_id: int
    service_type: str
    domain: str


class DiscoveryMechanism(ABC):
    """Abstract base for platform- or network-level service discovery.

    A mechanism delivers its results asynchronously, from a context it
    controls, by calling the signal entry points of a `Client`.
    """

    class Client(ABC):
        """Receives the raw signals of a running search."""

        @abstractmethod
        def on_discovery_found(self, record: ServiceRecord) -> None:
            """Called when the mechanism sees a service instance."""
            raise NotImplementedError(
                "DiscoveryMechanism.Client.on_discovery_found must be implemented by subclasses."
            )

        @abstractmethod
        def on_discovery_removed(self, record: ServiceRecord) -> None:
            """Called when a service instance disappears."""
            raise NotImplementedError(
                "DiscoveryMechanism.Client.on_discovery_removed must be implemented by subclasses."
            )

        @abstractmethod
        def on_discovery_error(self, code: int) -> None:
            """Called when the search fails and will deliver nothing more.

            Args:
                code: Mechanism-specific error code.
            """
            raise NotImplementedError(
                "DiscoveryMechanism.Client.on_discovery_error must be implemented by subclasses."
            )

    @abstractmethod
    def begin_search(
        self, service_type: str, domain: str, client: "DiscoveryMechanism.Client"
    ) -> SearchHandle:
        """Starts looking for services of `service_type` within `domain`.

        Must not block on network I/O.

        Args:
            service_type: Service tag, e.g. "_http._tcp.".
            domain: Search domain, e.g. "local.".
            client: Receives the signals of this search.

        Returns:
            Handle to pass to `end_search`.

        Raises:
            DiscoveryMechanismError: If the search cannot be started.
        """

    @abstractmethod
    def end_search(self, handle: SearchHandle) -> None:
        """Stops the search for `handle`. Idempotent.

        After this returns, no further signals for `handle` are delivered.
        """

    def close(self) -> None:
        """Releases resources shared by all searches of this mechanism."""
