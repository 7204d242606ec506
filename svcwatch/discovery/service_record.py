"""Defines ServiceRecord, the identity of one discoverable service."""

import dataclasses
from typing import Tuple

ServiceKey = Tuple[str, str, str]


def _require_str(value: object, field_name: str, allow_empty: bool) -> None:
    if value is None:
        raise ValueError(f"{field_name} cannot be None.")
    if not isinstance(value, str):
        raise TypeError(
            f"{field_name} must be str, got {type(value).__name__}."
        )
    if not allow_empty and not value:
        raise ValueError(f"{field_name} cannot be empty.")


@dataclasses.dataclass(frozen=True)
class ServiceRecord:
    """Identifies one discoverable service instance.

    Two records describe the same service iff `name`, `service_type` and
    `domain` all match exactly. Comparison is case-sensitive.

    Attributes:
        name: Human-readable instance name (e.g., "printer1").
        service_type: Service tag of the form "_<service>._<proto>."
                      (e.g., "_http._tcp.").
        domain: Search domain (e.g., "local.").
    """

    name: str
    service_type: str
    domain: str

    def __post_init__(self) -> None:
        _require_str(self.name, "name", allow_empty=True)
        validate_search_scope(self.service_type, self.domain)

    @property
    def key(self) -> ServiceKey:
        """The (name, service_type, domain) tuple identifying this record."""
        return (self.name, self.service_type, self.domain)

    @property
    def full_name(self) -> str:
        """DNS-SD instance name, e.g. "printer1._http._tcp.local."."""
        return f"{self.name}.{join_type_and_domain(self.service_type, self.domain)}"

    @classmethod
    def from_full_name(
        cls, full_name: str, service_type: str, domain: str
    ) -> "ServiceRecord":
        """Splits a DNS-SD instance name into a ServiceRecord.

        Args:
            full_name: Instance name as reported by the network
                       (e.g., "printer1._http._tcp.local.").
            service_type: Type the search was started with.
            domain: Domain the search was started with.

        Returns:
            The record whose `full_name` is `full_name`.

        Raises:
            ValueError: If `full_name` is not an instance of the given type
                        within the given domain.
        """
        type_and_domain = join_type_and_domain(service_type, domain)
        # DNS labels compare case-insensitively, and responders sometimes
        # omit the trailing root dot. The instance name keeps its case.
        lowered = full_name.lower()
        for suffix in (
            "." + type_and_domain,
            "." + type_and_domain.rstrip("."),
        ):
            if lowered.endswith(suffix.lower()):
                return cls(full_name[: -len(suffix)], service_type, domain)

        raise ValueError(
            f"'{full_name}' is not an instance of '{type_and_domain}'."
        )


def validate_search_scope(service_type: object, domain: object) -> None:
    """Checks that `service_type` and `domain` are usable for a search.

    Raises:
        ValueError: If either is None or empty.
        TypeError: If either is not a str.
    """
    _require_str(service_type, "service_type", allow_empty=False)
    _require_str(domain, "domain", allow_empty=False)


def join_type_and_domain(service_type: str, domain: str) -> str:
    """Joins a service type and a domain with exactly one dot between them.

    >>> join_type_and_domain("_http._tcp.", "local.")
    '_http._tcp.local.'
    >>> join_type_and_domain("_http._tcp", "local.")
    '_http._tcp.local.'
    """
    return f"{service_type.rstrip('.')}.{domain.lstrip('.')}"
