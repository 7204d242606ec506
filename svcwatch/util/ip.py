"""Local interface address lookup for advertising services."""

import socket
from typing import Iterable

import psutil  # type: ignore[import-untyped]

from svcwatch.config.mdns_config import MdnsIpVersion

_FAMILIES_BY_IP_VERSION = {
    "v4only": (socket.AF_INET,),
    "v6only": (socket.AF_INET6,),
    "all": (socket.AF_INET, socket.AF_INET6),
}


def get_all_address_strings(
    families: Iterable[socket.AddressFamily] = (socket.AF_INET,),
) -> list[str]:
    """Retrieves the address strings of all network interfaces.

    Args:
        families: Address families to include. IPv4 only by default.

    Returns:
        Address strings in interface order. Empty if none match.
        IPv6 scope suffixes (e.g. "%eth0") are stripped.
    """
    wanted = set(families)
    addresses: list[str] = []
    for _, interface_addresses in psutil.net_if_addrs().items():
        for address in interface_addresses:
            if address.family not in wanted:
                continue
            if address.family == socket.AF_INET6:
                addresses.append(address.address.split("%", 1)[0])
            else:
                addresses.append(address.address)
    return addresses


def get_all_addresses(ip_version: MdnsIpVersion = "v4only") -> list[bytes]:
    """Retrieves all interface addresses for `ip_version`, packed.

    Each address is packed in network byte order, as zeroconf expects
    in `ServiceInfo.addresses`.
    """
    packed: list[bytes] = []
    for family in _FAMILIES_BY_IP_VERSION[ip_version]:
        for address in get_all_address_strings((family,)):
            packed.append(socket.inet_pton(family, address))
    return packed
