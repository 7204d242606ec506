# svcwatch/config/mdns_config.py
from dataclasses import dataclass
from typing import Literal

from zeroconf import InterfaceChoice, IPVersion

MdnsIpVersion = Literal["v4only", "v6only", "all"]
MdnsInterfaces = Literal["all", "default"]


@dataclass(frozen=True)
class MdnsConfig:
    """Configuration for the zeroconf instances created by svcwatch."""

    # Which address families to send and receive mDNS traffic on.
    ip_version: MdnsIpVersion = "v4only"

    # "all" binds every interface, "default" only the default route's.
    interfaces: MdnsInterfaces = "all"

    def zeroconf_ip_version(self) -> IPVersion:
        if self.ip_version == "v4only":
            return IPVersion.V4Only
        if self.ip_version == "v6only":
            return IPVersion.V6Only
        if self.ip_version == "all":
            return IPVersion.All
        raise ValueError(f"Unknown ip_version '{self.ip_version}'.")

    def zeroconf_interfaces(self) -> InterfaceChoice:
        if self.interfaces == "all":
            return InterfaceChoice.All
        if self.interfaces == "default":
            return InterfaceChoice.Default
        raise ValueError(f"Unknown interfaces '{self.interfaces}'.")
