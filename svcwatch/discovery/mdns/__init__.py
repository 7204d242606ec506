"""Initializes the svcwatch.discovery.mdns package.

This package backs the discovery core with mDNS/DNS-SD via zeroconf: a
discovery mechanism that browses the local network, and an advertiser that
publishes a service so it can be found.
"""

from svcwatch.discovery.mdns.service_advertiser import ServiceAdvertiser
from svcwatch.discovery.mdns.zeroconf_mechanism import (
    ZeroconfDiscoveryMechanism,
)

__all__ = ["ServiceAdvertiser", "ZeroconfDiscoveryMechanism"]
