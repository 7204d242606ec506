"""Configuration types for svcwatch."""

from svcwatch.config.mdns_config import MdnsConfig

__all__ = ["MdnsConfig"]
