"""Utility functions for svcwatch."""

from svcwatch.util.ip import get_all_address_strings, get_all_addresses

__all__ = [
    "get_all_address_strings",
    "get_all_addresses",
]
