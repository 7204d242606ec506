"""Svcwatch package for local network service discovery.

This package provides a browse session that tracks services of one type
within one domain, deduplicates the raw signals of a discovery mechanism,
and notifies a single observer when services are added or removed.
"""
