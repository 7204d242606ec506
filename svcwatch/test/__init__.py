# svcwatch - Test Utilities
# Allows "from svcwatch.test import ..." for shared fakes.

from svcwatch.test.fake_discovery_mechanism import (
    FakeDiscoveryMechanism,
    RecordingObserver,
)

__all__ = [
    "FakeDiscoveryMechanism",
    "RecordingObserver",
]
