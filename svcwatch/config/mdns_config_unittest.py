import dataclasses

import pytest
from zeroconf import InterfaceChoice, IPVersion

from svcwatch.config.mdns_config import MdnsConfig


def test_defaults() -> None:
    config = MdnsConfig()
    assert config.ip_version == "v4only"
    assert config.interfaces == "all"
    assert config.zeroconf_ip_version() is IPVersion.V4Only
    assert config.zeroconf_interfaces() is InterfaceChoice.All


@pytest.mark.parametrize(
    "ip_version, expected",
    [
        ("v4only", IPVersion.V4Only),
        ("v6only", IPVersion.V6Only),
        ("all", IPVersion.All),
    ],
)
def test_ip_version_mapping(ip_version, expected) -> None:
    assert MdnsConfig(ip_version=ip_version).zeroconf_ip_version() is expected


def test_default_interfaces_mapping() -> None:
    config = MdnsConfig(interfaces="default")
    assert config.zeroconf_interfaces() is InterfaceChoice.Default


def test_unknown_values_rejected() -> None:
    with pytest.raises(ValueError, match="Unknown ip_version"):
        MdnsConfig(ip_version="v5").zeroconf_ip_version()  # type: ignore[arg-type]
    with pytest.raises(ValueError, match="Unknown interfaces"):
        MdnsConfig(interfaces="eth0").zeroconf_interfaces()  # type: ignore[arg-type]


def test_config_is_frozen() -> None:
    with pytest.raises(dataclasses.FrozenInstanceError):
        MdnsConfig().ip_version = "all"  # type: ignore[misc]
