import socket

from svcwatch.util import ip as ip_util


# Helper to create a mock address object
def create_mock_address(mocker, family, address):
    mock_addr = mocker.MagicMock()
    mock_addr.family = family
    mock_addr.address = address
    return mock_addr


class TestIpUtils:

    # --- Tests for get_all_address_strings ---

    def test_get_all_address_strings_no_interfaces(self, mocker):
        mock_net_if_addrs = mocker.patch("psutil.net_if_addrs")
        mock_net_if_addrs.return_value = {}

        assert ip_util.get_all_address_strings() == []
        mock_net_if_addrs.assert_called_once()

    def test_get_all_address_strings_defaults_to_ipv4(self, mocker):
        mock_net_if_addrs = mocker.patch("psutil.net_if_addrs")
        mock_net_if_addrs.return_value = {
            "lo": [
                create_mock_address(mocker, socket.AF_INET, "127.0.0.1"),
                create_mock_address(mocker, socket.AF_INET6, "::1"),
            ],
            "eth0": [
                create_mock_address(mocker, socket.AF_INET6, "fe80::1%eth0"),
                create_mock_address(mocker, socket.AF_INET, "192.168.1.100"),
                create_mock_address(mocker, socket.AF_INET, "192.168.1.101"),
            ],
        }

        result = ip_util.get_all_address_strings()

        assert result == ["127.0.0.1", "192.168.1.100", "192.168.1.101"]

    def test_get_all_address_strings_ipv6_strips_scope(self, mocker):
        mock_net_if_addrs = mocker.patch("psutil.net_if_addrs")
        mock_net_if_addrs.return_value = {
            "eth0": [
                create_mock_address(mocker, socket.AF_INET, "10.0.0.5"),
                create_mock_address(mocker, socket.AF_INET6, "fe80::1%eth0"),
                create_mock_address(mocker, socket.AF_INET6, "2001:db8::123"),
            ],
        }

        result = ip_util.get_all_address_strings((socket.AF_INET6,))

        assert result == ["fe80::1", "2001:db8::123"]

    # --- Tests for get_all_addresses ---

    def test_get_all_addresses_no_ip_strings(self, mocker):
        mock_get_strings = mocker.patch(
            "svcwatch.util.ip.get_all_address_strings", return_value=[]
        )

        assert ip_util.get_all_addresses() == []
        mock_get_strings.assert_called_once_with((socket.AF_INET,))

    def test_get_all_addresses_packs_ipv4(self, mocker):
        mocker.patch(
            "svcwatch.util.ip.get_all_address_strings",
            return_value=["192.168.1.1", "10.0.0.1"],
        )

        result = ip_util.get_all_addresses("v4only")

        assert result == [b"\xc0\xa8\x01\x01", b"\x0a\x00\x00\x01"]

    def test_get_all_addresses_all_queries_both_families(self, mocker):
        def strings_for(families):
            if families == (socket.AF_INET,):
                return ["127.0.0.1"]
            return ["::1"]

        mock_get_strings = mocker.patch(
            "svcwatch.util.ip.get_all_address_strings", side_effect=strings_for
        )

        result = ip_util.get_all_addresses("all")

        assert result == [
            b"\x7f\x00\x00\x01",
            socket.inet_pton(socket.AF_INET6, "::1"),
        ]
        assert mock_get_strings.call_count == 2

    def test_get_all_addresses_v6only(self, mocker):
        mocker.patch("psutil.net_if_addrs").return_value = {
            "lo": [
                create_mock_address(mocker, socket.AF_INET, "127.0.0.1"),
                create_mock_address(mocker, socket.AF_INET6, "::1"),
            ],
        }

        result = ip_util.get_all_addresses("v6only")

        assert result == [socket.inet_pton(socket.AF_INET6, "::1")]
