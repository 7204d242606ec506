import pytest
from unittest.mock import AsyncMock, patch

from zeroconf import InterfaceChoice, IPVersion
from zeroconf.asyncio import AsyncZeroconf

from svcwatch.config.mdns_config import MdnsConfig
from svcwatch.discovery.mdns.service_advertiser import ServiceAdvertiser
from svcwatch.discovery.service_record import ServiceRecord

MODULE = "svcwatch.discovery.mdns.service_advertiser"
PRINTER = ServiceRecord("printer1", "_http._tcp.", "local.")
ADDRESSES = [b"\xc0\xa8\x01\x64"]


@pytest.mark.parametrize(
    "record, port, error",
    [
        (None, 8080, ValueError),
        ("printer1", 8080, TypeError),
        (ServiceRecord("", "_http._tcp.", "local."), 8080, ValueError),
        (ServiceRecord("printer1", "http._tcp.", "local."), 8080, ValueError),
        (PRINTER, 0, ValueError),
        (PRINTER, 70000, ValueError),
    ],
)
def test_invalid_arguments_rejected(record, port, error) -> None:
    with pytest.raises(error):
        ServiceAdvertiser(record, port)


@pytest.mark.asyncio
async def test_publish_and_close_with_owned_zc() -> None:
    mock_owned_zc = AsyncMock(spec=AsyncZeroconf)

    with patch(
        f"{MODULE}.AsyncZeroconf", return_value=mock_owned_zc
    ) as mock_zc_constructor, patch(
        f"{MODULE}.get_all_addresses", return_value=ADDRESSES
    ) as mock_addresses:
        advertiser = ServiceAdvertiser(
            PRINTER,
            8080,
            {b"path": b"/status"},
            config=MdnsConfig(ip_version="v4only", interfaces="default"),
        )
        assert not advertiser.is_published

        await advertiser.publish()

        mock_zc_constructor.assert_called_once_with(
            interfaces=InterfaceChoice.Default, ip_version=IPVersion.V4Only
        )
        mock_addresses.assert_called_once_with("v4only")
        mock_owned_zc.async_register_service.assert_awaited_once()
        info = mock_owned_zc.async_register_service.await_args.args[0]
        assert info.name == "printer1._http._tcp.local."
        assert info.type == "_http._tcp.local."
        assert info.port == 8080
        assert info.properties == {b"path": b"/status"}
        assert advertiser.is_published

        await advertiser.close()

        mock_owned_zc.async_unregister_service.assert_awaited_once_with(info)
        mock_owned_zc.async_close.assert_awaited_once()
        assert not advertiser.is_published


@pytest.mark.asyncio
async def test_close_with_shared_zc_does_not_close_it() -> None:
    mock_shared_zc = AsyncMock(spec=AsyncZeroconf)

    with patch(f"{MODULE}.AsyncZeroconf") as mock_zc_constructor, patch(
        f"{MODULE}.get_all_addresses", return_value=ADDRESSES
    ):
        advertiser = ServiceAdvertiser(
            PRINTER, 8080, zc_instance=mock_shared_zc
        )
        await advertiser.publish()
        await advertiser.close()

        mock_zc_constructor.assert_not_called()
        mock_shared_zc.async_register_service.assert_awaited_once()
        mock_shared_zc.async_unregister_service.assert_awaited_once()
        mock_shared_zc.async_close.assert_not_called()


@pytest.mark.asyncio
async def test_second_publish_does_not_register_again() -> None:
    mock_owned_zc = AsyncMock(spec=AsyncZeroconf)

    with patch(
        f"{MODULE}.AsyncZeroconf", return_value=mock_owned_zc
    ) as mock_zc_constructor, patch(
        f"{MODULE}.get_all_addresses", return_value=ADDRESSES
    ):
        advertiser = ServiceAdvertiser(PRINTER, 8080)
        await advertiser.publish()
        await advertiser.publish()

        mock_zc_constructor.assert_called_once()
        mock_owned_zc.async_register_service.assert_awaited_once()
        mock_owned_zc.async_unregister_service.assert_not_awaited()
        assert advertiser.is_published


@pytest.mark.asyncio
async def test_close_before_publish_is_noop() -> None:
    with patch(f"{MODULE}.AsyncZeroconf") as mock_zc_constructor:
        advertiser = ServiceAdvertiser(PRINTER, 8080)
        await advertiser.close()

        mock_zc_constructor.assert_not_called()


@pytest.mark.asyncio
async def test_close_failure_is_logged_and_raised(caplog) -> None:
    mock_owned_zc = AsyncMock(spec=AsyncZeroconf)
    mock_owned_zc.async_unregister_service.side_effect = RuntimeError("gone")

    with patch(f"{MODULE}.AsyncZeroconf", return_value=mock_owned_zc), patch(
        f"{MODULE}.get_all_addresses", return_value=ADDRESSES
    ):
        advertiser = ServiceAdvertiser(PRINTER, 8080)
        await advertiser.publish()

        with pytest.raises(RuntimeError, match="gone"):
            await advertiser.close()

    assert "Exception during close of advertiser" in caplog.text
    # A failed unregister leaves the service considered published.
    assert advertiser.is_published


def test_record_property() -> None:
    advertiser = ServiceAdvertiser(PRINTER, 8080)
    assert advertiser.record is PRINTER
