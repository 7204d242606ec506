"""Advertises one service instance over mDNS using zeroconf."""

import logging
from typing import Optional

from zeroconf import ServiceInfo
from zeroconf.asyncio import AsyncZeroconf

from svcwatch.config.mdns_config import MdnsConfig
from svcwatch.discovery.service_record import (
    ServiceRecord,
    join_type_and_domain,
)
from svcwatch.util.ip import get_all_addresses

_logger = logging.getLogger(__name__)

# Re-registering the same instance name right after unregistering it on the
# same AsyncZeroconf can raise NonUniqueNameException while zeroconf still
# caches the old records. Use a fresh advertiser (and instance) in that case.


class ServiceAdvertiser:
    """Makes a `ServiceRecord` discoverable on the local network.

    Builds a `zeroconf.ServiceInfo` from the record, the port and the TXT
    properties, and registers it on an `AsyncZeroconf` that is either
    shared (passed in) or owned (created by `publish()`, closed by
    `close()`).
    """

    def __init__(
        self,
        record: ServiceRecord,
        port: int,
        properties: Optional[dict[bytes, bytes | None]] = None,
        *,
        config: Optional[MdnsConfig] = None,
        zc_instance: Optional[AsyncZeroconf] = None,
    ) -> None:
        """Initializes the ServiceAdvertiser.

        Args:
            record: The service to advertise.
            port: Network port the service listens on.
            properties: TXT record contents. Defaults to {}.
            config: IP version and interfaces for an owned `AsyncZeroconf`.
            zc_instance: Shared `AsyncZeroconf` to register on.

        Raises:
            ValueError: If `record` is None or has an empty name, `port` is
                        out of range, or the record's service type does not
                        start with '_'.
            TypeError: If `record` is not a `ServiceRecord`.
        """
        if record is None:
            raise ValueError("record cannot be None for ServiceAdvertiser.")
        if not isinstance(record, ServiceRecord):
            raise TypeError(
                f"record must be ServiceRecord, got {type(record).__name__}."
            )
        if not record.name:
            raise ValueError("Cannot advertise a service with an empty name.")
        if not record.service_type.startswith("_"):
            raise ValueError(
                f"Service type must start with an underscore (e.g., '_http._tcp.'), "
                f"got '{record.service_type}'."
            )
        if not 0 < port < 65536:
            raise ValueError(f"port must be in 1..65535, got {port}.")

        self.__record: ServiceRecord = record
        self.__type: str = join_type_and_domain(
            record.service_type, record.domain
        )
        self.__port: int = port
        self.__txt: dict[bytes, bytes | None] = properties or {}
        self.__config: MdnsConfig = config or MdnsConfig()

        self.__shared_zc: Optional[AsyncZeroconf] = zc_instance
        self.__owned_zc: Optional[AsyncZeroconf] = None
        self.__zc: Optional[AsyncZeroconf] = None
        self.__service_info: Optional[ServiceInfo] = None

    @property
    def record(self) -> ServiceRecord:
        return self.__record

    @property
    def is_published(self) -> bool:
        return self.__service_info is not None

    async def publish(self) -> None:
        """Registers the service so that browsers can find it.

        A no-op while the service is already published.

        Raises:
            zeroconf.NonUniqueNameException: If the instance name is taken.
        """
        if self.__service_info is not None:
            _logger.info(
                "Service %s already published; not registering again.",
                self.__record.full_name,
            )
            return

        service_info = ServiceInfo(
            type_=self.__type,
            name=self.__record.full_name,
            addresses=get_all_addresses(self.__config.ip_version),
            port=self.__port,
            properties=self.__txt,
        )

        if self.__shared_zc is not None:
            self.__zc = self.__shared_zc
            _logger.info(
                "Using shared AsyncZeroconf instance for %s.",
                self.__record.full_name,
            )
        elif self.__owned_zc is None:
            _logger.info(
                "Creating new AsyncZeroconf instance for %s.",
                self.__record.full_name,
            )
            self.__owned_zc = AsyncZeroconf(
                interfaces=self.__config.zeroconf_interfaces(),
                ip_version=self.__config.zeroconf_ip_version(),
            )
            self.__zc = self.__owned_zc

        assert self.__zc is not None
        await self.__zc.async_register_service(service_info)
        self.__service_info = service_info
        _logger.info("Service %s registered.", self.__record.full_name)

    async def close(self) -> None:
        """Unregisters the service and closes an owned `AsyncZeroconf`."""
        try:
            if self.__zc is not None and self.__service_info is not None:
                await self.__zc.async_unregister_service(self.__service_info)
                _logger.info(
                    "Service %s unregistered.", self.__record.full_name
                )
            self.__service_info = None

            if self.__owned_zc is not None:
                _logger.info(
                    "Closing owned AsyncZeroconf instance for %s.",
                    self.__record.full_name,
                )
                await self.__owned_zc.async_close()
        except Exception as e:
            _logger.error(
                "Exception during close of advertiser for %s. Error: %s",
                self.__record.full_name,
                e,
                exc_info=True,
            )
            raise
        finally:
            self.__owned_zc = None
            self.__zc = None
