"""Discovery mechanism that browses mDNS/DNS-SD using zeroconf."""

import itertools
import logging
import threading
from typing import Callable, Dict, Optional, Tuple

from zeroconf import (
    BadTypeInNameException,
    Error as ZeroconfError,
    NotRunningException,
    ServiceBrowser,
    ServiceListener,
    Zeroconf,
)

from svcwatch.config.mdns_config import MdnsConfig
from svcwatch.discovery.discovery_mechanism import (
    DiscoveryMechanism,
    SearchHandle,
)
from svcwatch.discovery.errors import DiscoveryMechanismError
from svcwatch.discovery.service_record import (
    ServiceRecord,
    join_type_and_domain,
)

_logger = logging.getLogger(__name__)

# Error codes reported through `on_discovery_error`, matching the platform
# service-browser error codes.
ERROR_UNKNOWN = -72000
ERROR_BAD_TYPE = -72004
ERROR_INVALID = -72006


class _SearchListener(ServiceListener):
    """Receives zeroconf callbacks for one search and forwards them.

    Callbacks arrive on the `ServiceBrowser` thread. Once `cancel()` has
    returned, nothing more is forwarded to the client.
    """

    def __init__(
        self, handle: SearchHandle, client: DiscoveryMechanism.Client
    ) -> None:
        self.__handle = handle
        self.__client = client
        self.__browse_type = join_type_and_domain(
            handle.service_type, handle.domain
        )
        # Reentrant so the client may end this search from inside a callback.
        self.__lock = threading.RLock()
        self.__cancelled = False

    def cancel(self) -> None:
        with self.__lock:
            self.__cancelled = True

    # --- ServiceListener interface methods ---

    def add_service(self, zc: Zeroconf, type_: str, name: str) -> None:
        _logger.debug("add_service: type='%s', name='%s'", type_, name)
        self.__forward(type_, name, self.__client.on_discovery_found)

    def remove_service(self, zc: Zeroconf, type_: str, name: str) -> None:
        _logger.debug("remove_service: type='%s', name='%s'", type_, name)
        self.__forward(type_, name, self.__client.on_discovery_removed)

    def update_service(self, zc: Zeroconf, type_: str, name: str) -> None:
        # Identity is (name, type, domain); an update never changes it.
        _logger.debug("Ignoring update_service for '%s'.", name)

    def __forward(
        self,
        type_: str,
        name: str,
        signal: Callable[[ServiceRecord], None],
    ) -> None:
        with self.__lock:
            if self.__cancelled:
                _logger.debug(
                    "Search %d cancelled; dropping signal for '%s'.",
                    self.__handle.search_id,
                    name,
                )
                return

            if type_.lower() != self.__browse_type.lower():
                _logger.debug(
                    "Ignoring '%s' of type '%s'. Expected '%s'.",
                    name,
                    type_,
                    self.__browse_type,
                )
                return

            try:
                record = ServiceRecord.from_full_name(
                    name, self.__handle.service_type, self.__handle.domain
                )
            except ValueError as e:
                _logger.warning("Dropping malformed service name: %s", e)
                return

            try:
                signal(record)
            except Exception as e:
                # Raising here would end the zeroconf browser thread.
                _logger.error(
                    "Client failed to handle signal for %s: %s",
                    record,
                    e,
                    exc_info=True,
                )


class ZeroconfDiscoveryMechanism(DiscoveryMechanism):
    """Browses for services with `zeroconf.ServiceBrowser`.

    Each search runs its own `ServiceBrowser` thread on a `Zeroconf`
    instance that is either shared (passed in, never closed here) or owned
    (created on the first search, closed by `close()`).
    """

    def __init__(
        self,
        *,
        config: Optional[MdnsConfig] = None,
        zc_instance: Optional[Zeroconf] = None,
    ) -> None:
        """Initializes the ZeroconfDiscoveryMechanism.

        Args:
            config: Interfaces and IP version for an owned `Zeroconf`.
                    Ignored when `zc_instance` is given.
            zc_instance: Shared `Zeroconf` to browse on.
        """
        self.__config: MdnsConfig = config or MdnsConfig()
        self.__zc: Optional[Zeroconf] = zc_instance
        self.__is_shared_zc: bool = zc_instance is not None

        self.__lock = threading.Lock()
        self.__search_ids = itertools.count(1)
        self.__searches: Dict[int, Tuple[ServiceBrowser, _SearchListener]] = {}
        self.__closed = False

    def begin_search(
        self, service_type: str, domain: str, client: DiscoveryMechanism.Client
    ) -> SearchHandle:
        browse_type = join_type_and_domain(service_type, domain)
        with self.__lock:
            if self.__closed:
                raise DiscoveryMechanismError(
                    ERROR_INVALID,
                    "ZeroconfDiscoveryMechanism has been closed.",
                )

            handle = SearchHandle(
                next(self.__search_ids), service_type, domain
            )
            listener = _SearchListener(handle, client)
            try:
                zc = self.__get_zeroconf_locked()
                browser = ServiceBrowser(zc, browse_type, listener=listener)
            except BadTypeInNameException as e:
                raise DiscoveryMechanismError(
                    ERROR_BAD_TYPE,
                    f"Invalid service type '{browse_type}': {e}",
                ) from e
            except (NotRunningException, RuntimeError) as e:
                raise DiscoveryMechanismError(
                    ERROR_INVALID,
                    f"Zeroconf is not running; cannot browse for '{browse_type}': {e}",
                ) from e
            except (ZeroconfError, OSError) as e:
                raise DiscoveryMechanismError(
                    ERROR_UNKNOWN,
                    f"Failed to browse for '{browse_type}': {e}",
                ) from e

            self.__searches[handle.search_id] = (browser, listener)

        _logger.info(
            "Began zeroconf search %d for '%s'.", handle.search_id, browse_type
        )
        return handle

    def end_search(self, handle: SearchHandle) -> None:
        with self.__lock:
            search = self.__searches.pop(handle.search_id, None)
        if search is None:
            return

        browser, listener = search
        listener.cancel()
        self.__cancel_browser(browser, handle.search_id)
        _logger.info("Ended zeroconf search %d.", handle.search_id)

    def close(self) -> None:
        """Ends every search and closes an owned `Zeroconf` instance."""
        with self.__lock:
            self.__closed = True
            searches = list(self.__searches.items())
            self.__searches.clear()
            zc = self.__zc

        for search_id, (browser, listener) in searches:
            listener.cancel()
            self.__cancel_browser(browser, search_id)

        if zc is None:
            return

        if self.__is_shared_zc:
            _logger.info("Not closing shared Zeroconf instance.")
            return

        _logger.info("Closing owned Zeroconf instance.")
        try:
            zc.close()
        except Exception as e:
            _logger.error(
                "Error during owned Zeroconf.close(): %s", e, exc_info=True
            )

    def __get_zeroconf_locked(self) -> Zeroconf:
        if self.__zc is None:
            self.__zc = Zeroconf(
                interfaces=self.__config.zeroconf_interfaces(),
                ip_version=self.__config.zeroconf_ip_version(),
            )
            _logger.info(
                "Created owned Zeroconf instance (ip_version=%s, interfaces=%s).",
                self.__config.ip_version,
                self.__config.interfaces,
            )
        return self.__zc

    @staticmethod
    def __cancel_browser(browser: ServiceBrowser, search_id: int) -> None:
        # ServiceBrowser.cancel() joins the browser thread, which cannot
        # happen on that same thread.
        if threading.current_thread() is browser:
            threading.Thread(
                target=browser.cancel,
                name=f"svcwatch-cancel-{search_id}",
                daemon=True,
            ).start()
        else:
            browser.cancel()
