"""Adapts an async callback to the synchronous observer contract."""

import asyncio
import concurrent.futures
import logging
import threading
from asyncio import AbstractEventLoop
from typing import Any, Callable, Coroutine, List

from svcwatch.discovery.service_event import ServiceEventKind
from svcwatch.discovery.service_record import ServiceRecord

_logger = logging.getLogger(__name__)

AsyncServiceObserver = Callable[
    [ServiceRecord, ServiceEventKind], Coroutine[Any, Any, None]
]


def _log_callback_failure(future: concurrent.futures.Future[None]) -> None:
    if future.cancelled():
        return
    error = future.exception()
    if error is not None:
        _logger.error(
            "Async service observer raised: %s", error, exc_info=error
        )


class EventLoopObserver:
    """Forwards session events to a coroutine running on an event loop.

    Instances are callable as `ServiceObserver`s. Each event schedules
    `callback(record, kind)` on `event_loop` with
    `asyncio.run_coroutine_threadsafe`, so events raised on a discovery
    mechanism's thread are handled on the embedder's loop. Events are
    scheduled in the order the session delivers them.
    """

    def __init__(
        self,
        callback: AsyncServiceObserver,
        event_loop: AbstractEventLoop,
    ) -> None:
        """Initializes the EventLoopObserver.

        Args:
            callback: Coroutine function invoked for every event.
            event_loop: Loop on which `callback` runs.

        Raises:
            ValueError: If `callback` or `event_loop` is None.
        """
        if callback is None:
            raise ValueError("callback cannot be None for EventLoopObserver.")
        if event_loop is None:
            raise ValueError("event_loop cannot be None for EventLoopObserver.")

        self.__callback = callback
        self.__event_loop = event_loop
        self.__pending_lock = threading.Lock()
        self.__pending: List[concurrent.futures.Future[None]] = []

    def __call__(self, record: ServiceRecord, kind: ServiceEventKind) -> None:
        if self.__event_loop.is_closed():
            _logger.warning(
                "Event loop closed; dropping %s event for %s.", kind.name, record
            )
            return

        future = asyncio.run_coroutine_threadsafe(
            self.__callback(record, kind), self.__event_loop
        )
        future.add_done_callback(_log_callback_failure)
        with self.__pending_lock:
            self.__pending = [f for f in self.__pending if not f.done()]
            self.__pending.append(future)

    def pending(self) -> List[concurrent.futures.Future[None]]:
        """Futures for scheduled callbacks that have not completed yet.

        Safe to call from any thread.
        """
        with self.__pending_lock:
            self.__pending = [f for f in self.__pending if not f.done()]
            return list(self.__pending)
