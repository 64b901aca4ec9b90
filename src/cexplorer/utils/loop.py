"""Run one asyncio event loop on a background thread.

The web server is a threaded WSGI app; every compile still has to go through
the single loop that owns the cache and the admission semaphore. Request
threads hand their coroutine over with :meth:`EventLoopThread.run` and block
on the result.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import Any, Coroutine, TypeVar

_LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


class EventLoopThread:
    def __init__(self, name: str = "cexplorer-loop") -> None:
        self._name = name
        self._loop: asyncio.AbstractEventLoop | None = None
        self._thread: threading.Thread | None = None
        self._ready = threading.Event()

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            raise RuntimeError("event loop thread is not running")
        return self._loop

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> "EventLoopThread":
        if self.running:
            return self
        self._ready.clear()
        self._thread = threading.Thread(target=self._serve, name=self._name, daemon=True)
        self._thread.start()
        self._ready.wait()
        _LOGGER.debug("Started event loop thread %s", self._name)
        return self

    def _serve(self) -> None:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        self._loop = loop
        self._ready.set()
        try:
            loop.run_forever()
        finally:
            loop.run_until_complete(loop.shutdown_asyncgens())
            loop.close()

    def run(self, coro: Coroutine[Any, Any, T], timeout: float | None = None) -> T:
        """Execute ``coro`` on the loop thread and wait for its result."""

        if not self.running:
            self.start()
        future = asyncio.run_coroutine_threadsafe(coro, self.loop)
        return future.result(timeout)

    def stop(self) -> None:
        if not self.running or self._loop is None or self._thread is None:
            return
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._thread.join()
        self._thread = None
        self._loop = None
        _LOGGER.debug("Stopped event loop thread %s", self._name)


__all__ = ["EventLoopThread"]
