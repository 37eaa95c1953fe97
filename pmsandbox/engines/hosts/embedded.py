"""
Embedded host: a dedicated thread running its own event loop.

The caller's surface never crosses into the thread. The thread gets a deep-copied
wire description, rebuilds a surface bound to a relay channel, and evaluates with
RestrictedPython; every message comes back as a plain dict scheduled on the
caller's loop.
"""

import asyncio
import copy
import logging
import threading
from concurrent.futures import Future
from typing import Any

from pmsandbox.engines.script import ScriptSurface

from .base import HostKind, deliver, evaluate_remote

_log = logging.getLogger(__name__)

_JOIN_TIMEOUT = 5.0


class EmbeddedHost:
    kind = HostKind.EMBEDDED

    def __init__(self) -> None:
        self._loop: asyncio.AbstractEventLoop | None = None
        self._thread: threading.Thread | None = None
        self._ready = threading.Event()
        self._lock = threading.Lock()

    def start(self) -> None:
        with self._lock:
            if self._thread is not None and self._thread.is_alive():
                return
            self._ready.clear()
            self._thread = threading.Thread(
                target=self._run_loop, name="pm-embedded-host", daemon=True
            )
            self._thread.start()
        self._ready.wait()

    def _run_loop(self) -> None:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        self._loop = loop
        self._ready.set()
        try:
            loop.run_forever()
        finally:
            loop.close()
            self._loop = None

    def execute(self, source: str, surface: ScriptSurface) -> None:
        if self._loop is None:
            self.start()
        loop = self._loop
        if loop is None:
            raise RuntimeError("EmbeddedHost failed to start")

        caller = asyncio.get_running_loop()
        wire = copy.deepcopy(surface.to_wire())

        def post(payload: dict[str, Any]) -> None:
            caller.call_soon_threadsafe(deliver, surface, payload)

        future = asyncio.run_coroutine_threadsafe(
            evaluate_remote(source, wire, post), loop
        )
        future.add_done_callback(_log_failure)

    def close(self) -> None:
        with self._lock:
            loop, thread = self._loop, self._thread
            self._thread = None
        if loop is not None:
            loop.call_soon_threadsafe(loop.stop)
        if thread is not None:
            thread.join(_JOIN_TIMEOUT)

    def is_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()


def _log_failure(future: "Future[None]") -> None:
    if future.cancelled():
        return
    e = future.exception()
    if e is not None:
        _log.error("embedded evaluation failed: %s", e, exc_info=e)
