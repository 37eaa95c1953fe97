"""
Worker host: a long-lived background process reachable only through queues.

start() spawns the process and waits for its ready handshake; execute() before
start() raises RuntimeError. Each job runs in a fresh `asyncio.run` inside the
worker, so no script-local state survives from one submission to the next.
A caller-side pump thread routes result messages by execution id back onto the
event loop that submitted the job.
"""

import asyncio
import logging
import multiprocessing
import queue
import threading
import uuid
from typing import Any, NamedTuple

from pmsandbox.core.config import settings
from pmsandbox.engines.script import ScriptSurface
from pmsandbox.models import DoneMessage, ErrorMessage, encode_message

from .base import HostKind, deliver, evaluate_remote

_log = logging.getLogger(__name__)

_READY = "ready"
_POLL_INTERVAL = 0.5
_JOIN_TIMEOUT = 5.0


def _worker_main(jobs: Any, results: Any) -> None:
    """Entry point of the worker process."""
    results.put({"type": _READY})
    while True:
        job = jobs.get()
        if job is None:
            break
        exec_id = job["id"]

        def post(payload: dict[str, Any], _id: str = exec_id) -> None:
            results.put({"id": _id, "message": payload})

        asyncio.run(evaluate_remote(job["source"], job["surface"], post))


class _Route(NamedTuple):
    loop: asyncio.AbstractEventLoop
    surface: ScriptSurface


class WorkerHost:
    kind = HostKind.WORKER

    def __init__(self, start_timeout: float | None = None) -> None:
        self._ctx = multiprocessing.get_context("spawn")
        self._start_timeout = (
            start_timeout if start_timeout is not None else settings.WORKER_START_TIMEOUT
        )
        self._process: Any = None
        self._jobs: Any = None
        self._results: Any = None
        self._pump: threading.Thread | None = None
        self._routes: dict[str, _Route] = {}
        self._lock = threading.Lock()
        self._started = False

    def start(self) -> None:
        """Spawn the worker and complete the ready handshake."""
        with self._lock:
            if self._started:
                return
            self._jobs = self._ctx.Queue()
            self._results = self._ctx.Queue()
            self._process = self._ctx.Process(
                target=_worker_main,
                args=(self._jobs, self._results),
                name="pm-worker-host",
                daemon=True,
            )
            self._process.start()
            try:
                hello = self._results.get(timeout=self._start_timeout)
            except queue.Empty:
                self._process.terminate()
                raise RuntimeError(
                    f"Worker did not complete its handshake within {self._start_timeout}s"
                ) from None
            if hello.get("type") != _READY:
                self._process.terminate()
                raise RuntimeError(f"Unexpected worker handshake: {hello!r}")
            self._pump = threading.Thread(
                target=self._pump_results, name="pm-worker-pump", daemon=True
            )
            self._pump.start()
            self._started = True
            _log.info("worker host started (pid=%s)", self._process.pid)

    def execute(self, source: str, surface: ScriptSurface) -> None:
        if not self._started:
            raise RuntimeError("WorkerHost.execute called before start()")
        exec_id = uuid.uuid4().hex
        with self._lock:
            self._routes[exec_id] = _Route(asyncio.get_running_loop(), surface)
        self._jobs.put({"id": exec_id, "source": source, "surface": surface.to_wire()})

    def _pump_results(self) -> None:
        while True:
            try:
                item = self._results.get(timeout=_POLL_INTERVAL)
            except queue.Empty:
                if self._process is not None and not self._process.is_alive():
                    if self._started:
                        self._fail_pending("Worker process exited unexpectedly")
                    return
                continue
            if item is None:
                return
            exec_id = item.get("id")
            payload = item.get("message") or {}
            with self._lock:
                route = self._routes.get(exec_id)
                if route is not None and payload.get("type") == "done":
                    del self._routes[exec_id]
            if route is None:
                _log.warning("result for unknown execution %s dropped", exec_id)
                continue
            self._post(route, payload)

    @staticmethod
    def _post(route: _Route, payload: dict[str, Any]) -> None:
        try:
            route.loop.call_soon_threadsafe(deliver, route.surface, payload)
        except RuntimeError:
            # caller's loop already closed; nobody is listening
            _log.warning("caller loop closed, dropping %s message", payload.get("type"))

    def _fail_pending(self, reason: str) -> None:
        with self._lock:
            routes = list(self._routes.values())
            self._routes.clear()
            self._started = False
        _log.error("%s; failing %d pending execution(s)", reason, len(routes))
        for route in routes:
            self._post(route, encode_message(ErrorMessage(message=reason)))
            self._post(route, encode_message(DoneMessage()))

    def close(self) -> None:
        with self._lock:
            if not self._started:
                return
            self._started = False
        self._jobs.put(None)
        self._process.join(_JOIN_TIMEOUT)
        if self._process.is_alive():
            self._process.terminate()
            self._process.join(_JOIN_TIMEOUT)
        self._results.put(None)
        if self._pump is not None:
            self._pump.join(_JOIN_TIMEOUT)
        _log.info("worker host stopped")

    def is_alive(self) -> bool:
        return self._started and self._process is not None and self._process.is_alive()
