"""
Result channel: send/subscribe delivery of result messages across an isolation boundary.

- ResultChannel: in-process fan-out to subscribed listeners (the caller side).
- RelayChannel: channel end inside an isolation context; every message is encoded
  to a plain dict and handed to a transport-specific `post` callable.
- ResultCollector: subscribes to a channel and accumulates an ExecutionReport until
  the completion signal arrives.
"""

import asyncio
import logging
import threading
from collections.abc import Callable
from typing import Any

from pmsandbox.models import (
    ConsoleMessage,
    DoneMessage,
    EnvValue,
    ErrorMessage,
    ExecutionReport,
    SetEnvMessage,
    TestResultMessage,
    encode_message,
)

_log = logging.getLogger(__name__)

Listener = Callable[[Any], None]


class ScriptTimeoutError(TimeoutError):
    """Raised when an execution's completion signal does not arrive in time."""

    pass


class ResultChannel:
    """Synchronous fan-out of messages to listeners, in subscription order."""

    def __init__(self) -> None:
        self._listeners: list[Listener] = []
        self._lock = threading.Lock()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns a callable that unsubscribes it."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def send(self, message: Any) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(message)
            except Exception:
                # A broken listener must not abort the script that is reporting.
                _log.exception("result listener failed for %s message", message.type)


class RelayChannel(ResultChannel):
    """Channel end living inside an isolation context."""

    def __init__(self, post: Callable[[dict[str, Any]], None]) -> None:
        super().__init__()
        self._post = post

    def send(self, message: Any) -> None:
        self._post(encode_message(message))
        super().send(message)


class ResultCollector:
    """
    Accumulates one execution's messages into an ExecutionReport.

    Only the first top-level error is kept. `wait()` resolves on the DoneMessage.
    """

    def __init__(
        self,
        channel: ResultChannel,
        environment: dict[str, EnvValue] | None = None,
    ) -> None:
        self.report = ExecutionReport(environment=dict(environment or {}))
        self._done = asyncio.Event()
        self._unsubscribe = channel.subscribe(self._on_message)

    def _on_message(self, message: Any) -> None:
        if isinstance(message, TestResultMessage):
            self.report.results.append(message.result)
        elif isinstance(message, SetEnvMessage):
            self.report.environment_changes.append(message)
            self.report.environment[message.key] = message.value
        elif isinstance(message, ConsoleMessage):
            self.report.console.append(message)
        elif isinstance(message, ErrorMessage):
            if self.report.error is None:
                self.report.error = message.message
        elif isinstance(message, DoneMessage):
            self.report.completed = True
            self._done.set()

    async def wait(self, timeout: float | None = None) -> ExecutionReport:
        """Wait for the completion signal, then stop listening."""
        try:
            await asyncio.wait_for(self._done.wait(), timeout or None)
        except asyncio.TimeoutError as e:
            raise ScriptTimeoutError(
                f"Script execution timed out after {timeout}s"
            ) from e
        finally:
            self._unsubscribe()
        return self.report
