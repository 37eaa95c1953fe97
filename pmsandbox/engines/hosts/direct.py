"""
Direct host: the script runs as a coroutine on the caller's own event loop and
receives the caller's surface objects as they are. Lowest latency, weakest
isolation; only ever run scripts the validator accepted.
"""

import asyncio
from typing import Any

from pmsandbox.engines.script import ScriptSurface

from .base import HostKind, evaluate


class DirectHost:
    kind = HostKind.DIRECT

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task[Any]] = set()
        self._closed = False

    def start(self) -> None:
        self._closed = False

    def execute(self, source: str, surface: ScriptSurface) -> None:
        if self._closed:
            raise RuntimeError("DirectHost is closed")
        task = asyncio.get_running_loop().create_task(evaluate(source, surface))
        # keep a reference until the task finishes
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def close(self) -> None:
        self._closed = True

    def is_alive(self) -> bool:
        return not self._closed
