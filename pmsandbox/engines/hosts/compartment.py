"""
Compartment host: the script gets fresh restricted globals and a surface rebuilt
from a deep-copied wire description, so no object of the caller's is reachable
from inside. Messages come back as plain dicts and are applied on the caller's
side synchronously, on the same event loop.

Strongest isolation of the in-process hosts; each execution pays for a copy of
the surface on top of the restricted compile.
"""

import asyncio
import copy
import functools
from typing import Any

from pmsandbox.engines.script import ScriptSurface

from .base import HostKind, deliver, evaluate_remote


class CompartmentHost:
    kind = HostKind.COMPARTMENT

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task[Any]] = set()
        self._closed = False

    def start(self) -> None:
        self._closed = False

    def execute(self, source: str, surface: ScriptSurface) -> None:
        if self._closed:
            raise RuntimeError("CompartmentHost is closed")
        wire = copy.deepcopy(surface.to_wire())
        task = asyncio.get_running_loop().create_task(
            evaluate_remote(
                source,
                wire,
                functools.partial(deliver, surface),
                http_transport=surface.http_transport,
            )
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def close(self) -> None:
        self._closed = True

    def is_alive(self) -> bool:
        return not self._closed
