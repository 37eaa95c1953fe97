"""
Isolation host contract and the evaluation shared by every host.

execute(source, surface) is fire-and-forget: it must be called from the caller's
running event loop, returns immediately, and every outcome arrives on
surface.reporter, ending with one DoneMessage.

All hosts evaluate through `evaluate`, i.e. the same restricted compiler and
guards; hosts differ only in where the script runs and which objects it shares
with the caller.
"""

import asyncio
import inspect
import logging
from collections.abc import Callable
from enum import Enum
from typing import Any, Protocol

import httpx
from pydantic import ValidationError

from pmsandbox.core.channel import RelayChannel
from pmsandbox.engines.script import (
    ScriptSurface,
    build_restricted_globals,
    compile_script,
    load_script_function,
)
from pmsandbox.models import DoneMessage, ErrorMessage, SetEnvMessage, decode_message

_log = logging.getLogger(__name__)


class HostKind(str, Enum):
    WORKER = "worker"
    COMPARTMENT = "compartment"
    EMBEDDED = "embedded"
    DIRECT = "direct"


class IsolationHost(Protocol):
    kind: HostKind

    def start(self) -> None: ...

    def execute(self, source: str, surface: ScriptSurface) -> None: ...

    def close(self) -> None: ...

    def is_alive(self) -> bool: ...


def error_text(e: BaseException) -> str:
    text = str(e)
    return f"{type(e).__name__}: {text}" if text else type(e).__name__


async def evaluate(source: str, surface: ScriptSurface) -> None:
    """
    Compile and run one script against *surface*.

    Anything raised outside pm.test, SystemExit and KeyboardInterrupt included, is
    reported as a single ErrorMessage; only cancellation propagates. The surface
    is always closed and DoneMessage is always the last message sent.
    """
    try:
        code = compile_script(source, parameters=surface.parameter_names)
        run_script = load_script_function(code, build_restricted_globals())
        pending = run_script(**surface.to_dict())
        if not inspect.iscoroutine(pending):
            raise TypeError("Script did not compile to a coroutine function")
        await pending
    except asyncio.CancelledError:
        raise
    except BaseException as e:
        _log.info("script raised %s", error_text(e))
        surface.reporter.send(ErrorMessage(message=error_text(e)))
    finally:
        await surface.aclose()
        surface.reporter.send(DoneMessage())


async def evaluate_remote(
    source: str,
    wire: dict[str, Any],
    post: Callable[[dict[str, Any]], None],
    *,
    http_transport: httpx.AsyncBaseTransport | None = None,
) -> None:
    """Rebuild the surface from its wire description and evaluate against it."""
    channel = RelayChannel(post)
    try:
        surface = ScriptSurface.from_wire(wire, channel, http_transport=http_transport)
    except (KeyError, TypeError, ValidationError) as e:
        _log.warning("malformed surface description: %s", e)
        channel.send(ErrorMessage(message=error_text(e)))
        channel.send(DoneMessage())
        return
    await evaluate(source, surface)


def deliver(surface: ScriptSurface, payload: dict[str, Any]) -> None:
    """
    Caller-side relay of one message from an isolation context.

    setEnv is applied through the caller's Environment, which emits it on the
    caller's channel; everything else is forwarded as is.
    """
    try:
        message = decode_message(payload)
    except ValidationError as e:
        _log.warning("dropping malformed result message %r: %s", payload, e)
        return
    if isinstance(message, SetEnvMessage):
        surface.environment.set(message.key, message.value)
    else:
        surface.reporter.send(message)
