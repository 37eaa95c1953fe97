"""
Console module for script engine: log, info, warn, error, debug.

Each call reports a console message on the result channel and is mirrored to the
module logger.
"""

import logging
from collections.abc import Mapping
from types import SimpleNamespace
from typing import Any

from pmsandbox.models import ConsoleMessage

logger = logging.getLogger(__name__)

_LEVELS = {
    "log": logging.INFO,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
    "debug": logging.DEBUG,
}


def loggable(value: Any, _depth: int = 0) -> Any:
    """Convert a script value into something JSON-safe."""
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if _depth > 20:
        return repr(value)
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("utf-8", errors="replace")
    if isinstance(value, Mapping):
        return {str(k): loggable(v, _depth + 1) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [loggable(v, _depth + 1) for v in value]
    return repr(value)


def make_log_module(
    *,
    reporter: Any,
    logger_instance: logging.Logger | None = None,
    extra: dict[str, Any] | None = None,
) -> Any:
    """Build the `console` object. extra is passed to the logger as context."""
    log = logger_instance or logger
    ext = extra or {}

    def _emit(level: str, args: tuple[Any, ...]) -> None:
        values = [loggable(a) for a in args]
        reporter.send(ConsoleMessage(level=level, args=values))
        if log.isEnabledFor(_LEVELS[level]):
            log.log(_LEVELS[level], "script console: %s", " ".join(map(str, values)), extra=ext)

    def log_(*args: Any) -> None:
        _emit("log", args)

    def info(*args: Any) -> None:
        _emit("info", args)

    def warn(*args: Any) -> None:
        _emit("warn", args)

    def error(*args: Any) -> None:
        _emit("error", args)

    def debug(*args: Any) -> None:
        _emit("debug", args)

    return SimpleNamespace(log=log_, info=info, warn=warn, error=error, debug=debug)
