"""
Validator policy tables for the two modes.

deny:  reject references to a fixed set of host/network/storage/DOM/timer/messaging
       names and calls to a fixed set of dangerous functions.
allow: accept only the surface root, a few intrinsics, allow-listed functions and
       names the script declares itself.
"""

from dataclasses import dataclass, field
from enum import Enum

from RestrictedPython.transformer import INSPECT_ATTRIBUTES


class ValidatorMode(str, Enum):
    DENY = "deny"
    ALLOW = "allow"


SURFACE_ROOT = "pm"

CONSOLE_METHODS = frozenset({"log", "info", "warn", "error", "debug"})

# Browser-host globals a post-response script must never reach directly.
_HOST_GLOBALS = frozenset({
    "document",
    "window",
    "global",
    "globals",
    "globalThis",
    "localStorage",
    "sessionStorage",
    "cookie",
    "XMLHttpRequest",
    "fetch",
    "WebSocket",
    "WebAssembly",
    "location",
    "history",
    "parent",
    "top",
    "opener",
    "crypto",
    "Notification",
    "alert",
    "prompt",
    "confirm",
    "navigator",
    "screen",
    "frames",
    "self",
    "Function",
    "Atomics",
    "SharedArrayBuffer",
    "Intl",
    "Performance",
    "Worker",
    "ServiceWorker",
    "BroadcastChannel",
    "EventSource",
    "Request",
    "Response",
    "Cache",
    "caches",
    "indexedDB",
    "AbortController",
    "AbortSignal",
    "setTimeout",
    "setInterval",
    "requestAnimationFrame",
    "requestIdleCallback",
    "importScripts",
    "postMessage",
    "queueMicrotask",
    "dispatchEvent",
    "addEventListener",
    "removeEventListener",
    "eval",
})

# Python builtins and modules that reach the interpreter, the OS, the network,
# storage, timers or concurrency primitives.
_PYTHON_GLOBALS = frozenset({
    "__builtins__",
    "__import__",
    "builtins",
    "open",
    "exec",
    "compile",
    "locals",
    "vars",
    "getattr",
    "setattr",
    "delattr",
    "breakpoint",
    "input",
    "help",
    "exit",
    "quit",
    "memoryview",
    "os",
    "sys",
    "subprocess",
    "socket",
    "shutil",
    "pathlib",
    "io",
    "tempfile",
    "importlib",
    "ctypes",
    "threading",
    "multiprocessing",
    "asyncio",
    "signal",
    "time",
    "sched",
    "urllib",
    "http",
    "httpx",
    "requests",
    "pickle",
    "marshal",
    "sqlite3",
    "mmap",
    # raising these would unwind the host, not the script
    "BaseException",
    "SystemExit",
    "KeyboardInterrupt",
    "GeneratorExit",
})

DISALLOWED_IDENTIFIERS = _HOST_GLOBALS | _PYTHON_GLOBALS

# Rejected in both modes: frame, code and coroutine internals (a path back to the
# host builtins) and str.format, which the restricted runtime refuses.
BLOCKED_ATTRIBUTES = INSPECT_ATTRIBUTES | frozenset({
    "ag_frame",
    "ag_code",
    "ag_await",
    "format",
    "format_map",
})

DISALLOWED_FUNCTIONS = frozenset({
    "eval",
    "Function",
    "setTimeout",
    "setInterval",
    "requestAnimationFrame",
    "requestIdleCallback",
    "importScripts",
    "postMessage",
    "queueMicrotask",
    "dispatchEvent",
    "addEventListener",
    "removeEventListener",
    "exec",
    "compile",
    "open",
    "__import__",
    "input",
    "breakpoint",
    "print",
    "globals",
    "locals",
    "vars",
    "getattr",
    "setattr",
    "delattr",
    "help",
    "exit",
    "quit",
})

# Intrinsic constructors the allow mode accepts, with the members scripts may use.
ALLOWED_INTRINSICS: dict[str, type | None] = {
    "list": list,
    "dict": dict,
    "set": set,
    "str": str,
    "console": None,
}

# Pure builtins callable by bare name in allow mode.
ALLOWED_FUNCTIONS = frozenset({
    "list",
    "dict",
    "set",
    "str",
    "len",
    "isinstance",
    "sorted",
    "min",
    "max",
    "sum",
    "abs",
    "round",
    "int",
    "float",
    "bool",
    "range",
    "enumerate",
    "zip",
    "any",
    "all",
})


def intrinsic_members(name: str) -> frozenset[str]:
    """Public methods defined directly on the intrinsic's type (not inherited)."""
    if name == "console":
        return CONSOLE_METHODS
    cls = ALLOWED_INTRINSICS.get(name)
    if cls is None:
        return frozenset()
    return frozenset(n for n in vars(cls) if not n.startswith("_"))


@dataclass(frozen=True)
class ValidatorPolicy:
    """Name tables consulted by the traversal; one instance per mode."""

    mode: ValidatorMode
    disallowed_identifiers: frozenset[str] = frozenset()
    disallowed_functions: frozenset[str] = frozenset()
    allowed_identifiers: frozenset[str] = frozenset()
    allowed_functions: frozenset[str] = frozenset()
    intrinsics: frozenset[str] = field(default_factory=frozenset)


DENY_POLICY = ValidatorPolicy(
    mode=ValidatorMode.DENY,
    disallowed_identifiers=DISALLOWED_IDENTIFIERS,
    disallowed_functions=DISALLOWED_FUNCTIONS,
)

ALLOW_POLICY = ValidatorPolicy(
    mode=ValidatorMode.ALLOW,
    allowed_identifiers=frozenset({SURFACE_ROOT, *ALLOWED_INTRINSICS}) | ALLOWED_FUNCTIONS,
    allowed_functions=ALLOWED_FUNCTIONS,
    intrinsics=frozenset(ALLOWED_INTRINSICS),
)


def policy_for(mode: ValidatorMode | str) -> ValidatorPolicy:
    return ALLOW_POLICY if ValidatorMode(mode) == ValidatorMode.ALLOW else DENY_POLICY
