"""
Health-check helpers for liveness and readiness probes.

Liveness:  is the process alive and responsive?  (cheap, no I/O)
Readiness: can it serve script runs?  (restricted compiler works, pooled hosts alive)
"""

import logging

from pmsandbox.engines.hosts import get_host_pool
from pmsandbox.engines.script import compile_script

logger = logging.getLogger(__name__)

_HEALTH_SCRIPT = "pm.test('health', lambda: pm.expect(1).to.equal(1))"


def check_compiler() -> bool:
    """Compile a trivial script with RestrictedPython. Returns True if ok."""
    try:
        compile_script(_HEALTH_SCRIPT)
        return True
    except SyntaxError:
        logger.warning("Restricted compiler health check failed", exc_info=True)
        return False


def check_hosts() -> list[str]:
    """Names of pooled hosts that have died."""
    return [kind for kind, alive in get_host_pool().stats().items() if not alive]


def liveness_check() -> tuple[bool, list[str]]:
    return True, []


def readiness_check() -> tuple[bool, list[str]]:
    """Returns (ok, failures)."""
    failures: list[str] = []
    if not check_compiler():
        failures.append("compiler")
    failures.extend(f"host:{kind}" for kind in check_hosts())
    return not failures, failures
