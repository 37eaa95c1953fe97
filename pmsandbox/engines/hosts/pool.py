"""
Started isolation hosts, one per kind, shared by the HTTP service.

Starting a worker blocks on its handshake; async callers use
`await asyncio.to_thread(pool.get, kind)`.
"""

import logging
import threading

from .base import HostKind, IsolationHost

_log = logging.getLogger(__name__)


class HostPool:
    """Per-kind cache of started hosts; dead hosts are replaced on checkout."""

    def __init__(self) -> None:
        self._hosts: dict[HostKind, IsolationHost] = {}
        self._lock = threading.Lock()

    def get(self, kind: HostKind | str) -> IsolationHost:
        from . import create_host

        kind = HostKind(kind)
        with self._lock:
            host = self._hosts.get(kind)
            if host is not None and host.is_alive():
                return host
            if host is not None:
                _log.warning("%s host is not alive, replacing it", kind.value)
                host.close()
            host = create_host(kind)
            self._hosts[kind] = host
            return host

    def close(self) -> None:
        """Close every started host."""
        with self._lock:
            hosts = list(self._hosts.values())
            self._hosts.clear()
        for host in hosts:
            try:
                host.close()
            except RuntimeError as e:
                _log.warning("closing %s host failed: %s", host.kind.value, e)

    def stats(self) -> dict[str, bool]:
        """kind -> alive, for monitoring."""
        with self._lock:
            return {kind.value: host.is_alive() for kind, host in self._hosts.items()}


_host_pool: HostPool | None = None
_pool_lock = threading.Lock()


def get_host_pool() -> HostPool:
    """Return the singleton HostPool (thread-safe double-checked locking)."""
    global _host_pool
    if _host_pool is None:
        with _pool_lock:
            if _host_pool is None:
                _host_pool = HostPool()
    return _host_pool
