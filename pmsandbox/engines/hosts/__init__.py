"""
Isolation hosts for validated test scripts.

All hosts share one contract (start, execute, close, is_alive) and are selected
by HostKind through a registry rather than a class hierarchy.
"""

from .base import HostKind, IsolationHost, deliver, evaluate, evaluate_remote
from .compartment import CompartmentHost
from .direct import DirectHost
from .embedded import EmbeddedHost
from .pool import HostPool, get_host_pool
from .worker import WorkerHost

_HOSTS: dict[HostKind, type] = {
    HostKind.WORKER: WorkerHost,
    HostKind.COMPARTMENT: CompartmentHost,
    HostKind.EMBEDDED: EmbeddedHost,
    HostKind.DIRECT: DirectHost,
}


def create_host(kind: HostKind | str, *, start: bool = True) -> IsolationHost:
    """Build a host of *kind*; started unless start=False. Raises ValueError for unknown kinds."""
    host: IsolationHost = _HOSTS[HostKind(kind)]()
    if start:
        host.start()
    return host


__all__ = [
    "CompartmentHost",
    "DirectHost",
    "EmbeddedHost",
    "HostKind",
    "HostPool",
    "IsolationHost",
    "WorkerHost",
    "create_host",
    "deliver",
    "evaluate",
    "evaluate_remote",
    "get_host_pool",
]
