"""Adapters — container engine and host bindings.

Public re-exports for convenient access.
"""

from hops.adapters.base import ContainerEngine, HostProbe, ServiceStatus
from hops.adapters.mock import MockEngine, StaticPortProbe

__all__ = [
    "ContainerEngine",
    "HostProbe",
    "MockEngine",
    "ServiceStatus",
    "StaticPortProbe",
]
