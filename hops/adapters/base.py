"""
Adapter base — the contracts between the orchestrator and the host.

The orchestrator only talks to the container runtime and the host's
network stack through these interfaces, never directly to external
tools.  That keeps it testable with ``MockEngine`` / ``StaticPortProbe``.

Engine operations return Receipts and NEVER raise: failures are
captured in the Receipt, with ``fatal=True`` for environment problems
that retrying cannot fix.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from enum import StrEnum
from pathlib import Path

from hops.core.models.action import Receipt


class ServiceStatus(StrEnum):
    """Container state as reported by the engine."""

    HEALTHY = "healthy"
    RUNNING = "running"        # running, no health check defined
    STARTING = "starting"
    UNHEALTHY = "unhealthy"
    EXITED = "exited"
    MISSING = "missing"

    @property
    def ready(self) -> bool:
        return self in (ServiceStatus.HEALTHY, ServiceStatus.RUNNING)


class ContainerEngine(ABC):
    """Abstract container orchestration engine.

    Every operation takes the manifest path: the engine works on the
    whole manifest at once and does its own internal parallelism and
    start ordering.

    To add an engine:
        1. Subclass ContainerEngine
        2. Implement every abstract method, returning Receipts
        3. Select it in the CLI
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """The engine identifier (e.g., 'docker', 'mock')."""

    @abstractmethod
    def is_available(self) -> bool:
        """Whether the engine CLI exists.  Fast, never raises."""

    @abstractmethod
    def check_daemon(self) -> Receipt:
        """Verify the daemon is reachable and usable by this user."""

    @abstractmethod
    def validate_manifest(self, manifest: Path) -> Receipt:
        """Ask the engine whether the manifest is valid."""

    @abstractmethod
    def pull(self, manifest: Path) -> Receipt:
        """Retrieve every image referenced by the manifest."""

    @abstractmethod
    def up(self, manifest: Path) -> Receipt:
        """Start every service in the manifest in one invocation."""

    @abstractmethod
    def existing_services(self, manifest: Path) -> frozenset[str] | None:
        """Services of the manifest's project that already have a container.

        None when the engine cannot tell.
        """

    @abstractmethod
    def remove_services(self, manifest: Path, services: list[str]) -> Receipt:
        """Stop and remove the containers of ``services`` only.

        Other containers of the project and its networks are left alone.
        """

    @abstractmethod
    def remove_images(self, images: list[str]) -> Receipt:
        """Delete pulled images."""

    @abstractmethod
    def service_status(self, manifest: Path, service_id: str) -> ServiceStatus:
        """Current state of one service's container."""

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"


class HostProbe(ABC):
    """Read-only view of the host's network ports."""

    @abstractmethod
    def bound_ports(self) -> frozenset[tuple[int, str]]:
        """``(port, protocol)`` pairs currently bound.  Empty if unknown."""

    @abstractmethod
    def is_listening(self, port: int) -> bool:
        """Whether something accepts TCP connections on ``port`` locally."""
