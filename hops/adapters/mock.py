"""
Mock engine and probe — universal test doubles.

Used by the test suite and ``hops install --mock`` to exercise the full
orchestrator without touching a container runtime.  By default every
operation succeeds; failures can be scripted per operation, optionally
only for the first N calls.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from hops.adapters.base import ContainerEngine, HostProbe, ServiceStatus
from hops.core.models.action import Receipt


@dataclass
class _ScriptedFailure:
    error: str
    fatal: bool
    remaining: int | None   # None = fail forever


class MockEngine(ContainerEngine):
    """Universal mock container engine.

    Example::

        engine = MockEngine()
        engine.set_failure("pull", "registry timeout", times=2)   # third pull succeeds
        engine.set_status("sonarr", ServiceStatus.UNHEALTHY)
        engine.set_existing({"radarr"})                          # already deployed
    """

    def __init__(self, engine_name: str = "mock", available: bool = True):
        self._name = engine_name
        self._available = available
        self._failures: dict[str, _ScriptedFailure] = {}
        self._statuses: dict[str, ServiceStatus] = {}
        self._existing: frozenset[str] | None = frozenset()
        self._call_log: list[tuple[str, str]] = []

    @property
    def name(self) -> str:
        return self._name

    @property
    def call_log(self) -> list[tuple[str, str]]:
        """``(operation, argument)`` for every call received, in order."""
        return self._call_log

    def calls(self, operation: str) -> int:
        """Number of times ``operation`` was called."""
        return sum(1 for op, _ in self._call_log if op == operation)

    def is_available(self) -> bool:
        return self._available

    # ── Scripting ───────────────────────────────────────────────

    def set_failure(
        self,
        operation: str,
        error: str = "Mock failure",
        *,
        fatal: bool = False,
        times: int | None = None,
    ) -> None:
        """Make ``operation`` fail (the first ``times`` calls, or always)."""
        self._failures[operation] = _ScriptedFailure(error=error, fatal=fatal, remaining=times)

    def set_status(self, service_id: str, status: ServiceStatus) -> None:
        self._statuses[service_id] = status

    def set_existing(self, services: set[str] | None) -> None:
        """Containers reported as present before ``up`` (None = unknown)."""
        self._existing = None if services is None else frozenset(services)

    def reset(self) -> None:
        """Clear call log, scripted failures, statuses and existing containers."""
        self._call_log.clear()
        self._failures.clear()
        self._statuses.clear()
        self._existing = frozenset()

    # ── Operations ──────────────────────────────────────────────

    def check_daemon(self) -> Receipt:
        return self._respond("check_daemon", "")

    def validate_manifest(self, manifest: Path) -> Receipt:
        return self._respond("validate_manifest", str(manifest))

    def pull(self, manifest: Path) -> Receipt:
        return self._respond("pull", str(manifest))

    def up(self, manifest: Path) -> Receipt:
        return self._respond("up", str(manifest))

    def existing_services(self, manifest: Path) -> frozenset[str] | None:
        self._call_log.append(("existing_services", str(manifest)))
        return self._existing

    def remove_services(self, manifest: Path, services: list[str]) -> Receipt:
        return self._respond("remove_services", " ".join(services))

    def remove_images(self, images: list[str]) -> Receipt:
        return self._respond("remove_images", " ".join(images))

    def service_status(self, manifest: Path, service_id: str) -> ServiceStatus:
        self._call_log.append(("service_status", service_id))
        return self._statuses.get(service_id, ServiceStatus.RUNNING)

    def _respond(self, operation: str, argument: str) -> Receipt:
        self._call_log.append((operation, argument))

        scripted = self._failures.get(operation)
        if scripted is not None and scripted.remaining != 0:
            if scripted.remaining is not None:
                scripted.remaining -= 1
            return Receipt.failure(
                adapter=self._name,
                operation=operation,
                error=scripted.error,
                fatal=scripted.fatal,
            )

        return Receipt.success(
            adapter=self._name,
            operation=operation,
            output="[mock] executed",
            metadata={"mock": True},
        )


class StaticPortProbe(HostProbe):
    """HostProbe with fixed answers.

    Args:
        bound: ``(port, protocol)`` pairs reported as already in use.
        listening: Ports that accept connections; None means all do.
    """

    def __init__(
        self,
        bound: frozenset[tuple[int, str]] | set[tuple[int, str]] = frozenset(),
        listening: set[int] | None = None,
    ):
        self._bound = frozenset(bound)
        self._listening = listening
        self.probed: list[int] = []

    def bound_ports(self) -> frozenset[tuple[int, str]]:
        return self._bound

    def is_listening(self, port: int) -> bool:
        self.probed.append(port)
        return self._listening is None or port in self._listening
