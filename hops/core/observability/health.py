"""
Deployment health — readiness report after an installation.

Summarises the verification step per service: healthy when the
container answered, degraded when it never became ready in time.
Used by the CLI to print the post-install report and URLs.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from hops.core.models.plan import InstallPlan
from hops.core.models.state import InstallResult

logger = logging.getLogger(__name__)

# Higher is worse
_SEVERITY = {"healthy": 0, "unknown": 1, "degraded": 2, "unhealthy": 3}


@dataclass
class ServiceHealth:
    """Readiness of one installed service and where to reach it."""

    service_id: str
    status: str = "unknown"
    url: str = ""
    message: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "service": self.service_id,
            "status": self.status,
            "url": self.url,
            "message": self.message,
        }


@dataclass
class DeploymentHealth:
    """Report for one installation run, worst status wins."""

    status: str = "healthy"
    timestamp: str = ""
    services: list[ServiceHealth] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.timestamp:
            self.timestamp = datetime.now(UTC).isoformat()

    def add(self, service: ServiceHealth) -> None:
        self.services.append(service)
        self._recalculate()

    def _recalculate(self) -> None:
        """Overall status is the worst service status."""
        self.status = max(
            (s.status for s in self.services), key=_SEVERITY.__getitem__, default="healthy",
        )

    @property
    def degraded(self) -> list[str]:
        return [s.service_id for s in self.services if s.status == "degraded"]

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "timestamp": self.timestamp,
            "services": [s.to_dict() for s in self.services],
        }


def deployment_health(plan: InstallPlan, result: InstallResult) -> DeploymentHealth:
    """Build the health report for a finished installation.

    Services without a primary port are reported as ``unknown``: they
    are not probed.  A failed installation is ``unhealthy`` as a whole.
    """
    health = DeploymentHealth()

    for sid in plan.selection.ids:
        port = plan.readiness.get(sid)
        url = f"http://localhost:{port.host_port}" if port and port.protocol == "tcp" else ""
        if not result.ok:
            status, message = "unhealthy", f"installation failed at {result.failed_at}"
        elif sid in result.degraded:
            status, message = "degraded", "did not become ready in time"
        elif sid in result.ready:
            status, message = "healthy", "ready"
        else:
            status, message = "unknown", "no readiness probe"
        health.add(ServiceHealth(service_id=sid, status=status, url=url, message=message))

    if health.degraded:
        logger.warning("Degraded services: %s", ", ".join(health.degraded))
    return health
