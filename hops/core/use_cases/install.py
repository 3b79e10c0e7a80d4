"""
Install use case — plan, lock, orchestrate, report.

Flow:
    build plan → host-port decision → acquire run lock
              → orchestrator.run (events → NDJSON log) → health report
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from pathlib import Path

from hops.adapters.base import ContainerEngine, HostProbe
from hops.core.engine.orchestrator import (
    DEFAULT_POLL_INTERVAL,
    DEFAULT_READINESS_TIMEOUT,
    CancelToken,
    InstallOrchestrator,
)
from hops.core.models.context import ConfigurationContext
from hops.core.models.state import InstallResult, StepEvent
from hops.core.observability.health import DeploymentHealth, deployment_health
from hops.core.persistence.event_log import DEFAULT_STATE_DIR, EventLog
from hops.core.persistence.run_lock import DEFAULT_LOCK_FILE, RunLock, RunLockedError
from hops.core.reliability.retry import RetryPolicy
from hops.core.services.catalog import Catalog
from hops.core.use_cases.plan import PlanResult, build_plan

logger = logging.getLogger(__name__)


@dataclass
class InstallRunResult:
    """Everything the CLI needs to report an installation."""

    plan: PlanResult = field(default_factory=PlanResult)
    result: InstallResult | None = None
    health: DeploymentHealth | None = None
    event_log: Path | None = None
    error: str = ""

    @property
    def ok(self) -> bool:
        return not self.error and self.result is not None and self.result.ok

    def to_dict(self) -> dict:
        return {
            "ok": self.ok,
            "error": self.error or None,
            "plan": self.plan.to_dict(),
            "result": self.result.to_dict() if self.result else None,
            "health": self.health.to_dict() if self.health else None,
            "event_log": str(self.event_log) if self.event_log else None,
        }


def run_install(
    catalog: Catalog,
    requested: Iterable[str],
    ctx: ConfigurationContext,
    engine: ContainerEngine,
    *,
    probe: HostProbe | None = None,
    allow_host_conflicts: bool = False,
    remove_images_on_rollback: bool = False,
    retry: RetryPolicy | None = None,
    readiness_timeout: float = DEFAULT_READINESS_TIMEOUT,
    poll_interval: float = DEFAULT_POLL_INTERVAL,
    cancel: CancelToken | None = None,
    sleep: Callable[[float], None] = time.sleep,
    on_event: Callable[[StepEvent], None] | None = None,
) -> InstallRunResult:
    """Plan and execute an installation.

    Args:
        allow_host_conflicts: Continue when selected ports are already
            bound on the host (otherwise the run stops before any change).
        on_event: Extra per-event callback (e.g. CLI progress output).

    Returns:
        InstallRunResult; ``error`` set when nothing was attempted.
    """
    out = InstallRunResult()
    out.plan = build_plan(catalog, requested, ctx, probe=probe)
    if not out.plan.ok:
        out.error = out.plan.error
        return out
    plan = out.plan.plan
    assert plan is not None  # guaranteed when ok

    if plan.port_report.warnings and not allow_host_conflicts:
        busy = "; ".join(c.describe() for c in plan.port_report.warnings)
        out.error = f"Ports already in use: {busy}"
        return out

    state_dir = ctx.install_root / DEFAULT_STATE_DIR
    event_log = EventLog(install_root=ctx.install_root, services=list(plan.selection.ids))
    out.event_log = event_log.path

    def emit(event: StepEvent) -> None:
        event_log.write(event)
        if on_event is not None:
            on_event(event)

    orchestrator = InstallOrchestrator(
        engine,
        probe=probe,
        retry=retry,
        readiness_timeout=readiness_timeout,
        poll_interval=poll_interval,
        remove_images_on_rollback=remove_images_on_rollback,
        sleep=sleep,
        on_event=emit,
    )

    try:
        with RunLock(state_dir / DEFAULT_LOCK_FILE):
            out.result = orchestrator.run(plan, cancel=cancel)
    except RunLockedError as e:
        out.error = str(e)
        return out

    out.health = deployment_health(plan, out.result)
    if not out.result.ok:
        logger.error(
            "Installation failed at %s: %s (rolled back: %s)",
            out.result.failed_at, out.result.error,
            ", ".join(out.result.rolled_back) or "nothing",
        )
    return out
