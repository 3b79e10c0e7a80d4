"""
Plan use case — selection → resolved, checked, rendered InstallPlan.

Runs the pure stages in order (resolve → check ports → generate) and
converts their exceptions into result values, so callers never need
to know the error taxonomy to report a failure.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field

from hops.adapters.base import HostProbe
from hops.core.errors import ConfigurationDefect, PortConflictError
from hops.core.models.context import ConfigurationContext
from hops.core.models.plan import InstallPlan
from hops.core.models.ports import PortReport
from hops.core.models.selection import ResolvedSelection
from hops.core.services.aux_configs import plan_aux_files
from hops.core.services.catalog import Catalog
from hops.core.services.env_file import env_requirements
from hops.core.services.manifest_generator import (
    embeds_credentials,
    generate_manifest,
    host_directories,
    render_manifest,
)
from hops.core.services.port_checker import check_ports
from hops.core.services.resolver import resolve, selection_advisories

logger = logging.getLogger(__name__)


@dataclass
class SelectionResult:
    """Outcome of resolving a request."""

    selection: ResolvedSelection | None = None
    advisories: list[str] = field(default_factory=list)
    error: str = ""

    @property
    def ok(self) -> bool:
        return not self.error

    def to_dict(self) -> dict:
        return {
            "ok": self.ok,
            "error": self.error or None,
            "selection": self.selection.to_dict() if self.selection else None,
            "advisories": self.advisories,
        }


@dataclass
class PortCheckResult:
    """Outcome of a port check for a request."""

    selection: ResolvedSelection | None = None
    report: PortReport | None = None
    error: str = ""

    @property
    def ok(self) -> bool:
        return not self.error and (self.report is None or not self.report.has_errors)

    def to_dict(self) -> dict:
        return {
            "ok": self.ok,
            "error": self.error or None,
            "services": list(self.selection.ids) if self.selection else [],
            "ports": self.report.to_dict() if self.report else None,
        }


@dataclass
class PlanResult:
    """Outcome of planning an installation."""

    plan: InstallPlan | None = None
    selection: ResolvedSelection | None = None
    port_report: PortReport | None = None
    advisories: list[str] = field(default_factory=list)
    error: str = ""

    @property
    def ok(self) -> bool:
        return self.plan is not None and not self.error

    def to_dict(self) -> dict:
        data: dict = {
            "ok": self.ok,
            "error": self.error or None,
            "selection": self.selection.to_dict() if self.selection else None,
            "advisories": self.advisories,
            "ports": self.port_report.to_dict() if self.port_report else None,
        }
        if self.plan is not None:
            data["manifest_path"] = str(self.plan.manifest_path)
            data["manifest"] = self.plan.manifest_text
            data["aux_files"] = [f.path for f in self.plan.aux_files]
            data["directories"] = [str(d) for d in self.plan.directories]
            data["env_file"] = str(self.plan.env_path)
            data["env_names"] = [*self.plan.env_secrets, *self.plan.env_blanks]
        return data


def resolve_request(catalog: Catalog, requested: Iterable[str]) -> SelectionResult:
    """Resolve requested ids and collect advisories."""
    result = SelectionResult()
    try:
        result.selection = resolve(catalog, requested)
    except ConfigurationDefect as e:
        result.error = str(e)
        return result
    result.advisories = selection_advisories(catalog, result.selection)
    return result


def check_request_ports(
    catalog: Catalog,
    requested: Iterable[str],
    probe: HostProbe | None = None,
) -> PortCheckResult:
    """Resolve, then check ports within the selection and against the host."""
    result = PortCheckResult()
    try:
        result.selection = resolve(catalog, requested)
    except ConfigurationDefect as e:
        result.error = str(e)
        return result

    bound = probe.bound_ports() if probe is not None else frozenset()
    result.report = check_ports(catalog, result.selection, bound)
    return result


def build_plan(
    catalog: Catalog,
    requested: Iterable[str],
    ctx: ConfigurationContext,
    *,
    probe: HostProbe | None = None,
) -> PlanResult:
    """Resolve, check and render everything an installation needs.

    Args:
        catalog: Validated catalog.
        requested: Operator-selected ids.
        ctx: Configuration context.
        probe: Host probe for already-bound ports (None = skip host check).

    Returns:
        PlanResult.  ``error`` is set for unknown ids, empty requests and
        internal port conflicts; host conflicts are left in
        ``port_report.warnings`` for the caller to decide on.
    """
    result = PlanResult()

    selection = resolve_request(catalog, requested)
    if not selection.ok:
        result.error = selection.error
        return result
    assert selection.selection is not None  # guaranteed when ok
    result.selection = selection.selection
    result.advisories = selection.advisories

    bound = probe.bound_ports() if probe is not None else frozenset()
    result.port_report = check_ports(catalog, result.selection, bound)

    try:
        manifest = generate_manifest(catalog, result.selection, ctx)
    except PortConflictError as e:
        result.error = str(e)
        return result

    env = env_requirements(catalog, result.selection, ctx)
    for name in env.blanks:
        result.advisories.append(
            f"${{{name}}} has no value: add it under credentials in hops.yml "
            f"or set it in {ctx.env_path}"
        )

    readiness = {}
    for sid in result.selection.ids:
        primary = catalog.lookup(sid).primary_port
        if primary is not None:
            readiness[sid] = primary

    result.plan = InstallPlan(
        selection=result.selection,
        context=ctx,
        manifest=manifest,
        manifest_text=render_manifest(manifest),
        aux_files=plan_aux_files(catalog, result.selection, ctx),
        directories=host_directories(catalog, result.selection, ctx),
        readiness=readiness,
        port_report=result.port_report,
        advisories=result.advisories,
        env_secrets=env.secrets,
        env_blanks=env.blanks,
        manifest_private=embeds_credentials(catalog, result.selection, ctx),
    )
    logger.info("Planned installation of %d service(s)", len(result.selection))
    return result
