"""
Port conflict checker — finds (port, protocol) collisions.

Two kinds of conflict:
    internal  two selected services publish the same host (port, protocol).
              Unresolvable without remapping, so always an error.
    host      a selected service's port is already bound on this machine.
              A warning; the caller decides whether to continue.

The checker never mutates anything and never aborts by itself.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from hops.core.models.ports import PortConflict, PortReport
from hops.core.models.selection import ResolvedSelection
from hops.core.services.catalog import Catalog

logger = logging.getLogger(__name__)


def check_ports(
    catalog: Catalog,
    selection: ResolvedSelection,
    bound: Iterable[tuple[int, str]] = frozenset(),
) -> PortReport:
    """Detect port conflicts for a resolved selection.

    Args:
        catalog: Service catalog.
        selection: Resolved services.
        bound: ``(port, protocol)`` pairs already in use on the host, as
               reported by a host probe.

    Returns:
        PortReport; internal conflicts first (by port), then host ones.
    """
    claims: dict[tuple[int, str], list[str]] = {}
    for sid in selection.ids:
        for port in catalog.lookup(sid).ports:
            owners = claims.setdefault(port.key, [])
            if sid not in owners:
                owners.append(sid)

    conflicts: list[PortConflict] = []

    for (number, protocol), owners in sorted(claims.items()):
        if len(owners) > 1:
            conflicts.append(PortConflict(
                port=number,
                protocol=protocol,
                service_ids=tuple(owners),
                kind="internal",
                severity="error",
            ))

    in_use = frozenset(bound)
    for (number, protocol), owners in sorted(claims.items()):
        if (number, protocol) not in in_use:
            continue
        for sid in owners:
            conflicts.append(PortConflict(
                port=number,
                protocol=protocol,
                service_ids=(sid,),
                kind="host",
                severity="warning",
            ))

    report = PortReport(conflicts=conflicts)
    if report.errors:
        logger.warning(
            "Port conflicts within selection: %s",
            "; ".join(c.describe() for c in report.errors),
        )
    if report.warnings:
        logger.info("%d selected port(s) already bound on host", len(report.warnings))
    return report
