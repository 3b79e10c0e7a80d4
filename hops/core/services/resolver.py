"""
Dependency resolver — requested ids → dependency-closed selection.

Pure functions over a ``Catalog``.  The closure is computed with a
worklist until a fixed point; termination is guaranteed because the
catalog loader refuses cyclic graphs.

Properties:
    idempotent    resolve(resolve(R).ids) == resolve(R)
    monotonic     R1 ⊆ R2  ⇒  resolve(R1) ⊆ resolve(R2)
    deterministic output order is catalog declaration order, never
                  request or discovery order
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from hops.core.errors import EmptySelectionError, UnknownServiceError
from hops.core.models.selection import ResolvedSelection
from hops.core.services.catalog import Catalog

logger = logging.getLogger(__name__)


def resolve(catalog: Catalog, requested: Iterable[str]) -> ResolvedSelection:
    """Compute the transitive dependency closure of ``requested``.

    Args:
        catalog: Validated service catalog.
        requested: Service ids chosen by the operator (duplicates ignored).

    Returns:
        ResolvedSelection sorted by catalog declaration order, with the
        ids that were added only as dependencies listed in ``implicit``.

    Raises:
        EmptySelectionError: Nothing was requested.
        UnknownServiceError: Any requested id is not in the catalog
            (all unknown ids are named, not just the first).
    """
    wanted = frozenset(requested)
    if not wanted:
        raise EmptySelectionError("No services requested")

    unknown = [sid for sid in wanted if sid not in catalog]
    if unknown:
        raise UnknownServiceError(unknown)

    closed: set[str] = set(wanted)
    worklist = sorted(wanted, key=catalog.order_key)
    while worklist:
        current = worklist.pop()
        for dep in catalog.lookup(current).dependencies:
            if dep not in closed:
                closed.add(dep)
                worklist.append(dep)

    ids = tuple(sorted(closed, key=catalog.order_key))
    implicit = tuple(sid for sid in ids if sid not in wanted)

    if implicit:
        logger.info("Added dependencies: %s", ", ".join(implicit))
    logger.debug("Resolved %d requested → %d services", len(wanted), len(ids))

    return ResolvedSelection(ids=ids, requested=wanted, implicit=implicit)


def selection_advisories(catalog: Catalog, selection: ResolvedSelection) -> list[str]:
    """Non-blocking advice about a selection.

    Reports recommended companions that were not selected (e.g. an
    indexer manager for the *arr services) and services sharing a role
    (two media servers, two reverse proxies).  Never changes the
    selection.

    Returns:
        Human-readable advisory lines, deterministic order.
    """
    advisories: list[str] = []

    missing: dict[str, list[str]] = {}
    for sid in selection.ids:
        for rec in catalog.lookup(sid).recommends:
            if rec not in selection:
                missing.setdefault(rec, []).append(sid)

    for rec in sorted(missing, key=catalog.order_key):
        name = catalog.lookup(rec).display_name
        wanted_by = ", ".join(missing[rec])
        advisories.append(f"{name} ({rec}) is recommended for: {wanted_by}")

    roles: dict[str, list[str]] = {}
    for sid in selection.ids:
        role = catalog.lookup(sid).role
        if role:
            roles.setdefault(role, []).append(sid)

    for role in sorted(roles):
        members = roles[role]
        if len(members) > 1:
            advisories.append(
                f"Multiple {role} services selected ({', '.join(members)}); "
                "usually one is enough"
            )

    return advisories
