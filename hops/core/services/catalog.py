"""
Service catalog — read-only registry of every installable service.

The catalog is built once from YAML (see ``catalog_loader``) and never
mutated afterwards.  Declaration order is meaningful: it is the fixed
total order used to sort resolved selections, which keeps generated
manifests byte-identical across runs.

``validate_catalog()`` is pure and returns every defect it finds rather
than stopping at the first, so a broken catalog can be fixed in one pass.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator

from pydantic import BaseModel, ConfigDict

from hops.core.errors import UnknownServiceError
from hops.core.models.service import Category, ServiceDescriptor

logger = logging.getLogger(__name__)


class CatalogDefect(BaseModel):
    """One problem found in the catalog data.

    Codes:
        duplicate_id, unknown_dependency, unknown_recommendation,
        self_dependency, dependency_cycle, floating_tag,
        duplicate_port, port_range, named_volume_path
    """

    model_config = ConfigDict(frozen=True)

    code: str
    service_id: str
    message: str

    def __str__(self) -> str:
        return f"[{self.code}] {self.service_id}: {self.message}"


class Catalog:
    """Registry of ``ServiceDescriptor`` keyed by id, in declaration order.

    Duplicate ids are kept out of the lookup table (the first wins) but
    remembered so ``validate_catalog()`` can report them.
    """

    def __init__(self, descriptors: Iterable[ServiceDescriptor]):
        self._ordered: list[ServiceDescriptor] = []
        self._by_id: dict[str, ServiceDescriptor] = {}
        self._duplicates: list[str] = []

        for desc in descriptors:
            if desc.id in self._by_id:
                self._duplicates.append(desc.id)
                continue
            self._by_id[desc.id] = desc
            self._ordered.append(desc)

        self._order = {desc.id: i for i, desc in enumerate(self._ordered)}

    # ── Lookup ───────────────────────────────────────────────────

    def lookup(self, service_id: str) -> ServiceDescriptor:
        """Return the descriptor for ``service_id``.

        Raises:
            UnknownServiceError: If the id is not in the catalog.
        """
        try:
            return self._by_id[service_id]
        except KeyError:
            raise UnknownServiceError(service_id) from None

    def get(self, service_id: str) -> ServiceDescriptor | None:
        return self._by_id.get(service_id)

    def all_ids(self) -> frozenset[str]:
        return frozenset(self._by_id)

    def ordered_ids(self) -> tuple[str, ...]:
        """Every id in declaration order."""
        return tuple(desc.id for desc in self._ordered)

    def order_key(self, service_id: str) -> int:
        """Position of ``service_id`` in declaration order (sort key)."""
        try:
            return self._order[service_id]
        except KeyError:
            raise UnknownServiceError(service_id) from None

    def by_category(self) -> dict[Category, list[ServiceDescriptor]]:
        """Descriptors grouped by category, in enum order then declaration order."""
        groups: dict[Category, list[ServiceDescriptor]] = {}
        for category in Category:
            members = [d for d in self._ordered if d.category == category]
            if members:
                groups[category] = members
        return groups

    def __contains__(self, service_id: object) -> bool:
        return service_id in self._by_id

    def __iter__(self) -> Iterator[ServiceDescriptor]:
        return iter(self._ordered)

    def __len__(self) -> int:
        return len(self._ordered)

    def __repr__(self) -> str:
        return f"<Catalog services={len(self)}>"

    # ── Validation ───────────────────────────────────────────────

    def validate_catalog(self) -> list[CatalogDefect]:
        """Check the catalog for structural defects.

        Checks for:
        - Duplicate service ids
        - References to non-existent dependencies / recommendations
        - Self-dependencies and dependency cycles (Kahn's algorithm)
        - Floating image tags (untagged or ``latest``)
        - Duplicate (port, protocol) within one descriptor, ports out of range
        - Named volumes whose source looks like a host path

        Returns:
            List of defects (empty = valid).
        """
        defects: list[CatalogDefect] = []

        for dup in self._duplicates:
            defects.append(CatalogDefect(
                code="duplicate_id", service_id=dup,
                message=f"Duplicate service id: {dup}",
            ))

        for desc in self._ordered:
            defects.extend(_reference_defects(desc, self._by_id))
            defects.extend(_image_defects(desc))
            defects.extend(_port_defects(desc))
            defects.extend(_volume_defects(desc))

        defects.extend(_cycle_defects(self._ordered, self._by_id))

        if defects:
            logger.warning("Catalog has %d defect(s)", len(defects))
        return defects


# ── Defect checks ────────────────────────────────────────────────


def _reference_defects(
    desc: ServiceDescriptor,
    known: dict[str, ServiceDescriptor],
) -> list[CatalogDefect]:
    defects: list[CatalogDefect] = []
    for dep in desc.dependencies:
        if dep == desc.id:
            defects.append(CatalogDefect(
                code="self_dependency", service_id=desc.id,
                message=f"Service '{desc.id}' depends on itself",
            ))
        elif dep not in known:
            defects.append(CatalogDefect(
                code="unknown_dependency", service_id=desc.id,
                message=f"Service '{desc.id}' depends on unknown service '{dep}'",
            ))
    for rec in desc.recommends:
        if rec not in known:
            defects.append(CatalogDefect(
                code="unknown_recommendation", service_id=desc.id,
                message=f"Service '{desc.id}' recommends unknown service '{rec}'",
            ))
    return defects


def image_tag(image: str) -> str | None:
    """Return the tag of an image reference, or None if untagged.

    A digest-pinned reference (``repo@sha256:…``) returns the digest.
    """
    if "@" in image:
        return image.split("@", 1)[1]
    last = image.rsplit("/", 1)[-1]
    if ":" not in last:
        return None
    return last.split(":", 1)[1] or None


def _image_defects(desc: ServiceDescriptor) -> list[CatalogDefect]:
    tag = image_tag(desc.image)
    if tag is None:
        return [CatalogDefect(
            code="floating_tag", service_id=desc.id,
            message=f"Image '{desc.image}' has no tag",
        )]
    if tag == "latest":
        return [CatalogDefect(
            code="floating_tag", service_id=desc.id,
            message=f"Image '{desc.image}' uses the mutable 'latest' tag",
        )]
    return []


def _port_defects(desc: ServiceDescriptor) -> list[CatalogDefect]:
    defects: list[CatalogDefect] = []
    seen: set[tuple[int, str]] = set()
    for port in desc.ports:
        for number in (port.container, port.host_port):
            if not 1 <= number <= 65535:
                defects.append(CatalogDefect(
                    code="port_range", service_id=desc.id,
                    message=f"Port {number} out of range (1-65535)",
                ))
        if port.key in seen:
            defects.append(CatalogDefect(
                code="duplicate_port", service_id=desc.id,
                message=f"Port {port.host_port}/{port.protocol} declared twice",
            ))
        seen.add(port.key)
    return defects


def _volume_defects(desc: ServiceDescriptor) -> list[CatalogDefect]:
    defects: list[CatalogDefect] = []
    for vol in desc.named_volumes():
        if "/" in vol.source or vol.source.startswith(("$", ".")):
            defects.append(CatalogDefect(
                code="named_volume_path", service_id=desc.id,
                message=f"Named volume source looks like a path: {vol.source}",
            ))
    return defects


def _cycle_defects(
    ordered: list[ServiceDescriptor],
    known: dict[str, ServiceDescriptor],
) -> list[CatalogDefect]:
    """Detect dependency cycles with Kahn's algorithm.

    Unknown references and self-edges are reported elsewhere and ignored
    here.  Nodes left after the forward pass are on a cycle or downstream
    of one; a reverse pass strips the downstream ones so the defect names
    only the ids that form the cycle.
    """
    edges: dict[str, list[str]] = {
        d.id: [dep for dep in d.dependencies if dep in known and dep != d.id]
        for d in ordered
    }

    # Forward pass: dependency → dependents
    in_degree = {sid: len(deps) for sid, deps in edges.items()}
    dependents: dict[str, list[str]] = {sid: [] for sid in edges}
    for sid, deps in edges.items():
        for dep in deps:
            dependents[dep].append(sid)

    queue = [sid for sid, deg in in_degree.items() if deg == 0]
    remaining = set(edges)
    while queue:
        node = queue.pop(0)
        remaining.discard(node)
        for successor in dependents[node]:
            in_degree[successor] -= 1
            if in_degree[successor] == 0:
                queue.append(successor)

    if not remaining:
        return []

    # Reverse pass: drop nodes nothing in the remainder depends on
    out_degree = {
        sid: sum(1 for d in dependents[sid] if d in remaining) for sid in remaining
    }
    queue = [sid for sid, deg in out_degree.items() if deg == 0]
    while queue:
        node = queue.pop(0)
        remaining.discard(node)
        for dep in edges[node]:
            if dep in remaining:
                out_degree[dep] -= 1
                if out_degree[dep] == 0:
                    queue.append(dep)

    order = {d.id: i for i, d in enumerate(ordered)}
    cycle = sorted(remaining, key=order.__getitem__)
    return [CatalogDefect(
        code="dependency_cycle", service_id=cycle[0],
        message=f"Dependency cycle among: {', '.join(cycle)}",
    )]
