"""
ResolvedSelection — the dependency-closed set of services to install.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class ResolvedSelection(BaseModel):
    """Ordered, duplicate-free, dependency-closed service ids.

    Order follows catalog declaration order, never request order, so the
    same set always renders the same manifest.

    Attributes:
        ids:        Every service to install.
        requested:  What the operator asked for.
        implicit:   Ids present only because something depends on them.
    """

    model_config = ConfigDict(frozen=True)

    ids: tuple[str, ...]
    requested: frozenset[str] = Field(default_factory=frozenset)
    implicit: tuple[str, ...] = ()

    def __len__(self) -> int:
        return len(self.ids)

    def __contains__(self, service_id: object) -> bool:
        return service_id in self.ids

    @property
    def id_set(self) -> frozenset[str]:
        return frozenset(self.ids)

    def is_implicit(self, service_id: str) -> bool:
        return service_id in self.implicit

    def to_dict(self) -> dict:
        return {
            "services": list(self.ids),
            "requested": sorted(self.requested),
            "implicit": list(self.implicit),
        }
