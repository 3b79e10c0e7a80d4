"""
Port conflict records produced by the port checker.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class PortConflict(BaseModel):
    """A (port, protocol) claimed more than once.

    ``internal`` conflicts are between services of the same selection and
    are always errors.  ``host`` conflicts are with something already
    listening on this machine and are warnings the caller decides on.
    """

    model_config = ConfigDict(frozen=True)

    port: int
    protocol: Literal["tcp", "udp"] = "tcp"
    service_ids: tuple[str, ...]
    kind: Literal["internal", "host"]
    severity: Literal["error", "warning"]

    def describe(self) -> str:
        owners = ", ".join(self.service_ids)
        if self.kind == "internal":
            return f"{self.port}/{self.protocol} claimed by {owners}"
        return f"{self.port}/{self.protocol} ({owners}) already in use on host"


class PortReport(BaseModel):
    """All conflicts found for one selection."""

    conflicts: list[PortConflict] = Field(default_factory=list)

    @property
    def errors(self) -> list[PortConflict]:
        return [c for c in self.conflicts if c.severity == "error"]

    @property
    def warnings(self) -> list[PortConflict]:
        return [c for c in self.conflicts if c.severity == "warning"]

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)

    @property
    def clean(self) -> bool:
        return not self.conflicts

    def raise_for_errors(self) -> None:
        """Raise ``PortConflictError`` if any internal conflict exists."""
        if self.has_errors:
            from hops.core.errors import PortConflictError

            raise PortConflictError(self.errors)

    def to_dict(self) -> dict:
        return {
            "errors": [c.model_dump() for c in self.errors],
            "warnings": [c.model_dump() for c in self.warnings],
        }
