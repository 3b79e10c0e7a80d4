"""
Manifest model — the structured multi-service orchestration document.

The generator builds a ``Manifest``; ``render_manifest()`` turns it into
compose YAML.  Keeping the document structured until the very end lets
callers inspect and diff it without parsing text.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class ManifestNetwork(BaseModel):
    """A user-defined network."""

    name: str
    driver: str = "bridge"
    internal: bool = False

    def compose_spec(self) -> dict[str, Any]:
        spec: dict[str, Any] = {"name": self.name, "driver": self.driver}
        if self.internal:
            spec["internal"] = True
        return spec


class ManifestVolume(BaseModel):
    """An engine-managed named volume."""

    name: str

    def compose_spec(self) -> dict[str, Any]:
        return {"name": self.name}


class ManifestService(BaseModel):
    """One rendered service entry."""

    name: str
    image: str
    container_name: str
    restart: str = "unless-stopped"
    ports: list[str] = Field(default_factory=list)
    volumes: list[str] = Field(default_factory=list)
    environment: dict[str, str] = Field(default_factory=dict)
    depends_on: list[str] = Field(default_factory=list)
    networks: list[str] = Field(default_factory=list)
    healthcheck: dict[str, Any] | None = None

    def compose_spec(self) -> dict[str, Any]:
        """Compose mapping with a fixed key order; empty sections omitted."""
        spec: dict[str, Any] = {
            "image": self.image,
            "container_name": self.container_name,
            "restart": self.restart,
        }
        if self.environment:
            spec["environment"] = dict(self.environment)
        if self.ports:
            spec["ports"] = list(self.ports)
        if self.volumes:
            spec["volumes"] = list(self.volumes)
        if self.depends_on:
            spec["depends_on"] = list(self.depends_on)
        if self.networks:
            spec["networks"] = list(self.networks)
        if self.healthcheck:
            spec["healthcheck"] = dict(self.healthcheck)
        return spec


class Manifest(BaseModel):
    """The whole orchestration document.

    ``services`` preserves selection order; networks and volumes are kept
    in the order the generator adds them (already sorted).
    """

    project: str = "hops"
    services: dict[str, ManifestService] = Field(default_factory=dict)
    networks: dict[str, ManifestNetwork] = Field(default_factory=dict)
    volumes: dict[str, ManifestVolume] = Field(default_factory=dict)

    @property
    def service_names(self) -> list[str]:
        return list(self.services)

    def image_refs(self) -> list[str]:
        """Distinct image references, sorted."""
        return sorted({svc.image for svc in self.services.values()})

    def to_compose(self) -> dict[str, Any]:
        doc: dict[str, Any] = {
            "name": self.project,
            "services": {
                name: svc.compose_spec() for name, svc in self.services.items()
            },
        }
        if self.networks:
            doc["networks"] = {
                key: net.compose_spec() for key, net in self.networks.items()
            }
        if self.volumes:
            doc["volumes"] = {
                key: vol.compose_spec() for key, vol in self.volumes.items()
            }
        return doc
