"""
Service descriptor — everything the installer knows about one service.

Descriptors are loaded once from the catalog YAML and never mutated.
They carry enough structured metadata (ports, volumes, environment)
that a single generic renderer can produce every manifest entry.
"""

from __future__ import annotations

from enum import StrEnum
from string import Template
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class Category(StrEnum):
    """Presentation grouping for the catalog."""

    MEDIA_MANAGEMENT = "media-management"
    DOWNLOAD_CLIENT = "download-client"
    MEDIA_SERVER = "media-server"
    REQUEST_MANAGEMENT = "request-management"
    PROXY_SECURITY = "proxy-security"
    MONITORING = "monitoring"
    DATABASE = "database"

    @property
    def label(self) -> str:
        """Human-readable heading, e.g. ``Media Management``."""
        return self.value.replace("-", " ").title()


class PortSpec(BaseModel):
    """A published port.

    ``host`` defaults to the container port; a few services publish on a
    different host port to coexist with their neighbours.
    """

    model_config = ConfigDict(frozen=True)

    container: int
    protocol: Literal["tcp", "udp"] = "tcp"
    host: int | None = None

    @property
    def host_port(self) -> int:
        return self.host if self.host is not None else self.container

    @property
    def key(self) -> tuple[int, str]:
        """``(host_port, protocol)`` — the unit of conflict detection."""
        return (self.host_port, self.protocol)

    def compose_spec(self) -> str:
        """Render as a compose short-syntax port mapping."""
        spec = f"{self.host_port}:{self.container}"
        if self.protocol == "udp":
            spec += "/udp"
        return spec


class VolumeSpec(BaseModel):
    """A mount declared by a service.

    Kinds:
        bind   host directory template, provisioned before startup
        file   existing host file (docker socket), never provisioned
        named  engine-managed named volume
    """

    model_config = ConfigDict(frozen=True)

    source: str
    target: str
    mode: Literal["rw", "ro"] = "rw"
    kind: Literal["bind", "named", "file"] = "bind"


class EnvVar(BaseModel):
    """An environment variable injected into the container.

    ``value`` may reference context variables as ``${NAME}``.  With
    ``secret`` set, names in ``value`` that no credential supplies are
    generated into the install root's ``.env`` instead of left blank.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    value: str = ""
    secret: bool = False

    def placeholders(self) -> list[str]:
        """``${NAME}`` identifiers referenced by ``value``."""
        return Template(self.value).get_identifiers()


class HealthProbe(BaseModel):
    """Engine-level health check rendered into the manifest."""

    model_config = ConfigDict(frozen=True)

    test: list[str]
    interval: str = "30s"
    timeout: str = "10s"
    retries: int = 3
    start_period: str | None = None

    def compose_spec(self) -> dict:
        spec: dict = {
            "test": list(self.test),
            "interval": self.interval,
            "timeout": self.timeout,
            "retries": self.retries,
        }
        if self.start_period:
            spec["start_period"] = self.start_period
        return spec


class ServiceDescriptor(BaseModel):
    """One installable service.

    ``id`` is the join key used everywhere: catalog lookups, compose
    service names, container names and config subdirectories.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(pattern=r"^[a-z0-9][a-z0-9-]*$")
    name: str = ""
    description: str = ""
    image: str
    category: Category
    ports: list[PortSpec] = Field(default_factory=list)
    volumes: list[VolumeSpec] = Field(default_factory=list)
    env: list[EnvVar] = Field(default_factory=list)
    dependencies: list[str] = Field(default_factory=list)
    recommends: list[str] = Field(default_factory=list)
    role: str | None = None
    special: Literal["database"] | None = None
    healthcheck: HealthProbe | None = None

    @property
    def display_name(self) -> str:
        return self.name or self.id

    @property
    def primary_port(self) -> PortSpec | None:
        """First declared port, used for readiness checks and URLs."""
        return self.ports[0] if self.ports else None

    @property
    def is_database(self) -> bool:
        return self.special == "database"

    @property
    def env_names(self) -> list[str]:
        return [e.name for e in self.env]

    def bind_volumes(self) -> list[VolumeSpec]:
        return [v for v in self.volumes if v.kind == "bind"]

    def named_volumes(self) -> list[VolumeSpec]:
        return [v for v in self.volumes if v.kind == "named"]
