"""
InstallPlan — everything the orchestrator needs, computed up front.

The plan is the hand-off between the pure stages (resolve → check →
generate) and the side-effecting orchestrator.  Building it performs no
I/O; executing it is the orchestrator's job.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

from hops.core.models.context import ConfigurationContext
from hops.core.models.manifest import Manifest
from hops.core.models.ports import PortReport
from hops.core.models.selection import ResolvedSelection
from hops.core.models.service import PortSpec
from hops.core.models.template import GeneratedFile


class InstallPlan(BaseModel):
    """Rendered, validated input for one installation run.

    Attributes:
        selection:      Resolved services.
        context:        Configuration used for rendering.
        manifest:       Structured manifest.
        manifest_text:  Rendered YAML, written verbatim.
        aux_files:      Auxiliary config files to write (skip if present).
        directories:    Host directories to provision, sorted.
        readiness:      Primary port per service that exposes one.
        port_report:    Conflicts found at planning time (warnings only;
                        internal errors never reach a plan).
        advisories:     Non-blocking selection advice.
        env_secrets:    Names to generate into the install root's .env.
        env_blanks:     Unresolved names the operator must supply there.
        manifest_private: The manifest embeds credentials (write it 0600).
    """

    model_config = ConfigDict(frozen=True)

    selection: ResolvedSelection
    context: ConfigurationContext
    manifest: Manifest
    manifest_text: str
    aux_files: list[GeneratedFile] = Field(default_factory=list)
    directories: list[Path] = Field(default_factory=list)
    readiness: dict[str, PortSpec] = Field(default_factory=dict)
    port_report: PortReport = Field(default_factory=PortReport)
    advisories: list[str] = Field(default_factory=list)
    env_secrets: list[str] = Field(default_factory=list)
    env_blanks: list[str] = Field(default_factory=list)
    manifest_private: bool = False

    @property
    def manifest_path(self) -> Path:
        return self.context.manifest_path

    @property
    def env_path(self) -> Path:
        return self.context.env_path
