"""
Domain models — Pydantic types for the installer.

All models are re-exported here for convenient access:

    from hops.core.models import ServiceDescriptor, ConfigurationContext, Manifest
"""

from hops.core.models.action import Receipt
from hops.core.models.context import ConfigurationContext
from hops.core.models.manifest import (
    Manifest,
    ManifestNetwork,
    ManifestService,
    ManifestVolume,
)
from hops.core.models.plan import InstallPlan
from hops.core.models.ports import PortConflict, PortReport
from hops.core.models.selection import ResolvedSelection
from hops.core.models.service import (
    Category,
    EnvVar,
    HealthProbe,
    PortSpec,
    ServiceDescriptor,
    VolumeSpec,
)
from hops.core.models.state import (
    STEP_SEQUENCE,
    InstallationState,
    InstallPhase,
    InstallResult,
    RollbackAction,
    StepEvent,
)
from hops.core.models.template import GeneratedFile

__all__ = [
    # service.py
    "Category",
    "EnvVar",
    "HealthProbe",
    "PortSpec",
    "ServiceDescriptor",
    "VolumeSpec",
    # context.py
    "ConfigurationContext",
    # selection.py
    "ResolvedSelection",
    # ports.py
    "PortConflict",
    "PortReport",
    # manifest.py
    "Manifest",
    "ManifestNetwork",
    "ManifestService",
    "ManifestVolume",
    # template.py
    "GeneratedFile",
    # plan.py
    "InstallPlan",
    # action.py
    "Receipt",
    # state.py
    "STEP_SEQUENCE",
    "InstallPhase",
    "InstallResult",
    "InstallationState",
    "RollbackAction",
    "StepEvent",
]
