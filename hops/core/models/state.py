"""
Installation state — the only mutable entity in the core.

An ``InstallationState`` is created when the orchestrator starts a run
and discarded when it ends.  It records which phases completed (in
order) and exactly which side effects each one produced, so rollback
can undo precisely those and nothing else.

Phases:
    IDLE → DIRECTORIES_CREATED → MANIFEST_WRITTEN → IMAGES_PULLED
         → CONTAINERS_STARTED → VERIFIED → DONE
    any in-progress phase → FAILED
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class InstallPhase(StrEnum):
    """Orchestrator states, in execution order."""

    IDLE = "idle"
    DIRECTORIES_CREATED = "directories_created"
    MANIFEST_WRITTEN = "manifest_written"
    IMAGES_PULLED = "images_pulled"
    CONTAINERS_STARTED = "containers_started"
    VERIFIED = "verified"
    DONE = "done"
    FAILED = "failed"


# Phases that produce side effects worth undoing, in execution order.
STEP_SEQUENCE: tuple[InstallPhase, ...] = (
    InstallPhase.DIRECTORIES_CREATED,
    InstallPhase.MANIFEST_WRITTEN,
    InstallPhase.IMAGES_PULLED,
    InstallPhase.CONTAINERS_STARTED,
    InstallPhase.VERIFIED,
)


EventOutcome = Literal[
    "started",
    "completed",
    "failed",
    "retrying",
    "degraded",
    "cancelled",
    "rolled_back",
    "rollback_failed",
    "skipped",
]


class StepEvent(BaseModel):
    """A structured step-transition event for the logging collaborator."""

    step: str
    outcome: EventOutcome
    timestamp: str = Field(default_factory=_now_iso)
    detail: dict[str, Any] = Field(default_factory=dict)


class RollbackAction(BaseModel):
    """One compensating action taken (or attempted) during rollback."""

    step: InstallPhase
    action: str
    ok: bool = True
    error: str | None = None


class InstallationState(BaseModel):
    """Mutable run-scoped record of completed phases and their effects."""

    phase: InstallPhase = InstallPhase.IDLE
    completed: list[InstallPhase] = Field(default_factory=list)
    failed_at: InstallPhase | None = None
    error: str = ""

    # Side effects, recorded as they happen
    created_dirs: list[Path] = Field(default_factory=list)
    written_files: list[Path] = Field(default_factory=list)
    manifest_written: bool = False
    manifest_backup: Path | None = None
    env_created: bool = False
    env_added: list[str] = Field(default_factory=list)
    env_previous: str | None = Field(default=None, repr=False, exclude=True)
    created_services: list[str] = Field(default_factory=list)
    started_partially: bool = False

    degraded: list[str] = Field(default_factory=list)
    ready: list[str] = Field(default_factory=list)
    events: list[StepEvent] = Field(default_factory=list)
    rollback: list[RollbackAction] = Field(default_factory=list)

    def mark_completed(self, phase: InstallPhase) -> None:
        """Record a finished phase and advance the state."""
        self.completed.append(phase)
        self.phase = phase

    def mark_failed(self, phase: InstallPhase, error: str) -> None:
        self.failed_at = phase
        self.error = error
        self.phase = InstallPhase.FAILED

    def has_completed(self, phase: InstallPhase) -> bool:
        return phase in self.completed


class InstallResult(BaseModel):
    """Outcome reported to the caller.

    Every failure names the step, the cause, and what was rolled back, so
    the operator never has to guess the installation state.
    """

    ok: bool
    phase: InstallPhase
    failed_at: InstallPhase | None = None
    error: str = ""
    completed: list[InstallPhase] = Field(default_factory=list)
    rollback: list[RollbackAction] = Field(default_factory=list)
    degraded: list[str] = Field(default_factory=list)
    ready: list[str] = Field(default_factory=list)
    events: list[StepEvent] = Field(default_factory=list)
    manifest_path: str = ""
    manifest_backup: str | None = None

    @property
    def rolled_back(self) -> list[InstallPhase]:
        """Phases whose compensating actions all succeeded, in rollback order."""
        steps: list[InstallPhase] = []
        for action in self.rollback:
            if action.step not in steps:
                steps.append(action.step)
        return [
            s for s in steps
            if all(a.ok for a in self.rollback if a.step == s)
        ]

    @classmethod
    def from_state(cls, state: InstallationState, manifest_path: Path) -> InstallResult:
        backup = state.manifest_backup
        restored = any(
            a.ok and a.action == f"restore {manifest_path}" for a in state.rollback
        )
        return cls(
            manifest_backup=str(backup) if backup and not restored else None,
            ok=state.phase == InstallPhase.DONE,
            phase=state.phase,
            failed_at=state.failed_at,
            error=state.error,
            completed=list(state.completed),
            rollback=list(state.rollback),
            degraded=list(state.degraded),
            ready=list(state.ready),
            events=list(state.events),
            manifest_path=str(manifest_path),
        )

    def to_dict(self) -> dict:
        data = self.model_dump(mode="json")
        data["rolled_back"] = [str(p) for p in self.rolled_back]
        return data
