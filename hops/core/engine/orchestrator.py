"""
Installation orchestrator — the step-sequenced install state machine.

Takes a rendered ``InstallPlan`` and drives it through the container
engine, recording every side effect as it happens.  When a step fails
(or the operator cancels between steps) the recorded steps are undone
in reverse order, and only those.

Flow:
    IDLE → DIRECTORIES_CREATED → MANIFEST_WRITTEN → IMAGES_PULLED
         → CONTAINERS_STARTED → VERIFIED → DONE
    failure / cancel at any step → FAILED → rollback

Asymmetry: a service that never becomes ready is recorded as degraded
and does not trigger rollback.  Only daemon-level, manifest, pull and
start failures do.
"""

from __future__ import annotations

import logging
import os
import shutil
import threading
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any

from hops.adapters.base import ContainerEngine, HostProbe
from hops.core.errors import InstallCancelled
from hops.core.models.plan import InstallPlan
from hops.core.models.state import (
    InstallationState,
    InstallPhase,
    InstallResult,
    RollbackAction,
    StepEvent,
)
from hops.core.reliability.retry import RetryPolicy
from hops.core.services.env_file import (
    EnvRequirements,
    restore_env_file,
    write_env_file,
)
from hops.core.services.manifest_writer import write_aux_files, write_manifest

logger = logging.getLogger(__name__)

# Defaults for the verification step (seconds)
DEFAULT_READINESS_TIMEOUT = 300.0
DEFAULT_POLL_INTERVAL = 10.0


class CancelToken:
    """Thread-safe cancellation flag, checked between steps.

    Set from a signal handler or another thread; the orchestrator never
    interrupts a step mid-way.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


class StepFailed(Exception):
    """A step could not complete; triggers rollback."""


class InstallOrchestrator:
    """Execute an InstallPlan with tracked, reversible side effects.

    Args:
        engine: Container engine adapter.
        probe: Host probe for TCP readiness (None = engine status only).
        retry: Policy for image pulls.
        readiness_timeout: Upper bound on the verification step.
        poll_interval: Delay between readiness rounds.
        remove_images_on_rollback: Delete pulled images when rolling back.
        sleep / clock: Injectable for tests.
        on_event: Called with every StepEvent as it is emitted.
    """

    def __init__(
        self,
        engine: ContainerEngine,
        *,
        probe: HostProbe | None = None,
        retry: RetryPolicy | None = None,
        readiness_timeout: float = DEFAULT_READINESS_TIMEOUT,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        remove_images_on_rollback: bool = False,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
        on_event: Callable[[StepEvent], None] | None = None,
    ):
        self._engine = engine
        self._probe = probe
        self._retry = retry or RetryPolicy()
        self._readiness_timeout = readiness_timeout
        self._poll_interval = poll_interval
        self._remove_images = remove_images_on_rollback
        self._sleep = sleep
        self._clock = clock
        self._on_event = on_event

        self._steps: list[tuple[InstallPhase, Callable[[InstallPlan, InstallationState], None]]] = [
            (InstallPhase.DIRECTORIES_CREATED, self._create_directories),
            (InstallPhase.MANIFEST_WRITTEN, self._write_manifest),
            (InstallPhase.IMAGES_PULLED, self._pull_images),
            (InstallPhase.CONTAINERS_STARTED, self._start_containers),
            (InstallPhase.VERIFIED, self._verify),
        ]
        self._rollback_handlers: dict[
            InstallPhase, Callable[[InstallPlan, InstallationState], None]
        ] = {
            InstallPhase.CONTAINERS_STARTED: self._undo_containers,
            InstallPhase.IMAGES_PULLED: self._undo_images,
            InstallPhase.MANIFEST_WRITTEN: self._undo_manifest,
            InstallPhase.DIRECTORIES_CREATED: self._undo_directories,
        }

    # ── Run ──────────────────────────────────────────────────────

    def run(self, plan: InstallPlan, cancel: CancelToken | None = None) -> InstallResult:
        """Execute every step; roll back on failure or cancellation.

        Never raises for step failures: the result names the failed
        step, the cause and every rollback action taken.
        """
        state = InstallationState()
        logger.info(
            "Installing %d service(s) into %s",
            len(plan.selection), plan.manifest_path,
        )

        for phase, handler in self._steps:
            try:
                if cancel is not None and cancel.cancelled:
                    raise InstallCancelled("cancelled")
                self._emit(state, phase, "started")
                handler(plan, state)
            except InstallCancelled:
                logger.warning("Installation cancelled before %s", phase)
                state.mark_failed(phase, "cancelled")
                self._emit(state, phase, "cancelled")
                self._rollback(plan, state)
                return InstallResult.from_state(state, plan.manifest_path)
            except StepFailed as e:
                self._fail(plan, state, phase, str(e))
                return InstallResult.from_state(state, plan.manifest_path)
            except Exception as e:
                logger.exception("Unexpected error during %s", phase)
                self._fail(plan, state, phase, f"{type(e).__name__}: {e}")
                return InstallResult.from_state(state, plan.manifest_path)

            state.mark_completed(phase)
            self._emit(state, phase, "completed")

        state.phase = InstallPhase.DONE
        self._emit(state, InstallPhase.DONE, "completed", degraded=list(state.degraded))
        if state.degraded:
            logger.warning("Installed with degraded services: %s", ", ".join(state.degraded))
        else:
            logger.info("Installation complete")
        return InstallResult.from_state(state, plan.manifest_path)

    def _fail(
        self,
        plan: InstallPlan,
        state: InstallationState,
        phase: InstallPhase,
        error: str,
    ) -> None:
        logger.error("Step %s failed: %s", phase, error)
        state.mark_failed(phase, error)
        self._emit(state, phase, "failed", error=error)
        self._rollback(plan, state)

    def _emit(
        self,
        state: InstallationState,
        step: InstallPhase | str,
        outcome: str,
        **detail: Any,
    ) -> None:
        event = StepEvent(step=str(step), outcome=outcome, detail=detail)
        state.events.append(event)
        if self._on_event is not None:
            self._on_event(event)

    # ── Steps ────────────────────────────────────────────────────

    def _create_directories(self, plan: InstallPlan, state: InstallationState) -> None:
        receipt = self._engine.check_daemon()
        if not receipt.ok:
            raise StepFailed(f"Container engine unavailable: {receipt.error}")

        for path in plan.directories:
            self._ensure_dir(path, plan, state)
        logger.info(
            "Provisioned %d directories (%d new)",
            len(plan.directories), len(state.created_dirs),
        )

    def _write_manifest(self, plan: InstallPlan, state: InstallationState) -> None:
        self._ensure_dir(plan.manifest_path.parent, plan, state)
        result = write_manifest(
            plan.manifest_text, plan.manifest_path, private=plan.manifest_private,
        )
        state.manifest_written = result.written
        state.manifest_backup = result.backup

        if plan.env_secrets or plan.env_blanks:
            env = write_env_file(
                plan.env_path,
                EnvRequirements(secrets=plan.env_secrets, blanks=plan.env_blanks),
            )
            state.env_created = env.created
            state.env_added = env.added
            state.env_previous = env.previous

        for gen in plan.aux_files:
            self._ensure_dir(Path(gen.path).parent, plan, state)
            state.written_files.extend(write_aux_files([gen]))

        receipt = self._engine.validate_manifest(plan.manifest_path)
        if not receipt.ok:
            raise StepFailed(f"Manifest rejected by engine: {receipt.error}")

    def _pull_images(self, plan: InstallPlan, state: InstallationState) -> None:
        def on_retry(attempt: int, receipt: Any) -> None:
            self._emit(
                state, InstallPhase.IMAGES_PULLED, "retrying",
                attempt=attempt, error=receipt.error,
            )

        outcome = self._retry.run(
            lambda: self._engine.pull(plan.manifest_path),
            sleep=self._sleep,
            on_retry=on_retry,
        )
        if not outcome.ok:
            raise StepFailed(
                f"Image pull failed after {outcome.attempts} attempt(s): "
                f"{outcome.receipt.error}"
            )

    def _start_containers(self, plan: InstallPlan, state: InstallationState) -> None:
        existing = self._engine.existing_services(plan.manifest_path)
        if existing is None:
            logger.warning("Could not list existing containers; rollback will keep them all")
        else:
            state.created_services = [sid for sid in plan.selection.ids if sid not in existing]
        state.started_partially = True
        receipt = self._engine.up(plan.manifest_path)
        if not receipt.ok:
            raise StepFailed(f"Container start failed: {receipt.error}")

    def _verify(self, plan: InstallPlan, state: InstallationState) -> None:
        pending = dict(plan.readiness)
        deadline = self._clock() + self._readiness_timeout

        while pending:
            for sid in list(pending):
                if self._is_ready(plan, sid, pending[sid].host_port, pending[sid].protocol):
                    state.ready.append(sid)
                    del pending[sid]
            if not pending or self._clock() >= deadline:
                break
            self._sleep(self._poll_interval)

        for sid in plan.selection.ids:
            if sid in pending:
                state.degraded.append(sid)
                self._emit(
                    state, InstallPhase.VERIFIED, "degraded",
                    service=sid, port=pending[sid].host_port,
                )
                logger.warning("%s did not become ready", sid)

    def _is_ready(self, plan: InstallPlan, sid: str, port: int, protocol: str) -> bool:
        status = self._engine.service_status(plan.manifest_path, sid)
        if not status.ready:
            return False
        if self._probe is None or protocol != "tcp":
            return True
        return self._probe.is_listening(port)

    # ── Side-effect helpers ──────────────────────────────────────

    def _ensure_dir(self, path: Path, plan: InstallPlan, state: InstallationState) -> None:
        """Create ``path`` and any missing ancestors, recording each one."""
        missing: list[Path] = []
        current = path
        while not current.exists():
            missing.append(current)
            if current.parent == current:
                break
            current = current.parent

        for directory in reversed(missing):
            directory.mkdir()
            state.created_dirs.append(directory)
            try:
                os.chown(directory, plan.context.puid, plan.context.pgid)
            except (PermissionError, AttributeError, OSError) as e:
                logger.debug("chown %s skipped: %s", directory, e)

    # ── Rollback ─────────────────────────────────────────────────

    def _rollback(self, plan: InstallPlan, state: InstallationState) -> None:
        """Undo recorded steps in reverse order, best-effort.

        The failed step is included when it left partial effects (a
        directory created, a file written, ``up`` attempted).
        """
        targets = list(state.completed)
        failed = state.failed_at
        if failed is not None and failed not in targets and self._has_partial_effects(failed, state):
            targets.append(failed)

        for phase in reversed(targets):
            handler = self._rollback_handlers.get(phase)
            if handler is None:
                continue
            before = len(state.rollback)
            handler(plan, state)
            actions = state.rollback[before:]
            ok = all(a.ok for a in actions)
            self._emit(
                state, phase, "rolled_back" if ok else "rollback_failed",
                actions=[a.action for a in actions],
            )

    @staticmethod
    def _has_partial_effects(phase: InstallPhase, state: InstallationState) -> bool:
        if phase == InstallPhase.DIRECTORIES_CREATED:
            return bool(state.created_dirs)
        if phase == InstallPhase.MANIFEST_WRITTEN:
            return state.manifest_written or bool(state.written_files or state.env_added)
        if phase == InstallPhase.CONTAINERS_STARTED:
            return state.started_partially
        return False

    def _record(
        self,
        state: InstallationState,
        phase: InstallPhase,
        action: str,
        error: str | None = None,
    ) -> None:
        state.rollback.append(RollbackAction(step=phase, action=action, ok=error is None, error=error))
        if error:
            logger.error("Rollback %s (%s) failed: %s", action, phase, error)
        else:
            logger.info("Rollback: %s", action)

    def _undo_containers(self, plan: InstallPlan, state: InstallationState) -> None:
        """Remove containers this run created; ones that existed before stay."""
        if not state.created_services:
            self._record(state, InstallPhase.CONTAINERS_STARTED, "keep existing containers")
            return
        receipt = self._engine.remove_services(plan.manifest_path, state.created_services)
        self._record(
            state, InstallPhase.CONTAINERS_STARTED,
            f"remove containers {', '.join(state.created_services)}",
            None if not receipt.failed else receipt.error,
        )

    def _undo_images(self, plan: InstallPlan, state: InstallationState) -> None:
        if not self._remove_images:
            self._record(state, InstallPhase.IMAGES_PULLED, "keep pulled images")
            return
        receipt = self._engine.remove_images(plan.manifest.image_refs())
        self._record(
            state, InstallPhase.IMAGES_PULLED, "remove images",
            None if not receipt.failed else receipt.error,
        )

    def _undo_manifest(self, plan: InstallPlan, state: InstallationState) -> None:
        for path in reversed(state.written_files):
            try:
                path.unlink(missing_ok=True)
                self._record(state, InstallPhase.MANIFEST_WRITTEN, f"delete {path}")
            except OSError as e:
                self._record(state, InstallPhase.MANIFEST_WRITTEN, f"delete {path}", str(e))

        if state.env_added:
            env_path = plan.env_path
            action = f"delete {env_path}" if state.env_previous is None else f"restore {env_path}"
            try:
                restore_env_file(env_path, state.env_previous)
                self._record(state, InstallPhase.MANIFEST_WRITTEN, action)
            except OSError as e:
                self._record(state, InstallPhase.MANIFEST_WRITTEN, action, str(e))

        manifest = plan.manifest_path
        if state.manifest_backup is not None:
            try:
                os.replace(state.manifest_backup, manifest)
                self._record(state, InstallPhase.MANIFEST_WRITTEN, f"restore {manifest}")
            except OSError as e:
                self._record(state, InstallPhase.MANIFEST_WRITTEN, f"restore {manifest}", str(e))
        elif state.manifest_written:
            try:
                manifest.unlink(missing_ok=True)
                self._record(state, InstallPhase.MANIFEST_WRITTEN, f"delete {manifest}")
            except OSError as e:
                self._record(state, InstallPhase.MANIFEST_WRITTEN, f"delete {manifest}", str(e))

    def _undo_directories(self, plan: InstallPlan, state: InstallationState) -> None:
        for directory in sorted(state.created_dirs, key=lambda p: len(p.parts), reverse=True):
            if not directory.exists():
                continue
            try:
                shutil.rmtree(directory)
                self._record(state, InstallPhase.DIRECTORIES_CREATED, f"remove {directory}")
            except OSError as e:
                self._record(state, InstallPhase.DIRECTORIES_CREATED, f"remove {directory}", str(e))
