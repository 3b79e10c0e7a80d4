"""
Docker engine — compose operations through the docker CLI.

Uses ``docker compose`` (v2 plugin) and ``docker inspect`` — never the
Docker API directly.  Commands run from the manifest's directory so
compose picks up the ``.env`` file beside it.  Every command runs in its
own session, so a Ctrl-C meant for the installer does not kill a pull
or start midway; cancellation is handled between steps.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
import time
from pathlib import Path

from hops.adapters.base import ContainerEngine, ServiceStatus
from hops.core.models.action import Receipt

logger = logging.getLogger(__name__)

# stderr fragments meaning "retrying will not help"
_FATAL_MARKERS = (
    "cannot connect to the docker daemon",
    "is the docker daemon running",
    "permission denied",
    "docker: command not found",
    "unknown command",
    "is not a docker command",
)


def _is_fatal(stderr: str) -> bool:
    text = stderr.lower()
    return any(marker in text for marker in _FATAL_MARKERS)


class DockerComposeEngine(ContainerEngine):
    """Container engine backed by ``docker compose``.

    Args:
        project: Compose project name (``-p``).
        timeout: Default per-command timeout in seconds.
        pull_timeout: Timeout for ``pull`` (large images take a while).
        stop_timeout: Grace period passed to ``stop --timeout``.
    """

    def __init__(
        self,
        project: str = "hops",
        timeout: int = 300,
        pull_timeout: int = 1800,
        stop_timeout: int = 30,
    ):
        self._project = project
        self._timeout = timeout
        self._pull_timeout = pull_timeout
        self._stop_timeout = stop_timeout

    @property
    def name(self) -> str:
        return "docker"

    def is_available(self) -> bool:
        return shutil.which("docker") is not None

    # ── Operations ──────────────────────────────────────────────

    def check_daemon(self) -> Receipt:
        if not self.is_available():
            return Receipt.failure(
                adapter=self.name, operation="check_daemon",
                error="docker CLI not found on PATH", fatal=True,
            )
        receipt = self._run("check_daemon", ["info", "--format", "{{.ServerVersion}}"])
        if receipt.failed:
            # Any failure of `docker info` means the daemon is unusable
            receipt.fatal = True
        return receipt

    def validate_manifest(self, manifest: Path) -> Receipt:
        receipt = self._compose("validate_manifest", manifest, ["config", "--quiet"])
        if receipt.failed and not _is_fatal(receipt.error or ""):
            # An invalid manifest will not become valid on retry either
            receipt.fatal = True
        return receipt

    def pull(self, manifest: Path) -> Receipt:
        return self._compose("pull", manifest, ["pull", "--quiet"], timeout=self._pull_timeout)

    def up(self, manifest: Path) -> Receipt:
        return self._compose("up", manifest, ["up", "-d"])

    def existing_services(self, manifest: Path) -> frozenset[str] | None:
        receipt = self._compose(
            "existing_services", manifest, ["ps", "--all", "--services"],
        )
        if not receipt.ok:
            logger.debug("compose ps failed: %s", receipt.error)
            return None
        return frozenset(line.strip() for line in receipt.output.splitlines() if line.strip())

    def remove_services(self, manifest: Path, services: list[str]) -> Receipt:
        if not services:
            return Receipt.skip(adapter=self.name, operation="remove_services", reason="no services")
        stopped = self._compose(
            "remove_services", manifest,
            ["stop", "--timeout", str(self._stop_timeout), *services],
        )
        if stopped.failed:
            return stopped
        return self._compose("remove_services", manifest, ["rm", "--force", *services])

    def remove_images(self, images: list[str]) -> Receipt:
        if not images:
            return Receipt.skip(adapter=self.name, operation="remove_images", reason="no images")
        return self._run("remove_images", ["image", "rm", *images])

    def service_status(self, manifest: Path, service_id: str) -> ServiceStatus:
        """Map ``docker inspect`` state to a ServiceStatus.

        Containers without a health check report ``running``.
        """
        try:
            result = subprocess.run(
                [
                    "docker", "inspect", "--format",
                    "{{.State.Status}}|{{if .State.Health}}{{.State.Health.Status}}{{end}}",
                    service_id,
                ],
                capture_output=True,
                text=True,
                timeout=15,
                start_new_session=True,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            logger.debug("docker inspect %s failed: %s", service_id, e)
            return ServiceStatus.MISSING

        if result.returncode != 0:
            return ServiceStatus.MISSING

        state, _, health = result.stdout.strip().partition("|")
        if health in ("healthy", "unhealthy", "starting"):
            return ServiceStatus(health)
        if state == "running":
            return ServiceStatus.RUNNING
        if state in ("created", "restarting"):
            return ServiceStatus.STARTING
        return ServiceStatus.EXITED

    # ── Helpers ─────────────────────────────────────────────────

    def _compose(
        self,
        operation: str,
        manifest: Path,
        args: list[str],
        timeout: int | None = None,
    ) -> Receipt:
        return self._run(
            operation,
            ["compose", "-f", str(manifest), "-p", self._project, *args],
            cwd=manifest.parent,
            timeout=timeout,
        )

    def _run(
        self,
        operation: str,
        args: list[str],
        cwd: Path | None = None,
        timeout: int | None = None,
    ) -> Receipt:
        """Run a docker command and wrap the outcome in a Receipt."""
        timeout = timeout or self._timeout
        start = time.monotonic()
        logger.debug("docker %s", " ".join(args))
        try:
            result = subprocess.run(
                ["docker", *args],
                cwd=cwd,
                capture_output=True,
                text=True,
                timeout=timeout,
                start_new_session=True,
            )
        except FileNotFoundError:
            return Receipt.failure(
                adapter=self.name, operation=operation,
                error="docker CLI not found on PATH", fatal=True,
            )
        except subprocess.TimeoutExpired:
            return Receipt.failure(
                adapter=self.name, operation=operation,
                error=f"docker {args[0]} timed out after {timeout}s",
                duration_ms=int((time.monotonic() - start) * 1000),
            )
        except OSError as e:
            return Receipt.failure(
                adapter=self.name, operation=operation,
                error=f"Docker error: {e}", fatal=True,
            )

        elapsed_ms = int((time.monotonic() - start) * 1000)
        if result.returncode == 0:
            return Receipt.success(
                adapter=self.name, operation=operation,
                output=result.stdout.strip(),
                duration_ms=elapsed_ms,
            )

        stderr = result.stderr.strip() or f"docker {args[0]} exited {result.returncode}"
        return Receipt.failure(
            adapter=self.name, operation=operation,
            error=stderr,
            fatal=_is_fatal(stderr),
            duration_ms=elapsed_ms,
            metadata={"returncode": result.returncode},
        )
