"""
Run lock — at most one installation per install root.

A lock file (``<install_root>/.hops/install.lock``) is created with
O_EXCL and holds the owner's pid.  A lock whose pid no longer exists
is stale and is taken over.
"""

from __future__ import annotations

import errno
import logging
import os
from pathlib import Path

from hops.core.errors import HopsError

logger = logging.getLogger(__name__)

DEFAULT_LOCK_FILE = "install.lock"


class RunLockedError(HopsError):
    """Another installation is already running against this install root."""

    def __init__(self, path: Path, pid: int | None):
        self.path = path
        self.pid = pid
        owner = f"pid {pid}" if pid else "another process"
        super().__init__(f"Installation already in progress ({owner}); lock: {path}")


def _pid_alive(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True  # exists, owned by someone else
    return True


def _read_pid(path: Path) -> int | None:
    try:
        text = path.read_text(encoding="utf-8").strip()
    except OSError:
        return None
    return int(text) if text.isdigit() else None


class RunLock:
    """Exclusive per-install-root lock.

    Usage::

        with RunLock(ctx.install_root / ".hops" / "install.lock"):
            orchestrator.run(plan)
    """

    def __init__(self, path: Path):
        self._path = path
        self._held = False

    @property
    def path(self) -> Path:
        return self._path

    @property
    def held(self) -> bool:
        return self._held

    def acquire(self) -> None:
        """Take the lock.

        Raises:
            RunLockedError: A live process holds it.
        """
        self._path.parent.mkdir(parents=True, exist_ok=True)

        for _ in range(2):
            try:
                fd = os.open(self._path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
            except OSError as e:
                if e.errno != errno.EEXIST:
                    raise
                pid = _read_pid(self._path)
                if pid is not None and _pid_alive(pid):
                    raise RunLockedError(self._path, pid) from None
                logger.warning("Removing stale lock %s (pid %s)", self._path, pid)
                self._path.unlink(missing_ok=True)
                continue

            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(f"{os.getpid()}\n")
            self._held = True
            logger.debug("Acquired run lock %s", self._path)
            return

        raise RunLockedError(self._path, _read_pid(self._path))

    def release(self) -> None:
        if not self._held:
            return
        self._path.unlink(missing_ok=True)
        self._held = False
        logger.debug("Released run lock %s", self._path)

    def __enter__(self) -> RunLock:
        self.acquire()
        return self

    def __exit__(self, *exc: object) -> None:
        self.release()
