"""
Host port probe — what is already listening on this machine.

Bound ports come from ``ss -Htuln`` (iproute2).  Readiness is a plain
TCP connect to localhost.  Both are best-effort: if ``ss`` is missing
the probe reports nothing bound rather than failing the run.
"""

from __future__ import annotations

import logging
import shutil
import socket
import subprocess

from hops.adapters.base import HostProbe

logger = logging.getLogger(__name__)


def parse_ss_output(text: str) -> frozenset[tuple[int, str]]:
    """Parse ``ss -Htuln`` lines into ``(port, protocol)`` pairs.

    Example line::

        tcp   LISTEN 0  4096  0.0.0.0:8989  0.0.0.0:*
        udp   UNCONN 0  0     [::]:7359     [::]:*
    """
    bound: set[tuple[int, str]] = set()
    for line in text.splitlines():
        fields = line.split()
        if len(fields) < 5:
            continue
        proto = fields[0].lower()
        if proto not in ("tcp", "udp"):
            continue
        local = fields[4]
        _, sep, port = local.rpartition(":")
        if not sep or not port.isdigit():
            continue
        bound.add((int(port), proto))
    return frozenset(bound)


class SsPortProbe(HostProbe):
    """HostProbe backed by ``ss`` and TCP connects.

    Args:
        host: Address used for readiness connects.
        connect_timeout: Seconds per connect attempt.
    """

    def __init__(self, host: str = "127.0.0.1", connect_timeout: float = 2.0):
        self._host = host
        self._connect_timeout = connect_timeout

    def bound_ports(self) -> frozenset[tuple[int, str]]:
        if shutil.which("ss") is None:
            logger.warning("ss not found; skipping host port check")
            return frozenset()
        try:
            result = subprocess.run(
                ["ss", "-Htuln"],
                capture_output=True,
                text=True,
                timeout=10,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            logger.warning("Host port probe failed: %s", e)
            return frozenset()
        if result.returncode != 0:
            logger.warning("ss exited %d; skipping host port check", result.returncode)
            return frozenset()
        return parse_ss_output(result.stdout)

    def is_listening(self, port: int) -> bool:
        try:
            with socket.create_connection((self._host, port), timeout=self._connect_timeout):
                return True
        except OSError:
            return False
