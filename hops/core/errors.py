"""
Error taxonomy — every failure the core can report.

Configuration defects are detected before any side effect and are never
retried.  Resource conflicts stop manifest generation.  Engine errors
come from the container runtime: transient ones are retried a bounded
number of times, unavailable ones are fatal immediately.

The pure stages (resolver, port checker, generator) raise these; the
use-case layer converts them into result values for the caller.
"""

from __future__ import annotations


class HopsError(Exception):
    """Base class for all HOPS errors."""


# ── Configuration defects ────────────────────────────────────────


class ConfigurationDefect(HopsError):
    """Invalid input or data detected before any side effect."""


class CatalogError(ConfigurationDefect):
    """The service catalog is malformed and must not be used.

    Attributes:
        defects: Every defect found, so the operator can fix them in one pass.
    """

    def __init__(self, message: str, defects: list | None = None):
        super().__init__(message)
        self.defects = list(defects or [])


class UnknownServiceError(ConfigurationDefect, KeyError):
    """One or more requested service ids are not in the catalog."""

    def __init__(self, service_ids: list[str] | str):
        if isinstance(service_ids, str):
            service_ids = [service_ids]
        self.service_ids = sorted(service_ids)
        super().__init__(f"Unknown service(s): {', '.join(self.service_ids)}")

    def __str__(self) -> str:
        # KeyError would otherwise repr() the message
        return self.args[0]


class EmptySelectionError(ConfigurationDefect):
    """No services were requested."""


class ContextError(ConfigurationDefect):
    """Configuration context values are missing or invalid."""


# ── Resource conflicts ───────────────────────────────────────────


class PortConflictError(HopsError):
    """Two selected services claim the same host port and protocol.

    Attributes:
        conflicts: The offending ``PortConflict`` records.
    """

    def __init__(self, conflicts: list):
        self.conflicts = list(conflicts)
        details = "; ".join(c.describe() for c in self.conflicts)
        super().__init__(f"Port conflicts within selection: {details}")


# ── Container engine ─────────────────────────────────────────────


class EngineError(HopsError):
    """A container engine operation failed."""


class TransientEngineError(EngineError):
    """An engine failure that may succeed on retry (network, registry)."""


class EngineUnavailableError(EngineError):
    """The engine is unreachable or permission was denied; never retried."""


# ── Orchestration ────────────────────────────────────────────────


class InstallCancelled(HopsError):
    """The operator cancelled the installation between steps."""
