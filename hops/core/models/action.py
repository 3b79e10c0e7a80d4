"""
Receipt model — the engine I/O contract.

Engine adapters perform side effects and return Receipts.  They never
raise: failures are captured here, with ``fatal`` separating
environment-level problems (daemon unreachable, permission denied)
from transient ones worth retrying.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

ReceiptStatus = Literal["ok", "skipped", "failed"]


class Receipt(BaseModel):
    """Result of one engine operation.

    Attributes:
        adapter:      Engine that ran the operation ("docker", "mock").
        operation:    Engine method name ("pull", "up", ...).
        status:       ok / skipped / failed.
        output:       Captured stdout, or the skip reason.
        error:        Captured stderr or a synthesized message on failure.
        fatal:        Retrying cannot help (environment problem).
        duration_ms:  Wall time of the underlying command.
        finished_at:  UTC ISO timestamp.
        metadata:     Engine-specific extras (e.g. ``returncode``).
    """

    adapter: str
    operation: str
    status: ReceiptStatus = "ok"
    output: str = ""
    error: str | None = None
    fatal: bool = False
    duration_ms: int = 0
    finished_at: str = Field(
        default_factory=lambda: datetime.now(UTC).isoformat(),
    )
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status == "ok"

    @property
    def failed(self) -> bool:
        return self.status == "failed"

    # ── Constructors ────────────────────────────────────────────

    @classmethod
    def success(cls, adapter: str, operation: str, output: str = "", **kwargs: Any) -> Receipt:
        return cls(adapter=adapter, operation=operation, output=output, **kwargs)

    @classmethod
    def failure(
        cls,
        adapter: str,
        operation: str,
        error: str,
        *,
        fatal: bool = False,
        **kwargs: Any,
    ) -> Receipt:
        """A failed operation; ``fatal`` stops any retry loop."""
        return cls(
            adapter=adapter, operation=operation, status="failed",
            error=error, fatal=fatal, **kwargs,
        )

    @classmethod
    def skip(cls, adapter: str, operation: str, reason: str = "", **kwargs: Any) -> Receipt:
        """Nothing to do (e.g. no images to remove)."""
        return cls(adapter=adapter, operation=operation, status="skipped", output=reason, **kwargs)
