"""
Retry policy — bounded, fixed-delay retries for engine operations.

Image pulls fail for transient reasons (registry hiccups, flaky
networks).  They are retried a fixed number of times with a fixed
delay, never unbounded, so the worst-case wait for a step is a known
constant: ``(attempts - 1) * delay`` plus the attempts themselves.

A fatal receipt (daemon unreachable, permission denied) stops retrying
immediately.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

from hops.core.models.action import Receipt

logger = logging.getLogger(__name__)


@dataclass
class RetryOutcome:
    """Final receipt plus how many attempts it took."""

    receipt: Receipt
    attempts: int

    @property
    def ok(self) -> bool:
        return self.receipt.ok


@dataclass(frozen=True)
class RetryPolicy:
    """Fixed attempt count, fixed inter-attempt delay.

    Args:
        attempts: Total tries including the first (>= 1).
        delay: Seconds to wait between tries (>= 0).
    """

    attempts: int = 3
    delay: float = 10.0

    def __post_init__(self) -> None:
        if self.attempts < 1:
            raise ValueError(f"attempts must be >= 1, got {self.attempts}")
        if self.delay < 0:
            raise ValueError(f"delay must be >= 0, got {self.delay}")

    @property
    def max_wait(self) -> float:
        """Total sleep time if every attempt fails."""
        return (self.attempts - 1) * self.delay

    def run(
        self,
        operation: Callable[[], Receipt],
        *,
        sleep: Callable[[float], None] = time.sleep,
        on_retry: Callable[[int, Receipt], None] | None = None,
    ) -> RetryOutcome:
        """Call ``operation`` until it succeeds, fails fatally, or attempts run out.

        Args:
            operation: Returns a Receipt; must not raise.
            sleep: Injectable for tests.
            on_retry: Called with (failed attempt number, receipt) before sleeping.
        """
        receipt = operation()
        attempt = 1
        while not receipt.ok:
            if receipt.fatal:
                logger.error("%s failed fatally: %s", receipt.operation, receipt.error)
                break
            if attempt >= self.attempts:
                logger.error(
                    "%s failed after %d attempt(s): %s",
                    receipt.operation, attempt, receipt.error,
                )
                break
            logger.warning(
                "%s failed (attempt %d/%d), retrying in %.0fs: %s",
                receipt.operation, attempt, self.attempts, self.delay, receipt.error,
            )
            if on_retry:
                on_retry(attempt, receipt)
            sleep(self.delay)
            receipt = operation()
            attempt += 1
        return RetryOutcome(receipt=receipt, attempts=attempt)
