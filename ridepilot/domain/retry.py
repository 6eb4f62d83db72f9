"""
Retry controller for driver trip fetches.

Phases::

    idle ──begin_fetch──> fetching ──success──> idle
                             │
                             └──failure──> backoff ──begin_retry──> fetching
                                   │
                                   └──(attempts used up)──> exhausted

Backoff is linear: ``base_delay * attempt_count``.  At most
``max_attempts`` automatic attempts follow a failed fetch; after that the
controller stays ``exhausted`` until ``reset()`` (a manual refresh).
A fetch can never start while another one is ``fetching``.
"""

from __future__ import annotations

import enum
from typing import Optional


class FetchPhase(str, enum.Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    BACKOFF = "backoff"
    EXHAUSTED = "exhausted"


class RetryController:
    def __init__(self, max_attempts: int = 3, base_delay: float = 1.0):
        if max_attempts < 0:
            raise ValueError("max_attempts must be >= 0")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.phase = FetchPhase.IDLE
        self.attempt_count = 0
        self.last_error: Optional[Exception] = None

    @property
    def in_flight(self) -> bool:
        return self.phase is FetchPhase.FETCHING

    @property
    def retrying(self) -> bool:
        return self.attempt_count > 0 and self.phase in (
            FetchPhase.BACKOFF,
            FetchPhase.FETCHING,
        )

    def begin_fetch(self) -> bool:
        """Enter ``fetching``.  Returns False if a fetch is already in flight."""
        if self.phase is FetchPhase.FETCHING:
            return False
        self.phase = FetchPhase.FETCHING
        return True

    def begin_retry(self) -> bool:
        """Start a scheduled automatic attempt; only legal from ``backoff``."""
        if self.phase is not FetchPhase.BACKOFF:
            return False
        self.phase = FetchPhase.FETCHING
        return True

    def record_success(self) -> None:
        self.phase = FetchPhase.IDLE
        self.attempt_count = 0
        self.last_error = None

    def record_failure(self, error: Exception, retryable: bool = True) -> Optional[float]:
        """Register a failed fetch.

        Returns the delay before the next automatic attempt, or ``None``
        when no further automatic attempt will be made.
        """
        self.last_error = error
        if not retryable or self.attempt_count >= self.max_attempts:
            self.phase = FetchPhase.EXHAUSTED
            return None
        self.attempt_count += 1
        self.phase = FetchPhase.BACKOFF
        return self.base_delay * self.attempt_count

    def reset(self) -> None:
        """Manual refresh: forget previous failures.  No-op while fetching."""
        if self.phase is FetchPhase.FETCHING:
            return
        self.phase = FetchPhase.IDLE
        self.attempt_count = 0
