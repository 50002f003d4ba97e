"""Retry policy for auto-save attempts."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable


def exponential_backoff(attempt: int) -> float:
    """Seconds to wait before retry number *attempt* (1-based): 1, 2, 4, ..."""
    return float(2 ** (attempt - 1))


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = 3
    backoff: Callable[[int], float] = exponential_backoff

    def should_retry(self, attempt: int) -> bool:
        """Whether failure number *attempt* may be retried."""
        return attempt <= self.max_retries

    def delay_for(self, attempt: int) -> float:
        return self.backoff(attempt)
