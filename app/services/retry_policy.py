"""Retry/backoff policy for automation jobs.

Pure functions only: given the attempt count and the error, decide whether the
job goes back to ``pending`` and when, or becomes ``failed`` for good.

Backoff is quadratic: ``attempts**2 * base_delay_ms``. With the default 30s
base the retries land 30s, 120s, 270s and 480s after attempts 1-4, and the
fifth failure is terminal.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Optional

from app.models.automation_job import JobStatus
from app.services.communication_log import truncate_error

DEFAULT_MAX_ATTEMPTS = 5
DEFAULT_BASE_DELAY_MS = 30000


@dataclass(frozen=True)
class RetryDecision:
    status: str
    attempts: int
    next_run_at: Optional[datetime]
    last_error: str

    @property
    def terminal(self) -> bool:
        return self.status == JobStatus.FAILED.value


def backoff_delay_ms(attempts: int, base_delay_ms: int = DEFAULT_BASE_DELAY_MS) -> int:
    return (attempts ** 2) * base_delay_ms


def next_retry_state(
    attempts: int,
    error: Any,
    now: datetime,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    base_delay_ms: int = DEFAULT_BASE_DELAY_MS,
) -> RetryDecision:
    """State after a retryable failure.

    ``attempts`` is the count stored on the job before this failure.
    """
    attempts = attempts + 1
    if attempts >= max_attempts:
        return RetryDecision(
            status=JobStatus.FAILED.value,
            attempts=attempts,
            next_run_at=None,
            last_error=truncate_error(error),
        )
    return RetryDecision(
        status=JobStatus.PENDING.value,
        attempts=attempts,
        next_run_at=now + timedelta(milliseconds=backoff_delay_ms(attempts, base_delay_ms)),
        last_error=truncate_error(error),
    )


def terminal_failure(attempts: int, error: Any) -> RetryDecision:
    """Fail without backoff. The attempt count is left as is."""
    return RetryDecision(
        status=JobStatus.FAILED.value,
        attempts=attempts,
        next_run_at=None,
        last_error=truncate_error(error),
    )
