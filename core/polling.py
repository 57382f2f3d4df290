"""
Polling and retry policies.

The mailbox poller and the transport both sleep between attempts. Keeping the timings in small policy objects, and the
clock/sleep functions injectable, lets tests run the loops against simulated time.
"""

import random
import time
from dataclasses import dataclass, replace
from typing import Callable, Optional

Clock = Callable[[], float]
Sleeper = Callable[[float], None]

DEFAULT_POLL_TIMEOUT_SECONDS = 30.0
DEFAULT_POLL_INTERVAL_SECONDS = 1.0
DEFAULT_LIST_LIMIT = 50


@dataclass(frozen=True)
class PollPolicy:
    """
    How long to wait for a mailbox message, and how often to look.

    `backoff_factor` of 1.0 keeps a fixed interval; anything above grows the interval per idle poll up to
    `max_interval_seconds`. `jitter_seconds` adds up to that much random delay per sleep.
    """

    timeout_seconds: float = DEFAULT_POLL_TIMEOUT_SECONDS
    interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS
    backoff_factor: float = 1.0
    max_interval_seconds: float = 5.0
    jitter_seconds: float = 0.0
    list_limit: int = DEFAULT_LIST_LIMIT

    def with_timeout(self, timeout_seconds: Optional[float]) -> "PollPolicy":
        if timeout_seconds is None:
            return self
        return replace(self, timeout_seconds=float(timeout_seconds))

    def next_interval(self, current: float) -> float:
        if self.backoff_factor <= 1.0:
            return current
        return min(current * self.backoff_factor, self.max_interval_seconds)

    def sleep_for(self, interval: float, remaining: float) -> float:
        """Sleep duration for this idle poll; never past the remaining timeout."""
        delay = interval
        if self.jitter_seconds > 0:
            delay += random.uniform(0, self.jitter_seconds)
        return max(0.0, min(delay, remaining))


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retry for HTTP calls: `max_retries` extra attempts, waiting `backoff_seconds * attempt` before each."""

    max_retries: int = 2
    backoff_seconds: float = 2.0

    def delay_for(self, attempt: int) -> float:
        return self.backoff_seconds * attempt


def monotonic_clock() -> float:
    return time.monotonic()
