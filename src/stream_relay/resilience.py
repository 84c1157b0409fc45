"""Reconnect backoff for resuming stream clients.

Provides:
  - RetryPolicy: Configurable retry parameters.
  - backoff_delay: Exponential backoff + jitter for a given attempt.
  - RECONNECT_RETRY_POLICY: Default used by ``ResumableStreamClient``.
"""
from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Tuple, Type

import httpx


# ---------------------------------------------------------------------------
# Retry Policy
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RetryPolicy:
    """Configuration for retry behaviour.

    Attributes:
        max_retries: Maximum number of retry attempts (0 = no retries).
        base_delay: Initial delay in seconds before first retry.
        max_delay: Cap on delay.
        backoff_factor: Multiplier for exponential growth (2.0 = doubling).
        jitter: Randomisation range added to delay.
        retryable_exceptions: Exception types that trigger a retry.
    """
    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 60.0
    backoff_factor: float = 2.0
    jitter: float = 0.5
    retryable_exceptions: Tuple[Type[Exception], ...] = (
        ConnectionError,
        TimeoutError,
        OSError,
    )


# Dropped SSE connections surface as httpx transport errors.
RECONNECT_RETRY_POLICY = RetryPolicy(
    max_retries=5,
    base_delay=0.5,
    max_delay=10.0,
    backoff_factor=2.0,
    jitter=0.25,
    retryable_exceptions=(
        httpx.TransportError,
        ConnectionError,
        TimeoutError,
    ),
)


def backoff_delay(attempt: int, policy: RetryPolicy) -> float:
    """Calculate delay with exponential backoff + jitter."""
    delay = policy.base_delay * (policy.backoff_factor ** attempt)
    delay = min(delay, policy.max_delay)
    jitter = random.uniform(0, policy.jitter)
    return delay + jitter
