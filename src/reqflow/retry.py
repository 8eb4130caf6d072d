"""Retry policies consulted by the request pipeline after a failed attempt.

Attempts are numbered from 0, so a request with ``max_retries=2`` is tried
at most three times.  The default policy retries only failures the transport
itself reported (network errors and timeouts); HTTP status errors and
cancellations are never retried.

The delay between attempts grows exponentially, as it always has in this
client: 1 s, 2 s, 4 s, ... capped at 30 s.
"""

from __future__ import annotations

from typing import Protocol

from reqflow.exceptions import ApiError, ErrorKind
from reqflow.models import RequestDescriptor

RETRYABLE_KINDS = frozenset({ErrorKind.NETWORK, ErrorKind.TIMEOUT})


class RetryPolicy(Protocol):
    """Decides whether and when a failed attempt is tried again."""

    def should_retry(self, attempt: int, error: ApiError, request: RequestDescriptor) -> bool: ...

    def delay_for(self, attempt: int) -> float: ...


class DefaultRetryPolicy:
    """Exponential backoff on network and timeout errors.

    Args:
        base_delay_ms: Delay before the first retry.
        factor: Multiplier applied per attempt; must be >= 1 so delays
            never shrink.
        max_delay_ms: Upper bound for any single delay.
    """

    def __init__(
        self,
        base_delay_ms: float = 1000.0,
        factor: float = 2.0,
        max_delay_ms: float = 30_000.0,
    ) -> None:
        if base_delay_ms < 0 or max_delay_ms < 0:
            raise ValueError("retry delays must be non-negative")
        if factor < 1:
            raise ValueError("backoff factor must be >= 1")
        self.base_delay_ms = base_delay_ms
        self.factor = factor
        self.max_delay_ms = max_delay_ms

    def should_retry(self, attempt: int, error: ApiError, request: RequestDescriptor) -> bool:
        """Retry network/timeout failures while ``attempt < request.max_retries``."""
        return error.kind in RETRYABLE_KINDS and attempt < request.max_retries

    def delay_for(self, attempt: int) -> float:
        """Milliseconds to wait after failed attempt number *attempt*."""
        return min(self.base_delay_ms * self.factor**attempt, self.max_delay_ms)

    def __repr__(self) -> str:
        return (
            f"DefaultRetryPolicy(base_delay_ms={self.base_delay_ms}, "
            f"factor={self.factor}, max_delay_ms={self.max_delay_ms})"
        )


class NoRetryPolicy:
    """Never retries, whatever ``max_retries`` says."""

    def should_retry(self, attempt: int, error: ApiError, request: RequestDescriptor) -> bool:
        return False

    def delay_for(self, attempt: int) -> float:
        return 0.0
