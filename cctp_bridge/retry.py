"""Bounded retry with exponential backoff and cooperative cancellation."""
from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Callable, Optional, TypeVar

from .errors import BridgeError, TransferCancelled

T = TypeVar("T")


class CancellationToken:
    """Cancellation flag threaded through every sleep and network call.

    ``wait`` is the only way the bridge sleeps: it blocks on a
    :class:`threading.Event`, so cancelling wakes a sleeping poller at once.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self.reason: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "Transfer cancelled.") -> None:
        self.reason = reason
        self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise TransferCancelled(self.reason or "Transfer cancelled.")

    def wait(self, seconds: float) -> None:
        self.raise_if_cancelled()
        if seconds > 0 and self._event.wait(seconds):
            self.raise_if_cancelled()


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int
    initial_delay: float
    growth_factor: float = 1.0
    max_delay: Optional[float] = None
    wait_before_first: bool = False

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1.")
        if self.initial_delay < 0:
            raise ValueError("initial_delay must not be negative.")
        if self.growth_factor < 1:
            raise ValueError("growth_factor must be >= 1 so delays never shrink.")
        if self.max_delay is not None and self.max_delay < self.initial_delay:
            raise ValueError("max_delay must not be below initial_delay.")

    def delay_for(self, attempt: int) -> float:
        """Delay slept after ``attempt`` (1-based) fails."""
        delay = self.initial_delay * (self.growth_factor ** (attempt - 1))
        if self.max_delay is not None:
            delay = min(delay, self.max_delay)
        return delay


class RetryExhausted(BridgeError):
    kind = "exhaustion"

    def __init__(self, attempts: int, last_error: BaseException) -> None:
        super().__init__(f"Gave up after {attempts} attempt(s): {last_error}")
        self.attempts = attempts
        self.last_error = last_error


def _always(_: BaseException) -> bool:
    return True


def retry_with_backoff(
    operation: Callable[[int], T],
    policy: RetryPolicy,
    *,
    is_retryable: Callable[[BaseException], bool] = _always,
    cancel_token: Optional[CancellationToken] = None,
    on_retry: Optional[Callable[[int, BaseException, float], None]] = None,
) -> T:
    """Run ``operation(attempt)`` until it returns, fails terminally, or runs out.

    ``operation`` signals "not yet" by raising; ``is_retryable`` decides
    whether that exception is worth another attempt. A terminal exception is
    re-raised untouched; running out of attempts raises
    :class:`RetryExhausted` chained to the last error.
    """

    token = cancel_token or CancellationToken()
    if policy.wait_before_first:
        token.wait(policy.initial_delay)

    for attempt in range(1, policy.max_attempts + 1):
        token.raise_if_cancelled()
        try:
            return operation(attempt)
        except TransferCancelled:
            raise
        except BridgeError as exc:
            if not is_retryable(exc):
                raise
            last_error: BaseException = exc
        if attempt == policy.max_attempts:
            raise RetryExhausted(attempt, last_error) from last_error
        delay = policy.delay_for(attempt)
        if on_retry is not None:
            on_retry(attempt, last_error, delay)
        token.wait(delay)

    raise AssertionError("unreachable")  # pragma: no cover
