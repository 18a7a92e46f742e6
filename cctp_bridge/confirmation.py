from __future__ import annotations

from typing import Callable, Optional

from .chains.base import ChainClient
from .errors import BridgeError, ChainClientError, ChainReportedFailure, ConfirmationTimeout
from .logging_utils import get_bridge_logger
from .models import ConfirmationStatus
from .retry import CancellationToken, RetryExhausted, RetryPolicy, retry_with_backoff

logger = get_bridge_logger("confirmation")


class _StillPending(BridgeError):
    kind = "transient"
    retryable = True


class ConfirmationWaiter:
    """Polls a chain at a fixed interval until a transaction is final."""

    def __init__(self, chain: ChainClient) -> None:
        self.chain = chain

    def await_confirmation(
        self,
        transaction_id: str,
        *,
        max_attempts: int = 30,
        poll_interval: float = 2.0,
        cancel_token: Optional[CancellationToken] = None,
        on_attempt: Optional[Callable[[int, int], None]] = None,
    ) -> ConfirmationStatus:
        policy = RetryPolicy(max_attempts=max_attempts, initial_delay=poll_interval)
        label = self.chain.domain.label

        def _attempt(attempt: int) -> ConfirmationStatus:
            if on_attempt is not None:
                on_attempt(attempt, max_attempts)
            status = self.chain.get_transaction_status(transaction_id)
            if status.is_confirmed:
                return status
            if status.is_failed:
                raise ChainReportedFailure(status.reason or "Transaction failed on-chain.")
            raise _StillPending("Transaction not confirmed yet.")

        try:
            result = retry_with_backoff(
                _attempt,
                policy,
                is_retryable=lambda exc: isinstance(exc, _StillPending)
                or (isinstance(exc, ChainClientError) and exc.retryable),
                cancel_token=cancel_token,
            )
        except RetryExhausted as exc:
            raise ConfirmationTimeout(
                f"{label} transaction {transaction_id} was not confirmed after {exc.attempts} polls."
            ) from exc
        logger.info("%s transaction %s confirmed.", label, transaction_id)
        return result
