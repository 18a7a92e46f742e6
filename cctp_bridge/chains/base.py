from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Protocol

import requests

from ..constants import DEFAULT_HTTP_TIMEOUT, SUBMIT_MAX_ATTEMPTS, SUBMIT_RETRY_DELAY
from ..errors import BridgeError, ChainClientError, SubmissionFailed
from ..logging_utils import get_bridge_logger
from ..models import ConfirmationStatus, Domain
from ..retry import CancellationToken, RetryExhausted, RetryPolicy, retry_with_backoff

logger = get_bridge_logger("chains")


@dataclass(frozen=True)
class UnsignedTransaction:
    """Chain-specific instruction bundle handed to a wallet for signing.

    ``payload`` is JSON-safe; the wallet adds fee payer, recent blockhash or
    sequence number before signing.
    """

    domain: Domain
    kind: str
    payload: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class SignedTransaction:
    """Wire-ready transaction: base64 bytes for Solana, JSON body for Aptos."""

    domain: Domain
    raw: Any
    transaction_id: Optional[str] = None


class WalletSigner(Protocol):
    """Signing capability supplied by the wallet layer."""

    address: str

    def is_connected(self) -> bool: ...

    def reconnect(self) -> bool: ...

    def sign_transaction(self, transaction: UnsignedTransaction) -> SignedTransaction: ...


class SignerSessionProvider(Protocol):
    """Looks up the live signer for a chain at the moment it is needed."""

    def signer_for(self, domain: Domain) -> Optional[WalletSigner]: ...

    def reconnect(self, domain: Domain) -> bool: ...


class StaticSignerSessions:
    """Session provider backed by one signer per domain."""

    def __init__(self, signers: Dict[Domain, WalletSigner]) -> None:
        self._signers = dict(signers)

    def signer_for(self, domain: Domain) -> Optional[WalletSigner]:
        return self._signers.get(domain)

    def reconnect(self, domain: Domain) -> bool:
        signer = self._signers.get(domain)
        if signer is None:
            return False
        try:
            return bool(signer.reconnect())
        except Exception as exc:
            logger.warning("Silent reconnect for %s wallet failed: %s", domain.label, exc)
            return False


class ChainClient(Protocol):
    domain: Domain

    def submit_signed_transaction(
        self, transaction: SignedTransaction, cancel_token: Optional[CancellationToken] = None
    ) -> str: ...

    def get_transaction_status(self, tx_id: str) -> ConfirmationStatus: ...

    def get_latest_attestation_compatible_identifier(self, tx_id: str) -> str: ...


class HttpChainClient:
    """Shared ``requests`` plumbing for the JSON-over-HTTP chain clients."""

    domain: Domain

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = DEFAULT_HTTP_TIMEOUT,
        session: Optional[requests.Session] = None,
        submit_policy: Optional[RetryPolicy] = None,
    ) -> None:
        if not base_url:
            raise BridgeError(f"{self.domain.label} endpoint URL is not configured.")
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.submit_policy = submit_policy or RetryPolicy(
            max_attempts=SUBMIT_MAX_ATTEMPTS, initial_delay=SUBMIT_RETRY_DELAY
        )

    def _send(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        try:
            return self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as exc:
            raise ChainClientError(f"{self.domain.label} request failed: {exc}") from exc

    @staticmethod
    def _json(response: requests.Response, label: str) -> Any:
        try:
            return response.json()
        except ValueError as exc:
            raise ChainClientError(f"{label} returned a non-JSON body (HTTP {response.status_code}).") from exc

    def _submit_once(self, transaction: SignedTransaction) -> str:
        raise NotImplementedError

    def submit_signed_transaction(
        self, transaction: SignedTransaction, cancel_token: Optional[CancellationToken] = None
    ) -> str:
        if transaction.domain != self.domain:
            raise SubmissionFailed(
                f"Transaction for {transaction.domain.label} cannot be submitted to {self.domain.label}."
            )

        def _attempt(attempt: int) -> str:
            if attempt > 1:
                logger.info("Resubmitting %s transaction (attempt %d).", self.domain.label, attempt)
            return self._submit_once(transaction)

        try:
            return retry_with_backoff(
                _attempt,
                self.submit_policy,
                is_retryable=lambda exc: isinstance(exc, ChainClientError) and exc.retryable,
                cancel_token=cancel_token,
            )
        except RetryExhausted as exc:
            raise SubmissionFailed(
                f"{self.domain.label} submission failed after {exc.attempts} attempts: {exc.last_error}"
            ) from exc
        except ChainClientError as exc:
            raise SubmissionFailed(f"{self.domain.label} rejected the transaction: {exc}") from exc
