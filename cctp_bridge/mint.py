"""Destination-side minting: client-signed on Solana, relayed on Aptos."""
from __future__ import annotations

from typing import Any, Mapping, Optional, Protocol

import requests

from .chains.base import (
    ChainClient,
    SignerSessionProvider,
    UnsignedTransaction,
    WalletSigner,
)
from .constants import (
    DEFAULT_HTTP_TIMEOUT,
    RELAY_MAX_ATTEMPTS,
    RELAY_RETRY_DELAY,
    SOLANA_MESSAGE_TRANSMITTER,
    SOLANA_TOKEN_MESSENGER_MINTER,
)
from .errors import (
    BridgeError,
    ChainClientError,
    ChainRejected,
    SigningRejected,
    StaleSignerSession,
    SubmissionFailed,
    looks_like_consumed_nonce,
    looks_like_rejection,
    looks_like_stale_session,
)
from .logging_utils import get_bridge_logger
from .models import AttestationRecord, Domain, MintReceipt
from .retry import CancellationToken, RetryExhausted, RetryPolicy, retry_with_backoff

logger = get_bridge_logger("mint")


class MintSubmitter(Protocol):
    def submit(
        self,
        attestation: AttestationRecord,
        recipient: str,
        signer: Optional[WalletSigner],
        cancel_token: Optional[CancellationToken] = None,
    ) -> str: ...


def _sign_mint(signer: WalletSigner, transaction: UnsignedTransaction) -> Any:
    try:
        return signer.sign_transaction(transaction)
    except BridgeError:
        raise
    except Exception as exc:
        message = str(exc)
        if looks_like_stale_session(message):
            raise StaleSignerSession(
                f"Wallet reported not connected while signing the mint: {message}", domain=transaction.domain
            ) from exc
        if looks_like_rejection(message):
            raise SigningRejected(f"Mint signature request was declined: {message}") from exc
        raise ChainRejected(f"Wallet failed to sign the mint transaction: {message}") from exc


class SignedMintSubmitter:
    """Builds ``receive_message`` for Solana and submits it with the user's wallet."""

    def __init__(self, chain: ChainClient) -> None:
        self.chain = chain

    def build_transaction(self, attestation: AttestationRecord, recipient: str, payer: str) -> UnsignedTransaction:
        return UnsignedTransaction(
            domain=self.chain.domain,
            kind="receive_message",
            payload={
                "program": SOLANA_MESSAGE_TRANSMITTER,
                "token_messenger_minter": SOLANA_TOKEN_MESSENGER_MINTER,
                "instruction": "receive_message",
                "payer": payer,
                "recipient": recipient,
                "source_domain": int(attestation.domain),
                "event_nonce": attestation.event_nonce,
                "message": attestation.message,
                "attestation": attestation.attestation,
            },
        )

    def submit(
        self,
        attestation: AttestationRecord,
        recipient: str,
        signer: Optional[WalletSigner],
        cancel_token: Optional[CancellationToken] = None,
    ) -> str:
        if signer is None:
            raise StaleSignerSession(
                f"No {self.chain.domain.label} wallet is available to sign the mint.", domain=self.chain.domain
            )
        unsigned = self.build_transaction(attestation, recipient, signer.address)
        signed = _sign_mint(signer, unsigned)
        if cancel_token is not None:
            cancel_token.raise_if_cancelled()
        try:
            return self.chain.submit_signed_transaction(signed, cancel_token)
        except SubmissionFailed as exc:
            reason = str(exc)
            raise ChainRejected(reason, nonce_consumed=looks_like_consumed_nonce(reason)) from exc


class _RelayPending(BridgeError):
    kind = "transient"
    retryable = True


class RelayMintSubmitter:
    """Hands the burn to the server-side relay that mints on Aptos.

    The relay fetches the attestation itself and pays gas, so no destination
    signature is needed. ``{"data": {"pending": true}}`` means the relay has
    not seen the attestation yet and is retried a few times.
    """

    def __init__(
        self,
        endpoint: str,
        *,
        destination_domain: Domain = Domain.APTOS,
        timeout: float = DEFAULT_HTTP_TIMEOUT,
        session: Optional[requests.Session] = None,
        policy: Optional[RetryPolicy] = None,
    ) -> None:
        if not endpoint:
            raise BridgeError("Relay mint endpoint is not configured.")
        self.endpoint = endpoint
        self.destination_domain = destination_domain
        self.timeout = timeout
        self.session = session or requests.Session()
        self.policy = policy or RetryPolicy(max_attempts=RELAY_MAX_ATTEMPTS, initial_delay=RELAY_RETRY_DELAY)

    def _post_once(self, attestation: AttestationRecord, recipient: str) -> str:
        body = {
            "signature": attestation.transaction_id.strip(),
            "sourceDomain": str(int(attestation.domain)),
            "finalRecipient": recipient.strip(),
        }
        try:
            response = self.session.post(self.endpoint, json=body, timeout=self.timeout)
        except requests.RequestException as exc:
            raise ChainClientError(f"Relay mint request failed: {exc}") from exc
        try:
            payload = response.json()
        except ValueError as exc:
            raise ChainClientError(
                f"Relay mint returned a non-JSON body (HTTP {response.status_code}).",
                retryable=response.status_code >= 500,
            ) from exc

        if not isinstance(payload, dict):
            payload = {}
        data = payload.get("data") or {}
        transaction = (data.get("transaction") or {}) if isinstance(data, dict) else None
        if not isinstance(transaction, dict):
            raise ChainRejected(f"Relay returned a malformed body (HTTP {response.status_code}).")
        if response.ok:
            if data.get("pending"):
                raise _RelayPending(data.get("message") or "Relay is still waiting for the attestation.")
            tx_hash = transaction.get("hash")
            if not tx_hash:
                raise ChainRejected("Relay reported success without a mint transaction hash.")
            return str(tx_hash)

        error = payload.get("error") or {}
        message = error.get("message") if isinstance(error, dict) else str(error)
        message = message or f"HTTP {response.status_code}"
        if looks_like_consumed_nonce(message):
            raise ChainRejected(
                f"Attestation already used: {message}",
                nonce_consumed=True,
                existing_transaction_id=transaction.get("hash"),
            )
        if response.status_code == 429 or response.status_code >= 500:
            raise ChainClientError(f"Relay mint failed: {message}", status_code=response.status_code)
        raise ChainRejected(f"Relay mint failed: {message}")

    def submit(
        self,
        attestation: AttestationRecord,
        recipient: str,
        signer: Optional[WalletSigner],
        cancel_token: Optional[CancellationToken] = None,
    ) -> str:
        try:
            return retry_with_backoff(
                lambda _attempt: self._post_once(attestation, recipient),
                self.policy,
                is_retryable=lambda exc: isinstance(exc, _RelayPending)
                or (isinstance(exc, ChainClientError) and exc.retryable),
                cancel_token=cancel_token,
            )
        except RetryExhausted as exc:
            raise ChainRejected(f"Relay mint did not complete after {exc.attempts} attempts: {exc.last_error}") from exc
        except ChainClientError as exc:
            raise ChainRejected(str(exc)) from exc


class MintExecutor:
    def __init__(self, submitters: Mapping[Domain, MintSubmitter], sessions: SignerSessionProvider) -> None:
        self.submitters = dict(submitters)
        self.sessions = sessions

    def _ensure_live(self, domain: Domain) -> None:
        signer = self.sessions.signer_for(domain)
        if signer is not None and signer.is_connected():
            return
        logger.info("%s wallet session looks stale; attempting one silent reconnect.", domain.label)
        if self.sessions.reconnect(domain):
            signer = self.sessions.signer_for(domain)
            if signer is not None and signer.is_connected():
                return
        raise StaleSignerSession(
            f"{domain.label} wallet is no longer connected. Reconnect it and retry, or use the manual mint link.",
            domain=domain,
        )

    def submit_mint(
        self,
        attestation: AttestationRecord,
        destination_domain: Domain,
        recipient: str,
        *,
        cancel_token: Optional[CancellationToken] = None,
        require_source_session: bool = True,
    ) -> MintReceipt:
        if not attestation.is_ready:
            raise BridgeError("Refusing to mint without a ready attestation.")
        submitter = self.submitters.get(destination_domain)
        if submitter is None:
            raise ChainRejected(f"No mint path is configured for {destination_domain.label}.")

        domains = (attestation.domain, destination_domain) if require_source_session else (destination_domain,)
        for domain in domains:
            self._ensure_live(domain)

        signer = self.sessions.signer_for(destination_domain)
        tx_id = submitter.submit(attestation, recipient, signer, cancel_token)
        logger.info("Mint submitted on %s: %s", destination_domain.label, tx_id)
        return MintReceipt(transaction_id=tx_id, recipient=recipient, destination_domain=destination_domain)
