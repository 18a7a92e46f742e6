"""Circle Iris attestation client and the backoff poller built on it."""
from __future__ import annotations

import base64
import binascii
import re
from typing import Any, Callable, Optional

import requests

from .constants import DEFAULT_HTTP_TIMEOUT, IRIS_API_BASE_URL
from .errors import (
    AttestationProtocolError,
    AttestationServiceError,
    AttestationTimeout,
    BridgeError,
)
from .logging_utils import get_bridge_logger
from .models import AttestationRecord, AttestationStatus, Domain, is_pending_sentinel
from .retry import CancellationToken, RetryExhausted, RetryPolicy, retry_with_backoff

logger = get_bridge_logger("attestation")

HTTP_NOT_FOUND = 404
_HEX_RE = re.compile(r"^0[xX][0-9a-fA-F]*$")


def normalise_iris_base(url: str) -> str:
    cleaned = (url or IRIS_API_BASE_URL).strip().rstrip("/")
    if cleaned.endswith("/messages"):
        cleaned = cleaned[: -len("/messages")]
    return cleaned or IRIS_API_BASE_URL


def ensure_hex_bytes(value: str, label: str) -> str:
    cleaned = value.strip()
    if _HEX_RE.match(cleaned):
        if len(cleaned) <= 2 or len(cleaned) % 2:
            raise AttestationProtocolError(f"{label} is not whole-byte hex data.")
        return cleaned.lower()
    try:
        decoded = base64.b64decode(cleaned, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise AttestationProtocolError(f"{label} is not valid hex or base64 data.") from exc
    if not decoded:
        raise AttestationProtocolError(f"{label} is empty after decoding.")
    return "0x" + decoded.hex()


def parse_attestation_payload(domain: Domain, transaction_id: str, payload: Any) -> AttestationRecord:
    """Turn an Iris ``/messages`` body into an :class:`AttestationRecord`.

    Pure function: the ``"PENDING"`` sentinels are resolved here and never
    leave this module as strings.
    """

    if not isinstance(payload, dict) or not isinstance(payload.get("messages", []), list):
        raise AttestationServiceError("Attestation response is missing a messages list.")
    messages = payload.get("messages") or []
    if not messages:
        return AttestationRecord(domain, transaction_id, status=AttestationStatus.PENDING)

    entry = messages[0]
    if not isinstance(entry, dict):
        raise AttestationServiceError("Attestation message entry is not an object.")
    message = entry.get("message")
    attestation = entry.get("attestation")
    nonce = entry.get("eventNonce")
    event_nonce = str(nonce) if nonce is not None else None

    if not message or is_pending_sentinel(attestation) or is_pending_sentinel(message):
        return AttestationRecord(
            domain,
            transaction_id,
            status=AttestationStatus.PENDING,
            event_nonce=event_nonce,
        )

    return AttestationRecord(
        domain,
        transaction_id,
        message=ensure_hex_bytes(str(message), "message"),
        attestation=ensure_hex_bytes(str(attestation), "attestation"),
        status=AttestationStatus.READY,
        event_nonce=event_nonce,
    )


class IrisAttestationClient:
    """Read-only client for ``GET {base}/messages/{domain}/{tx}``."""

    def __init__(
        self,
        base_url: str = IRIS_API_BASE_URL,
        *,
        timeout: float = DEFAULT_HTTP_TIMEOUT,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = normalise_iris_base(base_url)
        self.timeout = timeout
        self.session = session or requests.Session()

    def attestation_url(self, domain: Domain, transaction_id: str) -> str:
        return f"{self.base_url}/messages/{int(domain)}/{transaction_id.strip()}"

    def fetch_attestation(self, domain: Domain, transaction_id: str) -> AttestationRecord:
        url = self.attestation_url(domain, transaction_id)
        try:
            response = self.session.get(url, headers={"Content-Type": "application/json"}, timeout=self.timeout)
        except requests.RequestException as exc:
            raise AttestationServiceError(f"Error contacting Circle attestation API: {exc}") from exc

        if response.status_code == HTTP_NOT_FOUND:
            return AttestationRecord(domain, transaction_id, status=AttestationStatus.NOT_FOUND)
        if not 200 <= response.status_code < 300:
            raise AttestationServiceError(
                f"Circle attestation API returned HTTP {response.status_code}.",
                status_code=response.status_code,
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise AttestationServiceError("Circle attestation API returned a non-JSON body.") from exc
        return parse_attestation_payload(domain, transaction_id, payload)


class _AttestationNotReady(BridgeError):
    kind = "transient"
    retryable = True


class AttestationPoller:
    def __init__(self, client: IrisAttestationClient) -> None:
        self.client = client

    def poll_attestation(
        self,
        domain: Domain,
        transaction_id: str,
        *,
        max_attempts: int = 15,
        initial_delay: float = 10.0,
        max_delay: float = 30.0,
        growth_factor: float = 1.5,
        cancel_token: Optional[CancellationToken] = None,
        on_attempt: Optional[Callable[[int, int, Optional[str]], None]] = None,
    ) -> AttestationRecord:
        """Poll until the attestation is ready.

        Sleeps ``initial_delay`` first, then ``min(initial_delay *
        growth_factor ** (attempt - 1), max_delay)`` after each unsuccessful
        attempt. 404s, pending payloads and service errors are all retried;
        only an undecodable ready payload stops early.
        """

        policy = RetryPolicy(
            max_attempts=max_attempts,
            initial_delay=initial_delay,
            growth_factor=growth_factor,
            max_delay=max_delay,
            wait_before_first=True,
        )
        last_note: Optional[str] = None

        def _attempt(attempt: int) -> AttestationRecord:
            if on_attempt is not None:
                on_attempt(attempt, max_attempts, last_note)
            record = self.client.fetch_attestation(domain, transaction_id)
            if record.is_ready:
                logger.info("Attestation ready for %s after %d attempt(s).", transaction_id, attempt)
                return record
            raise _AttestationNotReady(f"Attestation {record.status.value}")

        def _on_retry(attempt: int, exc: BaseException, delay: float) -> None:
            nonlocal last_note
            last_note = str(exc)
            logger.info(
                "Attestation for %s not ready on attempt %d/%d (%s); retrying in %.1fs.",
                transaction_id,
                attempt,
                max_attempts,
                exc,
                delay,
            )

        try:
            return retry_with_backoff(
                _attempt,
                policy,
                is_retryable=lambda exc: isinstance(exc, (_AttestationNotReady, AttestationServiceError)),
                cancel_token=cancel_token,
                on_retry=_on_retry,
            )
        except RetryExhausted as exc:
            if isinstance(exc.last_error, AttestationServiceError):
                raise AttestationServiceError(
                    f"Circle attestation API kept failing after {exc.attempts} attempts: {exc.last_error}"
                ) from exc
            raise AttestationTimeout(
                f"Attestation not ready after {exc.attempts} attempts. Please try again later."
            ) from exc
