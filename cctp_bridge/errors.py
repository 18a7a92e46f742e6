"""Exception taxonomy for the Solana ⇄ Aptos CCTP bridge.

Every error raised by the bridge derives from :class:`BridgeError`. The
``kind`` attribute groups errors the way the orchestrator treats them:

- ``user_declined``: the wallet prompt was rejected; terminal, not an error.
- ``transient``: network or service hiccup, retried in place.
- ``session``: the wallet session went stale; one reconnect-and-retry.
- ``protocol``: the chain or attestation service reported a real failure.
- ``exhaustion``: a retry or polling budget ran out.
- ``invalid_input``: the request or configuration is unusable.
- ``cancelled``: the transfer was abandoned by its owner.
"""
from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .models import Domain


class BridgeError(Exception):
    """Raised when a cross-chain transfer cannot complete."""

    kind = "protocol"
    retryable = False


class InvalidAmount(BridgeError):
    kind = "invalid_input"


class BridgeConfigError(BridgeError):
    kind = "invalid_input"


class SigningRejected(BridgeError):
    """The user declined the signature request in their wallet."""

    kind = "user_declined"


class SubmissionFailed(BridgeError):
    kind = "transient"


class ChainClientError(BridgeError):
    """An RPC or REST call failed before the chain gave an answer."""

    kind = "transient"

    def __init__(self, message: str, *, retryable: bool = True, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.retryable = retryable
        self.status_code = status_code


class ChainReportedFailure(BridgeError):
    """The chain executed the transaction and reported it as failed."""

    kind = "protocol"


class ConfirmationTimeout(BridgeError):
    kind = "exhaustion"


class AttestationServiceError(BridgeError):
    kind = "transient"
    retryable = True

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class AttestationProtocolError(BridgeError):
    kind = "protocol"


class AttestationTimeout(BridgeError):
    kind = "exhaustion"


class StaleSignerSession(BridgeError):
    """A wallet session stopped answering. ``domain`` names the stale wallet."""

    kind = "session"

    def __init__(self, message: str, *, domain: Optional["Domain"] = None) -> None:
        super().__init__(message)
        self.domain = domain


class ChainRejected(BridgeError):
    """The destination chain refused the mint.

    ``nonce_consumed`` marks the expected case where the attestation was
    already used by another mint; ``existing_transaction_id`` is filled when
    the earlier mint can be identified.
    """

    kind = "protocol"

    def __init__(
        self,
        reason: str,
        *,
        nonce_consumed: bool = False,
        existing_transaction_id: Optional[str] = None,
    ) -> None:
        super().__init__(reason)
        self.reason = reason
        self.nonce_consumed = nonce_consumed
        self.existing_transaction_id = existing_transaction_id


class TransferCancelled(BridgeError):
    kind = "cancelled"


class InvalidStageTransition(BridgeError):
    kind = "protocol"


_REJECTION_MARKERS = (
    "user rejected",
    "rejected the request",
    "user declined",
    "declined",
    "denied",
    "cancelled by user",
    "canceled by user",
)
_NOT_CONNECTED_MARKERS = (
    "not connected",
    "disconnected",
    "wallet not ready",
    "no wallet",
    "session expired",
)
_NONCE_USED_MARKERS = (
    "enonce_already_used",
    "nonce already used",
    "already used",
    "already in use",
    "already received",
    "message already",
)


def looks_like_rejection(message: str) -> bool:
    lowered = message.lower()
    return any(marker in lowered for marker in _REJECTION_MARKERS)


def looks_like_stale_session(message: str) -> bool:
    lowered = message.lower()
    return any(marker in lowered for marker in _NOT_CONNECTED_MARKERS)


def looks_like_consumed_nonce(message: str) -> bool:
    lowered = message.lower()
    return any(marker in lowered for marker in _NONCE_USED_MARKERS)
