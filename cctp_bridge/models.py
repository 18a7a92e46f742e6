from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum, IntEnum
from typing import Any, Dict, List, Optional

from web3 import Web3

from .constants import (
    APTOS_DOMAIN_ID,
    APTOS_TX_EXPLORER_TEMPLATE,
    ATTESTATION_PENDING_SENTINELS,
    SOLANA_DOMAIN_ID,
    SOLANA_TX_EXPLORER_TEMPLATE,
)
from .errors import InvalidStageTransition


class Domain(IntEnum):
    """CCTP domain identifiers for the chains this bridge connects."""

    SOLANA = SOLANA_DOMAIN_ID
    APTOS = APTOS_DOMAIN_ID

    @property
    def label(self) -> str:
        return self.name.capitalize()

    def explorer_tx_url(self, tx_id: str) -> str:
        template = SOLANA_TX_EXPLORER_TEMPLATE if self is Domain.SOLANA else APTOS_TX_EXPLORER_TEMPLATE
        return template.format(tx_id=tx_id)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class TransferRequest:
    source_domain: Domain
    destination_domain: Domain
    amount: Decimal
    source_signer: Any
    destination_recipient: str
    destination_signer: Any

    def __post_init__(self) -> None:
        if self.source_domain == self.destination_domain:
            raise ValueError("Source and destination domains must differ.")

    @property
    def direction(self) -> str:
        return f"{self.source_domain.label} -> {self.destination_domain.label}"


@dataclass(frozen=True)
class BurnReceipt:
    transaction_id: str
    source_domain: Domain
    submitted_at: datetime = field(default_factory=utc_now)

    @property
    def explorer_url(self) -> str:
        return self.source_domain.explorer_tx_url(self.transaction_id)


@dataclass(frozen=True)
class ConfirmationStatus:
    """Outcome of one transaction-status poll."""

    state: str
    reason: Optional[str] = None

    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"

    @classmethod
    def pending(cls) -> "ConfirmationStatus":
        return cls(cls.PENDING)

    @classmethod
    def confirmed(cls) -> "ConfirmationStatus":
        return cls(cls.CONFIRMED)

    @classmethod
    def failed(cls, reason: str) -> "ConfirmationStatus":
        return cls(cls.FAILED, reason)

    @property
    def is_pending(self) -> bool:
        return self.state == self.PENDING

    @property
    def is_confirmed(self) -> bool:
        return self.state == self.CONFIRMED

    @property
    def is_failed(self) -> bool:
        return self.state == self.FAILED


class AttestationStatus(str, Enum):
    PENDING = "pending"
    READY = "ready"
    ERROR = "error"
    NOT_FOUND = "not_found"


def is_pending_sentinel(value: Optional[str]) -> bool:
    if value is None:
        return True
    cleaned = str(value).strip().upper()
    return not cleaned or cleaned in ATTESTATION_PENDING_SENTINELS


@dataclass(frozen=True)
class AttestationRecord:
    domain: Domain
    transaction_id: str
    message: str = ""
    attestation: str = ""
    status: AttestationStatus = AttestationStatus.PENDING
    error: Optional[str] = None
    event_nonce: Optional[str] = None

    @property
    def is_ready(self) -> bool:
        return (
            self.status is AttestationStatus.READY
            and bool(self.message)
            and bool(self.attestation)
            and not is_pending_sentinel(self.attestation)
        )

    @property
    def message_hash(self) -> Optional[str]:
        """keccak-256 of the CCTP message, the identifier Circle uses for it."""
        if not self.is_ready:
            return None
        return Web3.keccak(hexstr=self.message).hex()


@dataclass(frozen=True)
class MintReceipt:
    transaction_id: str
    recipient: str
    destination_domain: Domain
    confirmed_at: datetime = field(default_factory=utc_now)
    already_minted: bool = False

    @property
    def explorer_url(self) -> str:
        return self.destination_domain.explorer_tx_url(self.transaction_id)


@dataclass(frozen=True)
class RecoveryLink:
    """Everything a manual mint needs to resume after the burn."""

    burn_transaction_id: str
    source_domain: Domain
    destination_recipient: str


class TransferStage(str, Enum):
    IDLE = "idle"
    BURN_SUBMITTED = "burn_submitted"
    BURN_CONFIRMED = "burn_confirmed"
    ATTESTATION_PENDING = "attestation_pending"
    ATTESTATION_READY = "attestation_ready"
    MINT_SUBMITTED = "mint_submitted"
    MINT_CONFIRMED = "mint_confirmed"
    FAILED = "failed"


STAGE_ORDER: List[TransferStage] = [
    TransferStage.IDLE,
    TransferStage.BURN_SUBMITTED,
    TransferStage.BURN_CONFIRMED,
    TransferStage.ATTESTATION_PENDING,
    TransferStage.ATTESTATION_READY,
    TransferStage.MINT_SUBMITTED,
    TransferStage.MINT_CONFIRMED,
]


@dataclass(frozen=True)
class TransferFailure:
    stage: TransferStage
    kind: str
    reason: str
    recovery_url: Optional[str] = None


@dataclass
class TransferState:
    """Mutable record of a single transfer, owned by one orchestrator."""

    stage: TransferStage = TransferStage.IDLE
    burn_receipt: Optional[BurnReceipt] = None
    attestation: Optional[AttestationRecord] = None
    mint_receipt: Optional[MintReceipt] = None
    last_error: Optional[str] = None
    failure: Optional[TransferFailure] = None
    attempt_counters: Dict[str, int] = field(default_factory=dict)
    entered_stages: List[TransferStage] = field(default_factory=list)

    @property
    def is_terminal(self) -> bool:
        return self.stage in (TransferStage.MINT_CONFIRMED, TransferStage.FAILED)

    def advance(self, stage: TransferStage) -> None:
        if self.is_terminal:
            raise InvalidStageTransition(f"Transfer already finished in stage {self.stage.value}.")
        if stage is TransferStage.FAILED or stage not in STAGE_ORDER:
            raise InvalidStageTransition(f"Cannot advance into {stage.value}.")
        if STAGE_ORDER.index(stage) <= STAGE_ORDER.index(self.stage):
            raise InvalidStageTransition(f"Cannot move from {self.stage.value} back to {stage.value}.")
        self.stage = stage
        self.entered_stages.append(stage)

    def fail(self, failure: TransferFailure) -> None:
        if self.is_terminal:
            raise InvalidStageTransition(f"Transfer already finished in stage {self.stage.value}.")
        self.failure = failure
        self.last_error = failure.reason
        self.stage = TransferStage.FAILED

    def set_burn_receipt(self, receipt: BurnReceipt) -> None:
        if self.burn_receipt is not None:
            raise InvalidStageTransition("Burn receipt is already recorded for this transfer.")
        self.burn_receipt = receipt

    def record_attempt(self, stage: TransferStage, attempt: int) -> None:
        self.attempt_counters[stage.value] = attempt
