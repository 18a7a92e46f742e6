"""Drives one Solana <-> Aptos USDC transfer from burn to mint.

A :class:`TransferOrchestrator` owns exactly one :class:`TransferState` and
runs it forward through the CCTP stages::

    idle -> burn_submitted -> burn_confirmed -> attestation_pending
         -> attestation_ready -> mint_submitted -> mint_confirmed

Any stage may end in ``failed``. Once a burn exists every failure carries a
manual-mint URL so the transfer can be finished without burning again.
"""
from __future__ import annotations

import threading
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from .attestation import AttestationPoller, IrisAttestationClient
from .burn import BurnExecutor, parse_usdc_amount
from .chains import AptosChainClient, SolanaChainClient
from .chains.base import ChainClient, SignerSessionProvider, StaticSignerSessions
from .config import BridgeConfig, DirectionTuning, default_tunings
from .confirmation import ConfirmationWaiter
from .constants import DEFAULT_MANUAL_MINT_PATH
from .errors import (
    BridgeConfigError,
    BridgeError,
    ChainRejected,
    SigningRejected,
    StaleSignerSession,
)
from .logging_utils import compose_log, get_bridge_logger
from .mint import MintExecutor, MintSubmitter, RelayMintSubmitter, SignedMintSubmitter
from .models import (
    AttestationRecord,
    BurnReceipt,
    Domain,
    MintReceipt,
    RecoveryLink,
    TransferFailure,
    TransferRequest,
    TransferStage,
    TransferState,
)
from .recovery import build_recovery_url, recovery_link_for
from .retry import CancellationToken
from .status import (
    STATUS_ERROR,
    STATUS_PENDING,
    STATUS_SUCCESS,
    ActionLogEntry,
    StatusReporter,
    TransferEvent,
)

logger = get_bridge_logger("orchestrator")

EventListener = Callable[[TransferEvent], None]

_EXPLORER_LABELS = {
    Domain.SOLANA: "View on Solscan",
    Domain.APTOS: "View on Aptos Explorer",
}


def _other_domain(domain: Domain) -> Domain:
    return Domain.APTOS if domain is Domain.SOLANA else Domain.SOLANA


@dataclass
class TransferResult:
    state: TransferState
    source_domain: Domain
    destination_domain: Domain
    destination_recipient: str
    amount: Optional[Decimal] = None
    recovery_url: Optional[str] = None
    error: Optional[BaseException] = None
    log: Tuple[ActionLogEntry, ...] = ()

    @property
    def stage(self) -> TransferStage:
        return self.state.stage

    @property
    def succeeded(self) -> bool:
        return self.state.stage is TransferStage.MINT_CONFIRMED

    def to_state(self) -> Dict[str, Any]:
        state: Dict[str, Any] = {
            "status": "complete" if self.succeeded else self.state.stage.value,
            "source_domain": int(self.source_domain),
            "destination_domain": int(self.destination_domain),
            "destination_recipient": self.destination_recipient,
            "stages": [stage.value for stage in self.state.entered_stages],
            "attempts": dict(self.state.attempt_counters),
            "log": [entry.to_state() for entry in self.log],
        }
        if self.amount is not None:
            state["amount_usdc"] = str(self.amount)
        burn = self.state.burn_receipt
        if burn is not None:
            state["burn_tx_hash"] = burn.transaction_id
            state["burn_tx_explorer"] = burn.explorer_url
        attestation = self.state.attestation
        if attestation is not None and attestation.is_ready:
            state["message_hex"] = attestation.message
            state["attestation_hex"] = attestation.attestation
            state["message_hash"] = attestation.message_hash
            if attestation.event_nonce is not None:
                state["nonce"] = attestation.event_nonce
        mint = self.state.mint_receipt
        if mint is not None:
            state["mint_tx_hash"] = mint.transaction_id
            state["mint_tx_explorer"] = mint.explorer_url
            state["already_minted"] = mint.already_minted
        failure = self.state.failure
        if failure is not None:
            state["failed_stage"] = failure.stage.value
            state["error_kind"] = failure.kind
            state["error"] = failure.reason
        if self.recovery_url:
            state["recovery_url"] = self.recovery_url
        return state


class TransferOrchestrator:
    """Runs a single transfer. Create a new instance per transfer.

    Clients passed in may be shared between orchestrators; the state, the
    status log and the mint lock belong to this instance only.
    """

    def __init__(
        self,
        *,
        chain_clients: Mapping[Domain, ChainClient],
        attestation_client: IrisAttestationClient,
        mint_submitters: Mapping[Domain, MintSubmitter],
        sessions: Optional[SignerSessionProvider] = None,
        reporter: Optional[StatusReporter] = None,
        tunings: Optional[Mapping[Domain, DirectionTuning]] = None,
        app_base_url: str = "",
        manual_mint_path: str = DEFAULT_MANUAL_MINT_PATH,
        on_event: Optional[Iterable[EventListener]] = None,
        log: Optional[Callable[[str], None]] = None,
    ) -> None:
        self.chain_clients = dict(chain_clients)
        self.attestation_client = attestation_client
        self.poller = AttestationPoller(attestation_client)
        self.burn_executor = BurnExecutor(self.chain_clients)
        self.mint_submitters = dict(mint_submitters)
        self.sessions = sessions
        self.reporter = reporter or StatusReporter()
        self.tunings: Dict[Domain, DirectionTuning] = dict(tunings or default_tunings())
        self.app_base_url = app_base_url
        self.manual_mint_path = manual_mint_path
        self.listeners: List[EventListener] = list(on_event or [])
        self.state = TransferState()
        self._log = compose_log(log, logger)
        self._mint_lock = threading.Lock()
        self._start_lock = threading.Lock()
        self._started = False

    @classmethod
    def from_config(
        cls,
        config: BridgeConfig,
        *,
        sessions: Optional[SignerSessionProvider] = None,
        reporter: Optional[StatusReporter] = None,
        on_event: Optional[Iterable[EventListener]] = None,
        log: Optional[Callable[[str], None]] = None,
    ) -> "TransferOrchestrator":
        solana = SolanaChainClient(config.solana_rpc_url, timeout=config.http_timeout)
        aptos = AptosChainClient(config.aptos_node_url, timeout=config.http_timeout)
        return cls(
            chain_clients={Domain.SOLANA: solana, Domain.APTOS: aptos},
            attestation_client=IrisAttestationClient(config.attestation_url, timeout=config.http_timeout),
            mint_submitters={
                Domain.SOLANA: SignedMintSubmitter(solana),
                Domain.APTOS: RelayMintSubmitter(config.aptos_mint_endpoint, timeout=config.http_timeout),
            },
            sessions=sessions,
            reporter=reporter,
            tunings=config.tunings,
            app_base_url=config.app_base_url,
            manual_mint_path=config.manual_mint_path,
            on_event=on_event,
            log=log,
        )

    # ------------------------------------------------------------------
    # status plumbing

    def _emit(self, event: TransferEvent) -> None:
        self.reporter.apply(event)
        self._log(f"[bridge] {event.status.upper()}: {event.message}")
        for listener in self.listeners:
            try:
                listener(event)
            except Exception:
                logger.exception("Transfer event listener raised an error.")

    def _append(self, message: str, status: str = STATUS_PENDING, link: Optional[str] = None,
                link_text: Optional[str] = None) -> None:
        self._emit(TransferEvent(self.state.stage.value, message, status, link, link_text))

    def _update(self, message: str, status: str = STATUS_PENDING, link: Optional[str] = None,
                link_text: Optional[str] = None) -> None:
        self._emit(TransferEvent(self.state.stage.value, message, status, link, link_text, replace_last=True))

    # ------------------------------------------------------------------

    def _claim(self) -> None:
        with self._start_lock:
            if self._started:
                raise BridgeError("This orchestrator has already run a transfer; create a new one.")
            self._started = True

    def _tuning(self, source_domain: Domain) -> DirectionTuning:
        tuning = self.tunings.get(source_domain)
        if tuning is None:
            raise BridgeConfigError(f"No polling tuning configured for transfers from {source_domain.label}.")
        return tuning

    def _chain(self, domain: Domain) -> ChainClient:
        chain = self.chain_clients.get(domain)
        if chain is None:
            raise BridgeConfigError(f"No {domain.label} chain client is configured.")
        return chain

    def _recovery_url(self, recipient: str) -> Optional[str]:
        receipt = self.state.burn_receipt
        if receipt is None:
            return None
        return build_recovery_url(recovery_link_for(receipt, recipient), self.app_base_url, self.manual_mint_path)

    def run(self, request: TransferRequest, cancel_token: Optional[CancellationToken] = None) -> TransferResult:
        """Burn on the source chain and mint on the destination chain."""

        self._claim()
        token = cancel_token or CancellationToken()
        sessions = self.sessions or StaticSignerSessions(
            {
                domain: signer
                for domain, signer in (
                    (request.source_domain, request.source_signer),
                    (request.destination_domain, request.destination_signer),
                )
                if signer is not None
            }
        )
        result = TransferResult(
            state=self.state,
            source_domain=request.source_domain,
            destination_domain=request.destination_domain,
            destination_recipient=request.destination_recipient,
        )
        self._append(f"Initializing {request.direction} transfer...")
        try:
            amount, _ = parse_usdc_amount(request.amount)
            result.amount = amount
            tuning = self._tuning(request.source_domain)
            receipt = self._burn(request, amount, sessions, token)
            self._confirm_burn(receipt, tuning, token)
            self._attest_and_mint(
                receipt,
                request.destination_domain,
                request.destination_recipient,
                tuning,
                sessions,
                token,
                require_source_session=True,
            )
            self._append(
                f"Bridge complete! {amount} USDC delivered to {request.destination_recipient} "
                f"on {request.destination_domain.label}.",
                STATUS_SUCCESS,
            )
        except BridgeError as exc:
            self._fail(result, exc)
        except Exception as exc:
            self._fail(result, exc)
            raise
        result.log = self.reporter.entries
        return result

    def resume(self, link: RecoveryLink, cancel_token: Optional[CancellationToken] = None) -> TransferResult:
        """Finish a transfer whose burn already happened, starting at the attestation."""

        self._claim()
        token = cancel_token or CancellationToken()
        destination = _other_domain(link.source_domain)
        result = TransferResult(
            state=self.state,
            source_domain=link.source_domain,
            destination_domain=destination,
            destination_recipient=link.destination_recipient,
        )
        receipt = BurnReceipt(transaction_id=link.burn_transaction_id, source_domain=link.source_domain)
        self.state.set_burn_receipt(receipt)
        self._append(
            f"Resuming manual mint for {link.source_domain.label} burn {receipt.transaction_id}.",
            STATUS_SUCCESS,
            link=receipt.explorer_url,
            link_text=_EXPLORER_LABELS[link.source_domain],
        )
        try:
            if self.sessions is None:
                raise BridgeConfigError("A wallet session provider is required to resume a transfer.")
            self._attest_and_mint(
                receipt,
                destination,
                link.destination_recipient,
                self._tuning(link.source_domain),
                self.sessions,
                token,
                require_source_session=False,
            )
            self._append(
                f"Bridge complete! USDC delivered to {link.destination_recipient} on {destination.label}.",
                STATUS_SUCCESS,
            )
        except BridgeError as exc:
            self._fail(result, exc)
        except Exception as exc:
            self._fail(result, exc)
            raise
        result.log = self.reporter.entries
        return result

    # ------------------------------------------------------------------
    # stages

    def _burn(
        self,
        request: TransferRequest,
        amount: Decimal,
        sessions: SignerSessionProvider,
        token: CancellationToken,
    ) -> BurnReceipt:
        token.raise_if_cancelled()
        source = request.source_domain
        self._update(f"Requesting {source.label} signature to burn {amount} USDC...")
        signer = sessions.signer_for(source) or request.source_signer
        receipt = self.burn_executor.submit_burn(request, signer=signer, cancel_token=token)
        self.state.set_burn_receipt(receipt)
        self.state.advance(TransferStage.BURN_SUBMITTED)
        self._update(
            f"Burn submitted on {source.label}.",
            STATUS_SUCCESS,
            link=receipt.explorer_url,
            link_text=_EXPLORER_LABELS[source],
        )
        return receipt

    def _confirm_burn(self, receipt: BurnReceipt, tuning: DirectionTuning, token: CancellationToken) -> None:
        token.raise_if_cancelled()
        label = receipt.source_domain.label
        total = tuning.confirmation_attempts
        self._append(f"Waiting for {label} burn confirmation... (0/{total})")

        def _on_attempt(attempt: int, max_attempts: int) -> None:
            self.state.record_attempt(TransferStage.BURN_CONFIRMED, attempt)
            self._update(f"Waiting for {label} burn confirmation... ({attempt}/{max_attempts})")

        ConfirmationWaiter(self._chain(receipt.source_domain)).await_confirmation(
            receipt.transaction_id,
            max_attempts=total,
            poll_interval=tuning.confirmation_interval,
            cancel_token=token,
            on_attempt=_on_attempt,
        )
        self.state.advance(TransferStage.BURN_CONFIRMED)
        self._update(
            f"Burn confirmed on {label}.",
            STATUS_SUCCESS,
            link=receipt.explorer_url,
            link_text=_EXPLORER_LABELS[receipt.source_domain],
        )

    def _attest_and_mint(
        self,
        receipt: BurnReceipt,
        destination: Domain,
        recipient: str,
        tuning: DirectionTuning,
        sessions: SignerSessionProvider,
        token: CancellationToken,
        *,
        require_source_session: bool,
    ) -> None:
        record = self._await_attestation(receipt, tuning, token)
        mint = self._mint(record, destination, recipient, sessions, token, require_source_session)
        self._confirm_mint(mint, tuning, token)

    def _await_attestation(
        self, receipt: BurnReceipt, tuning: DirectionTuning, token: CancellationToken
    ) -> AttestationRecord:
        token.raise_if_cancelled()
        source = receipt.source_domain
        identifier = self._chain(source).get_latest_attestation_compatible_identifier(receipt.transaction_id)
        url = self.attestation_client.attestation_url(source, identifier)
        self.state.advance(TransferStage.ATTESTATION_PENDING)
        total = tuning.attestation_attempts
        self._append("Requesting attestation from Circle...", link=url, link_text="Attestation API")

        def _on_attempt(attempt: int, max_attempts: int, _note: Optional[str]) -> None:
            self.state.record_attempt(TransferStage.ATTESTATION_PENDING, attempt)
            self._update(f"Requesting attestation from Circle... (attempt {attempt}/{max_attempts})")

        record = self.poller.poll_attestation(
            source,
            identifier,
            max_attempts=total,
            initial_delay=tuning.attestation_initial_delay,
            max_delay=tuning.attestation_max_delay,
            growth_factor=tuning.attestation_growth,
            cancel_token=token,
            on_attempt=_on_attempt,
        )
        self.state.attestation = record
        self.state.advance(TransferStage.ATTESTATION_READY)
        self._update("Attestation received from Circle.", STATUS_SUCCESS)
        return record

    def _mint(
        self,
        record: AttestationRecord,
        destination: Domain,
        recipient: str,
        sessions: SignerSessionProvider,
        token: CancellationToken,
        require_source_session: bool,
    ) -> MintReceipt:
        token.raise_if_cancelled()
        executor = MintExecutor(self.mint_submitters, sessions)
        self.state.advance(TransferStage.MINT_SUBMITTED)
        self._append(f"Submitting mint on {destination.label}...")

        def _submit() -> MintReceipt:
            return executor.submit_mint(
                record,
                destination,
                recipient,
                cancel_token=token,
                require_source_session=require_source_session,
            )

        stale: Optional[Domain] = None
        with self._mint_lock:
            try:
                try:
                    receipt = _submit()
                except StaleSignerSession as exc:
                    stale = exc.domain or destination
                    logger.warning("Mint hit a stale %s wallet session: %s", stale.label, exc)
                    self._update(f"{stale.label} wallet session expired; reconnecting and retrying mint...")
                    token.raise_if_cancelled()
                    if not sessions.reconnect(stale):
                        raise
                    receipt = _submit()
            except ChainRejected as exc:
                if not (exc.nonce_consumed and exc.existing_transaction_id):
                    raise
                logger.info("Attestation already consumed; existing mint %s.", exc.existing_transaction_id)
                receipt = MintReceipt(
                    transaction_id=exc.existing_transaction_id,
                    recipient=recipient,
                    destination_domain=destination,
                    already_minted=True,
                )
                stale = None

        self.state.mint_receipt = receipt
        if stale is not None:
            self._update(f"{stale.label} wallet session expired; reconnected and resubmitted mint.", STATUS_SUCCESS)
            self._append(
                f"Mint submitted on {destination.label}.",
                STATUS_SUCCESS,
                link=receipt.explorer_url,
                link_text=_EXPLORER_LABELS[destination],
            )
        elif receipt.already_minted:
            self._update(
                "Attestation was already used; USDC has already been minted.",
                STATUS_SUCCESS,
                link=receipt.explorer_url,
                link_text=_EXPLORER_LABELS[destination],
            )
        else:
            self._update(
                f"Mint submitted on {destination.label}.",
                STATUS_SUCCESS,
                link=receipt.explorer_url,
                link_text=_EXPLORER_LABELS[destination],
            )
        return receipt

    def _confirm_mint(self, receipt: MintReceipt, tuning: DirectionTuning, token: CancellationToken) -> None:
        token.raise_if_cancelled()
        destination = receipt.destination_domain
        total = tuning.confirmation_attempts
        self._append(f"Waiting for {destination.label} mint confirmation... (0/{total})")

        def _on_attempt(attempt: int, max_attempts: int) -> None:
            self.state.record_attempt(TransferStage.MINT_CONFIRMED, attempt)
            self._update(f"Waiting for {destination.label} mint confirmation... ({attempt}/{max_attempts})")

        ConfirmationWaiter(self._chain(destination)).await_confirmation(
            receipt.transaction_id,
            max_attempts=total,
            poll_interval=tuning.confirmation_interval,
            cancel_token=token,
            on_attempt=_on_attempt,
        )
        self.state.advance(TransferStage.MINT_CONFIRMED)
        self._update(
            f"Mint confirmed on {destination.label}.",
            STATUS_SUCCESS,
            link=receipt.explorer_url,
            link_text=_EXPLORER_LABELS[destination],
        )

    # ------------------------------------------------------------------

    def _fail(self, result: TransferResult, exc: BaseException) -> None:
        kind = getattr(exc, "kind", "protocol")
        reason = str(exc) or exc.__class__.__name__
        stage = self.state.stage
        recovery_url = self._recovery_url(result.destination_recipient)
        result.error = exc
        result.recovery_url = recovery_url
        self.state.fail(TransferFailure(stage=stage, kind=kind, reason=reason, recovery_url=recovery_url))

        if isinstance(exc, SigningRejected) and self.state.burn_receipt is None:
            logger.info("Transfer stopped: signature request declined.")
            self._update("Signature request was declined in the wallet. No funds were moved.", STATUS_ERROR)
            return

        if kind == "cancelled":
            logger.warning("Transfer cancelled during %s: %s", stage.value, reason)
        elif isinstance(exc, BridgeError):
            logger.error("Transfer failed during %s (%s): %s", stage.value, kind, reason)
        else:
            logger.exception("Transfer failed during %s with an unexpected error.", stage.value)

        last = self.reporter.last
        if last is not None and last.status == STATUS_PENDING:
            self._update(f"{last.message} failed.", STATUS_ERROR)
        if recovery_url:
            self._append(
                f"Transfer failed: {reason} Your burn is safe; use the manual mint link to finish without re-burning.",
                STATUS_ERROR,
                link=recovery_url,
                link_text="Manual mint",
            )
        else:
            self._append(f"Transfer failed: {reason}", STATUS_ERROR)


def start_transfer(
    orchestrator: TransferOrchestrator,
    request: TransferRequest,
    *,
    cancel_token: Optional[CancellationToken] = None,
    executor: Optional[Executor] = None,
) -> "Future[TransferResult]":
    """Run ``orchestrator.run`` on a worker thread and return its future."""

    if executor is not None:
        return executor.submit(orchestrator.run, request, cancel_token)
    own_executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="cctp-transfer")
    try:
        return own_executor.submit(orchestrator.run, request, cancel_token)
    finally:
        own_executor.shutdown(wait=False)
