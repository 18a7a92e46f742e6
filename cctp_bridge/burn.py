from __future__ import annotations

from decimal import ROUND_DOWN, Decimal, InvalidOperation
from typing import Any, Dict, Mapping, Optional, Tuple

from .chains.aptos import aptos_address_to_bytes32
from .chains.base import ChainClient, SignedTransaction, UnsignedTransaction, WalletSigner
from .chains.solana import solana_address_to_bytes32
from .constants import (
    APTOS_TOKEN_MESSENGER_MINTER,
    APTOS_USDC_METADATA,
    SOLANA_MESSAGE_TRANSMITTER,
    SOLANA_TOKEN_MESSENGER_MINTER,
    SOLANA_USDC_MINT,
    USDC_DECIMALS,
)
from .errors import (
    BridgeError,
    InvalidAmount,
    SigningRejected,
    SubmissionFailed,
    looks_like_rejection,
)
from .logging_utils import get_bridge_logger
from .models import BurnReceipt, Domain, TransferRequest
from .retry import CancellationToken

logger = get_bridge_logger("burn")


def parse_usdc_amount(raw_amount: str | float | int | Decimal) -> Tuple[Decimal, int]:
    try:
        amount_dec = raw_amount if isinstance(raw_amount, Decimal) else Decimal(str(raw_amount))
    except (InvalidOperation, ValueError) as exc:
        raise InvalidAmount("Amount must be a numeric value.") from exc
    if not amount_dec.is_finite():
        raise InvalidAmount("Amount must be a finite number.")
    if amount_dec <= 0:
        raise InvalidAmount("Amount must be greater than zero.")
    base_units = int((amount_dec * (Decimal(10) ** USDC_DECIMALS)).to_integral_value(rounding=ROUND_DOWN))
    if base_units <= 0:
        raise InvalidAmount("Amount too small after converting to USDC base units.")
    return amount_dec, base_units


def mint_recipient_bytes32(domain: Domain, recipient: str) -> str:
    if domain is Domain.SOLANA:
        return solana_address_to_bytes32(recipient)
    return aptos_address_to_bytes32(recipient)


def build_burn_transaction(
    source_domain: Domain,
    destination_domain: Domain,
    amount_base_units: int,
    owner: str,
    destination_recipient: str,
) -> UnsignedTransaction:
    mint_recipient = mint_recipient_bytes32(destination_domain, destination_recipient)
    payload: Dict[str, Any]
    if source_domain is Domain.SOLANA:
        payload = {
            "program": SOLANA_TOKEN_MESSENGER_MINTER,
            "message_transmitter": SOLANA_MESSAGE_TRANSMITTER,
            "instruction": "deposit_for_burn",
            "owner": owner,
            "burn_token_mint": SOLANA_USDC_MINT,
            "amount": amount_base_units,
            "destination_domain": int(destination_domain),
            "mint_recipient": mint_recipient,
        }
    else:
        payload = {
            "package": APTOS_TOKEN_MESSENGER_MINTER,
            "function": "deposit_for_burn",
            "sender": owner,
            "type_arguments": [],
            "arguments": [
                str(amount_base_units),
                int(destination_domain),
                mint_recipient,
                APTOS_USDC_METADATA,
            ],
        }
    return UnsignedTransaction(domain=source_domain, kind="deposit_for_burn", payload=payload)


def sign_with_wallet(signer: WalletSigner, transaction: UnsignedTransaction) -> SignedTransaction:
    """Ask the wallet to sign; waits as long as the user needs."""
    try:
        return signer.sign_transaction(transaction)
    except BridgeError:
        raise
    except Exception as exc:
        if looks_like_rejection(str(exc)):
            raise SigningRejected(f"Signature request was declined: {exc}") from exc
        raise SubmissionFailed(f"Wallet failed to sign the {transaction.kind} transaction: {exc}") from exc


class BurnExecutor:
    def __init__(self, chain_clients: Mapping[Domain, ChainClient]) -> None:
        self.chain_clients = dict(chain_clients)

    def submit_burn(
        self,
        request: TransferRequest,
        *,
        signer: Optional[WalletSigner] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> BurnReceipt:
        _, base_units = parse_usdc_amount(request.amount)
        chain = self.chain_clients.get(request.source_domain)
        if chain is None:
            raise SubmissionFailed(f"No {request.source_domain.label} client is configured.")
        wallet = signer or request.source_signer
        if wallet is None:
            raise SubmissionFailed(f"No {request.source_domain.label} wallet is available to sign the burn.")

        unsigned = build_burn_transaction(
            request.source_domain,
            request.destination_domain,
            base_units,
            wallet.address,
            request.destination_recipient,
        )
        logger.info(
            "Requesting %s burn signature for %d base units (%s).",
            request.source_domain.label,
            base_units,
            request.direction,
        )
        signed = sign_with_wallet(wallet, unsigned)
        if cancel_token is not None:
            cancel_token.raise_if_cancelled()
        tx_id = chain.submit_signed_transaction(signed, cancel_token)
        logger.info("Burn submitted on %s: %s", request.source_domain.label, tx_id)
        return BurnReceipt(transaction_id=tx_id, source_domain=request.source_domain)
