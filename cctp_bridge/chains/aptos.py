"""Aptos fullnode REST client for CCTP burns, mints and status checks."""
from __future__ import annotations

import re
from typing import Any

from ..constants import DEFAULT_APTOS_NODE_URL
from ..errors import BridgeError, ChainClientError
from ..logging_utils import get_bridge_logger
from ..models import ConfirmationStatus, Domain
from .base import HttpChainClient, SignedTransaction

logger = get_bridge_logger("chains.aptos")

_HEX_RE = re.compile(r"^(0x)?[0-9a-fA-F]+$")
EXECUTED_SUCCESSFULLY = "Executed successfully"


def normalise_aptos_hash(value: str) -> str:
    cleaned = value.strip()
    if not cleaned or not _HEX_RE.match(cleaned):
        raise BridgeError(f"Aptos hash {value!r} is not valid hex.")
    if not cleaned.startswith(("0x", "0X")):
        cleaned = f"0x{cleaned}"
    return cleaned.lower()


def aptos_address_to_bytes32(address: str) -> str:
    """Left-pad an Aptos account address to the 32-byte form CCTP expects."""
    cleaned = normalise_aptos_hash(address)[2:]
    if len(cleaned) > 64:
        raise BridgeError(f"Aptos address {address!r} is longer than 32 bytes.")
    return "0x" + cleaned.rjust(64, "0")


class AptosChainClient(HttpChainClient):
    domain = Domain.APTOS

    def __init__(self, node_url: str = DEFAULT_APTOS_NODE_URL, **kwargs: Any) -> None:
        super().__init__(node_url, **kwargs)

    def _submit_once(self, transaction: SignedTransaction) -> str:
        response = self._send("POST", f"{self.base_url}/v1/transactions", json=transaction.raw)
        if response.status_code == 429 or response.status_code >= 500:
            raise ChainClientError(
                f"Aptos node returned HTTP {response.status_code} on submit.", status_code=response.status_code
            )
        body = self._json(response, "Aptos submit")
        if response.status_code >= 400:
            message = body.get("message") if isinstance(body, dict) else None
            raise ChainClientError(
                f"Aptos node rejected the transaction: {message or response.status_code}",
                retryable=False,
                status_code=response.status_code,
            )
        tx_hash = body.get("hash") if isinstance(body, dict) else None
        if not tx_hash:
            raise ChainClientError("Aptos submit response did not include a hash.", retryable=False)
        logger.info("Aptos transaction submitted: %s", tx_hash)
        return normalise_aptos_hash(tx_hash)

    def get_transaction_status(self, tx_id: str) -> ConfirmationStatus:
        tx_hash = normalise_aptos_hash(tx_id)
        response = self._send("GET", f"{self.base_url}/v1/transactions/by_hash/{tx_hash}")
        if response.status_code == 404:
            return ConfirmationStatus.pending()
        if response.status_code >= 400:
            raise ChainClientError(
                f"Aptos node returned HTTP {response.status_code} for {tx_hash}.",
                retryable=response.status_code == 429 or response.status_code >= 500,
                status_code=response.status_code,
            )
        body = self._json(response, "Aptos transaction lookup")
        if not isinstance(body, dict) or body.get("type") == "pending_transaction":
            return ConfirmationStatus.pending()
        vm_status = body.get("vm_status")
        if body.get("success") and vm_status == EXECUTED_SUCCESSFULLY:
            return ConfirmationStatus.confirmed()
        if vm_status:
            return ConfirmationStatus.failed(f"Transaction failed: {vm_status}")
        return ConfirmationStatus.pending()

    def get_latest_attestation_compatible_identifier(self, tx_id: str) -> str:
        return normalise_aptos_hash(tx_id)
