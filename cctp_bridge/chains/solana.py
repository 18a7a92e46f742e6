"""Solana JSON-RPC client for CCTP burns, mints and status checks."""
from __future__ import annotations

import itertools
import json
from typing import Any, Dict, List, Optional

import base58

from ..constants import DEFAULT_SOLANA_RPC_URL
from ..errors import BridgeError, ChainClientError
from ..logging_utils import get_bridge_logger
from ..models import ConfirmationStatus, Domain
from .base import HttpChainClient, SignedTransaction

logger = get_bridge_logger("chains.solana")

# Node unhealthy / internal error: the same signed transaction can be resent
_RETRYABLE_RPC_CODES = {-32005, -32603}
_FINALITY_LEVELS = ("confirmed", "finalized")


def solana_address_to_bytes32(address: str) -> str:
    """Return the 32-byte hex form CCTP uses for a Solana public key."""
    try:
        raw = base58.b58decode(address.strip())
    except ValueError as exc:
        raise BridgeError(f"Solana address {address!r} is not valid base58.") from exc
    if len(raw) != 32:
        raise BridgeError(f"Solana address {address!r} does not decode to 32 bytes.")
    return "0x" + raw.hex()


class SolanaChainClient(HttpChainClient):
    domain = Domain.SOLANA

    def __init__(self, rpc_url: str = DEFAULT_SOLANA_RPC_URL, *, finality: str = "confirmed", **kwargs: Any) -> None:
        if finality not in _FINALITY_LEVELS:
            raise BridgeError(f"Unsupported Solana finality {finality!r}.")
        super().__init__(rpc_url, **kwargs)
        self.finality = finality
        self._ids = itertools.count(1)

    def _rpc(self, method: str, params: List[Any]) -> Any:
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        response = self._send("POST", self.base_url, json=payload)
        if response.status_code == 429 or response.status_code >= 500:
            raise ChainClientError(
                f"Solana RPC {method} returned HTTP {response.status_code}.", status_code=response.status_code
            )
        if response.status_code >= 400:
            raise ChainClientError(
                f"Solana RPC {method} returned HTTP {response.status_code}.",
                retryable=False,
                status_code=response.status_code,
            )
        body = self._json(response, f"Solana RPC {method}")
        error = body.get("error") if isinstance(body, dict) else None
        if error:
            code = error.get("code")
            message = error.get("message") or json.dumps(error)
            raise ChainClientError(
                f"Solana RPC {method} error {code}: {message}", retryable=code in _RETRYABLE_RPC_CODES
            )
        if not isinstance(body, dict) or "result" not in body:
            raise ChainClientError(f"Solana RPC {method} response is missing a result.")
        return body["result"]

    def _submit_once(self, transaction: SignedTransaction) -> str:
        signature = self._rpc(
            "sendTransaction",
            [transaction.raw, {"encoding": "base64", "preflightCommitment": "confirmed"}],
        )
        if not isinstance(signature, str) or not signature:
            raise ChainClientError("sendTransaction returned an empty signature.", retryable=False)
        logger.info("Solana transaction submitted: %s", signature)
        return signature

    def get_transaction_status(self, tx_id: str) -> ConfirmationStatus:
        result = self._rpc("getSignatureStatuses", [[tx_id], {"searchTransactionHistory": True}])
        values: List[Optional[Dict[str, Any]]] = (result or {}).get("value") or [None]
        status = values[0]
        if status is None:
            return ConfirmationStatus.pending()
        err = status.get("err")
        if err:
            return ConfirmationStatus.failed(f"Transaction failed: {json.dumps(err)}")
        level = status.get("confirmationStatus")
        if level == "finalized" or (level == "confirmed" and self.finality == "confirmed"):
            return ConfirmationStatus.confirmed()
        return ConfirmationStatus.pending()

    def get_latest_attestation_compatible_identifier(self, tx_id: str) -> str:
        cleaned = tx_id.strip()
        try:
            raw = base58.b58decode(cleaned)
        except ValueError as exc:
            raise BridgeError(f"Solana signature {tx_id!r} is not valid base58.") from exc
        if len(raw) != 64:
            raise BridgeError(f"Solana signature {tx_id!r} does not decode to 64 bytes.")
        return cleaned
