from __future__ import annotations

from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent
DEFAULT_ENV_FILE = BASE_DIR / ".env"

USDC_DECIMALS = 6

SOLANA_DOMAIN_ID = 5
APTOS_DOMAIN_ID = 9

IRIS_API_BASE_URL = "https://iris-api.circle.com/v1"
DEFAULT_SOLANA_RPC_URL = "https://api.mainnet-beta.solana.com"
DEFAULT_APTOS_NODE_URL = "https://fullnode.mainnet.aptoslabs.com"
DEFAULT_MANUAL_MINT_PATH = "/manual-mint"
DEFAULT_HTTP_TIMEOUT = 30

# Solana CCTP (V1) programs and the canonical USDC mint
SOLANA_USDC_MINT = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"
SOLANA_TOKEN_MESSENGER_MINTER = "CCTPiPYPc6AsJuwueEnWgSgucamXDZwBd53dQ11YiKX3"
SOLANA_MESSAGE_TRANSMITTER = "CCTPmbSD7gX1bxKPAmg77w8oFzNFpaQiQUWD43TKaecd"

# Aptos CCTP packages and the USDC fungible asset metadata object
APTOS_USDC_METADATA = "0xbae207659db88bea0cbead6da0ed00aac12edcdda169e591cd41c94180b46f3b"
APTOS_TOKEN_MESSENGER_MINTER = "0x9bce6734f7b63e835108e3bd8c36743d4709fe435f44791918801d0989640a9d"
APTOS_MESSAGE_TRANSMITTER = "0x177e17751820e4b4371873ca8c30279be63bdea63b88ed0f2239c2eea10f1772"

SOLANA_TX_EXPLORER_TEMPLATE = "https://solscan.io/tx/{tx_id}"
APTOS_TX_EXPLORER_TEMPLATE = "https://explorer.aptoslabs.com/txn/{tx_id}?network=mainnet"

# Attestation values Circle returns before the signature is available
ATTESTATION_PENDING_SENTINELS = ("PENDING", "PENDING...")

# Submission retries performed inside the chain clients
SUBMIT_MAX_ATTEMPTS = 3
SUBMIT_RETRY_DELAY = 0.5

# Relay mint: the attestation is already final, so only a short grace is needed
RELAY_MAX_ATTEMPTS = 3
RELAY_RETRY_DELAY = 5.0

# Per-direction tuning: (confirmation attempts, confirmation interval s,
# attestation attempts, attestation initial delay s, attestation max delay s, growth)
SOLANA_TO_APTOS_TUNING = (30, 2.0, 15, 10.0, 30.0, 1.5)
APTOS_TO_SOLANA_TUNING = (30, 2.0, 15, 10.0, 60.0, 2.0)


__all__ = [
    "BASE_DIR",
    "DEFAULT_ENV_FILE",
    "USDC_DECIMALS",
    "SOLANA_DOMAIN_ID",
    "APTOS_DOMAIN_ID",
    "IRIS_API_BASE_URL",
    "DEFAULT_SOLANA_RPC_URL",
    "DEFAULT_APTOS_NODE_URL",
    "DEFAULT_MANUAL_MINT_PATH",
    "DEFAULT_HTTP_TIMEOUT",
    "SOLANA_USDC_MINT",
    "SOLANA_TOKEN_MESSENGER_MINTER",
    "SOLANA_MESSAGE_TRANSMITTER",
    "APTOS_USDC_METADATA",
    "APTOS_TOKEN_MESSENGER_MINTER",
    "APTOS_MESSAGE_TRANSMITTER",
    "SOLANA_TX_EXPLORER_TEMPLATE",
    "APTOS_TX_EXPLORER_TEMPLATE",
    "ATTESTATION_PENDING_SENTINELS",
    "SUBMIT_MAX_ATTEMPTS",
    "SUBMIT_RETRY_DELAY",
    "RELAY_MAX_ATTEMPTS",
    "RELAY_RETRY_DELAY",
    "SOLANA_TO_APTOS_TUNING",
    "APTOS_TO_SOLANA_TUNING",
]
