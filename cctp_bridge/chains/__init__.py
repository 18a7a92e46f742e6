from __future__ import annotations

from .base import (
    ChainClient,
    HttpChainClient,
    SignedTransaction,
    SignerSessionProvider,
    StaticSignerSessions,
    UnsignedTransaction,
    WalletSigner,
)
from .aptos import AptosChainClient
from .solana import SolanaChainClient

__all__ = [
    "ChainClient",
    "HttpChainClient",
    "SignedTransaction",
    "SignerSessionProvider",
    "StaticSignerSessions",
    "UnsignedTransaction",
    "WalletSigner",
    "AptosChainClient",
    "SolanaChainClient",
]
