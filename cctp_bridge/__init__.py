from __future__ import annotations

from .constants import APTOS_DOMAIN_ID, DEFAULT_ENV_FILE, IRIS_API_BASE_URL, SOLANA_DOMAIN_ID
from .attestation import AttestationPoller, IrisAttestationClient, parse_attestation_payload
from .burn import BurnExecutor, parse_usdc_amount
from .chains import AptosChainClient, SolanaChainClient, StaticSignerSessions
from .config import BridgeConfig, DirectionTuning, load_bridge_config
from .confirmation import ConfirmationWaiter
from .errors import BridgeError
from .mint import MintExecutor, RelayMintSubmitter, SignedMintSubmitter
from .models import Domain, RecoveryLink, TransferRequest, TransferStage
from .orchestrator import TransferOrchestrator, TransferResult, start_transfer
from .recovery import build_recovery_url, parse_recovery_url
from .retry import CancellationToken, RetryPolicy, retry_with_backoff
from .status import StatusReporter
