# Environment keys for the Solana <-> Aptos CCTP bridge.
# Names match the .env used by the dashboard deployment.
from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Tuple

from dotenv import load_dotenv

from .constants import (
    APTOS_TO_SOLANA_TUNING,
    DEFAULT_APTOS_NODE_URL,
    DEFAULT_HTTP_TIMEOUT,
    DEFAULT_MANUAL_MINT_PATH,
    IRIS_API_BASE_URL,
    SOLANA_TO_APTOS_TUNING,
)
from .logging_utils import get_bridge_logger
from .models import Domain

logger = get_bridge_logger("config")

SOLANA_RPC_ENV = "SOLANA_RPC_URL"
APTOS_NODE_ENV = "APTOS_NODE_URL"
ATTESTATION_URL_ENV = "CIRCLE_CCTP_ATTESTATION_URL"
APTOS_MINT_ENDPOINT_ENV = "APTOS_MINT_ENDPOINT"
APP_BASE_URL_ENV = "BRIDGE_APP_BASE_URL"
MANUAL_MINT_PATH_ENV = "BRIDGE_MANUAL_MINT_PATH"
HTTP_TIMEOUT_ENV = "BRIDGE_HTTP_TIMEOUT"

REQUIRED_ENVS = (SOLANA_RPC_ENV, APTOS_MINT_ENDPOINT_ENV)

# Suffixes for per-direction tuning, e.g. SOLANA_TO_APTOS_ATTESTATION_GROWTH
_TUNING_SUFFIXES = (
    "CONFIRMATION_ATTEMPTS",
    "CONFIRMATION_INTERVAL",
    "ATTESTATION_ATTEMPTS",
    "ATTESTATION_INITIAL_DELAY",
    "ATTESTATION_MAX_DELAY",
    "ATTESTATION_GROWTH",
)


@dataclass(frozen=True)
class DirectionTuning:
    confirmation_attempts: int
    confirmation_interval: float
    attestation_attempts: int
    attestation_initial_delay: float
    attestation_max_delay: float
    attestation_growth: float

    @classmethod
    def from_tuple(cls, values: Tuple[int, float, int, float, float, float]) -> "DirectionTuning":
        return cls(*values)


def default_tunings() -> Dict[Domain, DirectionTuning]:
    """Tuning keyed by source domain."""
    return {
        Domain.SOLANA: DirectionTuning.from_tuple(SOLANA_TO_APTOS_TUNING),
        Domain.APTOS: DirectionTuning.from_tuple(APTOS_TO_SOLANA_TUNING),
    }


@dataclass
class BridgeConfig:
    solana_rpc_url: str
    aptos_node_url: str = DEFAULT_APTOS_NODE_URL
    attestation_url: str = IRIS_API_BASE_URL
    aptos_mint_endpoint: str = ""
    app_base_url: str = ""
    manual_mint_path: str = DEFAULT_MANUAL_MINT_PATH
    http_timeout: float = DEFAULT_HTTP_TIMEOUT
    tunings: Dict[Domain, DirectionTuning] = field(default_factory=default_tunings)

    def tuning_for(self, source_domain: Domain) -> DirectionTuning:
        return self.tunings[source_domain]


def _parse_int(name: str, value: Optional[str]) -> Optional[int]:
    if not value:
        return None
    try:
        parsed = int(value, 0)
    except ValueError:
        logger.warning("Ignoring %s=%r: not an integer.", name, value)
        return None
    if parsed <= 0:
        logger.warning("Ignoring %s=%r: must be positive.", name, value)
        return None
    return parsed


def _parse_float(name: str, value: Optional[str]) -> Optional[float]:
    if not value:
        return None
    try:
        parsed = float(value)
    except ValueError:
        logger.warning("Ignoring %s=%r: not a number.", name, value)
        return None
    if parsed <= 0:
        logger.warning("Ignoring %s=%r: must be positive.", name, value)
        return None
    return parsed


def _direction_prefix(source_domain: Domain) -> str:
    destination = Domain.APTOS if source_domain is Domain.SOLANA else Domain.SOLANA
    return f"{source_domain.name}_TO_{destination.name}"


def _load_tuning(env: Mapping[str, str], source_domain: Domain, default: DirectionTuning) -> DirectionTuning:
    prefix = _direction_prefix(source_domain)
    overrides: List[Optional[float]] = []
    for suffix in _TUNING_SUFFIXES:
        name = f"{prefix}_{suffix}"
        parser = _parse_int if suffix.endswith("ATTEMPTS") else _parse_float
        overrides.append(parser(name, env.get(name)))
    growth = overrides[5]
    if growth is not None and growth < 1:
        logger.warning("Ignoring %s_ATTESTATION_GROWTH=%r: must be >= 1.", prefix, growth)
        growth = None
    tuning = DirectionTuning(
        confirmation_attempts=int(overrides[0] or default.confirmation_attempts),
        confirmation_interval=overrides[1] or default.confirmation_interval,
        attestation_attempts=int(overrides[2] or default.attestation_attempts),
        attestation_initial_delay=overrides[3] or default.attestation_initial_delay,
        attestation_max_delay=overrides[4] or default.attestation_max_delay,
        attestation_growth=growth or default.attestation_growth,
    )
    if tuning.attestation_max_delay < tuning.attestation_initial_delay:
        logger.warning(
            "%s_ATTESTATION_MAX_DELAY=%s is below the initial delay %s; raising it to match.",
            prefix,
            tuning.attestation_max_delay,
            tuning.attestation_initial_delay,
        )
        tuning = replace(tuning, attestation_max_delay=tuning.attestation_initial_delay)
    return tuning


def load_bridge_config(
    env_file: Optional[Path] = None, environ: Optional[Mapping[str, str]] = None
) -> Tuple[Optional[BridgeConfig], Optional[str]]:
    """Build a :class:`BridgeConfig` from the environment.

    Returns ``(config, None)`` on success or ``(None, message)`` listing every
    missing setting.
    """

    if environ is None:
        if env_file is not None and Path(env_file).exists():
            load_dotenv(env_file)
        env: Mapping[str, str] = os.environ
    else:
        env = environ

    missing_envs = [name for name in REQUIRED_ENVS if not env.get(name)]
    if missing_envs:
        return None, "Configure the following settings before continuing: " + ", ".join(missing_envs)

    defaults = default_tunings()
    tunings = {domain: _load_tuning(env, domain, tuning) for domain, tuning in defaults.items()}

    return (
        BridgeConfig(
            solana_rpc_url=env[SOLANA_RPC_ENV],
            aptos_node_url=env.get(APTOS_NODE_ENV) or DEFAULT_APTOS_NODE_URL,
            attestation_url=env.get(ATTESTATION_URL_ENV) or IRIS_API_BASE_URL,
            aptos_mint_endpoint=env[APTOS_MINT_ENDPOINT_ENV],
            app_base_url=env.get(APP_BASE_URL_ENV) or "",
            manual_mint_path=env.get(MANUAL_MINT_PATH_ENV) or DEFAULT_MANUAL_MINT_PATH,
            http_timeout=_parse_float(HTTP_TIMEOUT_ENV, env.get(HTTP_TIMEOUT_ENV)) or DEFAULT_HTTP_TIMEOUT,
            tunings=tunings,
        ),
        None,
    )
