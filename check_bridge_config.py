#!/usr/bin/env python3
"""Diagnostic script to check the CCTP bridge configuration."""

import os
import sys

from dotenv import load_dotenv

from cctp_bridge import DEFAULT_ENV_FILE, Domain, load_bridge_config
from cctp_bridge.config import (
    APP_BASE_URL_ENV,
    APTOS_MINT_ENDPOINT_ENV,
    APTOS_NODE_ENV,
    ATTESTATION_URL_ENV,
    HTTP_TIMEOUT_ENV,
    MANUAL_MINT_PATH_ENV,
    SOLANA_RPC_ENV,
)


def _mask(var, value):
    if "KEY" in var or "SECRET" in var:
        return f"{value[:8]}...{value[-4:]}" if len(value) > 12 else "***"
    if "URL" in var or "ENDPOINT" in var:
        return value[:40] + "..." if len(value) > 40 else value
    return value


def main():
    print("=" * 60)
    print("CCTP Bridge Configuration Diagnostic")
    print("=" * 60)

    env_path = DEFAULT_ENV_FILE
    if env_path.exists():
        print(f"\n✓ Found .env file: {env_path}")
        load_dotenv(env_path)
    else:
        print(f"\n○ No .env file at {env_path}; using the process environment")

    print("\n" + "=" * 60)
    print("1. Environment Variables Check")
    print("=" * 60)

    required = {
        SOLANA_RPC_ENV: "Solana JSON-RPC endpoint",
        APTOS_MINT_ENDPOINT_ENV: "Relay endpoint that mints on Aptos",
    }
    optional = {
        APTOS_NODE_ENV: "Aptos fullnode REST endpoint",
        ATTESTATION_URL_ENV: "Circle Iris attestation API base",
        APP_BASE_URL_ENV: "Base URL used in manual mint links",
        MANUAL_MINT_PATH_ENV: "Manual mint page path",
        HTTP_TIMEOUT_ENV: "HTTP timeout in seconds",
    }

    issues = []

    print("\n--- Required Variables ---")
    for var, desc in required.items():
        value = os.getenv(var)
        if value:
            print(f"  ✓ {var:30} = {_mask(var, value)}")
        else:
            print(f"  ✗ {var:30} = NOT SET")
            issues.append(f"Missing required variable: {var} ({desc})")

    print("\n--- Optional Variables ---")
    for var, desc in optional.items():
        value = os.getenv(var)
        if value:
            print(f"  ✓ {var:30} = {_mask(var, value)}")
        else:
            print(f"  ○ {var:30} = not set (default used)")

    print("\n" + "=" * 60)
    print("2. Polling Tuning")
    print("=" * 60)

    config, error = load_bridge_config()
    if config is None:
        print(f"\n  ✗ {error}")
    else:
        for domain in (Domain.SOLANA, Domain.APTOS):
            tuning = config.tuning_for(domain)
            print(f"\n  From {domain.label}:")
            print(
                f"    confirmation: {tuning.confirmation_attempts} x {tuning.confirmation_interval}s"
            )
            print(
                f"    attestation:  {tuning.attestation_attempts} attempts, "
                f"{tuning.attestation_initial_delay}s initial, "
                f"{tuning.attestation_max_delay}s max, x{tuning.attestation_growth}"
            )

    print("\n" + "=" * 60)
    print("Summary")
    print("=" * 60)

    if issues:
        print(f"\n⚠️  Found {len(issues)} issue(s) to fix:\n")
        for i, issue in enumerate(issues, 1):
            print(f"  {i}. {issue}")
        return 1

    print("\n✅ All checks passed! Bridge configuration looks good.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
