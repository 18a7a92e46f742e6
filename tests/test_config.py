from cctp_bridge.attestation import IrisAttestationClient
from cctp_bridge.config import load_bridge_config
from cctp_bridge.models import Domain

BASE_ENV = {
    "SOLANA_RPC_URL": "https://rpc.test",
    "APTOS_MINT_ENDPOINT": "https://app.test/api/aptos/mint-cctp",
}


def test_missing_settings_are_reported_together():
    config, error = load_bridge_config(environ={})

    assert config is None
    assert "SOLANA_RPC_URL" in error
    assert "APTOS_MINT_ENDPOINT" in error


def test_defaults_fill_optional_settings():
    config, error = load_bridge_config(environ=BASE_ENV)

    assert error is None
    assert config.aptos_node_url == "https://fullnode.mainnet.aptoslabs.com"
    assert config.attestation_url == "https://iris-api.circle.com/v1"
    assert config.manual_mint_path == "/manual-mint"
    assert config.http_timeout == 30

    forward = config.tuning_for(Domain.SOLANA)
    assert (forward.attestation_attempts, forward.attestation_max_delay, forward.attestation_growth) == (15, 30.0, 1.5)
    reverse = config.tuning_for(Domain.APTOS)
    assert (reverse.attestation_max_delay, reverse.attestation_growth) == (60.0, 2.0)
    assert (reverse.confirmation_attempts, reverse.confirmation_interval) == (30, 2.0)


def test_direction_overrides_and_bad_values():
    env = dict(
        BASE_ENV,
        SOLANA_TO_APTOS_ATTESTATION_GROWTH="2",
        SOLANA_TO_APTOS_ATTESTATION_ATTEMPTS="20",
        APTOS_TO_SOLANA_ATTESTATION_GROWTH="0.5",
        APTOS_TO_SOLANA_CONFIRMATION_ATTEMPTS="many",
        BRIDGE_HTTP_TIMEOUT="-3",
    )

    config, _ = load_bridge_config(environ=env)

    assert config.tuning_for(Domain.SOLANA).attestation_growth == 2.0
    assert config.tuning_for(Domain.SOLANA).attestation_attempts == 20
    assert config.tuning_for(Domain.APTOS).attestation_growth == 2.0
    assert config.tuning_for(Domain.APTOS).confirmation_attempts == 30
    assert config.http_timeout == 30


def test_attestation_url_with_messages_suffix_still_works():
    config, _ = load_bridge_config(
        environ=dict(BASE_ENV, CIRCLE_CCTP_ATTESTATION_URL="https://iris-api.circle.com/v1/messages")
    )
    client = IrisAttestationClient(config.attestation_url)
    assert client.attestation_url(Domain.SOLANA, "sig") == "https://iris-api.circle.com/v1/messages/5/sig"


def test_env_file_is_loaded(tmp_path, monkeypatch):
    for name in ("SOLANA_RPC_URL", "APTOS_MINT_ENDPOINT", "BRIDGE_APP_BASE_URL"):
        monkeypatch.setenv(name, "placeholder")
        monkeypatch.delenv(name)
    env_file = tmp_path / ".env"
    env_file.write_text(
        "SOLANA_RPC_URL=https://rpc.from-file\n"
        "APTOS_MINT_ENDPOINT=https://relay.from-file\n"
        "BRIDGE_APP_BASE_URL=https://app.from-file\n",
        encoding="utf-8",
    )

    config, error = load_bridge_config(env_file=env_file)

    assert error is None
    assert config.solana_rpc_url == "https://rpc.from-file"
    assert config.app_base_url == "https://app.from-file"


def test_attestation_cap_below_initial_delay_is_raised_to_match():
    env = dict(
        BASE_ENV,
        SOLANA_TO_APTOS_ATTESTATION_INITIAL_DELAY="20",
        SOLANA_TO_APTOS_ATTESTATION_MAX_DELAY="5",
    )

    config, _ = load_bridge_config(environ=env)

    forward = config.tuning_for(Domain.SOLANA)
    assert (forward.attestation_initial_delay, forward.attestation_max_delay) == (20.0, 20.0)
    assert config.tuning_for(Domain.APTOS).attestation_max_delay == 60.0
