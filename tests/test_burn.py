from decimal import Decimal

import pytest

from cctp_bridge.burn import BurnExecutor, build_burn_transaction, parse_usdc_amount
from cctp_bridge.errors import InvalidAmount, SigningRejected, SubmissionFailed, TransferCancelled
from cctp_bridge.models import Domain, TransferRequest

from conftest import APTOS_ADDRESS, SOLANA_ADDRESS, SOLANA_SIGNATURE, FakeChain, FakeSigner, RecordingToken


def _request(amount="5", signer=None):
    return TransferRequest(
        source_domain=Domain.SOLANA,
        destination_domain=Domain.APTOS,
        amount=Decimal(amount),
        source_signer=signer or FakeSigner(Domain.SOLANA, SOLANA_ADDRESS),
        destination_recipient=APTOS_ADDRESS,
        destination_signer=None,
    )


def test_parse_usdc_amount_converts_to_base_units():
    assert parse_usdc_amount("1.5") == (Decimal("1.5"), 1_500_000)
    assert parse_usdc_amount(Decimal("0.000001")) == (Decimal("0.000001"), 1)


def test_parse_usdc_amount_rounds_down_extra_precision():
    _, base_units = parse_usdc_amount("1.2345679")
    assert base_units == 1_234_567


@pytest.mark.parametrize("raw", ["abc", "0", "-1", "0.0000001", "NaN", "Infinity"])
def test_parse_usdc_amount_rejects_unusable_values(raw):
    with pytest.raises(InvalidAmount):
        parse_usdc_amount(raw)


def test_transfer_request_rejects_same_domain():
    with pytest.raises(ValueError):
        TransferRequest(Domain.SOLANA, Domain.SOLANA, Decimal("1"), None, SOLANA_ADDRESS, None)


def test_solana_burn_payload_pads_aptos_recipient():
    tx = build_burn_transaction(Domain.SOLANA, Domain.APTOS, 5_000_000, SOLANA_ADDRESS, APTOS_ADDRESS)

    assert tx.domain is Domain.SOLANA
    assert tx.payload["instruction"] == "deposit_for_burn"
    assert tx.payload["destination_domain"] == 9
    assert tx.payload["mint_recipient"] == "0x" + "7a1c4d5e6f".rjust(64, "0")


def test_aptos_burn_payload_uses_solana_recipient_bytes():
    tx = build_burn_transaction(Domain.APTOS, Domain.SOLANA, 250, APTOS_ADDRESS, SOLANA_ADDRESS)

    amount, domain, recipient, _ = tx.payload["arguments"]
    assert amount == "250"
    assert domain == 5
    assert len(recipient) == 66


def test_submit_burn_broadcasts_once():
    chain = FakeChain(Domain.SOLANA, submit_ids=[SOLANA_SIGNATURE])
    signer = FakeSigner(Domain.SOLANA, SOLANA_ADDRESS)

    receipt = BurnExecutor({Domain.SOLANA: chain}).submit_burn(_request(signer=signer))

    assert receipt.transaction_id == SOLANA_SIGNATURE
    assert receipt.source_domain is Domain.SOLANA
    assert receipt.explorer_url == f"https://solscan.io/tx/{SOLANA_SIGNATURE}"
    assert len(chain.submitted) == 1
    assert signer.signed[0].payload["amount"] == 5_000_000


def test_declined_signature_never_broadcasts():
    chain = FakeChain(Domain.SOLANA, submit_ids=[SOLANA_SIGNATURE])
    signer = FakeSigner(Domain.SOLANA, SOLANA_ADDRESS, errors=[RuntimeError("User rejected the request.")])

    with pytest.raises(SigningRejected):
        BurnExecutor({Domain.SOLANA: chain}).submit_burn(_request(signer=signer))
    assert chain.submitted == []


def test_wallet_crash_surfaces_as_submission_failed():
    chain = FakeChain(Domain.SOLANA, submit_ids=[SOLANA_SIGNATURE])
    signer = FakeSigner(Domain.SOLANA, SOLANA_ADDRESS, errors=[RuntimeError("blockhash not found")])

    with pytest.raises(SubmissionFailed):
        BurnExecutor({Domain.SOLANA: chain}).submit_burn(_request(signer=signer))
    assert chain.submitted == []


def test_invalid_amount_is_rejected_before_signing():
    chain = FakeChain(Domain.SOLANA, submit_ids=[SOLANA_SIGNATURE])
    signer = FakeSigner(Domain.SOLANA, SOLANA_ADDRESS)

    with pytest.raises(InvalidAmount):
        BurnExecutor({Domain.SOLANA: chain}).submit_burn(_request(amount="0", signer=signer))
    assert signer.signed == []


def test_cancel_during_signature_skips_broadcast():
    chain = FakeChain(Domain.SOLANA, submit_ids=[SOLANA_SIGNATURE])
    signer = FakeSigner(Domain.SOLANA, SOLANA_ADDRESS)
    token = RecordingToken()
    token.cancel()

    with pytest.raises(TransferCancelled):
        BurnExecutor({Domain.SOLANA: chain}).submit_burn(_request(signer=signer), cancel_token=token)
    assert len(signer.signed) == 1
    assert chain.submitted == []
