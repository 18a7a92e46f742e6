import pytest

from cctp_bridge.errors import BridgeError
from cctp_bridge.models import BurnReceipt, Domain, RecoveryLink
from cctp_bridge.recovery import build_recovery_url, parse_recovery_url, recovery_link_for
from cctp_bridge.status import STATUS_ERROR, STATUS_PENDING, STATUS_SUCCESS, StatusReporter, TransferEvent

from conftest import APTOS_ADDRESS, SOLANA_SIGNATURE


class _Clock:
    def __init__(self, now=1_700_000_000.0):
        self.now = now

    def __call__(self):
        return self.now


def test_append_then_update_last_rewrites_in_place():
    clock = _Clock()
    reporter = StatusReporter(clock=clock)

    entry_id = reporter.append("Requesting attestation from Circle...", link="https://iris.test", link_text="API")
    clock.now += 2.5
    updated_id = reporter.update_last("Requesting attestation from Circle... (attempt 4/15)", STATUS_PENDING)

    assert updated_id == entry_id
    assert len(reporter) == 1
    entry = reporter.last
    assert entry.message.endswith("(attempt 4/15)")
    assert entry.link == "https://iris.test"
    assert entry.link_text == "API"
    assert entry.duration_ms == 2500


def test_update_last_on_empty_log_appends():
    reporter = StatusReporter(clock=_Clock())
    reporter.update_last("Bridge complete!", STATUS_SUCCESS)

    assert len(reporter) == 1
    assert reporter.last.status == STATUS_SUCCESS


def test_append_with_carried_start_time_reports_duration():
    clock = _Clock()
    reporter = StatusReporter(clock=clock)
    started = clock.now
    clock.now += 1.25

    reporter.append("Burn confirmed on Solana.", STATUS_SUCCESS, start_time=started)
    assert reporter.last.duration_ms == 1250


def test_apply_routes_events():
    reporter = StatusReporter(clock=_Clock())
    reporter.apply(TransferEvent("idle", "Initializing transfer..."))
    reporter.apply(TransferEvent("idle", "Transfer failed.", STATUS_ERROR, replace_last=True))
    reporter.apply(TransferEvent("idle", "Try again.", STATUS_ERROR))

    assert [entry.status for entry in reporter.entries] == [STATUS_ERROR, STATUS_ERROR]


def test_entry_state_uses_ui_keys():
    reporter = StatusReporter(clock=_Clock())
    reporter.append("Mint submitted on Aptos.", STATUS_SUCCESS, link="https://x", link_text="View")

    state = reporter.last.to_state()
    assert state["status"] == "success"
    assert state["linkText"] == "View"
    assert "durationMs" not in state


def test_unknown_status_is_rejected():
    with pytest.raises(ValueError):
        StatusReporter().append("hello", "done")


def test_recovery_url_shape():
    link = recovery_link_for(BurnReceipt(SOLANA_SIGNATURE, Domain.SOLANA), APTOS_ADDRESS)

    url = build_recovery_url(link, "https://app.test/")

    assert url == (
        f"https://app.test/manual-mint?signature={SOLANA_SIGNATURE}&sourceDomain=5&finalRecipient={APTOS_ADDRESS}"
    )
    assert parse_recovery_url(url) == link


def test_recovery_url_without_base_is_relative():
    link = RecoveryLink("0xabc", Domain.APTOS, "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v")
    assert build_recovery_url(link, manual_mint_path="minting-aptos").startswith("/minting-aptos?signature=0xabc")


@pytest.mark.parametrize(
    "url",
    [
        "/manual-mint?sourceDomain=5&finalRecipient=0x1",
        "/manual-mint?signature=abc&sourceDomain=5",
        "/manual-mint?signature=abc&finalRecipient=0x1",
        "/manual-mint?signature=abc&sourceDomain=7&finalRecipient=0x1",
        "/manual-mint?signature=abc&sourceDomain=five&finalRecipient=0x1",
    ],
)
def test_incomplete_recovery_urls_are_rejected(url):
    with pytest.raises(BridgeError):
        parse_recovery_url(url)
