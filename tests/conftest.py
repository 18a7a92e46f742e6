"""Shared fakes for the bridge tests: wallets, chains, HTTP sessions and a
cancellation token that records delays instead of sleeping."""

from pathlib import Path
import sys

import base58
import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from cctp_bridge.attestation import IrisAttestationClient
from cctp_bridge.chains.base import SignedTransaction
from cctp_bridge.config import DirectionTuning
from cctp_bridge.models import ConfirmationStatus, Domain
from cctp_bridge.retry import CancellationToken

SOLANA_ADDRESS = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"
APTOS_ADDRESS = "0x7a1c4d5e6f"
SOLANA_SIGNATURE = base58.b58encode(bytes(range(64))).decode()
APTOS_HASH = "0x" + "ab" * 32
MESSAGE_HEX = "0xab"
ATTESTATION_HEX = "0x" + "cd" * 65

_NO_JSON = object()


class FakeResponse:
    def __init__(self, status_code=200, payload=None):
        self.status_code = status_code
        self._payload = payload

    @property
    def ok(self):
        return self.status_code < 400

    def json(self):
        if self._payload is _NO_JSON:
            raise ValueError("No JSON object could be decoded")
        return self._payload


def no_json_response(status_code=502):
    return FakeResponse(status_code, _NO_JSON)


class FakeSession:
    """Stands in for ``requests.Session``; replays queued responses in order.

    The last queued response repeats once the queue is down to one item.
    """

    def __init__(self, responses=()):
        self.responses = list(responses)
        self.calls = []

    def _next(self, method, url, kwargs):
        self.calls.append((method, url, kwargs))
        if not self.responses:
            raise AssertionError(f"Unexpected {method} {url}")
        item = self.responses[0] if len(self.responses) == 1 else self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    def request(self, method, url, **kwargs):
        return self._next(method, url, kwargs)

    def get(self, url, **kwargs):
        return self._next("GET", url, kwargs)

    def post(self, url, **kwargs):
        return self._next("POST", url, kwargs)


class RecordingToken(CancellationToken):
    """Cancellation token that records every requested delay without sleeping."""

    def __init__(self, cancel_after_waits=None):
        super().__init__()
        self.waits = []
        self.cancel_after_waits = cancel_after_waits

    def wait(self, seconds):
        self.raise_if_cancelled()
        self.waits.append(seconds)
        if self.cancel_after_waits is not None and len(self.waits) >= self.cancel_after_waits:
            self.cancel("Transfer abandoned.")
        self.raise_if_cancelled()


class FakeSigner:
    def __init__(self, domain, address, errors=(), connected=True, reconnect_ok=True):
        self.domain = domain
        self.address = address
        self.errors = list(errors)
        self.connected = connected
        self.reconnect_ok = reconnect_ok
        self.signed = []
        self.reconnects = 0

    def is_connected(self):
        return self.connected

    def reconnect(self):
        self.reconnects += 1
        if self.reconnect_ok:
            self.connected = True
        return self.reconnect_ok

    def sign_transaction(self, transaction):
        if self.errors:
            raise self.errors.pop(0)
        self.signed.append(transaction)
        return SignedTransaction(domain=transaction.domain, raw=f"signed-{transaction.kind}")


class FakeChain:
    """In-memory chain client with scripted submissions and statuses."""

    def __init__(self, domain, submit_ids=(), statuses=None):
        self.domain = domain
        self.submit_ids = list(submit_ids)
        self.statuses = list(statuses or [ConfirmationStatus.confirmed()])
        self.submitted = []
        self.status_calls = []

    def submit_signed_transaction(self, transaction, cancel_token=None):
        self.submitted.append(transaction)
        return self.submit_ids.pop(0)

    def get_transaction_status(self, tx_id):
        self.status_calls.append(tx_id)
        status = self.statuses[0] if len(self.statuses) == 1 else self.statuses.pop(0)
        if isinstance(status, Exception):
            raise status
        return status

    def get_latest_attestation_compatible_identifier(self, tx_id):
        return tx_id


def pending_attestation():
    return FakeResponse(200, {"messages": [{"message": MESSAGE_HEX, "attestation": "PENDING"}]})


def ready_attestation(nonce=42):
    return FakeResponse(
        200,
        {"messages": [{"message": MESSAGE_HEX, "attestation": ATTESTATION_HEX, "eventNonce": nonce}]},
    )


@pytest.fixture
def token():
    return RecordingToken()


@pytest.fixture
def fast_tuning():
    return {
        Domain.SOLANA: DirectionTuning(3, 2.0, 15, 10.0, 30.0, 1.5),
        Domain.APTOS: DirectionTuning(3, 2.0, 15, 10.0, 60.0, 2.0),
    }


@pytest.fixture
def iris_factory():
    def _make(responses):
        session = FakeSession(responses)
        return IrisAttestationClient("https://iris.test/v1", session=session), session

    return _make
