import base64

import pytest
import requests
from web3 import Web3

from cctp_bridge.attestation import (
    AttestationPoller,
    ensure_hex_bytes,
    normalise_iris_base,
    parse_attestation_payload,
)
from cctp_bridge.errors import (
    AttestationProtocolError,
    AttestationServiceError,
    AttestationTimeout,
)
from cctp_bridge.models import AttestationStatus, Domain

from conftest import (
    ATTESTATION_HEX,
    MESSAGE_HEX,
    SOLANA_SIGNATURE,
    FakeResponse,
    no_json_response,
    pending_attestation,
    ready_attestation,
)


def test_iris_base_drops_trailing_messages_segment():
    assert normalise_iris_base("https://iris-api.circle.com/v1/messages/") == "https://iris-api.circle.com/v1"
    assert normalise_iris_base("") == "https://iris-api.circle.com/v1"


def test_attestation_url_uses_domain_and_transaction(iris_factory):
    client, _ = iris_factory([ready_attestation()])
    assert client.attestation_url(Domain.APTOS, " 0xabc ") == "https://iris.test/v1/messages/9/0xabc"


def test_ready_payload_parses_the_same_twice():
    payload = {"messages": [{"message": MESSAGE_HEX, "attestation": ATTESTATION_HEX, "eventNonce": "7"}]}

    first = parse_attestation_payload(Domain.SOLANA, SOLANA_SIGNATURE, payload)
    second = parse_attestation_payload(Domain.SOLANA, SOLANA_SIGNATURE, payload)

    assert first == second
    assert first.is_ready
    assert first.event_nonce == "7"
    assert first.message_hash == Web3.keccak(hexstr=MESSAGE_HEX).hex()


@pytest.mark.parametrize(
    "payload",
    [
        {"messages": []},
        {"messages": [{"message": MESSAGE_HEX, "attestation": "PENDING"}]},
        {"messages": [{"message": MESSAGE_HEX, "attestation": "pending..."}]},
        {"messages": [{"message": MESSAGE_HEX}]},
        {"messages": [{"attestation": ATTESTATION_HEX}]},
    ],
)
def test_pending_shapes_never_leak_sentinels(payload):
    record = parse_attestation_payload(Domain.SOLANA, SOLANA_SIGNATURE, payload)

    assert record.status is AttestationStatus.PENDING
    assert not record.is_ready
    assert record.attestation == ""
    assert record.message_hash is None


def test_base64_fields_are_normalised_to_hex():
    payload = {
        "messages": [
            {
                "message": base64.b64encode(b"\x01\x02").decode(),
                "attestation": base64.b64encode(b"\xff" * 4).decode(),
            }
        ]
    }
    record = parse_attestation_payload(Domain.APTOS, "0x1", payload)
    assert record.message == "0x0102"
    assert record.attestation == "0xffffffff"


def test_undecodable_ready_attestation_is_a_protocol_error():
    payload = {"messages": [{"message": MESSAGE_HEX, "attestation": "not-hex!!"}]}
    with pytest.raises(AttestationProtocolError):
        parse_attestation_payload(Domain.SOLANA, SOLANA_SIGNATURE, payload)


def test_odd_length_hex_is_rejected():
    with pytest.raises(AttestationProtocolError):
        ensure_hex_bytes("0xabc", "message")


def test_body_without_messages_list_is_a_service_error():
    with pytest.raises(AttestationServiceError):
        parse_attestation_payload(Domain.SOLANA, SOLANA_SIGNATURE, {"messages": "nope"})
    with pytest.raises(AttestationServiceError):
        parse_attestation_payload(Domain.SOLANA, SOLANA_SIGNATURE, ["not", "a", "dict"])


def test_fetch_maps_http_outcomes(iris_factory):
    client, _ = iris_factory([FakeResponse(404, {"error": "Message hash not found"})])
    assert client.fetch_attestation(Domain.SOLANA, SOLANA_SIGNATURE).status is AttestationStatus.NOT_FOUND

    client, _ = iris_factory([FakeResponse(500, {})])
    with pytest.raises(AttestationServiceError) as excinfo:
        client.fetch_attestation(Domain.SOLANA, SOLANA_SIGNATURE)
    assert excinfo.value.status_code == 500

    client, _ = iris_factory([no_json_response(200)])
    with pytest.raises(AttestationServiceError):
        client.fetch_attestation(Domain.SOLANA, SOLANA_SIGNATURE)

    client, _ = iris_factory([requests.ConnectionError("connection reset")])
    with pytest.raises(AttestationServiceError):
        client.fetch_attestation(Domain.SOLANA, SOLANA_SIGNATURE)


def test_poller_returns_ready_after_three_pending_responses(iris_factory, token):
    client, session = iris_factory([pending_attestation(), pending_attestation(), pending_attestation(), ready_attestation()])

    record = AttestationPoller(client).poll_attestation(Domain.SOLANA, SOLANA_SIGNATURE, cancel_token=token)

    assert record.is_ready
    assert len(session.calls) == 4
    initial, *between = token.waits
    assert initial == 10.0
    assert between == [10.0, 15.0, 22.5]
    assert between[2] > between[1] > between[0]


def test_poller_reports_attempt_progress(iris_factory, token):
    client, _ = iris_factory([pending_attestation(), ready_attestation()])
    seen = []

    AttestationPoller(client).poll_attestation(
        Domain.APTOS,
        "0xabc",
        cancel_token=token,
        on_attempt=lambda attempt, total, note: seen.append((attempt, total, note)),
    )

    assert seen[0] == (1, 15, None)
    assert seen[1][:2] == (2, 15)
    assert "pending" in seen[1][2]


def test_poller_times_out_after_budget(iris_factory, token):
    client, session = iris_factory([pending_attestation()])

    with pytest.raises(AttestationTimeout):
        AttestationPoller(client).poll_attestation(Domain.SOLANA, SOLANA_SIGNATURE, cancel_token=token)

    assert len(session.calls) == 15
    assert all(delay <= 30.0 for delay in token.waits)
    assert token.waits == sorted(token.waits)


def test_poller_treats_not_found_like_pending(iris_factory, token):
    client, session = iris_factory([FakeResponse(404, {}), ready_attestation()])

    record = AttestationPoller(client).poll_attestation(Domain.SOLANA, SOLANA_SIGNATURE, cancel_token=token)

    assert record.is_ready
    assert len(session.calls) == 2


def test_poller_retries_service_errors_before_giving_up(iris_factory, token):
    client, session = iris_factory([FakeResponse(502, {}), ready_attestation()])
    assert AttestationPoller(client).poll_attestation(Domain.SOLANA, SOLANA_SIGNATURE, cancel_token=token).is_ready

    client, session = iris_factory([FakeResponse(503, {})])
    with pytest.raises(AttestationServiceError):
        AttestationPoller(client).poll_attestation(
            Domain.SOLANA, SOLANA_SIGNATURE, max_attempts=3, cancel_token=token
        )
    assert len(session.calls) == 3


def test_poller_stops_on_protocol_error(iris_factory, token):
    bad = FakeResponse(200, {"messages": [{"message": MESSAGE_HEX, "attestation": "not-hex!!"}]})
    client, session = iris_factory([bad, ready_attestation()])

    with pytest.raises(AttestationProtocolError):
        AttestationPoller(client).poll_attestation(Domain.SOLANA, SOLANA_SIGNATURE, cancel_token=token)
    assert len(session.calls) == 1
