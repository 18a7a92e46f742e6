"""Manual-mint deep links: everything needed to finish a transfer after the burn."""
from __future__ import annotations

from typing import Optional
from urllib.parse import parse_qs, urlencode, urlsplit

from .constants import DEFAULT_MANUAL_MINT_PATH
from .errors import BridgeError
from .models import BurnReceipt, Domain, RecoveryLink


def recovery_link_for(receipt: BurnReceipt, destination_recipient: str) -> RecoveryLink:
    return RecoveryLink(
        burn_transaction_id=receipt.transaction_id,
        source_domain=receipt.source_domain,
        destination_recipient=destination_recipient,
    )


def build_recovery_url(
    link: RecoveryLink, base_url: str = "", manual_mint_path: str = DEFAULT_MANUAL_MINT_PATH
) -> str:
    path = "/" + manual_mint_path.strip("/")
    query = urlencode(
        {
            "signature": link.burn_transaction_id,
            "sourceDomain": int(link.source_domain),
            "finalRecipient": link.destination_recipient,
        }
    )
    return f"{base_url.rstrip('/')}{path}?{query}"


def _single(params: dict, name: str) -> Optional[str]:
    values = params.get(name) or []
    return values[0].strip() if values and values[0].strip() else None


def parse_recovery_url(url: str) -> RecoveryLink:
    params = parse_qs(urlsplit(url).query)
    signature = _single(params, "signature")
    domain_raw = _single(params, "sourceDomain")
    recipient = _single(params, "finalRecipient")
    if not signature:
        raise BridgeError("Recovery link is missing the burn signature.")
    if not recipient:
        raise BridgeError("Recovery link is missing the final recipient.")
    try:
        source_domain = Domain(int(domain_raw)) if domain_raw else None
    except ValueError as exc:
        raise BridgeError(f"Recovery link has an unknown source domain {domain_raw!r}.") from exc
    if source_domain is None:
        raise BridgeError("Recovery link is missing the source domain.")
    return RecoveryLink(
        burn_transaction_id=signature,
        source_domain=source_domain,
        destination_recipient=recipient,
    )
