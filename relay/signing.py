from __future__ import annotations

from typing import Any, Dict, Optional, Protocol

from .models import SigningUnavailable
from .nostr import compute_event_id


class Signer(Protocol):
    """Identity collaborator that turns an unsigned event into a signed one."""

    pubkey: str

    async def sign_event(self, event: Dict[str, Any]) -> Dict[str, Any]:
        ...


class DevSigner:
    """Fills in pubkey and id but leaves ``sig`` empty.

    Only the local development relay accepts these events; public relays check
    Schnorr signatures and will reject them.
    """

    def __init__(self, pubkey: str) -> None:
        self.pubkey = pubkey

    async def sign_event(self, event: Dict[str, Any]) -> Dict[str, Any]:
        signed = dict(event)
        signed["pubkey"] = self.pubkey
        signed["id"] = compute_event_id(signed)
        signed["sig"] = ""
        return signed


def require_signer(signer: Optional[Signer]) -> Signer:
    if signer is None:
        raise SigningUnavailable("No signer available; cannot publish game events")
    return signer
