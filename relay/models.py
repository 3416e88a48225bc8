from __future__ import annotations

from dataclasses import dataclass, field
from typing import List

DEFAULT_RELAYS = (
    "wss://relay.damus.io",
    "wss://nos.lol",
    "wss://relay.nostr.band",
)
GAME_EVENT_KIND = 30001
TOPIC_TAG = "lightning-poker"


@dataclass
class RelayConfig:
    relays: List[str] = field(default_factory=lambda: list(DEFAULT_RELAYS))
    topic: str = TOPIC_TAG
    kind: int = GAME_EVENT_KIND
    open_timeout_ms: int = 5_000
    publish_timeout_ms: int = 5_000
    query_timeout_ms: int = 8_000


class RelayError(Exception):
    def __init__(self, code: str, msg: str) -> None:
        super().__init__(msg)
        self.code = code
        self.msg = msg


class SigningUnavailable(RuntimeError):
    """No signer is attached, so nothing can be published."""
