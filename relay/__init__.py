"""Nostr relay plumbing: publishes game events and rebuilds game state from the relay log."""

from .feed import GameDealer, GameEventBus, GameFeed
from .models import RelayConfig, RelayError, SigningUnavailable
from .pool import RelayConnection, RelayPool
from .server import RelayServer
from .signing import DevSigner, Signer

__all__ = [
    "GameDealer",
    "GameEventBus",
    "GameFeed",
    "RelayConfig",
    "RelayError",
    "SigningUnavailable",
    "RelayConnection",
    "RelayPool",
    "RelayServer",
    "DevSigner",
    "Signer",
]
