from __future__ import annotations

import asyncio
from typing import Any, Callable, Dict, List, Optional

import websockets

from engine.dealing import derive_flop, derive_river, derive_turn
from engine.models import EventType, GameEvent, GameState, PlayerInfo, create_initial_state
from relay.models import RelayConfig
from relay.pool import RelayPool
from relay.server import RelayServer

GAME_ID = "game-1"
DEALER = "a" * 64
OPPONENT = "b" * 64
SEED = "local-1700000000000"
CREATED_AT = 1_700_000_000_000


def make_state(game_id: str = GAME_ID, *, buy_in: int = 10_000, now_ms: int = CREATED_AT) -> GameState:
    """Fresh waiting game between the default dealer and opponent."""
    return create_initial_state(
        game_id,
        PlayerInfo(pubkey=DEALER, name="Alice"),
        PlayerInfo(pubkey=OPPONENT, name="Bob"),
        buy_in=buy_in,
        now_ms=now_ms,
    )


def make_event(
    event_type: Any,
    timestamp: int,
    data: Optional[Dict[str, Any]] = None,
    *,
    game_id: str = GAME_ID,
    pubkey: str = DEALER,
) -> GameEvent:
    type_value = event_type.value if isinstance(event_type, EventType) else event_type
    return GameEvent(type=type_value, game_id=game_id, pubkey=pubkey, timestamp=timestamp, data=data or {})


def game_events(seed: str = SEED, start: int = CREATED_AT + 1_000, game_id: str = GAME_ID) -> List[GameEvent]:
    """GAME_START plus the three honest deal events for ``seed``, one second apart."""
    return [
        make_event(EventType.GAME_START, start, {"seed": seed, "newStage": "preflop"}, game_id=game_id),
        make_event(
            EventType.DEAL_FLOP,
            start + 1_000,
            {"cards": derive_flop(seed), "newStage": "postflop"},
            game_id=game_id,
        ),
        make_event(
            EventType.DEAL_TURN,
            start + 2_000,
            {"cards": [derive_turn(seed)], "newStage": "postturn"},
            game_id=game_id,
        ),
        make_event(
            EventType.DEAL_RIVER,
            start + 3_000,
            {"cards": [derive_river(seed)], "newStage": "postriver"},
            game_id=game_id,
        ),
    ]


class ServerSideSocket:
    """What the relay server sees of a loopback client."""

    def __init__(self, client: "LoopbackSocket") -> None:
        self.client = client

    async def send(self, message: str) -> None:
        if self.client.closed:
            raise websockets.ConnectionClosed(None, None)
        self.client.inbox.put_nowait(message)


class LoopbackSocket:
    """In-memory client websocket wired straight into a RelayServer."""

    def __init__(self, server: RelayServer) -> None:
        self.server = server
        self.inbox: asyncio.Queue = asyncio.Queue()
        self.peer = ServerSideSocket(self)
        self.sent: List[str] = []
        self.closed = False

    async def send(self, message: str) -> None:
        if self.closed:
            raise websockets.ConnectionClosed(None, None)
        self.sent.append(message)
        await self.server._handle_message(self.peer, message)

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self.inbox.put_nowait(None)
        await self.server.drop_client(self.peer)

    def __aiter__(self) -> "LoopbackSocket":
        return self

    async def __anext__(self) -> str:
        message = await self.inbox.get()
        if message is None:
            raise StopAsyncIteration
        return message


class BrokenSocket:
    """Connects fine, then fails every send and never delivers anything."""

    def __init__(self) -> None:
        self._closed = asyncio.Event()

    async def send(self, message: str) -> None:
        raise websockets.ConnectionClosed(None, None)

    async def close(self) -> None:
        self._closed.set()

    def __aiter__(self) -> "BrokenSocket":
        return self

    async def __anext__(self) -> str:
        await self._closed.wait()
        raise StopAsyncIteration


def loopback_connect(
    servers: Dict[str, RelayServer],
    broken: Optional[List[str]] = None,
) -> Callable[..., Any]:
    """Connector for RelayPool/RelayConnection; unknown urls refuse to connect."""
    broken = broken or []

    async def connect(url: str, **kwargs: Any) -> Any:
        if url in broken:
            return BrokenSocket()
        server = servers.get(url)
        if server is None:
            raise OSError(f"connection refused: {url}")
        return LoopbackSocket(server)

    return connect


def make_pool(servers: Dict[str, RelayServer], relays: Optional[List[str]] = None, **kwargs: Any) -> RelayPool:
    broken = kwargs.pop("broken", None)
    config = RelayConfig(
        relays=list(relays if relays is not None else servers),
        publish_timeout_ms=kwargs.pop("publish_timeout_ms", 1_000),
        query_timeout_ms=kwargs.pop("query_timeout_ms", 1_000),
    )
    return RelayPool(config, connect=loopback_connect(servers, broken))


async def eventually(predicate: Callable[[], bool], timeout: float = 1.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)
