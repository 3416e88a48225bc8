from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

from engine.game import (
    apply_event,
    deal_flop_event,
    deal_river_event,
    deal_turn_event,
    next_deal_event,
    replay,
    start_game_event,
)
from engine.models import GameEvent, GameState, event_sort_key

from .models import RelayConfig
from .nostr import first_tag
from .pool import PoolSubscription, RelayPool
from .signing import Signer, require_signer

LOGGER = logging.getLogger("poker_feed")

StateListener = Callable[[GameState], None]

# GameEventBus maps game events onto relay events and back. GameFeed keeps one
# peer's projection of one game: history first, then live events, always
# through the same reducer. GameDealer is the only thing that emits events.


class GameEventBus:
    def __init__(self, pool: RelayPool, signer: Optional[Signer] = None) -> None:
        self.pool = pool
        self.signer = signer

    @property
    def config(self) -> RelayConfig:
        return self.pool.config

    def filters(self, game_id: str) -> List[Dict[str, Any]]:
        return [
            {
                "kinds": [self.config.kind],
                "#game": [game_id],
                "#t": [self.config.topic],
            }
        ]

    def to_nostr(self, event: GameEvent) -> Dict[str, Any]:
        payload = event.to_payload()
        event_type = payload["type"]
        return {
            "kind": self.config.kind,
            "created_at": event.timestamp // 1000,
            "tags": [
                ["d", f"{event.game_id}:{event_type}:{event.timestamp}"],
                ["game", event.game_id],
                ["event_type", event_type],
                ["t", self.config.topic],
            ],
            "content": event.to_json(),
        }

    async def sign(self, event: GameEvent) -> Dict[str, Any]:
        signer = require_signer(self.signer)
        return await signer.sign_event(self.to_nostr(event))

    async def publish(self, event: GameEvent) -> Dict[str, Optional[str]]:
        return await self.publish_signed(await self.sign(event))

    async def publish_signed(self, signed: Dict[str, Any]) -> Dict[str, Optional[str]]:
        LOGGER.info("Publishing %s for game %s", first_tag(signed, "event_type"), first_tag(signed, "game"))
        return await self.pool.publish(signed)

    def decode(self, raw: Dict[str, Any], game_id: str) -> Optional[GameEvent]:
        """Relay event -> GameEvent, or None when it cannot belong to ``game_id``."""
        content = raw.get("content")
        if not isinstance(content, str):
            LOGGER.warning("Dropping relay event %s without text content", raw.get("id"))
            return None
        try:
            event = GameEvent.from_json(content)
        except ValueError as exc:
            LOGGER.warning("Dropping malformed game event %s: %s", raw.get("id"), exc)
            return None
        if event.game_id != game_id:
            LOGGER.warning("Dropping event %s for game %s (expected %s)", raw.get("id"), event.game_id, game_id)
            return None
        # The content names its sender; only the relay-level signer is checked by relays.
        signer = raw.get("pubkey")
        if signer is not None and signer != event.pubkey:
            LOGGER.warning("Dropping event %s: signed by %s but claims %s", raw.get("id"), signer, event.pubkey)
            return None
        return event

    async def history(self, game_id: str) -> List[GameEvent]:
        raw_events = await self.pool.query(self.filters(game_id))
        events = [event for event in (self.decode(raw, game_id) for raw in raw_events) if event is not None]
        events.sort(key=event_sort_key)
        LOGGER.info("Fetched %s historical events for %s", len(events), game_id)
        return events

    async def follow(
        self,
        initial_state: GameState,
        on_state: Optional[StateListener] = None,
        *,
        authorized_dealer: Optional[str] = None,
    ) -> "GameFeed":
        feed = GameFeed(self, initial_state, on_state, authorized_dealer=authorized_dealer)
        await feed.start()
        return feed


class GameFeed:
    """Event-sourced view of one game.

    Live events that arrive while history is still loading are buffered and
    applied after the replay, in timestamp order. Duplicates are dropped by
    identity. An event older than the newest applied one causes a full
    re-projection from the log, so local state is always replay(log).
    """

    def __init__(
        self,
        bus: GameEventBus,
        initial_state: GameState,
        on_state: Optional[StateListener] = None,
        *,
        authorized_dealer: Optional[str] = None,
    ) -> None:
        self.bus = bus
        self.game_id = initial_state.game_id
        self.initial_state = initial_state
        self.state = initial_state
        self.on_state = on_state
        self.authorized_dealer = authorized_dealer
        self.log: Dict[str, GameEvent] = {}
        self.history_loaded = False
        self.closed = False
        self._buffer: List[GameEvent] = []
        self._last_applied: Optional[Tuple[int, str]] = None
        self._subscription: Optional[PoolSubscription] = None

    async def start(self) -> None:
        filters = self.bus.filters(self.game_id)
        # Subscribe first so nothing published during the history fetch is lost;
        # those events sit in the buffer until the replay is done.
        self._subscription = await self.bus.pool.subscribe(filters, self._on_relay_event)
        try:
            history = await self.bus.history(self.game_id)
        except Exception:
            await self.close()
            raise
        for event in history:
            if self._accepts(event):
                self.log.setdefault(event.key(), event)
        self._rebuild()
        LOGGER.info("Replayed %s events for %s; stage=%s", len(self.log), self.game_id, self.state.stage.value)

        self.history_loaded = True
        buffered, self._buffer = self._buffer, []
        for event in sorted(buffered, key=event_sort_key):
            self.absorb(event)
        self._notify()

    async def close(self) -> None:
        self.closed = True
        self._buffer.clear()
        subscription, self._subscription = self._subscription, None
        if subscription is not None:
            await subscription.close()

    @property
    def events(self) -> List[GameEvent]:
        return sorted(self.log.values(), key=event_sort_key)

    def absorb(self, event: GameEvent) -> bool:
        """Add one event to the log; returns False for duplicates and rejects."""
        if self.closed or not self._accepts(event):
            return False
        key = event.key()
        if key in self.log:
            LOGGER.debug("Duplicate %s for %s ignored", event.type, self.game_id)
            return False
        self.log[key] = event
        sort_key = event_sort_key(event)
        if self._last_applied is None or sort_key > self._last_applied:
            self.state = apply_event(self.state, event)
            self._last_applied = sort_key
        else:
            LOGGER.info("Late %s for %s; rebuilding from %s events", event.type, self.game_id, len(self.log))
            self._rebuild()
        if self.history_loaded:
            self._notify()
        return True

    def _on_relay_event(self, raw: Dict[str, Any]) -> None:
        if self.closed:
            return
        event = self.bus.decode(raw, self.game_id)
        if event is None or not self._accepts(event):
            return
        if not self.history_loaded:
            self._buffer.append(event)
            return
        self.absorb(event)

    def _accepts(self, event: GameEvent) -> bool:
        if self.authorized_dealer is not None and event.pubkey != self.authorized_dealer:
            LOGGER.warning("Dropping %s for %s from unauthorized %s", event.type, self.game_id, event.pubkey)
            return False
        return True

    def _rebuild(self) -> None:
        events = self.events
        self.state = replay(self.initial_state, events)
        self._last_applied = event_sort_key(events[-1]) if events else None

    def _notify(self) -> None:
        if self.on_state is None:
            return
        try:
            self.on_state(self.state)
        except Exception:  # noqa: BLE001
            LOGGER.exception("State listener failed for %s", self.game_id)


class GameDealer:
    """Emits game-advancing events for the challenger.

    The event is signed first, so a missing signer fails before anything
    changes. It is then absorbed into the dealer's own feed and published; if
    every relay rejects it the local projection is ahead of the network and
    the caller sees that in the returned per-relay results.
    """

    def __init__(self, bus: GameEventBus, feed: GameFeed, pubkey: str) -> None:
        self.bus = bus
        self.feed = feed
        self.pubkey = pubkey

    @property
    def state(self) -> GameState:
        return self.feed.state

    async def start_game(self, seed: Optional[str] = None) -> Dict[str, Optional[str]]:
        return await self._emit(start_game_event(self.state, self.pubkey, seed=seed))

    async def deal_flop(self) -> Dict[str, Optional[str]]:
        return await self._emit(deal_flop_event(self.state, self.pubkey))

    async def deal_turn(self) -> Dict[str, Optional[str]]:
        return await self._emit(deal_turn_event(self.state, self.pubkey))

    async def deal_river(self) -> Dict[str, Optional[str]]:
        return await self._emit(deal_river_event(self.state, self.pubkey))

    async def deal_next(self) -> Dict[str, Optional[str]]:
        return await self._emit(next_deal_event(self.state, self.pubkey))

    async def _emit(self, event: GameEvent) -> Dict[str, Optional[str]]:
        signed = await self.bus.sign(event)
        self.feed.absorb(event)
        results = await self.bus.publish_signed(signed)
        if all(error is not None for error in results.values()):
            LOGGER.error("%s for %s reached no relay; local state is ahead of the log", event.type, event.game_id)
        return results
