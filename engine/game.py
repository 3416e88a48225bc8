from __future__ import annotations

import logging
import secrets
import time
from dataclasses import replace
from typing import Any, Iterable, List, Optional, Sequence

from .cards import is_card_id
from .dealing import derive_hole_cards, derive_street, street_offset
from .models import (
    EventType,
    GameEvent,
    GameState,
    Stage,
    event_sort_key,
    stage_rank,
)

LOGGER = logging.getLogger("poker_engine")

# The reducer is the only way state changes. Every peer, the dealer included,
# folds the same events through apply_event, so it must stay pure: same
# (state, event) in, same state out, no clocks and no I/O.

PLAYERS = 2

# event type -> (street, stage it applies from, stage it moves to)
DEAL_RULES = {
    EventType.DEAL_FLOP: ("flop", Stage.PREFLOP, Stage.POSTFLOP),
    EventType.DEAL_TURN: ("turn", Stage.POSTFLOP, Stage.POSTTURN),
    EventType.DEAL_RIVER: ("river", Stage.POSTTURN, Stage.POSTRIVER),
}


def apply_event(state: GameState, event: GameEvent) -> GameState:
    if event.game_id != state.game_id:
        LOGGER.warning("Ignoring %s for game %s (local game %s)", event.type, event.game_id, state.game_id)
        return state
    try:
        event_type = EventType(event.type)
    except ValueError:
        LOGGER.debug("Unknown event type %s; state unchanged", event.type)
        return state
    if event_type == EventType.GAME_START:
        return _apply_game_start(state, event)
    if event_type in DEAL_RULES:
        return _apply_deal(state, event_type, event)
    LOGGER.debug("No transition for %s; state unchanged", event_type.value)
    return state


def replay(initial: GameState, events: Iterable[GameEvent]) -> GameState:
    state = initial
    for event in sorted(events, key=event_sort_key):
        state = apply_event(state, event)
    return state


def seat_hole_cards(state: GameState, hands: Sequence[Sequence[str]], seed: str, timestamp: int) -> GameState:
    """Move a waiting game to preflop with the given hands (challenger first)."""
    return replace(
        state,
        deck_seed=seed,
        stage=Stage.PREFLOP,
        challenger=replace(state.challenger, cards=tuple(hands[0])),
        challenged=replace(state.challenged, cards=tuple(hands[1])),
        last_update=timestamp,
    )


def reveal_street(state: GameState, street: str, cards: Sequence[str], stage: Stage, timestamp: int) -> GameState:
    """Put a street on the board and open a fresh betting round."""
    community = state.community_cards
    if street == "flop":
        community = replace(community, flop=tuple(cards))
    elif street == "turn":
        community = replace(community, turn=cards[0])
    else:
        community = replace(community, river=cards[0])
    return replace(
        state,
        stage=stage,
        community_cards=community,
        current_bet=0,
        challenger=replace(state.challenger, bet=0),
        challenged=replace(state.challenged, bet=0),
        last_update=timestamp,
    )


def _apply_game_start(state: GameState, event: GameEvent) -> GameState:
    seed = event.data.get("seed")
    if not isinstance(seed, str) or not seed:
        LOGGER.warning("GAME_START for %s without a seed; dropped", state.game_id)
        return state
    if state.deck_seed:
        if seed != state.deck_seed:
            LOGGER.warning("GAME_START for %s tries to replace the seed; dropped", state.game_id)
        return state
    if state.stage != Stage.WAITING:
        LOGGER.warning("GAME_START for %s while at %s; dropped", state.game_id, state.stage.value)
        return state
    hands = derive_hole_cards(seed, PLAYERS)
    return seat_hole_cards(state, hands, seed, event.timestamp)


def _apply_deal(state: GameState, event_type: EventType, event: GameEvent) -> GameState:
    street, previous, target = DEAL_RULES[event_type]
    cards = _street_cards(event.data, street)
    if cards is None:
        LOGGER.warning("%s for %s has malformed cards %r; dropped", event.type, state.game_id, event.data.get("cards"))
        return state
    if stage_rank(state.stage) >= stage_rank(target):
        LOGGER.debug("%s for %s already applied (stage %s)", event.type, state.game_id, state.stage.value)
        return state
    if state.stage != previous:
        LOGGER.warning(
            "%s for %s out of sequence (stage %s, expected %s); dropped",
            event.type,
            state.game_id,
            state.stage.value,
            previous.value,
        )
        return state
    if state.deck_seed:
        expected = derive_street(state.deck_seed, street, PLAYERS)
        if list(cards) != expected:
            LOGGER.warning("%s for %s does not match the seed (got %s, seed gives %s)", event.type, state.game_id, cards, expected)
    return reveal_street(state, street, cards, target, event.timestamp)


def _street_cards(data: dict, street: str) -> Optional[List[str]]:
    cards: Any = data.get("cards")
    expected = 3 if street == "flop" else 1
    if not isinstance(cards, list) or len(cards) != expected:
        return None
    if not all(is_card_id(card) for card in cards):
        return None
    if len(set(cards)) != len(cards):
        return None
    return list(cards)


# Dealer side ---------------------------------------------------------------


def new_seed(now_ms: Optional[int] = None) -> str:
    now_ms = _now_ms() if now_ms is None else now_ms
    return f"{secrets.token_hex(8)}{_base36(now_ms)}"


def start_game_event(
    state: GameState,
    dealer_pubkey: str,
    seed: Optional[str] = None,
    timestamp: Optional[int] = None,
) -> GameEvent:
    if state.stage != Stage.WAITING or state.deck_seed:
        raise RuntimeError("Game already started")
    timestamp = _next_timestamp(state, timestamp)
    return GameEvent(
        type=EventType.GAME_START.value,
        game_id=state.game_id,
        pubkey=dealer_pubkey,
        timestamp=timestamp,
        data={"seed": seed or new_seed(timestamp), "newStage": Stage.PREFLOP.value},
    )


def deal_flop_event(state: GameState, dealer_pubkey: str, timestamp: Optional[int] = None) -> GameEvent:
    return _deal_event(EventType.DEAL_FLOP, state, dealer_pubkey, timestamp)


def deal_turn_event(state: GameState, dealer_pubkey: str, timestamp: Optional[int] = None) -> GameEvent:
    return _deal_event(EventType.DEAL_TURN, state, dealer_pubkey, timestamp)


def deal_river_event(state: GameState, dealer_pubkey: str, timestamp: Optional[int] = None) -> GameEvent:
    return _deal_event(EventType.DEAL_RIVER, state, dealer_pubkey, timestamp)


def next_deal_event(state: GameState, dealer_pubkey: str, timestamp: Optional[int] = None) -> GameEvent:
    """Whichever event moves the game forward from its current stage."""
    if state.stage == Stage.WAITING:
        return start_game_event(state, dealer_pubkey, timestamp=timestamp)
    for event_type, (_, previous, _) in DEAL_RULES.items():
        if state.stage == previous:
            return _deal_event(event_type, state, dealer_pubkey, timestamp)
    raise RuntimeError(f"Nothing left to deal at stage {state.stage.value}")


def _deal_event(event_type: EventType, state: GameState, dealer_pubkey: str, timestamp: Optional[int]) -> GameEvent:
    street, previous, target = DEAL_RULES[event_type]
    if not state.deck_seed:
        raise RuntimeError("Game not started")
    if state.stage != previous:
        raise RuntimeError(f"Cannot deal the {street} at stage {state.stage.value}")
    cards = derive_street(state.deck_seed, street, PLAYERS)
    LOGGER.debug("Dealing %s for %s from offset %s", street, state.game_id, street_offset(street, PLAYERS))
    return GameEvent(
        type=event_type.value,
        game_id=state.game_id,
        pubkey=dealer_pubkey,
        timestamp=_next_timestamp(state, timestamp),
        data={"cards": cards, "newStage": target.value},
    )


def _next_timestamp(state: GameState, timestamp: Optional[int]) -> int:
    # One dealer's events must never tie or run backwards in the log order.
    timestamp = _now_ms() if timestamp is None else timestamp
    return max(timestamp, state.last_update + 1)


def _now_ms() -> int:
    return int(time.time() * 1000)


def _base36(value: int) -> str:
    digits = "0123456789abcdefghijklmnopqrstuvwxyz"
    if value == 0:
        return "0"
    out = []
    while value:
        value, rem = divmod(value, 36)
        out.append(digits[rem])
    return "".join(reversed(out))
