"""Card model, deterministic dealing and the game-state reducer shared by every peer."""

from .cards import ALL_CARD_IDS, Card, RANKS, SUITS, build_deck, card_ids_to_cards, cards_to_card_ids, parse_card_id
from .dealing import deal, deal_flop, deal_hole_cards, deal_river, deal_turn, street_offset
from .game import apply_event, next_deal_event, replay
from .models import EventType, GameEvent, GamePlayer, GameState, PlayerInfo, Stage, create_initial_state
from .shuffle import seed_hash, seeded_shuffle, shuffle_unseeded

__all__ = [
    "ALL_CARD_IDS",
    "Card",
    "RANKS",
    "SUITS",
    "build_deck",
    "card_ids_to_cards",
    "cards_to_card_ids",
    "parse_card_id",
    "deal",
    "deal_flop",
    "deal_hole_cards",
    "deal_river",
    "deal_turn",
    "street_offset",
    "apply_event",
    "next_deal_event",
    "replay",
    "EventType",
    "GameEvent",
    "GamePlayer",
    "GameState",
    "PlayerInfo",
    "Stage",
    "create_initial_state",
    "seed_hash",
    "seeded_shuffle",
    "shuffle_unseeded",
]
