from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List

RANKS = ("2", "3", "4", "5", "6", "7", "8", "9", "10", "J", "Q", "K", "A")
SUITS = ("H", "D", "C", "S")

SUIT_SYMBOLS = {"H": "♥", "D": "♦", "C": "♣", "S": "♠"}


@dataclass(frozen=True)
class Card:
    rank: str
    suit: str

    def __post_init__(self) -> None:
        if self.rank not in RANKS:
            raise ValueError(f"Invalid rank: {self.rank}")
        if self.suit not in SUITS:
            raise ValueError(f"Invalid suit: {self.suit}")

    @property
    def id(self) -> str:
        return f"{self.rank}{self.suit}"

    @property
    def symbol(self) -> str:
        return f"{self.rank}{SUIT_SYMBOLS[self.suit]}"


# Canonical order: suit by suit, ranks ascending inside each suit.
ALL_CARD_IDS = tuple(f"{rank}{suit}" for suit in SUITS for rank in RANKS)
_CARDS_BY_ID: Dict[str, Card] = {card_id: Card(card_id[:-1], card_id[-1]) for card_id in ALL_CARD_IDS}


def build_deck() -> List[Card]:
    """Return a fresh deck in canonical (unshuffled) order."""
    return [_CARDS_BY_ID[card_id] for card_id in ALL_CARD_IDS]


def is_card_id(value: object) -> bool:
    return isinstance(value, str) and value in _CARDS_BY_ID


def parse_card_id(card_id: str) -> Card:
    if not isinstance(card_id, str) or len(card_id) not in (2, 3):
        raise ValueError(f"Invalid card ID: {card_id}")
    return Card(card_id[:-1], card_id[-1])


def card_ids_to_cards(card_ids: Iterable[str]) -> List[Card]:
    cards = []
    for card_id in card_ids:
        card = _CARDS_BY_ID.get(card_id)
        if card is None:
            raise ValueError(f"Invalid card ID: {card_id}")
        cards.append(card)
    return cards


def cards_to_card_ids(cards: Iterable[Card]) -> List[str]:
    return [card.id for card in cards]


def render_cards(card_ids: Iterable[str]) -> str:
    """Render card ids with suit symbols for logs and terminals."""
    labels = [parse_card_id(card_id).symbol for card_id in card_ids]
    return " ".join(labels) if labels else "--"
