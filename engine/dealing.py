from __future__ import annotations

from typing import List, Sequence, Tuple

from .cards import Card, build_deck, cards_to_card_ids
from .shuffle import seeded_shuffle

# Dealing helpers are pure: they slice and return, never mutate the input.
# The seed is the only thing peers share, so every derivation re-shuffles the
# canonical deck and slices at fixed offsets instead of threading a deck around.

HOLE_CARDS = 2
BURN = 1
STREET_CARDS = {"flop": 3, "turn": 1, "river": 1}
STREETS = ("flop", "turn", "river")


def deal(deck: Sequence[Card], count: int) -> Tuple[List[Card], List[Card]]:
    if len(deck) < count:
        raise ValueError("Not enough cards left in deck")
    return list(deck[:count]), list(deck[count:])


def burn(deck: Sequence[Card]) -> List[Card]:
    _, remaining = deal(deck, BURN)
    return remaining


def deal_hole_cards(deck: Sequence[Card], players: int) -> Tuple[List[List[Card]], List[Card]]:
    hands: List[List[Card]] = []
    remaining = list(deck)
    for _ in range(players):
        cards, remaining = deal(remaining, HOLE_CARDS)
        hands.append(cards)
    return hands, remaining


def deal_flop(deck: Sequence[Card]) -> Tuple[List[Card], List[Card]]:
    if len(deck) < BURN + STREET_CARDS["flop"]:
        raise ValueError("Not enough cards left in deck")
    return deal(burn(deck), STREET_CARDS["flop"])


def deal_turn(deck: Sequence[Card]) -> Tuple[Card, List[Card]]:
    if len(deck) < BURN + STREET_CARDS["turn"]:
        raise ValueError("Not enough cards left in deck")
    cards, remaining = deal(burn(deck), STREET_CARDS["turn"])
    return cards[0], remaining


def deal_river(deck: Sequence[Card]) -> Tuple[Card, List[Card]]:
    if len(deck) < BURN + STREET_CARDS["river"]:
        raise ValueError("Not enough cards left in deck")
    cards, remaining = deal(burn(deck), STREET_CARDS["river"])
    return cards[0], remaining


def street_offset(street: str, players: int = 2) -> int:
    """Deck position where the burn card of ``street`` sits.

    Hole cards take ``[0, 2n)``; each street block is burn + dealt cards, laid
    out back to back: flop ``[2n, 2n+4)``, turn ``[2n+4, 2n+6)``,
    river ``[2n+6, 2n+8)``.
    """
    if street not in STREET_CARDS:
        raise ValueError(f"Unknown street: {street}")
    offset = HOLE_CARDS * players
    for name in STREETS:
        if name == street:
            return offset
        offset += BURN + STREET_CARDS[name]
    raise AssertionError("unreachable")


def shuffled_for(seed: str) -> List[Card]:
    return seeded_shuffle(build_deck(), seed)


def derive_hole_cards(seed: str, players: int = 2) -> List[List[str]]:
    hands, _ = deal_hole_cards(shuffled_for(seed), players)
    return [cards_to_card_ids(hand) for hand in hands]


def derive_flop(seed: str, players: int = 2) -> List[str]:
    deck = shuffled_for(seed)[street_offset("flop", players):]
    flop, _ = deal_flop(deck)
    return cards_to_card_ids(flop)


def derive_turn(seed: str, players: int = 2) -> str:
    deck = shuffled_for(seed)[street_offset("turn", players):]
    turn, _ = deal_turn(deck)
    return turn.id


def derive_river(seed: str, players: int = 2) -> str:
    deck = shuffled_for(seed)[street_offset("river", players):]
    river, _ = deal_river(deck)
    return river.id


def derive_street(seed: str, street: str, players: int = 2) -> List[str]:
    if street == "flop":
        return derive_flop(seed, players)
    if street == "turn":
        return [derive_turn(seed, players)]
    if street == "river":
        return [derive_river(seed, players)]
    raise ValueError(f"Unknown street: {street}")
