import pytest

from engine.cards import (
    ALL_CARD_IDS,
    Card,
    build_deck,
    card_ids_to_cards,
    cards_to_card_ids,
    is_card_id,
    parse_card_id,
    render_cards,
)


def test_deck_has_52_distinct_cards_in_canonical_order():
    deck = build_deck()
    ids = cards_to_card_ids(deck)
    assert len(ids) == 52
    assert len(set(ids)) == 52
    assert ids[:4] == ["2H", "3H", "4H", "5H"]
    assert ids[12] == "AH"
    assert ids[13] == "2D"
    assert ids[-1] == "AS"
    assert tuple(ids) == ALL_CARD_IDS


def test_build_deck_returns_a_fresh_list():
    first = build_deck()
    first.pop()
    assert len(build_deck()) == 52


def test_card_id_round_trip():
    for card_id in ALL_CARD_IDS:
        assert parse_card_id(card_id).id == card_id
    assert parse_card_id("10D") == Card("10", "D")


def test_card_symbol():
    assert parse_card_id("10D").symbol == "10♦"
    assert parse_card_id("AS").symbol == "A♠"


@pytest.mark.parametrize("bad", ["", "1H", "AX", "10", "11H", "ah", None])
def test_parse_card_id_rejects_garbage(bad):
    with pytest.raises(ValueError, match="Invalid"):
        parse_card_id(bad)
    assert not is_card_id(bad)


def test_card_rejects_invalid_rank_and_suit():
    with pytest.raises(ValueError, match="Invalid rank"):
        Card("T", "H")
    with pytest.raises(ValueError, match="Invalid suit"):
        Card("A", "X")


def test_card_ids_to_cards_validates_every_id():
    assert cards_to_card_ids(card_ids_to_cards(["AS", "KH"])) == ["AS", "KH"]
    with pytest.raises(ValueError, match="Invalid card ID"):
        card_ids_to_cards(["AS", "ZZ"])


def test_render_cards():
    assert render_cards(["AS", "10H"]) == "A♠ 10♥"
    assert render_cards([]) == "--"
