import logging
import random

import pytest

from engine.cards import render_cards
from engine.models import PlayerInfo, Stage
from practice.table import HOUSE, PracticeTable


def make_table(seed: int = 7) -> PracticeTable:
    ticks = iter(range(1_000, 10_000))
    return PracticeTable(
        PlayerInfo(pubkey="me", name="Me"),
        rng=random.Random(seed),
        clock=lambda: next(ticks),
    )


def test_new_hand_seats_both_players_preflop():
    table = make_table()
    state = table.new_hand()
    assert state.stage == Stage.PREFLOP
    assert state.deck_seed == ""
    assert state.challenged.pubkey == HOUSE.pubkey
    assert len(state.challenger.cards) == 2
    assert len(state.challenged.cards) == 2
    assert len(table.deck) == 48


def test_play_out_deals_nine_distinct_cards():
    table = make_table()
    table.new_hand()
    state = table.play_out()
    assert state.stage == Stage.POSTRIVER
    cards = list(state.challenger.cards) + list(state.challenged.cards) + list(state.community_cards.card_ids())
    assert len(cards) == 9
    assert len(set(cards)) == 9
    assert len(table.deck) == 52 - 4 - 8


def test_practice_hands_are_repeatable_with_a_seeded_rng():
    first, second = make_table(3), make_table(3)
    first.new_hand()
    second.new_hand()
    assert first.play_out().community_cards == second.play_out().community_cards


def test_deal_next_requires_a_hand_and_stops_after_river():
    table = make_table()
    with pytest.raises(RuntimeError, match="No practice hand"):
        table.deal_next()
    table.new_hand()
    table.play_out()
    with pytest.raises(RuntimeError, match="Nothing left to deal"):
        table.deal_next()


def test_timestamps_increase_through_the_hand():
    table = make_table()
    stamps = [table.new_hand().last_update]
    for _ in range(3):
        stamps.append(table.deal_next().last_update)
    assert stamps == sorted(set(stamps))
    assert table.hands_played == 1


def test_cli_shows_board_with_suit_symbols(caplog):
    from practice.__main__ import show

    table = make_table()
    table.new_hand()
    state = table.play_out()
    with caplog.at_level(logging.INFO, logger="practice_table"):
        show(state)
    assert render_cards(state.community_cards.card_ids()) in caplog.text
    assert render_cards(state.challenged.cards) in caplog.text
