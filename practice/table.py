from __future__ import annotations

import logging
import random
import time
import uuid
from typing import Callable, List, Optional

from engine.cards import Card, build_deck, cards_to_card_ids
from engine.dealing import deal_flop, deal_hole_cards, deal_river, deal_turn
from engine.game import DEAL_RULES, apply_event, seat_hole_cards
from engine.models import EventType, GameEvent, GameState, PlayerInfo, Stage, create_initial_state
from engine.shuffle import shuffle_unseeded

LOGGER = logging.getLogger("practice_table")

HOUSE = PlayerInfo(pubkey="practice-house", name="House")

# Practice hands never touch a relay. The deck is shuffled once per hand with
# the non-seeded shuffle and dealt continuously; the board still goes through
# the shared reducer so the resulting state looks exactly like a networked one.


class PracticeTable:
    def __init__(
        self,
        player: PlayerInfo,
        opponent: Optional[PlayerInfo] = None,
        *,
        buy_in: int = 10_000,
        rng: Optional[random.Random] = None,
        clock: Optional[Callable[[], int]] = None,
    ) -> None:
        self.player = player
        self.opponent = opponent or HOUSE
        self.buy_in = buy_in
        self.rng = rng
        self.clock = clock or (lambda: int(time.time() * 1000))
        self.deck: List[Card] = []
        self.state: Optional[GameState] = None
        self.hands_played = 0

    def new_hand(self) -> GameState:
        now = self.clock()
        game_id = f"practice-{uuid.uuid4().hex[:8]}"
        state = create_initial_state(game_id, self.player, self.opponent, self.buy_in, now)
        deck = shuffle_unseeded(build_deck(), self.rng)
        hands, self.deck = deal_hole_cards(deck, 2)
        # Practice decks have no seed, so the reducer skips the seed cross-check.
        self.state = seat_hole_cards(state, [cards_to_card_ids(hand) for hand in hands], "", self._timestamp(state))
        self.hands_played += 1
        LOGGER.info("Practice hand %s (%s) dealt", self.hands_played, game_id)
        return self.state

    def deal_next(self) -> GameState:
        state = self._require_state()
        for event_type, (street, previous, _) in DEAL_RULES.items():
            if state.stage == previous:
                return self._reveal(event_type, street)
        raise RuntimeError(f"Nothing left to deal at stage {state.stage.value}")

    def play_out(self) -> GameState:
        """Deal every remaining street of the current hand."""
        state = self._require_state()
        while state.stage != Stage.POSTRIVER:
            state = self.deal_next()
        return state

    def _reveal(self, event_type: EventType, street: str) -> GameState:
        state = self._require_state()
        if street == "flop":
            cards, self.deck = deal_flop(self.deck)
            card_ids = cards_to_card_ids(cards)
        else:
            dealer = deal_turn if street == "turn" else deal_river
            card, self.deck = dealer(self.deck)
            card_ids = [card.id]
        event = GameEvent(
            type=event_type.value,
            game_id=state.game_id,
            pubkey=self.player.pubkey,
            timestamp=self._timestamp(state),
            data={"cards": card_ids},
        )
        self.state = apply_event(state, event)
        LOGGER.debug("Practice %s: %s", street, card_ids)
        return self.state

    def _require_state(self) -> GameState:
        if self.state is None:
            raise RuntimeError("No practice hand in progress")
        return self.state

    def _timestamp(self, state: GameState) -> int:
        return max(self.clock(), state.last_update + 1)
