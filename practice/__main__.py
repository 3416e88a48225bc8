import argparse
import logging
import random

from engine.cards import render_cards
from engine.models import GameState, PlayerInfo, Stage

from .table import PracticeTable

logging.basicConfig(level=logging.INFO)
LOGGER = logging.getLogger("practice_table")


def show(state: GameState) -> None:
    LOGGER.info(
        "%-9s board: %-16s you: %-8s house: %s",
        state.stage.value,
        render_cards(state.community_cards.card_ids()),
        render_cards(state.challenger.cards),
        render_cards(state.challenged.cards) if state.stage == Stage.POSTRIVER else "?? ??",
    )


def main() -> None:
    parser = argparse.ArgumentParser(description="Deal practice hands locally")
    parser.add_argument("--name", default="Player")
    parser.add_argument("--hands", type=int, default=1)
    parser.add_argument("--buy-in", type=int, default=10_000)
    parser.add_argument("--rng-seed", type=int, help="Seed a local RNG for repeatable hands")
    args = parser.parse_args()

    rng = random.Random(args.rng_seed) if args.rng_seed is not None else None
    table = PracticeTable(PlayerInfo(pubkey="practice-player", name=args.name), buy_in=args.buy_in, rng=rng)
    for _ in range(args.hands):
        show(table.new_hand())
        while table.state.stage != Stage.POSTRIVER:
            show(table.deal_next())


if __name__ == "__main__":
    main()
