#!/usr/bin/env python3
"""Play a few heads-up deals between simulated peers over a local relay.

The script runs the development relay in-process, starts a dealer peer, an
opponent that follows from the beginning, and a spectator that only joins
after the flop (so it has to rebuild the game from history). Once the river
is out every peer's state is compared.

Example:
    python scripts/peer_sim.py --games 3 --relays 2
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import json
import logging
import random
from typing import List

from engine.models import GameState, PlayerInfo, Stage, create_initial_state
from relay.feed import GameDealer, GameEventBus, GameFeed
from relay.models import RelayConfig
from relay.pool import RelayPool
from relay.server import RelayServer
from relay.signing import DevSigner

LOGGER = logging.getLogger("peer_sim")

DEALER = PlayerInfo(pubkey="a" * 64, name="Dealer")
OPPONENT = PlayerInfo(pubkey="b" * 64, name="Opponent")


async def wait_for_stage(feed: GameFeed, stage: Stage, timeout: float) -> None:
    deadline = asyncio.get_running_loop().time() + timeout
    while feed.state.stage != stage:
        if asyncio.get_running_loop().time() > deadline:
            raise RuntimeError(f"{feed.game_id} never reached {stage.value} (stuck at {feed.state.stage.value})")
        await asyncio.sleep(0.05)


async def play_game(urls: List[str], game_id: str, rng: random.Random, args: argparse.Namespace) -> bool:
    config = RelayConfig(relays=urls, query_timeout_ms=2_000)
    initial = create_initial_state(game_id, DEALER, OPPONENT, buy_in=args.buy_in, now_ms=1_700_000_000_000)

    async with RelayPool(config) as dealer_pool, RelayPool(config) as opponent_pool:
        dealer_bus = GameEventBus(dealer_pool, DevSigner(DEALER.pubkey))
        dealer_feed = await dealer_bus.follow(initial)
        opponent_feed = await GameEventBus(opponent_pool).follow(initial, authorized_dealer=DEALER.pubkey)
        dealer = GameDealer(dealer_bus, dealer_feed, DEALER.pubkey)

        feeds = [dealer_feed, opponent_feed]
        spectator_pool = RelayPool(config)
        try:
            await dealer.start_game(seed=f"sim-{rng.getrandbits(48):x}")
            await dealer.deal_flop()
            await wait_for_stage(opponent_feed, Stage.POSTFLOP, args.timeout)

            await spectator_pool.open()
            spectator_feed = await GameEventBus(spectator_pool).follow(initial)
            feeds.append(spectator_feed)
            LOGGER.info("[%s] spectator joined at %s", game_id, spectator_feed.state.stage.value)

            await dealer.deal_turn()
            await dealer.deal_river()
            for feed in feeds:
                await wait_for_stage(feed, Stage.POSTRIVER, args.timeout)
        finally:
            for feed in feeds:
                await feed.close()
            await spectator_pool.close()

    return report(game_id, [feed.state for feed in feeds])


def report(game_id: str, states: List[GameState]) -> bool:
    payloads = [json.dumps(state.to_payload(), sort_keys=True) for state in states]
    converged = len(set(payloads)) == 1
    final = states[0]
    LOGGER.info(
        "[%s] board=%s dealer=%s opponent=%s converged=%s",
        game_id,
        " ".join(final.community_cards.card_ids()),
        " ".join(final.challenger.cards),
        " ".join(final.challenged.cards),
        converged,
    )
    return converged


async def run_simulation(args: argparse.Namespace) -> None:
    servers = [RelayServer() for _ in range(args.relays)]
    urls = [f"ws://{args.host}:{args.port + idx}" for idx in range(args.relays)]
    server_tasks = [
        asyncio.create_task(server.start(args.host, args.port + idx)) for idx, server in enumerate(servers)
    ]
    await asyncio.sleep(0.5)  # give the sockets time to bind

    rng = random.Random(args.seed)
    failures = 0
    try:
        for game in range(args.games):
            if not await play_game(urls, f"sim-game-{game}", rng, args):
                failures += 1
    finally:
        for task in server_tasks:
            task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await asyncio.gather(*server_tasks, return_exceptions=True)

    if failures:
        LOGGER.error("%s of %s games diverged", failures, args.games)
    else:
        LOGGER.info("All %s games converged", args.games)


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Simulate peers replicating a game through local relays")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=7447, help="first relay port; more relays use the next ports")
    parser.add_argument("--relays", type=int, default=2)
    parser.add_argument("--games", type=int, default=3)
    parser.add_argument("--buy-in", type=int, default=10_000)
    parser.add_argument("--timeout", type=float, default=10.0, help="seconds to wait for a peer to catch up")
    parser.add_argument("--seed", type=int, default=42)
    parser.add_argument("--log-level", default="INFO")
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    logging.basicConfig(level=getattr(logging, args.log_level.upper(), logging.INFO))
    try:
        asyncio.run(run_simulation(args))
    except KeyboardInterrupt:
        LOGGER.info("Simulation interrupted; shutting down")


if __name__ == "__main__":
    main()
