import argparse
import asyncio
import json
import logging

from engine.cards import render_cards
from engine.models import GameState, PlayerInfo, Stage, create_initial_state

from .feed import GameDealer, GameEventBus
from .models import DEFAULT_RELAYS, RelayConfig
from .pool import RelayPool
from .server import RelayServer
from .signing import DevSigner

logging.basicConfig(level=logging.INFO)
LOGGER = logging.getLogger("poker_relay")


def log_state(state: GameState) -> None:
    board = render_cards(state.community_cards.card_ids())
    LOGGER.info(
        "[game %s] stage=%s board=%s | %s %s | %s %s",
        state.game_id,
        state.stage.value,
        board,
        state.challenger.name,
        render_cards(state.challenger.cards),
        state.challenged.name,
        render_cards(state.challenged.cards),
    )


def initial_state_from_args(args: argparse.Namespace) -> GameState:
    return create_initial_state(
        args.game,
        PlayerInfo(pubkey=args.challenger, name=args.challenger_name),
        PlayerInfo(pubkey=args.challenged, name=args.challenged_name),
        buy_in=args.buy_in,
        now_ms=args.created_at,
    )


def relay_config(args: argparse.Namespace) -> RelayConfig:
    return RelayConfig(relays=list(args.relay or DEFAULT_RELAYS), query_timeout_ms=args.query_timeout)


async def watch(args: argparse.Namespace) -> None:
    async with RelayPool(relay_config(args)) as pool:
        bus = GameEventBus(pool)
        feed = await bus.follow(initial_state_from_args(args), log_state, authorized_dealer=args.dealer)
        try:
            await asyncio.Future()
        finally:
            await feed.close()


async def deal(args: argparse.Namespace) -> None:
    async with RelayPool(relay_config(args)) as pool:
        bus = GameEventBus(pool, DevSigner(args.challenger))
        feed = await bus.follow(initial_state_from_args(args), log_state)
        dealer = GameDealer(bus, feed, args.challenger)
        try:
            for step in range(args.steps):
                if feed.state.stage == Stage.POSTRIVER:
                    LOGGER.info("River is out; nothing left to deal")
                    break
                if step:
                    await asyncio.sleep(args.delay_ms / 1000)
                if feed.state.stage == Stage.WAITING and args.seed:
                    results = await dealer.start_game(seed=args.seed)
                else:
                    results = await dealer.deal_next()
                LOGGER.debug("Publish results: %s", json.dumps(results))
        finally:
            await feed.close()


def add_game_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--relay", action="append", help="Relay URL (repeatable); defaults to public relays")
    parser.add_argument("--game", required=True, help="Game id agreed in the lobby")
    parser.add_argument("--challenger", required=True, help="Challenger (dealer) pubkey")
    parser.add_argument("--challenged", required=True, help="Challenged player pubkey")
    parser.add_argument("--challenger-name", default="Challenger")
    parser.add_argument("--challenged-name", default="Challenged")
    parser.add_argument("--buy-in", type=int, default=10_000)
    parser.add_argument(
        "--created-at",
        type=int,
        default=0,
        help="Game creation time in ms as published by the lobby (must match on every peer)",
    )
    parser.add_argument("--query-timeout", type=int, default=8_000, help="History timeout in milliseconds")


def main() -> None:
    parser = argparse.ArgumentParser(description="Lightning Poker relay tools")
    sub = parser.add_subparsers(dest="command", required=True)

    serve_parser = sub.add_parser("serve", help="Run an in-memory development relay")
    serve_parser.add_argument("--host", default="127.0.0.1")
    serve_parser.add_argument("--port", type=int, default=7447)
    serve_parser.add_argument("--max-events", type=int, default=10_000)

    watch_parser = sub.add_parser("watch", help="Replay a game from the relays and follow it live")
    add_game_arguments(watch_parser)
    watch_parser.add_argument("--dealer", help="Only accept events from this pubkey")

    deal_parser = sub.add_parser("deal", help="Act as dealer against a development relay")
    add_game_arguments(deal_parser)
    deal_parser.add_argument("--seed", help="Deck seed (random when omitted)")
    deal_parser.add_argument("--steps", type=int, default=4, help="How many deal steps to emit")
    deal_parser.add_argument("--delay-ms", type=int, default=1_000, help="Pause between deal steps")

    args = parser.parse_args()
    if args.command == "serve":
        asyncio.run(RelayServer(max_events=args.max_events).start(host=args.host, port=args.port))
    elif args.command == "watch":
        asyncio.run(watch(args))
    else:
        asyncio.run(deal(args))


if __name__ == "__main__":
    main()
