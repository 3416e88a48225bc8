import asyncio
import logging

import pytest

from relay.models import RelayError
from relay.nostr import compute_event_id
from relay.pool import PoolSubscription
from relay.server import RelayServer

from .helpers import eventually, make_pool

URL_A = "ws://relay-a"
URL_B = "ws://relay-b"
URL_DOWN = "ws://relay-down"
URL_BROKEN = "ws://relay-broken"


class SilentRelay(RelayServer):
    """Accepts connections and never answers anything."""

    async def _handle_message(self, websocket, raw) -> None:
        return None


def nostr_event(created_at: int, d: str, content: str = "{}") -> dict:
    event = {
        "pubkey": "a" * 64,
        "created_at": created_at,
        "kind": 30001,
        "tags": [["d", d], ["game", "game-1"], ["t", "lightning-poker"]],
        "content": content,
        "sig": "",
    }
    event["id"] = compute_event_id(event)
    return event


def test_publish_isolates_failing_relays():
    async def scenario():
        good = RelayServer()
        pool = make_pool({URL_A: good}, relays=[URL_A, URL_DOWN, URL_BROKEN], broken=[URL_BROKEN])
        async with pool:
            assert [conn.url for conn in pool.live_connections()] == [URL_A, URL_BROKEN]
            event = nostr_event(100, "d1")
            results = await pool.publish(event)
        return good, event, results

    good, event, results = asyncio.run(scenario())

    assert results[URL_A] is None
    assert results[URL_DOWN] == "not connected"
    assert results[URL_BROKEN] is not None
    assert event["id"] in good.events


def test_publish_reports_rejection():
    async def scenario():
        pool = make_pool({URL_A: RelayServer()})
        async with pool:
            event = nostr_event(100, "d1")
            event["content"] = "changed after signing"
            return await pool.publish(event)

    results = asyncio.run(scenario())
    assert "id does not match" in results[URL_A]


def test_publish_times_out_on_silent_relay():
    async def scenario():
        pool = make_pool({URL_A: SilentRelay()}, publish_timeout_ms=50)
        async with pool:
            return await pool.publish(nostr_event(100, "d1"))

    results = asyncio.run(scenario())
    assert "No OK" in results[URL_A]


def test_query_merges_and_dedupes_across_relays():
    shared = nostr_event(100, "shared")
    only_a = nostr_event(101, "only-a")
    only_b = nostr_event(102, "only-b")

    async def scenario():
        relay_a, relay_b = RelayServer(), RelayServer()
        async with make_pool({URL_A: relay_a}) as pool_a, make_pool({URL_B: relay_b}) as pool_b:
            await pool_a.publish(shared)
            await pool_a.publish(only_a)
            await pool_b.publish(shared)
            await pool_b.publish(only_b)
        async with make_pool({URL_A: relay_a, URL_B: relay_b}) as pool:
            return await pool.query([{"kinds": [30001], "#game": ["game-1"]}])

    events = asyncio.run(scenario())
    assert sorted(event["id"] for event in events) == sorted([shared["id"], only_a["id"], only_b["id"]])


def test_query_without_relays_raises():
    async def scenario():
        async with make_pool({}, relays=[URL_DOWN]) as pool:
            await pool.query([{}])

    with pytest.raises(RelayError) as excinfo:
        asyncio.run(scenario())
    assert excinfo.value.code == "NO_RELAYS"


def test_query_raises_when_no_relay_answers():
    async def scenario():
        async with make_pool({}, relays=[URL_BROKEN], broken=[URL_BROKEN]) as pool:
            await pool.query([{}])

    with pytest.raises(RelayError) as excinfo:
        asyncio.run(scenario())
    assert excinfo.value.code == "HISTORY_UNAVAILABLE"


def test_query_keeps_partial_results_on_timeout(caplog):
    async def scenario():
        relay_a = RelayServer()
        async with make_pool({URL_A: relay_a}) as pool_a:
            await pool_a.publish(nostr_event(100, "d1"))
        pool = make_pool({URL_A: relay_a, URL_B: SilentRelay()}, query_timeout_ms=50)
        async with pool:
            return await pool.query([{"#game": ["game-1"]}])

    with caplog.at_level(logging.WARNING, logger="poker_relay"):
        events = asyncio.run(scenario())
    assert len(events) == 1
    assert "no EOSE" in caplog.text


def test_subscription_delivers_each_event_once():
    async def scenario():
        relay_a, relay_b = RelayServer(), RelayServer()
        received = []
        async with make_pool({URL_A: relay_a, URL_B: relay_b}) as pool:
            subscription = await pool.subscribe([{"#game": ["game-1"]}], received.append)
            event = nostr_event(100, "d1")
            await pool.publish(event)
            await eventually(lambda: len(received) == 1)
            await asyncio.sleep(0.05)
            await subscription.close()
            await pool.publish(nostr_event(101, "d2"))
            await asyncio.sleep(0.05)
        return received, event

    received, event = asyncio.run(scenario())
    assert [item["id"] for item in received] == [event["id"]]


def test_close_drops_every_connection():
    async def scenario():
        pool = make_pool({URL_A: RelayServer()})
        await pool.open()
        conn = pool.live_connections()[0]
        await pool.close()
        return pool, conn

    pool, conn = asyncio.run(scenario())
    assert pool.live_connections() == []
    assert not conn.is_open


def test_subscription_dedupe_memory_is_bounded():
    received = []
    subscription = PoolSubscription(sub_id="s-1", on_event=received.append, max_seen=2)
    for event_id in ["e1", "e2", "e1", "e3"]:
        subscription.deliver({"id": event_id})
    assert [item["id"] for item in received] == ["e1", "e2", "e3"]
    assert list(subscription.seen) == ["e2", "e3"]
    # e1 has been forgotten, so a very late copy is delivered again.
    subscription.deliver({"id": "e1"})
    assert [item["id"] for item in received][-1] == "e1"
    assert len(subscription.seen) == 2
