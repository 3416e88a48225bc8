from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import uuid
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

import websockets

from .models import RelayConfig, RelayError

LOGGER = logging.getLogger("poker_relay")

EventHandler = Callable[[Dict[str, Any]], None]
Connector = Callable[..., Awaitable[Any]]

# RelayConnection speaks NIP-01 over one websocket. RelayPool fans calls out
# to every relay and keeps one relay's failure from affecting the others.


@dataclass
class RelaySubscription:
    sub_id: str
    filters: List[Dict[str, Any]]
    on_event: EventHandler
    on_eose: Optional[Callable[[], None]] = None


class RelayConnection:
    def __init__(
        self,
        url: str,
        *,
        connect: Optional[Connector] = None,
        open_timeout_ms: int = 5_000,
    ) -> None:
        self.url = url
        self.open_timeout_ms = open_timeout_ms
        self._connect = connect or websockets.connect
        self.websocket: Any = None
        self.subscriptions: Dict[str, RelaySubscription] = {}
        self.pending_ok: Dict[str, asyncio.Future] = {}
        self._reader: Optional[asyncio.Task] = None

    @property
    def is_open(self) -> bool:
        return self.websocket is not None and self._reader is not None and not self._reader.done()

    async def open(self) -> None:
        self.websocket = await self._connect(self.url, open_timeout=self.open_timeout_ms / 1000)
        self._reader = asyncio.create_task(self._read_loop())
        LOGGER.info("Connected to relay %s", self.url)

    async def close(self) -> None:
        reader, self._reader = self._reader, None
        websocket, self.websocket = self.websocket, None
        if websocket is not None:
            try:
                await websocket.close()
            except (websockets.ConnectionClosed, OSError) as exc:
                LOGGER.debug("Error closing %s: %s", self.url, exc)
        if reader is not None:
            reader.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await reader
        self._fail_pending(RelayError("CLOSED", f"{self.url} connection closed"))
        self.subscriptions.clear()

    async def send(self, message: List[Any]) -> None:
        if self.websocket is None:
            raise RelayError("NOT_CONNECTED", f"{self.url} is not connected")
        await self.websocket.send(json.dumps(message))

    async def publish(self, event: Dict[str, Any], timeout_ms: int) -> None:
        waiter = asyncio.get_running_loop().create_future()
        self.pending_ok[event["id"]] = waiter
        try:
            await self.send(["EVENT", event])
            accepted, message = await asyncio.wait_for(waiter, timeout=timeout_ms / 1000)
        except asyncio.TimeoutError as exc:
            raise RelayError("TIMEOUT", f"No OK from {self.url} within {timeout_ms}ms") from exc
        finally:
            self.pending_ok.pop(event["id"], None)
        if not accepted:
            raise RelayError("REJECTED", message or "event rejected")

    async def subscribe(
        self,
        sub_id: str,
        filters: List[Dict[str, Any]],
        on_event: EventHandler,
        on_eose: Optional[Callable[[], None]] = None,
    ) -> None:
        self.subscriptions[sub_id] = RelaySubscription(sub_id, filters, on_event, on_eose)
        try:
            await self.send(["REQ", sub_id, *filters])
        except Exception:
            self.subscriptions.pop(sub_id, None)
            raise

    async def unsubscribe(self, sub_id: str) -> None:
        if self.subscriptions.pop(sub_id, None) is None or self.websocket is None:
            return
        try:
            await self.send(["CLOSE", sub_id])
        except (RelayError, websockets.ConnectionClosed, OSError) as exc:
            LOGGER.debug("Could not close %s on %s: %s", sub_id, self.url, exc)

    async def query(self, filters: List[Dict[str, Any]], timeout_ms: int) -> List[Dict[str, Any]]:
        """Stored events matching ``filters``, collected until EOSE."""
        events: List[Dict[str, Any]] = []
        done = asyncio.get_running_loop().create_future()

        def on_eose() -> None:
            if not done.done():
                done.set_result(None)

        sub_id = f"q-{uuid.uuid4().hex[:12]}"
        await self.subscribe(sub_id, filters, events.append, on_eose)
        reader = self._reader
        try:
            waiting = {done} if reader is None else {done, reader}
            finished, _ = await asyncio.wait(waiting, timeout=timeout_ms / 1000, return_when=asyncio.FIRST_COMPLETED)
            if done not in finished:
                if finished:
                    raise RelayError("CLOSED", f"{self.url} closed during history query")
                LOGGER.warning(
                    "Relay %s sent no EOSE within %sms; keeping %s events",
                    self.url,
                    timeout_ms,
                    len(events),
                )
        finally:
            if not done.done():
                done.cancel()
            await self.unsubscribe(sub_id)
        return events

    async def _read_loop(self) -> None:
        try:
            async for raw in self.websocket:
                self._dispatch(raw)
        except websockets.ConnectionClosed as exc:
            LOGGER.warning("Relay %s closed the connection: %s", self.url, exc)
        finally:
            self._fail_pending(RelayError("CLOSED", f"{self.url} connection closed"))

    def _dispatch(self, raw: Any) -> None:
        try:
            message = json.loads(raw)
        except (TypeError, json.JSONDecodeError):
            LOGGER.debug("Ignoring non-JSON frame from %s", self.url)
            return
        if not isinstance(message, list) or not message:
            return
        kind = message[0]
        if kind == "EVENT" and len(message) >= 3:
            sub = self.subscriptions.get(message[1])
            if sub is None or not isinstance(message[2], dict):
                return
            try:
                sub.on_event(message[2])
            except Exception:  # noqa: BLE001
                LOGGER.exception("Handler for %s on %s failed", sub.sub_id, self.url)
        elif kind == "EOSE" and len(message) >= 2:
            sub = self.subscriptions.get(message[1])
            if sub is not None and sub.on_eose is not None:
                sub.on_eose()
        elif kind == "OK" and len(message) >= 3:
            waiter = self.pending_ok.get(message[1])
            if waiter is not None and not waiter.done():
                detail = message[3] if len(message) > 3 else ""
                waiter.set_result((bool(message[2]), detail))
        elif kind == "CLOSED" and len(message) >= 2:
            sub = self.subscriptions.pop(message[1], None)
            LOGGER.warning("Relay %s closed subscription %s: %s", self.url, message[1], message[2:])
            if sub is not None and sub.on_eose is not None:
                sub.on_eose()
        elif kind == "NOTICE":
            LOGGER.info("Relay %s notice: %s", self.url, message[1:])
        else:
            LOGGER.debug("Unhandled %s frame from %s", kind, self.url)

    def _fail_pending(self, exc: Exception) -> None:
        for waiter in self.pending_ok.values():
            if not waiter.done():
                waiter.set_exception(exc)


@dataclass
class PoolSubscription:
    """Handle for one logical subscription spread across every relay."""

    sub_id: str
    on_event: EventHandler
    connections: List[RelayConnection] = field(default_factory=list)
    seen: OrderedDict[str, None] = field(default_factory=OrderedDict)
    max_seen: int = 10_000
    closed: bool = False

    def deliver(self, event: Dict[str, Any]) -> None:
        if self.closed:
            return
        event_id = event.get("id")
        if not isinstance(event_id, str) or event_id in self.seen:
            return
        self.seen[event_id] = None
        # Oldest ids are forgotten first.
        if len(self.seen) > self.max_seen:
            self.seen.popitem(last=False)
        self.on_event(event)

    async def close(self) -> None:
        self.closed = True
        connections, self.connections = self.connections, []
        for conn in connections:
            await conn.unsubscribe(self.sub_id)


class RelayPool:
    """Relay connections with an explicit lifetime: open(), use, close()."""

    def __init__(self, config: Optional[RelayConfig] = None, *, connect: Optional[Connector] = None) -> None:
        self.config = config or RelayConfig()
        self._connect = connect
        self.connections: Dict[str, RelayConnection] = {}

    async def __aenter__(self) -> "RelayPool":
        await self.open()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def open(self) -> None:
        async def _open(url: str) -> RelayConnection:
            conn = RelayConnection(url, connect=self._connect, open_timeout_ms=self.config.open_timeout_ms)
            await conn.open()
            return conn

        urls = [url for url in self.config.relays if url not in self.connections]
        results = await asyncio.gather(*(_open(url) for url in urls), return_exceptions=True)
        for url, result in zip(urls, results):
            if isinstance(result, Exception):
                LOGGER.error("Could not connect to relay %s: %s", url, result)
            else:
                self.connections[url] = result
        if not self.connections:
            LOGGER.error("No relay connections available")

    async def close(self) -> None:
        connections = list(self.connections.values())
        self.connections.clear()
        await asyncio.gather(*(conn.close() for conn in connections), return_exceptions=True)

    def live_connections(self) -> List[RelayConnection]:
        return [conn for conn in self.connections.values() if conn.is_open]

    async def publish(self, event: Dict[str, Any]) -> Dict[str, Optional[str]]:
        """Send ``event`` to every relay; returns url -> None on success or the error text."""
        results: Dict[str, Optional[str]] = {url: "not connected" for url in self.config.relays}
        live = self.live_connections()
        outcomes = await asyncio.gather(
            *(conn.publish(event, self.config.publish_timeout_ms) for conn in live),
            return_exceptions=True,
        )
        for conn, outcome in zip(live, outcomes):
            if isinstance(outcome, Exception):
                results[conn.url] = str(outcome)
            else:
                results[conn.url] = None
        for url, error in results.items():
            if error is None:
                LOGGER.info("Published %s to %s", event.get("id"), url)
            else:
                LOGGER.warning("Failed to publish %s to %s: %s", event.get("id"), url, error)
        return results

    async def query(self, filters: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        live = self.live_connections()
        if not live:
            raise RelayError("NO_RELAYS", "No relay connections available")
        outcomes = await asyncio.gather(
            *(conn.query(filters, self.config.query_timeout_ms) for conn in live),
            return_exceptions=True,
        )
        merged: Dict[str, Dict[str, Any]] = {}
        answered = 0
        for conn, outcome in zip(live, outcomes):
            if isinstance(outcome, Exception):
                LOGGER.warning("History query on %s failed: %s", conn.url, outcome)
                continue
            answered += 1
            for event in outcome:
                event_id = event.get("id")
                if isinstance(event_id, str):
                    merged.setdefault(event_id, event)
        if not answered:
            raise RelayError("HISTORY_UNAVAILABLE", "No relay answered the history query")
        return list(merged.values())

    async def subscribe(self, filters: List[Dict[str, Any]], on_event: EventHandler) -> PoolSubscription:
        subscription = PoolSubscription(sub_id=f"s-{uuid.uuid4().hex[:12]}", on_event=on_event)
        for conn in self.live_connections():
            try:
                await conn.subscribe(subscription.sub_id, filters, subscription.deliver)
            except (RelayError, websockets.ConnectionClosed, OSError) as exc:
                LOGGER.warning("Could not subscribe on %s: %s", conn.url, exc)
            else:
                subscription.connections.append(conn)
        return subscription
