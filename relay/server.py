from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import websockets

from .nostr import first_tag, is_parameterized_replaceable, matches_any, validate_event

LOGGER = logging.getLogger("relay_server")

# RelayServer is an in-memory NIP-01 relay for local games and tests. It checks
# event ids but not signatures, so DevSigner events are accepted.


@dataclass
class ClientSession:
    websocket: Any
    subscriptions: Dict[str, List[Dict[str, Any]]] = field(default_factory=dict)


class RelayServer:
    def __init__(self, max_events: int = 10_000) -> None:
        self.max_events = max_events
        self.events: Dict[str, Dict[str, Any]] = {}
        self.sessions: Dict[int, ClientSession] = {}
        self.lock = asyncio.Lock()

    async def start(self, host: str = "127.0.0.1", port: int = 7447) -> None:
        async with websockets.serve(self._handle_connection, host, port):
            LOGGER.info("Relay listening on ws://%s:%s", host, port)
            await asyncio.Future()

    async def _handle_connection(self, websocket: Any) -> None:
        LOGGER.info("Client connected (%s open)", len(self.sessions) + 1)
        try:
            async for raw in websocket:
                await self._handle_message(websocket, raw)
        except websockets.ConnectionClosed:
            pass
        finally:
            await self.drop_client(websocket)
            LOGGER.info("Client disconnected")

    async def drop_client(self, websocket: Any) -> None:
        async with self.lock:
            self.sessions.pop(id(websocket), None)

    def _session(self, websocket: Any) -> ClientSession:
        session = self.sessions.get(id(websocket))
        if session is None:
            session = ClientSession(websocket=websocket)
            self.sessions[id(websocket)] = session
        return session

    async def _handle_message(self, websocket: Any, raw: Any) -> None:
        message = self._decode(raw)
        if not isinstance(message, list) or not message or not isinstance(message[0], str):
            await self._send(websocket, ["NOTICE", "error: could not parse message"])
            return
        verb = message[0]
        if verb == "EVENT" and len(message) >= 2:
            await self._handle_event(websocket, message[1])
        elif verb == "REQ" and len(message) >= 2 and isinstance(message[1], str):
            await self._handle_req(websocket, message[1], message[2:])
        elif verb == "CLOSE" and len(message) >= 2:
            async with self.lock:
                self._session(websocket).subscriptions.pop(message[1], None)
        else:
            await self._send(websocket, ["NOTICE", f"error: unsupported message {verb}"])

    async def _handle_event(self, websocket: Any, event: Any) -> None:
        problem = validate_event(event)
        if problem is not None:
            event_id = event.get("id", "") if isinstance(event, dict) else ""
            LOGGER.warning("Rejected event %s: %s", event_id, problem)
            await self._send(websocket, ["OK", event_id, False, problem])
            return

        async with self.lock:
            stored, note = self._store_locked(event)
            targets: List[Tuple[Any, str]] = []
            if stored:
                for session in self.sessions.values():
                    for sub_id, filters in session.subscriptions.items():
                        if matches_any(event, filters):
                            targets.append((session.websocket, sub_id))

        await self._send(websocket, ["OK", event["id"], True, note])
        if targets:
            await asyncio.gather(
                *(self._send(target, ["EVENT", sub_id, event]) for target, sub_id in targets),
                return_exceptions=True,
            )
        LOGGER.debug("Stored %s kind=%s fanout=%s", event["id"], event["kind"], len(targets))

    def _store_locked(self, event: Dict[str, Any]) -> Tuple[bool, str]:
        if event["id"] in self.events:
            return False, "duplicate: already have this event"
        if is_parameterized_replaceable(event["kind"]):
            address = self._address(event)
            for existing_id, existing in list(self.events.items()):
                if existing["kind"] != event["kind"] or self._address(existing) != address:
                    continue
                if existing["created_at"] > event["created_at"]:
                    return False, "duplicate: have a newer version"
                del self.events[existing_id]
        self.events[event["id"]] = event
        self._trim_locked()
        return True, ""

    def _address(self, event: Dict[str, Any]) -> Tuple[str, int, str]:
        return event["pubkey"], event["kind"], first_tag(event, "d") or ""

    def _trim_locked(self) -> None:
        while len(self.events) > self.max_events:
            oldest = min(self.events.values(), key=lambda item: item["created_at"])
            self.events.pop(oldest["id"], None)

    async def _handle_req(self, websocket: Any, sub_id: str, filters: List[Any]) -> None:
        if not filters or not all(isinstance(flt, dict) for flt in filters):
            await self._send(websocket, ["CLOSED", sub_id, "error: filters must be objects"])
            return
        async with self.lock:
            self._session(websocket).subscriptions[sub_id] = filters
            stored = self._query_locked(filters)
        for event in stored:
            await self._send(websocket, ["EVENT", sub_id, event])
        await self._send(websocket, ["EOSE", sub_id])

    def _query_locked(self, filters: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        matched = [event for event in self.events.values() if matches_any(event, filters)]
        matched.sort(key=lambda item: item["created_at"], reverse=True)
        limits = [flt["limit"] for flt in filters if isinstance(flt.get("limit"), int)]
        if limits and len(limits) == len(filters):
            matched = matched[: max(limits)]
        return matched

    async def _send(self, websocket: Any, message: List[Any]) -> None:
        try:
            await websocket.send(json.dumps(message))
        except websockets.ConnectionClosed:
            pass

    def _decode(self, raw: Any) -> Optional[Any]:
        try:
            return json.loads(raw)
        except (TypeError, json.JSONDecodeError):
            return None

