from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple


class Stage(str, Enum):
    WAITING = "waiting"
    PREFLOP = "preflop"
    POSTFLOP = "postflop"
    POSTTURN = "postturn"
    POSTRIVER = "postriver"
    SHOWDOWN = "showdown"
    FINISHED = "finished"


STAGE_ORDER = tuple(Stage)


def stage_rank(stage: Stage) -> int:
    return STAGE_ORDER.index(stage)


class EventType(str, Enum):
    GAME_START = "GAME_START"
    DEAL_FLOP = "DEAL_FLOP"
    DEAL_TURN = "DEAL_TURN"
    DEAL_RIVER = "DEAL_RIVER"
    PLAYER_CHECK = "PLAYER_CHECK"
    PLAYER_RAISE = "PLAYER_RAISE"
    PLAYER_FOLD = "PLAYER_FOLD"
    PLAYER_CALL = "PLAYER_CALL"
    PLAYER_ALL_IN = "PLAYER_ALL_IN"
    ROUND_END = "ROUND_END"
    GAME_END = "GAME_END"


class BettingAction(str, Enum):
    CHECK = "check"
    RAISE = "raise"
    FOLD = "fold"
    CALL = "call"
    ALL_IN = "all-in"


@dataclass(frozen=True)
class PlayerAction:
    pubkey: str
    action: BettingAction
    timestamp: int
    amount: Optional[int] = None

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "pubkey": self.pubkey,
            "action": self.action.value,
            "timestamp": self.timestamp,
        }
        if self.amount is not None:
            payload["amount"] = self.amount
        return payload

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "PlayerAction":
        return cls(
            pubkey=payload["pubkey"],
            action=BettingAction(payload["action"]),
            timestamp=int(payload["timestamp"]),
            amount=payload.get("amount"),
        )


@dataclass(frozen=True)
class GamePlayer:
    pubkey: str
    name: str
    chips: int
    picture: Optional[str] = None
    bet: int = 0
    folded: bool = False
    all_in: bool = False
    cards: Tuple[str, ...] = ()

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "pubkey": self.pubkey,
            "name": self.name,
            "chips": self.chips,
            "bet": self.bet,
            "folded": self.folded,
            "allIn": self.all_in,
            "cards": list(self.cards),
        }
        if self.picture is not None:
            payload["picture"] = self.picture
        return payload

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "GamePlayer":
        return cls(
            pubkey=payload["pubkey"],
            name=payload["name"],
            picture=payload.get("picture"),
            chips=int(payload["chips"]),
            bet=int(payload.get("bet", 0)),
            folded=bool(payload.get("folded", False)),
            all_in=bool(payload.get("allIn", False)),
            cards=tuple(payload.get("cards", ())),
        )


@dataclass(frozen=True)
class CommunityCards:
    flop: Optional[Tuple[str, str, str]] = None
    turn: Optional[str] = None
    river: Optional[str] = None

    def card_ids(self) -> Tuple[str, ...]:
        cards: Tuple[str, ...] = tuple(self.flop or ())
        if self.turn:
            cards += (self.turn,)
        if self.river:
            cards += (self.river,)
        return cards

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {}
        if self.flop is not None:
            payload["flop"] = list(self.flop)
        if self.turn is not None:
            payload["turn"] = self.turn
        if self.river is not None:
            payload["river"] = self.river
        return payload

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "CommunityCards":
        flop = payload.get("flop")
        return cls(
            flop=tuple(flop) if flop else None,  # type: ignore[arg-type]
            turn=payload.get("turn"),
            river=payload.get("river"),
        )


@dataclass(frozen=True)
class GameState:
    """Per-game projection of the event log. Never mutated in place."""

    game_id: str
    stage: Stage
    challenger: GamePlayer
    challenged: GamePlayer
    buy_in: int
    created_at: int
    last_update: int
    current_player: str
    deck_seed: str = ""
    community_cards: CommunityCards = field(default_factory=CommunityCards)
    pot: int = 0
    current_bet: int = 0
    actions: Tuple[PlayerAction, ...] = ()

    @property
    def players(self) -> Tuple[GamePlayer, GamePlayer]:
        return self.challenger, self.challenged

    def player(self, pubkey: str) -> Optional[GamePlayer]:
        for player in self.players:
            if player.pubkey == pubkey:
                return player
        return None

    def to_payload(self) -> Dict[str, Any]:
        return {
            "gameId": self.game_id,
            "stage": self.stage.value,
            "challenger": self.challenger.to_payload(),
            "challenged": self.challenged.to_payload(),
            "deckSeed": self.deck_seed,
            "communityCards": self.community_cards.to_payload(),
            "pot": self.pot,
            "currentBet": self.current_bet,
            "currentPlayer": self.current_player,
            "actions": [action.to_payload() for action in self.actions],
            "buyIn": self.buy_in,
            "createdAt": self.created_at,
            "lastUpdate": self.last_update,
        }

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "GameState":
        return cls(
            game_id=payload["gameId"],
            stage=Stage(payload["stage"]),
            challenger=GamePlayer.from_payload(payload["challenger"]),
            challenged=GamePlayer.from_payload(payload["challenged"]),
            deck_seed=payload.get("deckSeed", ""),
            community_cards=CommunityCards.from_payload(payload.get("communityCards", {})),
            pot=int(payload.get("pot", 0)),
            current_bet=int(payload.get("currentBet", 0)),
            current_player=payload["currentPlayer"],
            actions=tuple(PlayerAction.from_payload(item) for item in payload.get("actions", [])),
            buy_in=int(payload["buyIn"]),
            created_at=int(payload["createdAt"]),
            last_update=int(payload["lastUpdate"]),
        )


@dataclass(frozen=True)
class PlayerInfo:
    """Identity and display data handed over by the lobby."""

    pubkey: str
    name: str
    picture: Optional[str] = None


def create_initial_state(
    game_id: str,
    challenger: PlayerInfo,
    challenged: PlayerInfo,
    buy_in: int,
    now_ms: int,
) -> GameState:
    def seat(info: PlayerInfo) -> GamePlayer:
        return GamePlayer(pubkey=info.pubkey, name=info.name, picture=info.picture, chips=buy_in)

    return GameState(
        game_id=game_id,
        stage=Stage.WAITING,
        challenger=seat(challenger),
        challenged=seat(challenged),
        buy_in=buy_in,
        created_at=now_ms,
        last_update=now_ms,
        current_player=challenger.pubkey,
    )


@dataclass(frozen=True)
class GameEvent:
    """One state transition as published by the dealer.

    ``type`` is kept as a plain string so events from newer peers still decode;
    the reducer ignores types it does not know.
    """

    type: str
    game_id: str
    pubkey: str
    timestamp: int
    data: Dict[str, Any] = field(default_factory=dict, hash=False, compare=True)

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "type": str(self.type.value if isinstance(self.type, Enum) else self.type),
            "gameId": self.game_id,
            "pubkey": self.pubkey,
            "timestamp": self.timestamp,
        }
        if self.data:
            payload["data"] = dict(self.data)
        return payload

    def to_json(self) -> str:
        return json.dumps(self.to_payload())

    def key(self) -> str:
        """Canonical identity used for dedup and as the ordering tie-break."""
        return json.dumps(self.to_payload(), sort_keys=True, separators=(",", ":"))

    @classmethod
    def from_payload(cls, payload: Any) -> "GameEvent":
        if not isinstance(payload, dict):
            raise ValueError("Event payload must be an object")
        event_type = payload.get("type")
        game_id = payload.get("gameId")
        pubkey = payload.get("pubkey")
        timestamp = payload.get("timestamp")
        data = payload.get("data") or {}
        if not isinstance(event_type, str) or not event_type:
            raise ValueError("Event type required")
        if not isinstance(game_id, str) or not game_id:
            raise ValueError("gameId required")
        if not isinstance(pubkey, str):
            raise ValueError("pubkey required")
        if isinstance(timestamp, bool) or not isinstance(timestamp, (int, float)):
            raise ValueError("timestamp must be a number")
        if not isinstance(data, dict):
            raise ValueError("data must be an object")
        return cls(type=event_type, game_id=game_id, pubkey=pubkey, timestamp=int(timestamp), data=dict(data))

    @classmethod
    def from_json(cls, raw: str) -> "GameEvent":
        try:
            payload = json.loads(raw)
        except (TypeError, json.JSONDecodeError) as exc:
            raise ValueError(f"Event content is not JSON: {exc}") from exc
        return cls.from_payload(payload)


def event_sort_key(event: GameEvent) -> Tuple[int, str]:
    return event.timestamp, event.key()
