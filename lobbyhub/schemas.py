"""Pydantic data schemas used across the lobby service.

This module centralises all models so that other packages can import
from a single location instead of sprinkling the definitions across
multiple files. Runtime records (``Player``, ``Lobby``) use snake_case
field names; everything that travels over the wire inherits from
``WireModel`` and is (de)serialised with camelCase aliases.
"""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

# -----------------------------
# Runtime records
# -----------------------------


class Player(BaseModel):
    """A member of one lobby. Outlives the connection that created it."""

    id: str
    username: str
    avatar_id: str = ""
    ready: bool = False
    # Assigned by the registry on first join; lowest value inherits the host role.
    join_order: int = 0


class Lobby(BaseModel):
    id: str
    game_id: str
    game_name: str = ""
    host_id: str
    max_players: int
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    players: Dict[str, Player] = Field(default_factory=dict)

    def ordered_players(self) -> List[Player]:
        return sorted(self.players.values(), key=lambda p: p.join_order)

    def to_state(self) -> "LobbyState":
        return LobbyState(
            lobby_id=self.id,
            game_name=self.game_name,
            max_players=self.max_players,
            host_id=self.host_id,
            game_id=self.game_id,
            players=[
                PlayerInfo(
                    id=p.id,
                    username=p.username,
                    avatar_id=p.avatar_id,
                    ready=p.ready,
                    is_host=p.id == self.host_id,
                )
                for p in self.ordered_players()
            ],
        )

    def to_summary(self) -> "LobbySummary":
        host = self.players.get(self.host_id)
        return LobbySummary(
            lobby_id=self.id,
            game_name=self.game_name,
            host_id=self.host_id,
            host_name=host.username if host else "Unknown",
            player_count=len(self.players),
            max_players=self.max_players,
            is_full=len(self.players) >= self.max_players,
        )


# -----------------------------
# Wire format
# -----------------------------


class WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def dump(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


class MessageKind(str, Enum):
    """Inbound message kinds understood by the router."""

    CREATE_LOBBY = "create_lobby"
    JOIN_LOBBY = "join_lobby"
    LEAVE_LOBBY = "leave_lobby"
    TOGGLE_READY = "toggle_ready"
    START_GAME = "start_game"
    REORDER_PLAYERS = "reorder_players"
    LIST_LOBBIES = "list_lobbies"


class Envelope(BaseModel):
    """``{"type": ..., "payload": {...}}`` as received from a client."""

    type: str
    payload: Optional[Dict[str, Any]] = None


# ---- Inbound payloads ---- #


class CreateLobbyPayload(WireModel):
    game_name: str = ""
    max_players: int


class JoinLobbyPayload(WireModel):
    lobby_id: str


class ReorderPlayersPayload(WireModel):
    player_order: List[str]


# ---- Outbound payloads ---- #


class LobbyCreatedPayload(WireModel):
    lobby_id: str
    game_name: str
    max_players: int
    is_host: bool = True


class PlayerJoinedPayload(WireModel):
    user_id: str
    username: str
    avatar_id: str
    is_host: bool
    ready: bool


class PlayerLeftPayload(WireModel):
    user_id: str


class HostChangedPayload(WireModel):
    new_host_id: str


class ReadyChangedPayload(WireModel):
    user_id: str
    ready: bool


class GameStartingPayload(WireModel):
    lobby_id: str
    game_id: str


class LobbyClosedPayload(WireModel):
    lobby_id: str


class ErrorPayload(WireModel):
    message: str


class KickedPayload(WireModel):
    reason: str


class PlayerInfo(WireModel):
    id: str
    username: str
    avatar_id: str
    ready: bool
    is_host: bool


class LobbyState(WireModel):
    lobby_id: str
    game_name: str
    max_players: int
    host_id: str
    game_id: str
    players: List[PlayerInfo]


class LobbyListPayload(WireModel):
    lobbies: List[LobbyState]


# ------ REST ------ #


class LobbySummary(WireModel):
    lobby_id: str
    game_name: str
    host_id: str
    host_name: str
    player_count: int
    max_players: int
    is_full: bool


def envelope(kind: str, payload: WireModel) -> Dict[str, Any]:
    """Wrap *payload* into the outbound ``{"type", "payload"}`` shape."""
    return {"type": kind, "payload": payload.dump()}


__all__ = [
    # runtime
    "Player",
    "Lobby",
    # wire
    "WireModel",
    "MessageKind",
    "Envelope",
    "CreateLobbyPayload",
    "JoinLobbyPayload",
    "ReorderPlayersPayload",
    "LobbyCreatedPayload",
    "PlayerJoinedPayload",
    "PlayerLeftPayload",
    "HostChangedPayload",
    "ReadyChangedPayload",
    "GameStartingPayload",
    "LobbyClosedPayload",
    "ErrorPayload",
    "KickedPayload",
    "PlayerInfo",
    "LobbyState",
    "LobbyListPayload",
    "LobbySummary",
    "envelope",
]
