"""Message routing for lobby websockets.

Decodes inbound envelopes, applies them to the ``LobbyRegistry`` and fans
the resulting updates out through a ``Broadcaster``. The router keeps no
state of its own; everything it touches is injected.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Type, TypeVar

from pydantic import ValidationError

from .broadcast import Broadcaster
from .connections import ConnectionTable, Session
from .constants import CLOSE_REPLACED
from .errors import LobbyError, LobbyNotFound, MalformedPayload, Unauthorized
from .registry import LobbyRegistry
from .schemas import (
    CreateLobbyPayload,
    Envelope,
    ErrorPayload,
    GameStartingPayload,
    HostChangedPayload,
    JoinLobbyPayload,
    KickedPayload,
    Lobby,
    LobbyClosedPayload,
    LobbyCreatedPayload,
    LobbyListPayload,
    MessageKind,
    Player,
    PlayerJoinedPayload,
    PlayerLeftPayload,
    ReadyChangedPayload,
    ReorderPlayersPayload,
    WireModel,
    envelope,
)

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=WireModel)


def _parse(model: Type[M], payload: Dict[str, Any], message: str) -> M:
    try:
        return model.model_validate(payload)
    except ValidationError as e:
        raise MalformedPayload(message) from e


class MessageRouter:
    """Dispatches inbound messages for one process-wide set of lobbies."""

    # Every MessageKind must have an entry; checked below at import time.
    _handlers: Dict[MessageKind, str] = {
        MessageKind.CREATE_LOBBY: "_handle_create_lobby",
        MessageKind.JOIN_LOBBY: "_handle_join_lobby",
        MessageKind.LEAVE_LOBBY: "_handle_leave_lobby",
        MessageKind.TOGGLE_READY: "_handle_toggle_ready",
        MessageKind.START_GAME: "_handle_start_game",
        MessageKind.REORDER_PLAYERS: "_handle_reorder_players",
        MessageKind.LIST_LOBBIES: "_handle_list_lobbies",
    }

    def __init__(
        self,
        registry: LobbyRegistry,
        connections: ConnectionTable,
        broadcaster: Optional[Broadcaster] = None,
    ):
        self.registry = registry
        self.connections = connections
        self.broadcaster = broadcaster or Broadcaster(connections)

    # ---------------------------------------------------------------------
    # Connection lifecycle
    # ---------------------------------------------------------------------

    async def connect(self, session: Session, lobby_id: str = "") -> None:
        """Register *session*, replacing any older connection for the same player.

        If *lobby_id* is given (or the replaced connection was in a lobby) the
        session rejoins that lobby straight away.
        """
        previous = self.connections.register(session)
        if previous is not None:
            await self.broadcaster.unicast(
                previous, envelope("kicked", KickedPayload(reason="Logged in elsewhere"))
            )
            try:
                await previous.websocket.close(code=CLOSE_REPLACED)
            except Exception as e:
                logger.debug(f"Closing replaced connection for {previous.id} failed: {e}")
            if previous.in_lobby:
                # Carry membership over so a switch below leaves the old lobby.
                self.connections.set_lobby(session, previous.lobby_id, ready=previous.ready)
            lobby_id = lobby_id or previous.lobby_id

        if lobby_id:
            await self._guarded(session, self._handle_join_lobby, {"lobbyId": lobby_id})

    async def disconnect(self, session: Session) -> None:
        """Drop the session, then perform the implicit leave for its lobby.

        Unregistering happens before the first ``await`` so a cancelled cleanup
        never leaves a dead session behind for later fan-outs.
        """
        if not self.connections.unregister(session.id, session):
            logger.debug(f"Ignoring disconnect of replaced session {session.id}")
            return
        if session.in_lobby:
            await self._leave(session, session.lobby_id)

    # ---------------------------------------------------------------------
    # Inbound messages
    # ---------------------------------------------------------------------

    async def handle_raw(self, session: Session, text: str) -> None:
        """Decode one text frame and dispatch it."""
        try:
            message = Envelope.model_validate_json(text)
        except ValidationError:
            logger.info(f"Malformed envelope from {session.id}")
            await self.send_error(session, MalformedPayload.default_message)
            return
        await self.dispatch(session, message.type, message.payload or {})

    async def dispatch(self, session: Session, kind: str, payload: Dict[str, Any]) -> None:
        try:
            message_kind = MessageKind(kind)
        except ValueError:
            logger.debug(f"Ignoring unknown message type {kind!r} from {session.id}")
            return
        handler = getattr(self, self._handlers[message_kind])
        await self._guarded(session, handler, payload)

    async def _guarded(self, session: Session, handler, payload: Dict[str, Any]) -> None:
        try:
            await handler(session, payload)
        except LobbyError as e:
            logger.info(f"{type(e).__name__} for {session.id}: {e.message}")
            await self.send_error(session, e.message)

    async def send_error(self, session: Session, message: str) -> None:
        await self.broadcaster.unicast(session, envelope("error", ErrorPayload(message=message)))

    # -------------------- Handlers -------------------- #

    async def _handle_create_lobby(self, session: Session, payload: Dict[str, Any]) -> None:
        data = _parse(CreateLobbyPayload, payload, "Invalid create lobby request")
        self.registry.check_capacity(data.max_players)

        if session.in_lobby:
            await self._leave(session, session.lobby_id)

        # The creator is seated in its own lobby already marked ready.
        lobby = self.registry.create_with_host(
            self._player_for(session, ready=True), data.game_name, data.max_players
        )
        self.connections.set_lobby(session, lobby.id, ready=True)

        await self.broadcaster.unicast(
            session,
            envelope(
                "lobby_created",
                LobbyCreatedPayload(
                    lobby_id=lobby.id,
                    game_name=lobby.game_name,
                    max_players=lobby.max_players,
                    is_host=True,
                ),
            ),
        )
        await self.broadcaster.broadcast_all(envelope("lobby_state", lobby.to_state()))

    async def _handle_join_lobby(self, session: Session, payload: Dict[str, Any]) -> None:
        data = _parse(JoinLobbyPayload, payload, "Invalid join lobby request")
        lobby, is_new = self.registry.join(data.lobby_id, self._player_for(session))

        previous = session.lobby_id
        if previous and previous != lobby.id:
            await self._leave(session, previous)

        player = lobby.players[session.id]
        self.connections.set_lobby(session, lobby.id, ready=player.ready)
        state = envelope("lobby_state", lobby.to_state())

        if not is_new:
            logger.info(f"Player {session.id} rejoined lobby {lobby.id} (ready={player.ready})")
            await self.broadcaster.unicast(session, state)
            return

        logger.info(f"Player {session.id} joined lobby {lobby.id}")
        joined = PlayerJoinedPayload(
            user_id=player.id,
            username=player.username,
            avatar_id=player.avatar_id,
            is_host=player.id == lobby.host_id,
            ready=player.ready,
        )
        await self.broadcaster.broadcast_lobby(lobby.id, envelope("player_joined", joined))
        await self.broadcaster.broadcast_lobby(lobby.id, state)

    async def _handle_leave_lobby(self, session: Session, payload: Dict[str, Any]) -> None:
        if not session.in_lobby:
            return
        await self._leave(session, session.lobby_id)
        self.connections.set_lobby(session, "")

    async def _handle_toggle_ready(self, session: Session, payload: Dict[str, Any]) -> None:
        if not session.in_lobby:
            return
        lobby_id = session.lobby_id
        player = self.registry.toggle_ready(lobby_id, session.id)
        self.connections.set_lobby(session, lobby_id, ready=player.ready)
        await self.broadcaster.broadcast_lobby(
            lobby_id,
            envelope("player_ready_changed", ReadyChangedPayload(user_id=player.id, ready=player.ready)),
        )

    async def _handle_start_game(self, session: Session, payload: Dict[str, Any]) -> None:
        if not session.in_lobby:
            return
        lobby = self._require_host(session, "Only host can start the game")
        if not self.registry.all_ready(lobby.id):
            raise LobbyError("All players must be ready to start")
        logger.info(f"Lobby {lobby.id} starting game {lobby.game_id}")
        await self.broadcaster.broadcast_lobby(
            lobby.id,
            envelope("game_starting", GameStartingPayload(lobby_id=lobby.id, game_id=lobby.game_id)),
        )

    async def _handle_reorder_players(self, session: Session, payload: Dict[str, Any]) -> None:
        if not session.in_lobby:
            return
        lobby = self._require_host(session, "Only host can reorder players")
        data = _parse(ReorderPlayersPayload, payload, "Invalid reorder request")
        order = data.player_order
        if len(order) != len(set(order)) or set(order) != set(lobby.players):
            raise MalformedPayload("Player order must list every lobby member exactly once")
        await self.broadcaster.broadcast_lobby(lobby.id, envelope("players_reordered", data))

    async def _handle_list_lobbies(self, session: Session, payload: Dict[str, Any]) -> None:
        lobbies = sorted(self.registry.list(), key=lambda lobby: lobby.created_at)
        await self.broadcaster.unicast(
            session,
            envelope("list_lobbies", LobbyListPayload(lobbies=[lobby.to_state() for lobby in lobbies])),
        )

    # -------------------- Helpers -------------------- #

    async def _leave(self, session: Session, lobby_id: str) -> None:
        """Remove the session's player from *lobby_id* and notify the lobby."""
        try:
            result = self.registry.leave(lobby_id, session.id)
        except LobbyNotFound:
            logger.debug(f"Lobby {lobby_id} already gone when {session.id} left")
            return
        if not result.was_member:
            return

        if result.new_host_id:
            await self.broadcaster.broadcast_lobby(
                lobby_id,
                envelope("host_changed", HostChangedPayload(new_host_id=result.new_host_id)),
            )
        await self.broadcaster.broadcast_lobby(
            lobby_id, envelope("player_left", PlayerLeftPayload(user_id=session.id))
        )
        if result.closed:
            await self.broadcaster.broadcast_all(
                envelope("lobby_closed", LobbyClosedPayload(lobby_id=lobby_id))
            )

    def _require_host(self, session: Session, message: str) -> Lobby:
        lobby = self.registry.get(session.lobby_id)
        if lobby is None:
            raise LobbyNotFound()
        if lobby.host_id != session.id:
            raise Unauthorized(message)
        return lobby

    @staticmethod
    def _player_for(session: Session, ready: bool = False) -> Player:
        return Player(id=session.id, username=session.username, avatar_id=session.avatar_id, ready=ready)


_missing = set(MessageKind) - set(MessageRouter._handlers)
if _missing:
    raise RuntimeError(f"MessageRouter has no handler for {sorted(k.value for k in _missing)}")

__all__ = ["MessageRouter"]
