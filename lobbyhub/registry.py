"""In-memory lobby registry.

The registry is the only owner of ``Lobby`` and ``Player`` records. Callers
get deep copies back, never references into the live map, so a snapshot can
be serialised or inspected without holding the lock.
"""
from __future__ import annotations

import itertools
import logging
import uuid
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from .constants import MAX_PLAYERS, MIN_PLAYERS, REGISTRY_LOCK_RANK
from .errors import InvalidConfig, LobbyFull, LobbyNotFound, PlayerNotFound
from .locks import RWLock
from .schemas import Lobby, Player

logger = logging.getLogger(__name__)


@dataclass
class LeaveResult:
    """Outcome of :meth:`LobbyRegistry.leave`."""

    closed: bool = False
    new_host_id: Optional[str] = None
    was_member: bool = True


class LobbyRegistry:
    """Maps lobby ids to lobbies; every operation is atomic."""

    def __init__(self) -> None:
        self._lobbies: Dict[str, Lobby] = {}
        self._lock = RWLock("registry", REGISTRY_LOCK_RANK)
        self._join_seq = itertools.count(1)

    def __len__(self) -> int:
        with self._lock.read():
            return len(self._lobbies)

    # -------------------- Lifecycle -------------------- #

    @staticmethod
    def check_capacity(max_players: int) -> None:
        if not MIN_PLAYERS <= max_players <= MAX_PLAYERS:
            raise InvalidConfig(f"maxPlayers must be between {MIN_PLAYERS} and {MAX_PLAYERS}")

    def _new_lobby(self, host_id: str, game_name: str, max_players: int) -> Lobby:
        self.check_capacity(max_players)
        return Lobby(
            id=str(uuid.uuid4()),
            game_id=str(uuid.uuid4()),
            game_name=game_name,
            host_id=host_id,
            max_players=max_players,
        )

    def create(self, host_id: str, game_name: str, max_players: int) -> Lobby:
        """Create an empty lobby with *host_id* recorded as host.

        The host is not added as a player; the caller joins it separately.
        """
        lobby = self._new_lobby(host_id, game_name, max_players)
        with self._lock.write():
            self._lobbies[lobby.id] = lobby
            snapshot = lobby.model_copy(deep=True)
        logger.info(f"Created lobby {lobby.id} ({game_name!r}, max {max_players}) for host {host_id}")
        return snapshot

    def create_with_host(self, host: Player, game_name: str, max_players: int) -> Lobby:
        """Create a lobby and seat *host* in it in one critical section.

        The lobby never becomes visible without its host as a member.
        """
        lobby = self._new_lobby(host.id, game_name, max_players)
        lobby.players[host.id] = host.model_copy(update={"join_order": next(self._join_seq)})
        with self._lock.write():
            self._lobbies[lobby.id] = lobby
            snapshot = lobby.model_copy(deep=True)
        logger.info(f"Created lobby {lobby.id} ({game_name!r}, max {max_players}) hosted by {host.id}")
        return snapshot

    def get(self, lobby_id: str) -> Optional[Lobby]:
        with self._lock.read():
            lobby = self._lobbies.get(lobby_id)
            return lobby.model_copy(deep=True) if lobby else None

    def close(self, lobby_id: str) -> None:
        with self._lock.write():
            removed = self._lobbies.pop(lobby_id, None)
        if removed:
            logger.info(f"Closed lobby {lobby_id}")

    def list(self) -> List[Lobby]:
        with self._lock.read():
            return [lobby.model_copy(deep=True) for lobby in self._lobbies.values()]

    # -------------------- Membership -------------------- #

    def join(self, lobby_id: str, player: Player) -> Tuple[Lobby, bool]:
        """Add *player* to the lobby, or refresh it if already a member.

        Returns the post-join snapshot and whether the player is new. A
        rejoining member keeps its ready flag and join order and never counts
        against capacity.
        """
        with self._lock.write():
            lobby = self._require(lobby_id)
            existing = lobby.players.get(player.id)
            if existing is not None:
                existing.username = player.username
                existing.avatar_id = player.avatar_id
                is_new = False
            else:
                if len(lobby.players) >= lobby.max_players:
                    raise LobbyFull()
                lobby.players[player.id] = player.model_copy(
                    update={"join_order": next(self._join_seq)}
                )
                is_new = True
            snapshot = lobby.model_copy(deep=True)
        logger.debug(f"Player {player.id} {'joined' if is_new else 'rejoined'} lobby {lobby_id}")
        return snapshot, is_new

    def leave(self, lobby_id: str, player_id: str) -> LeaveResult:
        """Remove a player; closes the lobby when it empties, reassigns the host otherwise."""
        with self._lock.write():
            lobby = self._require(lobby_id)
            if lobby.players.pop(player_id, None) is None:
                return LeaveResult(was_member=False)

            if not lobby.players:
                del self._lobbies[lobby_id]
                closed = True
                new_host_id = None
            else:
                closed = False
                new_host_id = None
                if lobby.host_id == player_id:
                    lobby.host_id = min(lobby.players.values(), key=lambda p: p.join_order).id
                    new_host_id = lobby.host_id

        if closed:
            logger.info(f"Lobby {lobby_id} closed after last player {player_id} left")
        elif new_host_id:
            logger.info(f"Host of lobby {lobby_id} passed from {player_id} to {new_host_id}")
        return LeaveResult(closed=closed, new_host_id=new_host_id)

    # -------------------- Ready state -------------------- #

    def set_ready(self, lobby_id: str, player_id: str, ready: bool) -> Player:
        with self._lock.write():
            player = self._require_player(lobby_id, player_id)
            player.ready = ready
            return player.model_copy()

    def toggle_ready(self, lobby_id: str, player_id: str) -> Player:
        """Invert the ready flag in one critical section."""
        with self._lock.write():
            player = self._require_player(lobby_id, player_id)
            player.ready = not player.ready
            return player.model_copy()

    def all_ready(self, lobby_id: str) -> bool:
        """True only for a non-empty lobby whose members are all ready."""
        with self._lock.read():
            lobby = self._require(lobby_id)
            return bool(lobby.players) and all(p.ready for p in lobby.players.values())

    # -------------------- Helpers -------------------- #

    def _require(self, lobby_id: str) -> Lobby:
        lobby = self._lobbies.get(lobby_id)
        if lobby is None:
            raise LobbyNotFound()
        return lobby

    def _require_player(self, lobby_id: str, player_id: str) -> Player:
        player = self._require(lobby_id).players.get(player_id)
        if player is None:
            raise PlayerNotFound()
        return player


__all__ = ["LobbyRegistry", "LeaveResult"]
