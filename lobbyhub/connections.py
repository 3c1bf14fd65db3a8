"""Connection table for lobbyhub.

Tracks live WebSocket sessions and which lobby each one is currently in.
Contains no lobby logic: a session only stores a lobby *id* and must resolve
it through the registry.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from .constants import CONNECTIONS_LOCK_RANK
from .locks import RWLock

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class Session:
    """Runtime identity of one live connection."""

    id: str
    username: str
    websocket: Any
    avatar_id: str = ""
    lobby_id: str = ""
    # Mirror of the Player.ready flag for cheap local checks.
    ready: bool = False

    @property
    def in_lobby(self) -> bool:
        return self.lobby_id != ""


class ConnectionTable:
    """Maps session ids (player ids) to their live ``Session``.

    Lock order: the registry lock must be taken before this table's lock,
    never the reverse. Every method here releases its lock before returning,
    so callers never hold it across an ``await``.
    """

    def __init__(self) -> None:
        self._sessions: Dict[str, Session] = {}
        self._lock = RWLock("connections", CONNECTIONS_LOCK_RANK)

    def __len__(self) -> int:
        with self._lock.read():
            return len(self._sessions)

    def register(self, session: Session) -> Optional[Session]:
        """Store *session*; returns the session it replaced, if any."""
        with self._lock.write():
            previous = self._sessions.get(session.id)
            self._sessions[session.id] = session
        if previous is not None:
            logger.info(f"Session {session.id} replaced an existing connection")
        else:
            logger.info(f"Registered session {session.id} ({session.username})")
        return previous

    def unregister(self, session_id: str, session: Optional[Session] = None) -> bool:
        """Remove a session.

        With *session* given, only removes the entry if it is that exact
        object, so a replaced connection cannot evict its successor.
        """
        with self._lock.write():
            current = self._sessions.get(session_id)
            if current is None or (session is not None and current is not session):
                return False
            del self._sessions[session_id]
        logger.info(f"Unregistered session {session_id}")
        return True

    def get(self, session_id: str) -> Optional[Session]:
        with self._lock.read():
            return self._sessions.get(session_id)

    def set_lobby(self, session: Session, lobby_id: str, ready: bool = False) -> None:
        """Record which lobby *session* is in ('' for none) and its cached ready flag."""
        with self._lock.write():
            session.lobby_id = lobby_id
            session.ready = ready

    # -------------------- Snapshots -------------------- #

    def matching(self, predicate: Callable[[Session], bool]) -> List[Session]:
        with self._lock.read():
            return [s for s in self._sessions.values() if predicate(s)]

    def in_lobby(self, lobby_id: str) -> List[Session]:
        if not lobby_id:
            return []
        return self.matching(lambda s: s.lobby_id == lobby_id)

    def all(self) -> List[Session]:
        return self.matching(lambda s: True)

    def for_each_in_lobby(self, lobby_id: str, fn: Callable[[Session], Any]) -> None:
        """Apply *fn* to each session in *lobby_id* as of one snapshot.

        Membership is read under the read lock; *fn* runs after it is released,
        so *fn* may take the registry lock or hand off to an ``await`` without
        inverting the lock order or stalling writers.
        """
        for session in self.in_lobby(lobby_id):
            fn(session)

    def for_each_all(self, fn: Callable[[Session], Any]) -> None:
        """Like :meth:`for_each_in_lobby`, over every registered session."""
        for session in self.all():
            fn(session)


__all__ = ["Session", "ConnectionTable"]
