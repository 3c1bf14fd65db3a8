"""Helpers for pushing envelopes to connected sessions."""
from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Iterable, Optional

from .connections import ConnectionTable, Session

logger = logging.getLogger(__name__)


class Broadcaster:
    """Best-effort delivery on top of a :class:`ConnectionTable`.

    Recipients are taken from a table snapshot, then sent to one by one after
    the table lock has been released. A failed send is logged and skipped.
    """

    def __init__(self, connections: ConnectionTable):
        self.connections = connections

    async def unicast(self, session: Session, message: Dict[str, Any]) -> bool:
        try:
            await session.websocket.send_json(message)
            return True
        except Exception as e:
            logger.warning(f"Failed to send {message.get('type')} to {session.id}: {e}")
            return False

    async def _deliver(self, sessions: Iterable[Session], message: Dict[str, Any]) -> int:
        delivered = 0
        for session in sessions:
            if await self.unicast(session, message):
                delivered += 1
        return delivered

    async def multicast(self, predicate: Callable[[Session], bool], message: Dict[str, Any]) -> int:
        return await self._deliver(self.connections.matching(predicate), message)

    async def broadcast_lobby(
        self,
        lobby_id: str,
        message: Dict[str, Any],
        exclude: Optional[Session] = None,
    ) -> int:
        """Send *message* to every session currently in *lobby_id*."""
        recipients = [s for s in self.connections.in_lobby(lobby_id) if s is not exclude]
        return await self._deliver(recipients, message)

    async def broadcast_all(self, message: Dict[str, Any], exclude: Optional[Session] = None) -> int:
        recipients = [s for s in self.connections.all() if s is not exclude]
        return await self._deliver(recipients, message)


__all__ = ["Broadcaster"]
