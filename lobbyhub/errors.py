"""Error taxonomy for lobby operations.

Every error here is local to the single inbound message that caused it: the
router reports it back to the originating session as an ``error`` envelope and
keeps reading from the same connection.
"""
from __future__ import annotations

from typing import Optional


class LobbyError(Exception):
    """Base class; ``message`` is what the client sees."""

    default_message = "Lobby error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class LobbyNotFound(LobbyError):
    default_message = "Lobby not found"


class LobbyFull(LobbyError):
    default_message = "Lobby is full"


class PlayerNotFound(LobbyError):
    default_message = "Player not found"


class InvalidConfig(LobbyError):
    default_message = "Invalid lobby configuration"


class Unauthorized(LobbyError):
    default_message = "Only the host can do that"


class MalformedPayload(LobbyError):
    default_message = "Invalid message"


__all__ = [
    "LobbyError",
    "LobbyNotFound",
    "LobbyFull",
    "PlayerNotFound",
    "InvalidConfig",
    "Unauthorized",
    "MalformedPayload",
]
