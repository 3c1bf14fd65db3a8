MIN_PLAYERS = 2
MAX_PLAYERS = 6

# WebSocket close codes used by the transport layer.
CLOSE_MISSING_PARAMS = 4000
CLOSE_REPLACED = 4003

# Lock ranks; a lock may only be acquired while holding locks of lower rank.
REGISTRY_LOCK_RANK = 1
CONNECTIONS_LOCK_RANK = 2

__all__ = [
    "MIN_PLAYERS",
    "MAX_PLAYERS",
    "CLOSE_MISSING_PARAMS",
    "CLOSE_REPLACED",
    "REGISTRY_LOCK_RANK",
    "CONNECTIONS_LOCK_RANK",
]
