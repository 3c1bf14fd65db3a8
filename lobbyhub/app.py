from __future__ import annotations

from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import config
from .connections import ConnectionTable
from .registry import LobbyRegistry
from .router import MessageRouter
from .routers import lobbies as lobbies_router
from .routers import websockets as ws_router


def create_app(
    registry: Optional[LobbyRegistry] = None,
    connections: Optional[ConnectionTable] = None,
) -> FastAPI:
    """Build an application with its own registry and connection table."""
    app = FastAPI(title="Lobbyhub")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # -----------------------------
    # Runtime state, scoped to this app instance
    # -----------------------------
    registry = registry if registry is not None else LobbyRegistry()
    connections = connections if connections is not None else ConnectionTable()
    app.state.registry = registry
    app.state.connections = connections
    app.state.lobby_router = MessageRouter(registry, connections)

    # Register routers
    app.include_router(lobbies_router.router)
    app.include_router(ws_router.router)

    return app


app = create_app()

__all__ = ["app", "create_app"]
