from __future__ import annotations

from typing import List

from fastapi import APIRouter, HTTPException, Request

from ..registry import LobbyRegistry
from ..schemas import LobbyState, LobbySummary

router = APIRouter(prefix="", tags=["lobbies"])


def _registry(request: Request) -> LobbyRegistry:
    return request.app.state.registry


@router.get("/lobbies", response_model=List[LobbySummary])
async def list_lobbies(request: Request):
    lobbies = sorted(_registry(request).list(), key=lambda lobby: lobby.created_at)
    return [lobby.to_summary() for lobby in lobbies]


@router.get("/lobbies/{lobby_id}", response_model=LobbyState)
async def get_lobby(lobby_id: str, request: Request):
    lobby = _registry(request).get(lobby_id)
    if lobby is None:
        raise HTTPException(status_code=404, detail="Lobby not found")
    return lobby.to_state()
