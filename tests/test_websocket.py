"""End-to-end tests through the FastAPI websocket endpoint and REST listing."""

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from lobbyhub.app import create_app
from lobbyhub.constants import CLOSE_MISSING_PARAMS


@pytest.fixture
def app():
    return create_app()


@pytest.fixture
def client(app) -> TestClient:
    # Entering the client shares one event loop across all websocket sessions;
    # otherwise cross-session sends race between per-connection loop threads.
    with TestClient(app) as client:
        yield client


def ws_url(user_id: str, username: str = "", lobby_id: str = "") -> str:
    url = f"/ws?userId={user_id}&username={username or user_id.lower()}&avatarId=1"
    if lobby_id:
        url += f"&lobbyId={lobby_id}"
    return url


class TestHandshake:
    def test_missing_username_is_rejected(self, client: TestClient, app) -> None:
        with client.websocket_connect("/ws?userId=a") as ws:
            with pytest.raises(WebSocketDisconnect) as exc:
                ws.receive_json()
        assert exc.value.code == CLOSE_MISSING_PARAMS
        assert len(app.state.connections) == 0

    def test_missing_user_id_is_rejected(self, client: TestClient) -> None:
        with client.websocket_connect("/ws?username=alice") as ws:
            with pytest.raises(WebSocketDisconnect) as exc:
                ws.receive_json()
        assert exc.value.code == CLOSE_MISSING_PARAMS


class TestLobbyFlow:
    def test_ready_and_start(self, client: TestClient, app) -> None:
        with client.websocket_connect(ws_url("A")) as ws_a:
            ws_a.send_json({"type": "create_lobby", "payload": {"gameName": "uno", "maxPlayers": 2}})
            created = ws_a.receive_json()
            assert created["type"] == "lobby_created"
            lobby_id = created["payload"]["lobbyId"]
            state = ws_a.receive_json()
            assert state["type"] == "lobby_state"
            assert state["payload"]["players"][0]["ready"] is True

            with client.websocket_connect(ws_url("B", lobby_id=lobby_id)) as ws_b:
                for ws in (ws_a, ws_b):
                    assert ws.receive_json()["type"] == "player_joined"
                    state = ws.receive_json()
                    assert state["type"] == "lobby_state"
                    players = {p["id"]: p for p in state["payload"]["players"]}
                    assert set(players) == {"A", "B"}
                    assert players["B"]["ready"] is False

                ws_b.send_json({"type": "toggle_ready", "payload": {}})
                for ws in (ws_a, ws_b):
                    assert ws.receive_json() == {
                        "type": "player_ready_changed",
                        "payload": {"userId": "B", "ready": True},
                    }

                ws_a.send_json({"type": "start_game", "payload": {}})
                game_id = app.state.registry.get(lobby_id).game_id
                for ws in (ws_a, ws_b):
                    assert ws.receive_json() == {
                        "type": "game_starting",
                        "payload": {"lobbyId": lobby_id, "gameId": game_id},
                    }

            # B went away: A sees it leave and keeps the host role.
            assert ws_a.receive_json() == {"type": "player_left", "payload": {"userId": "B"}}
            lobby = app.state.registry.get(lobby_id)
            assert set(lobby.players) == {"A"}
            assert lobby.host_id == "A"

    def test_host_disconnect_hands_over(self, client: TestClient, app) -> None:
        with client.websocket_connect(ws_url("B")) as ws_b:
            with client.websocket_connect(ws_url("A")) as ws_a:
                ws_a.send_json({"type": "create_lobby", "payload": {"gameName": "uno", "maxPlayers": 3}})
                lobby_id = ws_a.receive_json()["payload"]["lobbyId"]
                ws_a.receive_json()
                assert ws_b.receive_json()["type"] == "lobby_state"

                ws_b.send_json({"type": "join_lobby", "payload": {"lobbyId": lobby_id}})
                for ws in (ws_a, ws_b):
                    assert ws.receive_json()["type"] == "player_joined"
                    assert ws.receive_json()["type"] == "lobby_state"

            assert ws_b.receive_json() == {"type": "host_changed", "payload": {"newHostId": "B"}}
            assert ws_b.receive_json() == {"type": "player_left", "payload": {"userId": "A"}}
            lobby = app.state.registry.get(lobby_id)
            assert set(lobby.players) == {"B"}
            assert lobby.host_id == "B"

    def test_errors_keep_connection_open(self, client: TestClient) -> None:
        with client.websocket_connect(ws_url("A")) as ws:
            ws.send_text("garbage")
            assert ws.receive_json() == {"type": "error", "payload": {"message": "Invalid message"}}

            ws.send_json({"type": "join_lobby", "payload": {"lobbyId": "missing"}})
            assert ws.receive_json() == {"type": "error", "payload": {"message": "Lobby not found"}}

            ws.send_json({"type": "list_lobbies", "payload": {}})
            assert ws.receive_json() == {"type": "list_lobbies", "payload": {"lobbies": []}}


class TestRest:
    def test_list_and_get(self, client: TestClient) -> None:
        assert client.get("/lobbies").json() == []

        with client.websocket_connect(ws_url("A", username="alice")) as ws:
            ws.send_json({"type": "create_lobby", "payload": {"gameName": "uno", "maxPlayers": 4}})
            lobby_id = ws.receive_json()["payload"]["lobbyId"]
            ws.receive_json()

            summaries = client.get("/lobbies").json()
            assert summaries == [
                {
                    "lobbyId": lobby_id,
                    "gameName": "uno",
                    "hostId": "A",
                    "hostName": "alice",
                    "playerCount": 1,
                    "maxPlayers": 4,
                    "isFull": False,
                }
            ]

            state = client.get(f"/lobbies/{lobby_id}").json()
            assert state["hostId"] == "A"
            assert [p["id"] for p in state["players"]] == ["A"]

            ws.send_json({"type": "leave_lobby", "payload": {}})
            assert ws.receive_json() == {"type": "player_left", "payload": {"userId": "A"}}
            assert ws.receive_json() == {"type": "lobby_closed", "payload": {"lobbyId": lobby_id}}

            assert client.get(f"/lobbies/{lobby_id}").status_code == 404
            assert client.get("/lobbies").json() == []
