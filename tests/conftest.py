from typing import Any, Callable, Dict, List, Optional

import pytest

from lobbyhub.broadcast import Broadcaster
from lobbyhub.connections import ConnectionTable, Session
from lobbyhub.registry import LobbyRegistry
from lobbyhub.router import MessageRouter


class FakeWebSocket:
    """Records everything sent to it; optionally fails every send.

    ``on_send`` runs synchronously inside ``send_json`` after the message is
    recorded, i.e. while the router is suspended mid fan-out.
    """

    def __init__(self, fail: bool = False):
        self.sent: List[Dict[str, Any]] = []
        self.closed_code: Optional[int] = None
        self.fail = fail
        self.on_send: Optional[Callable[[Dict[str, Any]], None]] = None

    async def send_json(self, data: Dict[str, Any]) -> None:
        if self.fail:
            raise RuntimeError("connection closed")
        self.sent.append(data)
        if self.on_send is not None:
            self.on_send(data)

    async def close(self, code: int = 1000) -> None:
        self.closed_code = code

    def types(self) -> List[str]:
        return [m["type"] for m in self.sent]

    def payloads(self, kind: str) -> List[Dict[str, Any]]:
        return [m["payload"] for m in self.sent if m["type"] == kind]

    def clear(self) -> None:
        self.sent.clear()


def make_session(user_id: str, fail: bool = False) -> Session:
    return Session(
        id=user_id,
        username=f"user-{user_id}",
        avatar_id=f"avatar-{user_id}",
        websocket=FakeWebSocket(fail=fail),
    )


@pytest.fixture
def registry() -> LobbyRegistry:
    return LobbyRegistry()


@pytest.fixture
def connections() -> ConnectionTable:
    return ConnectionTable()


@pytest.fixture
def broadcaster(connections: ConnectionTable) -> Broadcaster:
    return Broadcaster(connections)


@pytest.fixture
def router(registry: LobbyRegistry, connections: ConnectionTable) -> MessageRouter:
    return MessageRouter(registry, connections)


@pytest.fixture
def connect(router: MessageRouter):
    """Connect a fake client through the router and return its session."""

    async def _connect(user_id: str, lobby_id: str = "", fail: bool = False) -> Session:
        session = make_session(user_id, fail=fail)
        await router.connect(session, lobby_id=lobby_id)
        return session

    return _connect
