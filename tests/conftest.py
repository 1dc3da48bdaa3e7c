import random
import socket
import threading
import logging
from typing import Any

import pytest

from salvo.common import PacketType, pack, recv_pkt
from salvo.registry import Registry
from salvo.room import Room
from salvo.router import CommandRouter, EventRouter
from salvo.server import serve_connection

# Suppress INFO & DEBUG logs from connection threads during tests
logging.basicConfig(level=logging.WARNING)


class RecordingPort:
    """OutputPort fake that remembers every notification it was handed."""

    def __init__(self, alive: bool = True) -> None:
        self.sent: list[dict[str, Any]] = []
        self.alive = alive

    def send(self, obj: dict[str, Any]) -> bool:
        if not self.alive:
            return False
        self.sent.append(obj)
        return True

    def types(self) -> list[str]:
        return [o["type"] for o in self.sent]

    def of_type(self, kind: str) -> list[dict[str, Any]]:
        return [o for o in self.sent if o["type"] == kind]

    def clear(self) -> None:
        self.sent.clear()


class TestClient:
    """Simple client wrapper for integration tests over the framed protocol."""

    __test__ = False

    def __init__(self, sock: socket.socket) -> None:
        self.sock = sock
        self.rfile = sock.makefile("rb")

    def send(self, kind: str, **data: Any) -> None:
        self.sock.sendall(pack(PacketType.GAME, 0, {"type": kind, "data": data}))

    def recv_until(self, kind: str, timeout: float = 2.0) -> dict[str, Any]:
        """Read frames until a notification of type *kind* arrives."""
        self.sock.settimeout(timeout)
        while True:
            _ptype, _seq, obj = recv_pkt(self.rfile)
            if isinstance(obj, dict) and obj.get("type") == kind:
                return obj

    def close(self) -> None:
        """Close the underlying socket."""
        self.rfile.close()
        self.sock.close()


@pytest.fixture
def registry() -> Registry:
    reg = Registry(rng=random.Random(1234))
    yield reg
    reg.close()


@pytest.fixture
def ports() -> tuple[RecordingPort, RecordingPort]:
    return RecordingPort(), RecordingPort()


@pytest.fixture
def started_room(registry, ports) -> Room:
    """Room where "A" (turn holder) and "B" are both seated; router attached."""
    port_a, port_b = ports
    room = registry.create_room("A", port_a)
    room.subscribe(EventRouter(room))
    assert registry.join_room(room.id, "B", port_b) is room
    port_a.clear()
    port_b.clear()
    return room


@pytest.fixture
def client_factory() -> callable:
    """Factory that connects TestClients to one shared CommandRouter."""
    router = CommandRouter(Registry(rng=random.Random(99)))
    threads: list[threading.Thread] = []
    clients: list[TestClient] = []

    def _factory() -> TestClient:
        srv, cli = socket.socketpair()
        t = threading.Thread(target=serve_connection, args=(srv, router, f"test{len(clients)}"), daemon=True)
        t.start()
        threads.append(t)
        client = TestClient(cli)
        clients.append(client)
        return client

    _factory.router = router  # type: ignore[attr-defined]
    yield _factory
    for c in clients:
        try:
            c.close()
        except OSError:
            pass
    for t in threads:
        t.join(timeout=2.0)
