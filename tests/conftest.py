from __future__ import annotations

import socket

import pytest

from chatd.client import Client
from chatd.config import ServerRuntimeConfig
from chatd.messages import Outgoing
from chatd.multiplexer import Multiplexer
from chatd.service import ChatService
from chatd.transport import TcpTransport


class RecordingTransport(TcpTransport):
    """Records payloads instead of writing them to the socket."""

    def __init__(self) -> None:
        super().__init__()
        self.sent: dict[socket.socket, list[bytes]] = {}
        self.closed: list[socket.socket] = []

    def send(self, handle, data: bytes) -> bool:
        self.sent.setdefault(handle, []).append(bytes(data))
        return True

    def close(self, handle) -> None:
        self.closed.append(handle)
        super().close(handle)


class Harness:
    """A ChatService wired to socketpairs, driven without a real listener."""

    def __init__(self, **overrides) -> None:
        self.transport = RecordingTransport()
        self.config = ServerRuntimeConfig(**overrides)
        self.svc = ChatService(self.config, transport=self.transport)

        self._listener, self._listener_peer = socket.socketpair()
        self.svc.listener = self._listener
        self.svc.multiplexer = Multiplexer(self._listener)
        self._sockets: list[socket.socket] = [self._listener, self._listener_peer]

    @property
    def sessions(self):
        return self.svc.session_manager

    @property
    def mux(self) -> Multiplexer:
        assert self.svc.multiplexer is not None
        return self.svc.multiplexer

    def connect(self) -> Client | None:
        server_end, peer = socket.socketpair()
        server_end.setblocking(False)
        self._sockets.extend([server_end, peer])
        outgoing: Outgoing = []
        client = self.sessions.on_accept(server_end, outgoing)
        self.svc.message_helper.flush(outgoing)
        return client

    def say(self, client: Client, text: str) -> None:
        """Feed ``text`` plus a newline through framing and routing."""
        outgoing: Outgoing = []
        data = (text + "\n").encode("utf-8")
        for line in client.feed(data, self.config.buffer_size):
            if client.closed:
                break
            self.svc.router.route_line(
                client, line.data, outgoing, continued=line.continued
            )
            self.svc.message_helper.flush(outgoing)

    def received(self, client: Client) -> list[str]:
        return [b.decode("utf-8") for b in self.transport.sent.get(client.handle, [])]

    def chat_received(self, client: Client) -> list[str]:
        """Everything sent to ``client`` after its welcome banner."""
        return self.received(client)[1:]

    def close(self) -> None:
        for s in self._sockets:
            try:
                s.close()
            except OSError:
                pass


@pytest.fixture
def make_harness():
    created: list[Harness] = []

    def _make(**overrides) -> Harness:
        h = Harness(**overrides)
        created.append(h)
        return h

    yield _make

    for h in created:
        h.close()


@pytest.fixture
def harness(make_harness) -> Harness:
    return make_harness()
