"""pytest configuration and fixtures for tcp-diagtool tests.

Provides:
- RecordingEventSink: Thread-safe sink that keeps every event for assertions
- wait_until: Poll a predicate until it holds or a timeout expires
- server fixture: TcpServer listening on an ephemeral loopback port
- connect fixture: Factory for client sockets closed after the test
- Markers for unit vs integration tests
"""

import socket
import threading
import time
from collections.abc import Callable, Generator
from pathlib import Path

import pytest

from common.connection import PeerIdentity
from common.report import Report
from server.loop import ServerConfig
from server.runner import TcpServer

# Short poll keeps stop latency low in tests
TEST_POLL_TIMEOUT_S = 0.05
WAIT_TIMEOUT_S = 3.0


def wait_until(predicate: Callable[[], bool], timeout_s: float = WAIT_TIMEOUT_S) -> bool:
    """Return True as soon as predicate() holds, False after timeout_s."""
    deadline = time.monotonic() + timeout_s
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


class RecordingEventSink:
    """Event sink that records (kind, *args) tuples."""

    def __init__(self) -> None:
        self._events: list[tuple] = []
        self._lock = threading.Lock()

    def _record(self, *event: object) -> None:
        with self._lock:
            self._events.append(event)

    @property
    def events(self) -> list[tuple]:
        with self._lock:
            return list(self._events)

    def of_kind(self, kind: str) -> list[tuple]:
        return [e for e in self.events if e[0] == kind]

    def debug_messages(self) -> list[str]:
        return [e[1] for e in self.of_kind("debug")]

    def reports(self) -> list[Report]:
        return [e[1] for e in self.of_kind("decoded")]

    def on_connected(self, identity: PeerIdentity) -> None:
        self._record("connected", identity)

    def on_disconnected(self, identity: PeerIdentity, reason: str) -> None:
        self._record("disconnected", identity, reason)

    def on_received(self, identity: PeerIdentity, text: str) -> None:
        self._record("received", identity, text)

    def on_decoded(self, report: Report) -> None:
        self._record("decoded", report)

    def on_sent(self, identity: PeerIdentity, payload: bytes) -> None:
        self._record("sent", identity, payload)

    def on_debug(self, message: str) -> None:
        self._record("debug", message)

    def on_stopped(self) -> None:
        self._record("stopped",)


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: mark test as unit test")
    config.addinivalue_line("markers", "integration: mark test as integration test (uses loopback sockets)")


@pytest.fixture
def sink() -> RecordingEventSink:
    return RecordingEventSink()


@pytest.fixture
def server(sink: RecordingEventSink) -> Generator[TcpServer, None, None]:
    """A started TcpServer on 127.0.0.1 with an ephemeral port."""
    config = ServerConfig(host="127.0.0.1", poll_timeout_s=TEST_POLL_TIMEOUT_S)
    srv = TcpServer(sink, config)
    assert srv.start(0)
    try:
        yield srv
    finally:
        srv.stop()


@pytest.fixture
def connect(server: TcpServer) -> Generator[Callable[[], socket.socket], None, None]:
    """Factory for client sockets connected to the server fixture.

    Each call waits until the server has registered the new client.
    """
    clients: list[socket.socket] = []

    def _connect() -> socket.socket:
        address = server.local_address
        assert address is not None
        expected = len(server.peers()) + 1
        client = socket.create_connection((address.host, address.port), timeout=WAIT_TIMEOUT_S)
        clients.append(client)
        assert wait_until(lambda: len(server.peers()) >= expected)
        return client

    yield _connect

    for client in clients:
        client.close()


def identity_of(client: socket.socket) -> PeerIdentity:
    """The identity the server sees for a client socket."""
    return PeerIdentity.from_address(client.getsockname())


@pytest.fixture
def script_dir() -> Path:
    """Return path to the main script directory."""
    return Path(__file__).parent.parent
