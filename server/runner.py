"""Server controller for tcp-diagtool.

Contains:
- ServerState: Lifecycle states of the controller
- TcpServer: Control surface (start/stop/send/select) around ServerLoop
- run_server(): Console front end used by diagtool.py
"""

import logging
import socket
import sys
import threading
from enum import Enum
from typing import TextIO

from common.connection import BindError, PeerIdentity
from common.encoding import EncodingError, encode_line
from common.protocol import MAX_PORT, MIN_PORT
from server.events import ConsoleEventSink, EventSink, LoggingEventSink
from server.loop import SelectPeer, ServerConfig, ServerLoop
from server.outbound import OutboundQueue
from server.registry import ClientRegistry

logger = logging.getLogger(__name__)

# Upper bound for stop(wait=True) when no timeout is given
DEFAULT_STOP_TIMEOUT_S = 5.0


class ServerState(Enum):
    """Lifecycle of a TcpServer."""

    IDLE = "idle"
    LISTENING = "listening"
    CLOSING = "closing"


def open_listener(host: str, port: int, backlog: int) -> socket.socket:
    """Bind and listen on host:port.

    Raises:
        BindError: If the port is out of range or the socket cannot be bound.
    """
    if isinstance(port, bool) or not isinstance(port, int):
        raise BindError(f"Port must be an integer, got {port!r}")
    if not MIN_PORT <= port <= MAX_PORT:
        raise BindError(f"Port {port} out of range {MIN_PORT}-{MAX_PORT}")

    family = socket.AF_INET6 if ":" in host else socket.AF_INET
    try:
        # SO_REUSEADDR is set by create_server on POSIX
        return socket.create_server((host, port), family=family, backlog=backlog)
    except OSError as e:
        raise BindError(f"Cannot listen on {host}:{port}: {e}") from e


class TcpServer:
    """Start/stop a listening session and route payloads to the selected peer.

    Every method is called from the request-handling thread; none of them
    raise for operational errors. Failures are reported as debug events.
    """

    def __init__(self, sink: EventSink | None = None, config: ServerConfig | None = None) -> None:
        self.config = config or ServerConfig()
        self.sink: EventSink = sink or LoggingEventSink(self.config.send_mode)
        self._registry = ClientRegistry()
        self._outbound = OutboundQueue()
        self._lock = threading.Lock()
        self._state_lock = threading.Lock()
        self._state = ServerState.IDLE
        self._cancel = threading.Event()
        self._loop: ServerLoop | None = None
        self._thread: threading.Thread | None = None
        self._local_address: PeerIdentity | None = None
        self._last_command = 0

    @property
    def state(self) -> ServerState:
        with self._state_lock:
            return self._state

    @property
    def local_address(self) -> PeerIdentity | None:
        """Address the current session listens on (None when idle)."""
        return self._local_address

    @property
    def last_command(self) -> int:
        """First byte of the most recently sent payload; selects the report variant."""
        return self._last_command

    def start(self, port: int) -> bool:
        """Open the listening socket and start the loop thread.

        Returns False (with a debug event) if already running or bind fails.
        """
        error: BindError | None = None
        with self._state_lock:
            state = self._state
            if state == ServerState.IDLE:
                try:
                    listener = open_listener(self.config.host, port, self.config.backlog)
                except BindError as e:
                    error = e
                else:
                    self._begin_session(listener)
                    address = self._local_address

        # Sinks are called without holding the state lock
        if state != ServerState.IDLE:
            logger.warning(f"Start ignored: server is {state.value}")
            self.sink.on_debug("Server already running.")
            return False
        if error is not None:
            logger.error(str(error))
            self.sink.on_debug(str(error))
            return False

        logger.info(f"Server listening on {address}")
        self.sink.on_debug(f"Server listening on {address} ...")
        return True

    def _begin_session(self, listener: socket.socket) -> None:
        self._cancel.clear()
        stale = self._outbound.clear()
        if stale:
            logger.info(f"Discarded {stale} payload(s) left from the previous session")
        self._local_address = PeerIdentity.from_address(listener.getsockname())
        self._loop = ServerLoop(
            listener,
            self.sink,
            self._registry,
            self._outbound,
            self._lock,
            self._cancel,
            lambda: self._last_command,
            self.config,
        )
        self._thread = threading.Thread(
            target=self._run_session, args=(self._loop,), name="diag-server", daemon=True
        )
        self._state = ServerState.LISTENING
        self._thread.start()

    def _run_session(self, loop: ServerLoop) -> None:
        try:
            loop.run()
        finally:
            with self._state_lock:
                self._state = ServerState.IDLE
                self._local_address = None
                self._loop = None
            self.sink.on_stopped()

    def stop(self, wait: bool = True, timeout: float | None = None) -> None:
        """Request cancellation; with wait=True block until the session ended."""
        with self._state_lock:
            if self._state == ServerState.LISTENING:
                self._state = ServerState.CLOSING
                logger.info("Stopping server")
            self._cancel.set()
            thread = self._thread

        if wait and thread is not None and thread.is_alive() and thread is not threading.current_thread():
            thread.join(DEFAULT_STOP_TIMEOUT_S if timeout is None else timeout)
            if thread.is_alive():
                logger.warning("Server loop did not stop in time")

    def select_peer(self, identity: PeerIdentity) -> None:
        """Route outbound payloads to this peer from the next cycle on."""
        with self._state_lock:
            loop = self._loop
        if loop is None:
            self.sink.on_debug("Server not running.")
            return
        loop.post(SelectPeer(identity))

    def send(self, payload: bytes, peer: PeerIdentity | None = None) -> bool:
        """Queue a payload for the selected peer (selecting `peer` first if given).

        Returns True if the payload was queued.
        """
        if not payload:
            self.sink.on_debug("Nothing to send.")
            return False

        # Enqueue under the state lock so stop() cannot clear the queue in between
        with self._state_lock:
            loop = self._loop if self._state == ServerState.LISTENING else None
            if loop is not None:
                if peer is not None:
                    loop.post(SelectPeer(peer))
                self._last_command = payload[0]
                self._outbound.enqueue(payload)

        if loop is None:
            self.sink.on_debug("Server not running.")
            return False
        if peer is None and self.selected_peer() is None:
            self.sink.on_debug("Client not selected; payload queued.")
        return True

    def send_line(self, line: str, peer: PeerIdentity | None = None) -> bool:
        """Encode an operator line per the configured send mode and send it."""
        try:
            payload = encode_line(line, self.config.send_mode)
        except EncodingError as e:
            self.sink.on_debug(str(e))
            return False
        return self.send(payload, peer)

    def peers(self) -> list[PeerIdentity]:
        with self._lock:
            return self._registry.identities()

    def selected_peer(self) -> PeerIdentity | None:
        with self._lock:
            selected = self._registry.selected()
        return selected[0] if selected else None

    def pending(self) -> int:
        """Number of payloads waiting for a writable selected peer."""
        return len(self._outbound)


def _handle_console_command(server: TcpServer, line: str, out: TextIO) -> bool:
    """Run a /command. Returns False when the console should exit."""
    command, _, arg = line[1:].partition(" ")
    match command:
        case "quit" | "stop":
            return False
        case "peers":
            selected = server.selected_peer()
            for peer in server.peers():
                marker = "*" if peer == selected else " "
                print(f"{marker} {peer}", file=out)
            if not server.peers():
                print("(no clients)", file=out)
        case "select":
            try:
                server.select_peer(PeerIdentity.parse(arg))
            except ValueError as e:
                print(f"Invalid peer: {e}", file=out)
        case _:
            print("Commands: /peers, /select host:port, /quit", file=out)
    return True


def run_server(
    port: int,
    config: ServerConfig | None = None,
    stdin: TextIO | None = None,
    out: TextIO | None = None,
) -> int:
    """Run the console front end. Returns 0 on clean exit, 1 if start fails.

    Each stdin line is sent to the selected client; lines starting with "/"
    are console commands.
    """
    config = config or ServerConfig()
    stdin = stdin or sys.stdin
    out = out or sys.stdout
    server = TcpServer(ConsoleEventSink(config.send_mode, out), config)

    if not server.start(port):
        return 1

    try:
        for raw in stdin:
            line = raw.rstrip("\r\n")
            if server.state == ServerState.IDLE:
                logger.warning("Server loop exited")
                break
            if line.startswith("/"):
                if not _handle_console_command(server, line, out):
                    break
            elif line:
                server.send_line(line)
    except KeyboardInterrupt:
        logger.info("Interrupted - shutting down")
    finally:
        server.stop()

    logger.info("Server shutdown complete")
    return 0
