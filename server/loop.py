"""Connection-multiplexing server loop for tcp-diagtool.

One thread waits on the listening socket and every client socket with a
selector, then per cycle:
  1. Applies control commands posted from other threads (peer selection)
  2. Accepts new connections
  3. Reads from ready clients, forwarding text and decoded reports
  4. Writes queued payloads to the selected client while it accepts data

Client sockets are non-blocking. A payload that only partly fits into the
socket buffer stays in flight and is finished on later write-ready cycles,
bound to the peer it started on.

A failure on one client drops that client only. A failure of the selector
or the listening socket ends the session. Either way the session ends with
every socket closed and the registry cleared.
"""

import logging
import queue
import selectors
import socket
import threading
from collections.abc import Callable
from dataclasses import dataclass

from common import codec
from common.connection import LoopFatalError, PeerIdentity, PeerIOError
from common.encoding import decode_text, format_hex
from common.protocol import (
    DEFAULT_HOST,
    DEFAULT_POLL_TIMEOUT_S,
    INSPECT_WINDOW,
    LISTEN_BACKLOG,
    RX_BUFFER_SIZE,
    TRACE,
    SendMode,
)
from server.events import EventSink
from server.outbound import OutboundQueue
from server.registry import ClientRegistry, DuplicateIdentityError, UnknownIdentityError
from server.shutdown import close_all, close_quietly

logger = logging.getLogger(__name__)


@dataclass
class ServerConfig:
    """Settings for one listening session."""

    host: str = DEFAULT_HOST
    send_mode: SendMode = SendMode.HEX
    poll_timeout_s: float = DEFAULT_POLL_TIMEOUT_S
    rx_buffer_size: int = RX_BUFFER_SIZE
    inspect_window: int = INSPECT_WINDOW
    backlog: int = LISTEN_BACKLOG
    decode_reports: bool = True


@dataclass(frozen=True)
class SelectPeer:
    """Command: route outbound payloads to this peer."""

    identity: PeerIdentity


@dataclass
class InFlight:
    """A payload partly written to one peer."""

    identity: PeerIdentity
    payload: bytes
    offset: int = 0

    def remaining(self) -> memoryview:
        return memoryview(self.payload)[self.offset :]

    @property
    def done(self) -> bool:
        return self.offset >= len(self.payload)


class ServerLoop:
    """Reactor for one listening session.

    The registry is shared with the controller for read-only snapshots;
    every mutation here happens under `lock`. Selection changes arrive
    through post() so they are applied on the loop thread.
    """

    def __init__(
        self,
        listener: socket.socket,
        sink: EventSink,
        registry: ClientRegistry,
        outbound: OutboundQueue,
        lock: threading.Lock,
        cancel: threading.Event,
        last_command: Callable[[], int],
        config: ServerConfig | None = None,
    ) -> None:
        self._listener = listener
        self._sink = sink
        self._registry = registry
        self._outbound = outbound
        self._lock = lock
        self._cancel = cancel
        self._last_command = last_command
        self._config = config or ServerConfig()
        self._commands: queue.SimpleQueue[SelectPeer] = queue.SimpleQueue()
        self._selector = selectors.DefaultSelector()
        self._watching_listener = False
        self._write_watch: socket.socket | None = None
        self._in_flight: InFlight | None = None

    def post(self, command: SelectPeer) -> None:
        """Queue a command for the loop thread. Safe from any thread."""
        self._commands.put(command)

    def run(self) -> None:
        """Run cycles until cancelled or a fatal error, then tear down."""
        try:
            while not self._cancel.is_set():
                self.cycle()
        except LoopFatalError as e:
            logger.error(f"Server loop stopped: {e}")
            self._sink.on_debug(str(e))
        except Exception as e:
            logger.exception("Unexpected server loop failure")
            self._sink.on_debug(f"Server loop failed: {e}")
        finally:
            self.teardown()

    def cycle(self) -> None:
        """One wait-and-dispatch round.

        Raises:
            LoopFatalError: If the selector or the listening socket fails.
        """
        self._watch_listener()
        self._apply_commands()

        with self._lock:
            candidate = self._write_target()
        self._watch_writes(candidate[1] if candidate else None)

        try:
            events = self._selector.select(self._config.poll_timeout_s)
        except (OSError, ValueError) as e:
            raise LoopFatalError(f"Poll failed: {e}") from e

        writable = False
        for key, mask in events:
            sock = key.fileobj
            if sock is self._listener:
                self._accept()
                continue
            if mask & selectors.EVENT_READ:
                self._read(key.data, sock)
            if mask & selectors.EVENT_WRITE and candidate and sock is candidate[1]:
                writable = True

        if writable:
            # A selection posted together with the payload must win
            self._apply_commands()
            with self._lock:
                current = self._write_target()
            if current == candidate:
                self._drain(*candidate)

    def teardown(self) -> None:
        """Close every connection and the listener, forget all session state."""
        with self._lock:
            sockets = self._registry.handles()
            self._registry.clear()
        self._selector.close()
        self._write_watch = None
        close_all([*sockets, self._listener], self._sink)

        dropped = self._outbound.clear()
        if self._in_flight is not None:
            dropped += 1
            self._in_flight = None
        if dropped:
            logger.info(f"Discarded {dropped} unsent payload(s)")
        self._sink.on_debug("Server stopped running.")

    def _watch_listener(self) -> None:
        if self._watching_listener:
            return
        try:
            self._listener.setblocking(False)
            self._selector.register(self._listener, selectors.EVENT_READ)
        except (OSError, ValueError) as e:
            raise LoopFatalError(f"Cannot watch listener: {e}") from e
        self._watching_listener = True

    def _write_target(self) -> tuple[PeerIdentity, socket.socket] | None:
        # Caller holds the lock
        if self._in_flight is not None:
            sock = self._registry.lookup(self._in_flight.identity)
            if sock is not None:
                return self._in_flight.identity, sock
        if self._outbound.empty():
            return None
        return self._registry.selected()

    def _watch_writes(self, sock: socket.socket | None) -> None:
        if sock is self._write_watch:
            return
        if self._write_watch is not None:
            self._set_events(self._write_watch, selectors.EVENT_READ)
        if sock is not None:
            self._set_events(sock, selectors.EVENT_READ | selectors.EVENT_WRITE)
        self._write_watch = sock

    def _set_events(self, sock: socket.socket, events: int) -> None:
        key = self._selector.get_key(sock)
        self._selector.modify(sock, events, key.data)

    def _unwatch(self, sock: socket.socket) -> None:
        if sock is self._write_watch:
            self._write_watch = None
        try:
            self._selector.unregister(sock)
        except (KeyError, ValueError):
            pass

    def _apply_commands(self) -> None:
        while True:
            try:
                command = self._commands.get_nowait()
            except queue.Empty:
                return

            match command:
                case SelectPeer(identity=identity):
                    try:
                        with self._lock:
                            self._registry.set_selected(identity)
                    except UnknownIdentityError as e:
                        logger.warning(str(e))
                        self._sink.on_debug(str(e))
                        continue
                    logger.debug(f"Selected {identity}")
                case _:
                    logger.warning(f"Ignoring unknown command {command!r}")

    def _accept(self) -> None:
        """Accept every connection waiting in the backlog."""
        while True:
            try:
                conn, address = self._listener.accept()
            except BlockingIOError:
                return
            except ConnectionAbortedError as e:
                logger.debug(f"Connection aborted before accept: {e}")
                continue
            except OSError as e:
                raise LoopFatalError(f"Accept failed: {e}") from e
            self._register(conn, PeerIdentity.from_address(address))

    def _register(self, conn: socket.socket, identity: PeerIdentity) -> None:
        try:
            with self._lock:
                self._registry.add(identity, conn)
        except DuplicateIdentityError as e:
            logger.warning(str(e))
            self._sink.on_debug(str(e))
            close_quietly(conn, self._sink)
            return

        conn.setblocking(False)
        self._selector.register(conn, selectors.EVENT_READ, identity)
        self._sink.on_connected(identity)
        self._sink.on_debug(f"Connection[{identity}] established.")

    def _recv(self, sock: socket.socket) -> bytes | None:
        try:
            return sock.recv(self._config.rx_buffer_size)
        except BlockingIOError:
            return None
        except OSError as e:
            raise PeerIOError(str(e)) from e

    def _send(self, sock: socket.socket, data: memoryview) -> int:
        try:
            return sock.send(data)
        except BlockingIOError:
            return 0
        except OSError as e:
            raise PeerIOError(str(e)) from e

    def _read(self, identity: PeerIdentity, sock: socket.socket) -> None:
        try:
            data = self._recv(sock)
        except PeerIOError as e:
            self._drop(identity, sock, "broken", str(e))
            return

        if data is None:
            return
        if not data:
            self._drop(identity, sock, "closed", "closed by peer")
            return

        window = data[: self._config.inspect_window]
        logger.log(TRACE, f"{identity} rx {len(data)} bytes: {format_hex(window)}")
        self._sink.on_received(identity, decode_text(data))

        if self._config.decode_reports:
            self._decode(window)

    def _decode(self, window: bytes) -> None:
        try:
            report = codec.decode(window, len(window), self._last_command())
        except codec.TruncatedError as e:
            logger.debug(str(e))
            self._sink.on_debug(str(e))
            return
        self._sink.on_decoded(report)

    def _drain(self, identity: PeerIdentity, sock: socket.socket) -> None:
        """Write until the socket buffer is full or nothing is pending."""
        while True:
            if self._in_flight is None:
                payload = self._outbound.try_dequeue()
                if payload is None:
                    return
                self._in_flight = InFlight(identity, payload)

            flight = self._in_flight
            try:
                written = self._send(sock, flight.remaining())
            except PeerIOError as e:
                self._drop(identity, sock, "broken", str(e))
                return
            if written == 0:
                return

            flight.offset += written
            if not flight.done:
                logger.log(TRACE, f"{identity} tx {flight.offset}/{len(flight.payload)} bytes")
                continue
            self._in_flight = None
            self._sink.on_sent(identity, flight.payload)

    def _drop(self, identity: PeerIdentity, sock: socket.socket, state: str, reason: str) -> None:
        with self._lock:
            self._registry.remove(identity)
        if self._in_flight is not None and self._in_flight.identity == identity:
            logger.info(f"Discarded partly written payload for {identity}")
            self._in_flight = None
        self._unwatch(sock)
        close_quietly(sock, self._sink)
        self._sink.on_disconnected(identity, reason)
        self._sink.on_debug(f"Connection[{identity}] {state}.")
