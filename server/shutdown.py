"""Server shutdown functions for tcp-diagtool."""

import logging
import socket
from collections.abc import Iterable

from server.events import EventSink

logger = logging.getLogger(__name__)


def close_quietly(sock: socket.socket, sink: EventSink) -> bool:
    """Close one socket. Failures are reported, never raised."""
    try:
        sock.close()
        return True
    except OSError as e:
        logger.warning(f"Close failed: {e}")
        sink.on_debug(f"Close failed: {e}")
        return False


def close_all(sockets: Iterable[socket.socket], sink: EventSink) -> int:
    """Best-effort close of every socket. Returns how many closed cleanly."""
    closed = 0
    for sock in sockets:
        if close_quietly(sock, sink):
            closed += 1
    logger.debug(f"Closed {closed} socket(s)")
    return closed
