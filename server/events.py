"""Event sinks for tcp-diagtool.

Contains:
- EventSink: Protocol the server loop reports to
- LoggingEventSink: Writes every event to the module logger
- ConsoleEventSink: Also prints timestamped lines and decoded reports

Sinks are called from the server loop thread.
"""

import logging
import sys
from datetime import datetime
from typing import Protocol, TextIO

from common.connection import PeerIdentity
from common.encoding import format_payload
from common.protocol import TRACE, SendMode
from common.report import Report

logger = logging.getLogger(__name__)


class EventSink(Protocol):
    """Receives lifecycle, traffic and decoded-report events."""

    def on_connected(self, identity: PeerIdentity) -> None: ...
    def on_disconnected(self, identity: PeerIdentity, reason: str) -> None: ...
    def on_received(self, identity: PeerIdentity, text: str) -> None: ...
    def on_decoded(self, report: Report) -> None: ...
    def on_sent(self, identity: PeerIdentity, payload: bytes) -> None: ...
    def on_debug(self, message: str) -> None: ...
    def on_stopped(self) -> None: ...


class LoggingEventSink:
    """Event sink that only logs."""

    def __init__(self, send_mode: SendMode = SendMode.HEX) -> None:
        self.send_mode = send_mode

    def on_connected(self, identity: PeerIdentity) -> None:
        logger.info(f"Connected: {identity}")

    def on_disconnected(self, identity: PeerIdentity, reason: str) -> None:
        logger.info(f"Disconnected: {identity} ({reason})")

    def on_received(self, identity: PeerIdentity, text: str) -> None:
        logger.info(f"Received from {identity}:{text}")

    def on_decoded(self, report: Report) -> None:
        logger.log(TRACE, f"Decoded {report}")
        if report.active_flags:
            logger.info(f"{report.title}: flags set {' '.join(report.active_flags)}")

    def on_sent(self, identity: PeerIdentity, payload: bytes) -> None:
        logger.info(f"Sent to {identity}:{format_payload(payload, self.send_mode)}")

    def on_debug(self, message: str) -> None:
        logger.info(f"Debug:{message}")

    def on_stopped(self) -> None:
        logger.info("Server stopped")


def _timestamp() -> str:
    return datetime.now().strftime("%y-%m-%d %H:%M:%S.%f")[:-3]


class ConsoleEventSink(LoggingEventSink):
    """Event sink for the console front end.

    Lines look like "<24-05-01 12:00:00.000> <10.0.0.5:51234> <text>".
    """

    def __init__(self, send_mode: SendMode = SendMode.HEX, out: TextIO | None = None) -> None:
        super().__init__(send_mode)
        self._out = out or sys.stdout

    def _line(self, *parts: object) -> None:
        body = " ".join(f"<{p}>" for p in parts)
        print(f"<{_timestamp()}> {body}", file=self._out, flush=True)

    def on_connected(self, identity: PeerIdentity) -> None:
        super().on_connected(identity)
        self._line(identity, "connected")

    def on_disconnected(self, identity: PeerIdentity, reason: str) -> None:
        super().on_disconnected(identity, reason)
        self._line(identity, f"disconnected: {reason}")

    def on_received(self, identity: PeerIdentity, text: str) -> None:
        super().on_received(identity, text)
        self._line(identity, f"rx {text}")

    def on_decoded(self, report: Report) -> None:
        super().on_decoded(report)
        for line in report.lines():
            print(line, file=self._out)
        self._out.flush()

    def on_sent(self, identity: PeerIdentity, payload: bytes) -> None:
        super().on_sent(identity, payload)
        self._line(identity, f"tx {format_payload(payload, self.send_mode)}")

    def on_debug(self, message: str) -> None:
        super().on_debug(message)
        self._line(message)

    def on_stopped(self) -> None:
        super().on_stopped()
        self._line("Server stopped running.")
