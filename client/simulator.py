"""Drive simulator for tcp-diagtool.

Connects to the diagnostic server over any pyserial link (socket://host:port
for TCP, or a real serial port behind a serial-to-Ethernet bridge) and
answers each command with a report:
- 0x10 (fault download) -> FaultReport
- anything else         -> StatusReport
"""

import logging
import threading
from dataclasses import dataclass
from typing import Protocol

from common.codec import encode_fault, encode_status
from common.encoding import format_hex
from common.protocol import FAULT_DOWNLOAD, RX_BUFFER_SIZE, TRACE
from common.report import FaultReport, StatusReport

logger = logging.getLogger(__name__)

DEFAULT_STATUS = StatusReport(
    out_freq=50,
    avg_rms_current=10.0,
    avg_rms_voltage=230.0,
    vs1=24.0,
    vs2=15.0,
    ground_fault_current=0.0,
    temperature=35.5,
    sw_version_major=1,
    sw_version_minor=4,
    bad_command=0,
)

DEFAULT_FAULT = FaultReport(
    flags=(True,) + (False,) * 15,
    out_freq=50,
    u_phase_current=12.1,
    v_phase_current=11.9,
    w_phase_current=30.4,
    vs1=24.0,
    vs2=15.0,
    ground_current=2.5,
    temperature=61.0,
    modulation_index=0.9,
)


class Link(Protocol):
    """Protocol for the pyserial calls the simulator needs."""

    def write(self, data: bytes, /) -> int | None: ...
    def read(self, size: int = ..., /) -> bytes: ...
    def close(self) -> None: ...


@dataclass
class SimulatorStats:
    """Counters for one simulator run."""

    commands: int = 0
    status_replies: int = 0
    fault_replies: int = 0


class DriveSimulator:
    """Answers diagnostic commands with canned reports."""

    def __init__(
        self,
        link: Link,
        status: StatusReport = DEFAULT_STATUS,
        fault: FaultReport = DEFAULT_FAULT,
    ) -> None:
        self._link = link
        self._status = encode_status(status)
        self._fault = encode_fault(fault)
        self.stats = SimulatorStats()

    def reply_for(self, command: bytes) -> bytes:
        """Return the report bytes answering a received command."""
        if command and command[0] == FAULT_DOWNLOAD:
            return self._fault
        return self._status

    def handle(self, data: bytes) -> None:
        """Answer one received chunk."""
        reply = self.reply_for(data)
        self.stats.commands += 1
        if reply is self._fault:
            self.stats.fault_replies += 1
        else:
            self.stats.status_replies += 1
        logger.log(TRACE, f"Simulator: rx {format_hex(data)} -> tx {format_hex(reply)}")
        self._link.write(reply)

    def serve(self, stop: threading.Event) -> SimulatorStats:
        """Read and answer until `stop` is set. The link read timeout bounds latency."""
        logger.info("Simulator: waiting for commands")
        while not stop.is_set():
            data = self._link.read(RX_BUFFER_SIZE)
            if data:
                self.handle(data)
        logger.info(
            f"Simulator: {self.stats.commands} command(s), "
            f"{self.stats.status_replies} status, {self.stats.fault_replies} fault"
        )
        return self.stats
