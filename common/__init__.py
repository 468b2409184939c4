"""Common modules for tcp-diagtool.

This package contains code shared by the server and the drive simulator:
- protocol: CommandByte/SendMode enums, buffer and timing constants
- connection: PeerIdentity and session-level exceptions
- report: StatusReport/FaultReport records
- codec: Report encoding/decoding
- encoding: Send-mode payload encoding
- device: pyserial link setup for the simulator
"""

from common.codec import CodecError, TruncatedError, decode
from common.connection import BindError, LoopFatalError, PeerIdentity, PeerIOError
from common.encoding import EncodingError
from common.protocol import (
    FAULT_DOWNLOAD,
    INSPECT_WINDOW,
    LISTEN_BACKLOG,
    RX_BUFFER_SIZE,
    CommandByte,
    SendMode,
)
from common.report import FaultReport, Report, StatusReport

__all__ = [
    # Protocol
    "CommandByte",
    "SendMode",
    "FAULT_DOWNLOAD",
    "INSPECT_WINDOW",
    "LISTEN_BACKLOG",
    "RX_BUFFER_SIZE",
    # Identity and reports
    "PeerIdentity",
    "Report",
    "StatusReport",
    "FaultReport",
    "decode",
    # Exceptions
    "BindError",
    "CodecError",
    "EncodingError",
    "LoopFatalError",
    "PeerIOError",
    "TruncatedError",
]
