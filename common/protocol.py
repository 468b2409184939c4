"""Protocol definitions for tcp-diagtool.

Contains:
- CommandByte enum for command bytes that change how replies are decoded
- SendMode enum for the outbound payload encoding
- Buffer sizes and timing constants for the server loop
- Logging configuration
"""

import logging
import os
from enum import Enum, IntEnum

# TRACE logging level (below DEBUG)
TRACE = 5
logging.addLevelName(TRACE, "TRACE")


class CommandByte(IntEnum):
    """Command bytes with special meaning for report decoding."""

    FAULT_DOWNLOAD = 0x10  # Reply is a Fault Report instead of a Status Report


class SendMode(Enum):
    """How a line typed by the operator is turned into bytes on the wire."""

    HEX = "hex"  # Space-separated hex bytes, e.g. "10 00 ff"
    TEXT = "text"  # UTF-8 text terminated with CRLF


FAULT_DOWNLOAD = CommandByte.FAULT_DOWNLOAD

# Receive buffer for a single recv() call
RX_BUFFER_SIZE = 4 * 1024

# Only the first bytes of a receive are inspected by the report decoder
INSPECT_WINDOW = 64

# Listen backlog for the server socket
LISTEN_BACKLOG = 2

# Poll timeout bounds how quickly the loop notices a stop request
DEFAULT_POLL_TIMEOUT_S = float(os.environ.get("DIAG_POLL_TIMEOUT_S", "0.1"))

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = int(os.environ.get("DIAG_PORT", "5000"))

MIN_PORT = 0
MAX_PORT = 65535
