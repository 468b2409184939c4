"""Simulator runner for tcp-diagtool.

Contains run_client() which opens the link, answers commands until the
duration expires, the server disconnects, or SIGINT/SIGTERM arrives.
"""

import logging
import signal
import threading
from enum import IntEnum
from types import FrameType

import serial

from client.simulator import DriveSimulator
from common.device import DEFAULT_BAUDRATE, open_link

logger = logging.getLogger(__name__)


class ExitCode(IntEnum):
    """Exit codes for simulator runs."""

    SUCCESS = 0  # Ran until duration/signal
    LINK_FAILED = 1  # Could not open the link
    DISCONNECTED = 2  # Server closed the connection
    NO_COMMANDS = 3  # Ran to completion without receiving anything


def run_client(
    url: str,
    duration_s: float = 0,
    baudrate: int = DEFAULT_BAUDRATE,
) -> int:
    """Run the drive simulator. Returns an ExitCode.

    duration_s = 0 runs until a signal or disconnect.
    """
    stop = threading.Event()

    def handle_signal(_sig: int, _frame: FrameType | None) -> None:
        logger.info("Signal received - shutting down")
        stop.set()

    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)

    try:
        link = open_link(url, baudrate)
    except serial.SerialException as e:
        logger.error(f"Failed to open link: {e}")
        return ExitCode.LINK_FAILED

    timer = None
    if duration_s > 0:
        timer = threading.Timer(duration_s, stop.set)
        timer.daemon = True
        timer.start()

    simulator = DriveSimulator(link)
    try:
        stats = simulator.serve(stop)
    except serial.SerialException as e:
        logger.warning(f"Link lost: {e}")
        return ExitCode.DISCONNECTED
    finally:
        if timer is not None:
            timer.cancel()
        link.close()
        logger.info(f"Closed {url}")

    if stats.commands == 0:
        return ExitCode.NO_COMMANDS
    return ExitCode.SUCCESS
