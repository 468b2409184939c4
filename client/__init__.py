"""Client package for tcp-diagtool.

Contains the drive simulator that plays the device side of the protocol:
- simulator: DriveSimulator
- runner: run_client
"""

from client.simulator import DEFAULT_FAULT, DEFAULT_STATUS, DriveSimulator

__all__ = [
    "DEFAULT_FAULT",
    "DEFAULT_STATUS",
    "DriveSimulator",
]
