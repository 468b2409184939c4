"""Link setup for the drive simulator.

Contains:
- tcp_url: Build a pyserial socket:// URL for a TCP endpoint
- log_device_info: Log information about a serial device or URL
- open_link: Open a serial device path or pyserial URL
"""

import logging

import serial
import serial.tools.list_ports

logger = logging.getLogger(__name__)

DEFAULT_BAUDRATE = 9600
DEFAULT_READ_TIMEOUT_S = 0.1


def tcp_url(host: str, port: int) -> str:
    """Return the pyserial URL for a raw TCP connection."""
    return f"socket://{host}:{port}"


def log_device_info(url: str) -> None:
    """Log information about a serial device."""
    if "://" in url:
        logger.info(f"Link: {url}")
        return

    ports = [p for p in serial.tools.list_ports.comports() if p.device == url]
    if len(ports) == 0:
        logger.info(f"Device: {url} (not in port list)")
        return
    if len(ports) > 1:
        raise RuntimeError(f"Multiple ports found for device {url}")

    info = ports[0]
    logger.info(f"Device: {info.device}")
    logger.info(f"Description: {info.description}")
    if info.vid is not None:
        logger.info(f"VID:PID: {info.vid:04x}:{info.pid:04x}")


def open_link(
    url: str,
    baudrate: int = DEFAULT_BAUDRATE,
    timeout: float = DEFAULT_READ_TIMEOUT_S,
) -> serial.SerialBase:
    """Open a device path (/dev/ttyUSB0, COM3) or URL (socket://host:port).

    Raises serial.SerialException if the link cannot be opened.
    """
    log_device_info(url)
    link = serial.serial_for_url(
        url,
        baudrate=baudrate,
        bytesize=serial.EIGHTBITS,
        parity=serial.PARITY_NONE,
        stopbits=serial.STOPBITS_ONE,
        timeout=timeout,
        write_timeout=1.0,
    )
    logger.debug(f"Link open: {link.name}, timeout={link.timeout}s")
    return link
