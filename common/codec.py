"""Drive report encoding/decoding for tcp-diagtool.

Reports have no framing; the layout is fixed and the variant is implied by
the last command byte sent to the drive:

  Status (any command but 0x10), 19 bytes:
    [flags hi][flags lo][freq:2][avg I:2][avg V:2][VS1:2][VS2:2]
    [gnd fault I:2][temp:2][sw major][sw minor][bad cmd]

  Fault (command 0x10), 20 bytes:
    [flags hi][flags lo][freq:2][U I:2][V I:2][W I:2][VS1:2][VS2:2]
    [gnd I:2][temp:2][mod index:2]

Flag bytes are MSB first: byte 0 holds CB16..CB9, byte 1 holds CB8..CB1.
16-bit integers are big-endian unsigned. Currents, voltages, temperature and
modulation index are transmitted in tenths.
"""

from typing import Literal

from common.protocol import FAULT_DOWNLOAD
from common.report import FLAG_COUNT, FaultReport, Report, StatusReport

UINT16_SIZE = 2
BYTE_ORDER: Literal["little", "big"] = "big"
SCALE = 10.0

STATUS_REPORT_SIZE = 19
FAULT_REPORT_SIZE = 20


class CodecError(Exception):
    """Raised when report bytes cannot be decoded."""

    pass


class TruncatedError(CodecError):
    """Raised when fewer bytes were received than the report layout needs."""

    pass


def uint16_from_bytes(data: bytes) -> int:
    """Decode big-endian bytes to unsigned 16-bit int."""
    return int.from_bytes(data, BYTE_ORDER, signed=False)


def uint16_to_bytes(value: int) -> bytes:
    """Encode unsigned 16-bit int as big-endian bytes."""
    return value.to_bytes(UINT16_SIZE, BYTE_ORDER, signed=False)


def _word(data: bytes, offset: int) -> int:
    return uint16_from_bytes(data[offset : offset + UINT16_SIZE])


def _tenths(data: bytes, offset: int) -> float:
    return round(_word(data, offset) / SCALE, 1)


def _to_tenths(value: float) -> bytes:
    return uint16_to_bytes(int(round(value * SCALE)))


def decode_flags(hi: int, lo: int) -> tuple[bool, ...]:
    """Unpack the two flag bytes into (CB1, ..., CB16)."""
    word = (hi << 8) | lo
    return tuple(bool(word & (1 << bit)) for bit in range(FLAG_COUNT))


def encode_flags(flags: tuple[bool, ...]) -> bytes:
    """Pack (CB1, ..., CB16) into the two flag bytes."""
    word = 0
    for bit, flag in enumerate(flags):
        if flag:
            word |= 1 << bit
    return uint16_to_bytes(word)


def report_size(last_command: int) -> int:
    """Return the minimum number of bytes for the report variant."""
    return FAULT_REPORT_SIZE if last_command == FAULT_DOWNLOAD else STATUS_REPORT_SIZE


def decode(data: bytes, length: int, last_command: int) -> Report:
    """Decode a report from the first `length` bytes of `data`.

    The variant is a FaultReport if last_command is 0x10, otherwise a
    StatusReport.

    Raises:
        TruncatedError: If fewer bytes are available than the variant needs.
    """
    length = min(length, len(data))
    needed = report_size(last_command)
    if length < needed:
        raise TruncatedError(f"Report too short: {length} bytes, need at least {needed}")

    flags = decode_flags(data[0], data[1])

    if last_command == FAULT_DOWNLOAD:
        return FaultReport(
            flags=flags,
            out_freq=_word(data, 2),
            u_phase_current=_tenths(data, 4),
            v_phase_current=_tenths(data, 6),
            w_phase_current=_tenths(data, 8),
            vs1=_tenths(data, 10),
            vs2=_tenths(data, 12),
            ground_current=_tenths(data, 14),
            temperature=_tenths(data, 16),
            modulation_index=_tenths(data, 18),
        )

    return StatusReport(
        flags=flags,
        out_freq=_word(data, 2),
        avg_rms_current=_tenths(data, 4),
        avg_rms_voltage=_tenths(data, 6),
        vs1=_tenths(data, 8),
        vs2=_tenths(data, 10),
        ground_fault_current=_tenths(data, 12),
        temperature=_tenths(data, 14),
        sw_version_major=data[16],
        sw_version_minor=data[17],
        bad_command=data[18],
    )


def encode_status(report: StatusReport) -> bytes:
    """Encode a StatusReport into its 19 wire bytes.

    Raises ValueError if a field does not fit its wire size.
    """
    try:
        return (
            encode_flags(report.flags)
            + uint16_to_bytes(report.out_freq)
            + _to_tenths(report.avg_rms_current)
            + _to_tenths(report.avg_rms_voltage)
            + _to_tenths(report.vs1)
            + _to_tenths(report.vs2)
            + _to_tenths(report.ground_fault_current)
            + _to_tenths(report.temperature)
            + bytes([report.sw_version_major, report.sw_version_minor, report.bad_command])
        )
    except OverflowError as e:
        raise ValueError(f"Status field out of range: {e}") from e


def encode_fault(report: FaultReport) -> bytes:
    """Encode a FaultReport into its 20 wire bytes."""
    try:
        return (
            encode_flags(report.flags)
            + uint16_to_bytes(report.out_freq)
            + _to_tenths(report.u_phase_current)
            + _to_tenths(report.v_phase_current)
            + _to_tenths(report.w_phase_current)
            + _to_tenths(report.vs1)
            + _to_tenths(report.vs2)
            + _to_tenths(report.ground_current)
            + _to_tenths(report.temperature)
            + _to_tenths(report.modulation_index)
        )
    except OverflowError as e:
        raise ValueError(f"Fault field out of range: {e}") from e
