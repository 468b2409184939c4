"""Outbound payload encoding for tcp-diagtool.

Contains functions that turn an operator's line into wire bytes and back
into log-friendly text:
- HEX mode: "10 00 ff" -> b"\\x10\\x00\\xff"
- TEXT mode: "STATUS" -> b"STATUS\\r\\n"
"""

from common.protocol import SendMode

LINE_ENDING = b"\r\n"
TEXT_ENCODING = "utf-8"


class EncodingError(Exception):
    """Raised when a line cannot be encoded in the configured send mode."""

    pass


def parse_hex_line(line: str) -> bytes:
    """Parse whitespace-separated hex byte tokens.

    Raises EncodingError on an empty line, a non-hex token or a value > 0xFF.
    """
    tokens = line.split()
    if not tokens:
        raise EncodingError("Nothing to send")

    values = []
    for token in tokens:
        try:
            value = int(token, 16)
        except ValueError:
            raise EncodingError(f"Invalid hex byte: {token!r}")
        if not 0 <= value <= 0xFF:
            raise EncodingError(f"Hex value out of byte range: {token!r}")
        values.append(value)
    return bytes(values)


def encode_text_line(line: str) -> bytes:
    """Encode text as UTF-8 with a CRLF terminator."""
    return line.encode(TEXT_ENCODING) + LINE_ENDING


def encode_line(line: str, mode: SendMode) -> bytes:
    """Encode an operator line for the given send mode."""
    match mode:
        case SendMode.HEX:
            return parse_hex_line(line)
        case SendMode.TEXT:
            return encode_text_line(line)
        case _:
            raise EncodingError(f"Unknown send mode: {mode}")


def decode_text(data: bytes) -> str:
    """Interpret received bytes as text, trailing CR/LF trimmed."""
    return data.decode(TEXT_ENCODING, errors="replace").rstrip("\r\n")


def format_hex(payload: bytes) -> str:
    """Format bytes as dash-separated uppercase hex, e.g. "10-00-FF"."""
    return payload.hex("-").upper()


def format_payload(payload: bytes, mode: SendMode) -> str:
    """Render a sent payload the way it was entered."""
    if mode == SendMode.TEXT:
        return decode_text(payload)
    return format_hex(payload)
