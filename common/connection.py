"""Connection identity and error types for tcp-diagtool.

Contains:
- PeerIdentity: (host, port) of one connected client
- BindError: Exception for failed start attempts
- PeerIOError: Exception for a failed read/write on one connection
- LoopFatalError: Exception that ends a listening session
"""

from typing import NamedTuple


class BindError(Exception):
    """Raised when the listening socket cannot be opened (bad port, in use, denied)."""

    pass


class PeerIOError(Exception):
    """Raised when reading from or writing to one peer fails."""

    pass


class LoopFatalError(Exception):
    """Raised when the server loop itself fails (poll or listening socket)."""

    pass


class PeerIdentity(NamedTuple):
    """Address and port of one connected client."""

    host: str
    port: int

    def __str__(self) -> str:
        return f"{self.host}:{self.port}"

    @classmethod
    def from_address(cls, address: tuple) -> "PeerIdentity":
        """Build from a socket address; IPv6 flow/scope fields are dropped."""
        return cls(str(address[0]), int(address[1]))

    @classmethod
    def parse(cls, text: str) -> "PeerIdentity":
        """Parse "host:port" (the form produced by str()).

        Raises ValueError if the text has no port or the port is not a number.
        """
        host, sep, port = text.strip().rpartition(":")
        if not sep or not host:
            raise ValueError(f"Expected host:port, got {text!r}")
        return cls(host.strip("[]"), int(port))
