"""Client registry for tcp-diagtool.

Maps each connected peer to its socket and tracks which peer receives
outbound payloads. The registry does no locking and emits no events; the
server loop serializes access and reports connects/disconnects itself.
"""

import socket
from collections.abc import Iterator

from common.connection import PeerIdentity


class DuplicateIdentityError(Exception):
    """Raised when adding a peer that is already registered."""

    pass


class UnknownIdentityError(Exception):
    """Raised when selecting a peer that is not registered."""

    pass


class ClientRegistry:
    def __init__(self) -> None:
        # insertion ordered; the first entry is the selection fallback
        self._clients: dict[PeerIdentity, socket.socket] = {}
        self._selected: PeerIdentity | None = None

    def __len__(self) -> int:
        return len(self._clients)

    def __contains__(self, identity: object) -> bool:
        return identity in self._clients

    def __iter__(self) -> Iterator[PeerIdentity]:
        return iter(list(self._clients))

    def add(self, identity: PeerIdentity, handle: socket.socket) -> None:
        """Register a connection; it becomes the selection if none exists."""
        if identity in self._clients:
            raise DuplicateIdentityError(f"Peer {identity} already registered")
        self._clients[identity] = handle
        if self._selected is None:
            self._selected = identity

    def remove(self, identity: PeerIdentity) -> socket.socket | None:
        """Deregister a connection and return its handle (None if unknown).

        If the removed peer was selected, the first remaining peer takes over.
        """
        handle = self._clients.pop(identity, None)
        if self._selected == identity:
            self._selected = next(iter(self._clients), None)
        return handle

    def lookup(self, identity: PeerIdentity) -> socket.socket | None:
        return self._clients.get(identity)

    def selected(self) -> tuple[PeerIdentity, socket.socket] | None:
        if self._selected is None:
            return None
        return self._selected, self._clients[self._selected]

    def set_selected(self, identity: PeerIdentity) -> None:
        if identity not in self._clients:
            raise UnknownIdentityError(f"Peer {identity} is not connected")
        self._selected = identity

    def identities(self) -> list[PeerIdentity]:
        return list(self._clients)

    def handles(self) -> list[socket.socket]:
        return list(self._clients.values())

    def items(self) -> list[tuple[PeerIdentity, socket.socket]]:
        return list(self._clients.items())

    def clear(self) -> None:
        """Forget all peers and the selection. Handles are not closed."""
        self._clients.clear()
        self._selected = None
