"""Unit tests for the client registry and outbound queue."""

import random
import socket
import threading

import pytest

from common.connection import PeerIdentity
from server.outbound import OutboundQueue
from server.registry import ClientRegistry, DuplicateIdentityError, UnknownIdentityError

A = PeerIdentity("10.0.0.1", 5001)
B = PeerIdentity("10.0.0.2", 5002)
C = PeerIdentity("10.0.0.3", 5003)


class FakeHandle:
    """Stand-in for a socket; the registry never touches it."""

    def __init__(self, name: str) -> None:
        self.name = name


def _handle(name: str) -> socket.socket:
    return FakeHandle(name)  # type: ignore[return-value]


@pytest.mark.unit
class TestClientRegistry:
    """Tests for ClientRegistry bookkeeping."""

    def test_empty(self) -> None:
        registry = ClientRegistry()
        assert len(registry) == 0
        assert registry.selected() is None
        assert registry.lookup(A) is None

    def test_first_add_is_selected(self) -> None:
        registry = ClientRegistry()
        ha = _handle("a")
        registry.add(A, ha)
        assert registry.selected() == (A, ha)
        registry.add(B, _handle("b"))
        assert registry.selected() == (A, ha)

    def test_duplicate_rejected(self) -> None:
        registry = ClientRegistry()
        registry.add(A, _handle("a"))
        with pytest.raises(DuplicateIdentityError):
            registry.add(A, _handle("a2"))
        assert len(registry) == 1

    def test_lookup(self) -> None:
        registry = ClientRegistry()
        hb = _handle("b")
        registry.add(B, hb)
        assert registry.lookup(B) is hb
        assert B in registry
        assert A not in registry

    def test_remove_returns_handle(self) -> None:
        registry = ClientRegistry()
        ha = _handle("a")
        registry.add(A, ha)
        assert registry.remove(A) is ha
        assert registry.remove(A) is None

    def test_remove_selected_falls_back_to_first(self) -> None:
        registry = ClientRegistry()
        registry.add(A, _handle("a"))
        registry.add(B, _handle("b"))
        registry.add(C, _handle("c"))
        registry.set_selected(B)
        registry.remove(B)
        selected = registry.selected()
        assert selected is not None
        assert selected[0] == A

    def test_remove_unselected_keeps_selection(self) -> None:
        registry = ClientRegistry()
        registry.add(A, _handle("a"))
        registry.add(B, _handle("b"))
        registry.remove(B)
        selected = registry.selected()
        assert selected is not None
        assert selected[0] == A

    def test_remove_last_clears_selection(self) -> None:
        registry = ClientRegistry()
        registry.add(A, _handle("a"))
        registry.remove(A)
        assert registry.selected() is None
        assert len(registry) == 0

    def test_set_selected_unknown(self) -> None:
        registry = ClientRegistry()
        registry.add(A, _handle("a"))
        with pytest.raises(UnknownIdentityError):
            registry.set_selected(B)
        selected = registry.selected()
        assert selected is not None
        assert selected[0] == A

    def test_clear(self) -> None:
        registry = ClientRegistry()
        registry.add(A, _handle("a"))
        registry.add(B, _handle("b"))
        registry.clear()
        assert len(registry) == 0
        assert registry.selected() is None
        assert registry.identities() == []

    def test_add_after_clear_selects_again(self) -> None:
        registry = ClientRegistry()
        registry.add(A, _handle("a"))
        registry.clear()
        registry.add(B, _handle("b"))
        selected = registry.selected()
        assert selected is not None
        assert selected[0] == B

    def test_selection_never_dangles(self) -> None:
        rng = random.Random(1234)
        registry = ClientRegistry()
        pool = [PeerIdentity("10.0.0.9", 6000 + i) for i in range(6)]
        for _ in range(500):
            identity = rng.choice(pool)
            action = rng.choice(["add", "remove", "select"])
            if action == "add" and identity not in registry:
                registry.add(identity, _handle(str(identity)))
            elif action == "remove":
                registry.remove(identity)
            elif action == "select" and identity in registry:
                registry.set_selected(identity)

            selected = registry.selected()
            if len(registry) == 0:
                assert selected is None
            else:
                assert selected is not None
                assert selected[0] in registry
                assert registry.lookup(selected[0]) is selected[1]


@pytest.mark.unit
class TestOutboundQueue:
    """Tests for OutboundQueue ordering and draining."""

    def test_empty(self) -> None:
        q = OutboundQueue()
        assert q.empty()
        assert len(q) == 0
        assert q.try_dequeue() is None

    def test_fifo(self) -> None:
        q = OutboundQueue()
        payloads = [b"\x01", b"\x02\x03", b"hello\r\n"]
        for payload in payloads:
            q.enqueue(payload)
        assert len(q) == 3
        drained = []
        while (payload := q.try_dequeue()) is not None:
            drained.append(payload)
        assert drained == payloads
        assert q.empty()

    def test_enqueue_copies_bytearray(self) -> None:
        q = OutboundQueue()
        buf = bytearray(b"\x10")
        q.enqueue(buf)
        buf[0] = 0x20
        assert q.try_dequeue() == b"\x10"

    def test_clear(self) -> None:
        q = OutboundQueue()
        q.enqueue(b"a")
        q.enqueue(b"b")
        assert q.clear() == 2
        assert q.empty()

    def test_concurrent_producers(self) -> None:
        q = OutboundQueue()

        def produce(tag: int) -> None:
            for i in range(200):
                q.enqueue(bytes([tag, i]))

        threads = [threading.Thread(target=produce, args=(t,)) for t in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        drained = []
        while (payload := q.try_dequeue()) is not None:
            drained.append(payload)
        assert len(drained) == 800
        # Per-producer order is preserved
        for tag in range(4):
            assert [p[1] for p in drained if p[0] == tag] == list(range(200))
