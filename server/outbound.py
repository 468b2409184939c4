"""Outbound payload queue for tcp-diagtool.

Any thread may enqueue; only the server loop dequeues. Payloads are not
bound to a peer: they go to whichever peer is selected when the loop drains
the queue.
"""

import queue


class OutboundQueue:
    """Unbounded FIFO of payloads waiting to be written."""

    def __init__(self) -> None:
        self._queue: queue.SimpleQueue[bytes] = queue.SimpleQueue()

    def __len__(self) -> int:
        return self._queue.qsize()

    def empty(self) -> bool:
        return self._queue.empty()

    def enqueue(self, payload: bytes) -> None:
        self._queue.put(bytes(payload))

    def try_dequeue(self) -> bytes | None:
        """Return the oldest payload, or None if nothing is pending."""
        try:
            return self._queue.get_nowait()
        except queue.Empty:
            return None

    def clear(self) -> int:
        """Drop everything pending. Returns the number of payloads dropped."""
        dropped = 0
        while self.try_dequeue() is not None:
            dropped += 1
        return dropped
