"""Tests for the drive simulator, over a fake link and over real TCP."""

import signal
import threading

import pytest

from client.runner import ExitCode, run_client
from client.simulator import DEFAULT_FAULT, DEFAULT_STATUS, DriveSimulator
from common.codec import FAULT_REPORT_SIZE, STATUS_REPORT_SIZE, decode
from common.device import open_link, tcp_url
from common.protocol import FAULT_DOWNLOAD
from common.report import FaultReport, StatusReport
from conftest import RecordingEventSink, wait_until
from server.runner import TcpServer


class FakeLink:
    """In-memory link: reads come from a script, writes are recorded."""

    def __init__(self, chunks: list[bytes] | None = None) -> None:
        self.chunks = list(chunks or [])
        self.written: list[bytes] = []
        self.closed = False

    def write(self, data: bytes, /) -> int:
        self.written.append(bytes(data))
        return len(data)

    def read(self, size: int = 1, /) -> bytes:
        if self.chunks:
            return self.chunks.pop(0)[:size]
        return b""

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def restore_signals():
    saved = {sig: signal.getsignal(sig) for sig in (signal.SIGINT, signal.SIGTERM)}
    yield
    for sig, handler in saved.items():
        signal.signal(sig, handler)


@pytest.mark.unit
class TestDriveSimulator:
    """Tests for command dispatch."""

    def test_status_reply(self) -> None:
        sim = DriveSimulator(FakeLink())
        reply = sim.reply_for(b"\x01")
        assert len(reply) == STATUS_REPORT_SIZE
        assert decode(reply, len(reply), 0x01) == DEFAULT_STATUS

    def test_fault_reply(self) -> None:
        sim = DriveSimulator(FakeLink())
        reply = sim.reply_for(bytes([FAULT_DOWNLOAD, 0x00]))
        assert len(reply) == FAULT_REPORT_SIZE
        assert decode(reply, len(reply), FAULT_DOWNLOAD) == DEFAULT_FAULT

    def test_custom_reports(self) -> None:
        status = StatusReport(out_freq=42)
        fault = FaultReport(out_freq=43)
        sim = DriveSimulator(FakeLink(), status, fault)
        assert decode(sim.reply_for(b"\x00"), STATUS_REPORT_SIZE, 0x00) == status
        assert decode(sim.reply_for(b"\x10"), FAULT_REPORT_SIZE, FAULT_DOWNLOAD) == fault

    def test_handle_counts_and_writes(self) -> None:
        link = FakeLink()
        sim = DriveSimulator(link)
        sim.handle(b"\x01")
        sim.handle(b"\x10")
        sim.handle(b"PING\r\n")
        assert sim.stats.commands == 3
        assert sim.stats.status_replies == 2
        assert sim.stats.fault_replies == 1
        assert [len(w) for w in link.written] == [19, 20, 19]

    def test_serve_until_stopped(self) -> None:
        stop = threading.Event()

        class StoppingLink(FakeLink):
            def read(self, size: int = 1, /) -> bytes:
                data = super().read(size)
                if not self.chunks:
                    stop.set()
                return data

        link = StoppingLink([b"\x01", b"", b"\x10"])
        stats = DriveSimulator(link).serve(stop)
        assert stats.commands == 2
        assert stats.fault_replies == 1


@pytest.mark.integration
class TestSimulatorOverTcp:
    """The simulator answering the server through pyserial's socket:// link."""

    def test_status_and_fault_roundtrip(self, server: TcpServer, sink: RecordingEventSink) -> None:
        address = server.local_address
        assert address is not None
        link = open_link(tcp_url(address.host, address.port))
        stop = threading.Event()
        sim = DriveSimulator(link)
        worker = threading.Thread(target=sim.serve, args=(stop,), daemon=True)
        worker.start()
        try:
            assert wait_until(lambda: len(server.peers()) == 1)

            server.send(b"\x01")
            assert wait_until(lambda: len(sink.reports()) == 1)
            assert sink.reports()[0] == DEFAULT_STATUS

            server.send(bytes([FAULT_DOWNLOAD]))
            assert wait_until(lambda: len(sink.reports()) == 2)
            assert sink.reports()[1] == DEFAULT_FAULT
        finally:
            stop.set()
            worker.join(3)
            link.close()

        assert sim.stats.commands == 2

    def test_run_client_link_failed(self, restore_signals) -> None:
        # Nothing listens on port 1
        assert run_client(tcp_url("127.0.0.1", 1)) == ExitCode.LINK_FAILED

    def test_run_client_no_commands(self, server: TcpServer, restore_signals) -> None:
        address = server.local_address
        assert address is not None
        code = run_client(tcp_url(address.host, address.port), duration_s=0.3)
        assert code == ExitCode.NO_COMMANDS

    def test_run_client_server_disconnects(self, server: TcpServer, restore_signals) -> None:
        address = server.local_address
        assert address is not None
        stopper = threading.Timer(0.3, server.stop)
        stopper.start()
        try:
            code = run_client(tcp_url(address.host, address.port), duration_s=5)
        finally:
            stopper.cancel()
        assert code == ExitCode.DISCONNECTED
