import socket
import threading

import pytest

from memdb import wire_codec as Codec
from memdb.capture_client import CaptureClient, parse_address
from memdb.common_types import ALLOC, DEALLOC, HeapOperation, Marker
from memdb.errors import CaptureTimeout, ConnectionFailure, MalformedMessage, UnknownHost
from memdb.tracked_heap import TrackedHeapBuilder

POLL_INTERVAL = 0.01


def _encode(ops, markers=()):
    return Codec.encode_heap(TrackedHeapBuilder().add_operations(ops).add_markers(markers).build())


class _Server:
    """在本地端口上接受一个连接，依次发送 payloads，然后按需关闭。"""

    def __init__(self, payloads, close=True, delay=0.0):
        self.payloads = payloads
        self.close = close
        self.delay = delay
        self.listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self.listener.bind(("127.0.0.1", 0))
        self.listener.listen(1)
        self.port = self.listener.getsockname()[1]
        self.done = threading.Event()
        self.thread = threading.Thread(target=self._serve, daemon=True)

    def _serve(self):
        conn, _ = self.listener.accept()
        for payload in self.payloads:
            conn.sendall(payload)
            if self.delay:
                self.done.wait(self.delay)
        if self.close:
            conn.close()
        else:
            self.done.wait(5)
            conn.close()
        self.listener.close()

    def __enter__(self):
        self.thread.start()
        return self

    def __exit__(self, *exc):
        self.done.set()
        self.thread.join(5)


class TestParseAddress:
    def test_host_only(self):
        assert parse_address("localhost") == ("localhost", 8989)

    def test_host_and_port(self):
        assert parse_address("10.0.0.1:1234") == ("10.0.0.1", 1234)


class TestCapture:
    def test_framed_batches_until_sentinel(self):
        payloads = [
            Codec.frame_message(_encode([HeapOperation.alloc(1, 8), HeapOperation.dealloc(9)],
                                        [Marker("begin", 0, 0)])),
            Codec.frame_message(_encode([HeapOperation.dealloc(1), HeapOperation.sentinel()],
                                        [Marker("end", 0, 3)])),
        ]
        with _Server(payloads, close=False) as server:
            heap = CaptureClient(poll_interval=POLL_INTERVAL, length_prefixed=True).capture(
                "127.0.0.1", server.port)

        assert [(op.seq_no, op.kind, op.address, op.size) for op in heap.operations] == [
            (0, ALLOC, 1, 8),
            (1, DEALLOC, 1, 8),
        ]
        assert heap.marker("begin").first_operation_seq_no == 0
        assert heap.marker("end").first_operation_seq_no == 2

    def test_frames_split_across_reads(self):
        framed = Codec.frame_message(_encode([HeapOperation.alloc(1, 8), HeapOperation.sentinel()]))
        payloads = [framed[:3], framed[3:10], framed[10:]]
        with _Server(payloads, close=False, delay=0.03) as server:
            heap = CaptureClient(poll_interval=POLL_INTERVAL, length_prefixed=True).capture(
                "127.0.0.1", server.port)
        assert len(heap) == 1

    def test_unprefixed_stream(self):
        payloads = [_encode([HeapOperation.alloc(4, 2), HeapOperation.dealloc(4), HeapOperation.sentinel()])]
        with _Server(payloads, close=False) as server:
            heap = CaptureClient(poll_interval=POLL_INTERVAL).capture("127.0.0.1", server.port)
        assert [op.kind for op in heap.operations] == [ALLOC, DEALLOC]

    def test_peer_close_without_sentinel_keeps_data(self, caplog):
        payloads = [_encode([HeapOperation.alloc(1, 8)])]
        with _Server(payloads, close=True) as server:
            heap = CaptureClient(poll_interval=POLL_INTERVAL).capture("127.0.0.1", server.port)
        assert len(heap) == 1
        assert "结束标志前关闭" in caplog.text

    def test_timeout(self):
        with _Server([], close=False) as server:
            with pytest.raises(CaptureTimeout):
                CaptureClient(poll_interval=POLL_INTERVAL, timeout=0.1).capture("127.0.0.1", server.port)

    def test_connection_refused(self):
        listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        listener.bind(("127.0.0.1", 0))
        port = listener.getsockname()[1]
        listener.close()
        with pytest.raises(ConnectionFailure) as excinfo:
            CaptureClient(poll_interval=POLL_INTERVAL).capture("127.0.0.1", port)
        assert isinstance(excinfo.value.__cause__, OSError)

    def test_unknown_host(self, monkeypatch):
        def fail(*args, **kwargs):
            raise socket.gaierror("Name or service not known")

        monkeypatch.setattr(socket, "create_connection", fail)
        with pytest.raises(UnknownHost):
            CaptureClient(poll_interval=POLL_INTERVAL).capture("no-such-host.invalid", 8989)


class TestServerEncoding:
    def test_end_of_file_finishes_capture(self):
        heap = TrackedHeapBuilder().add_operations([HeapOperation.alloc(1, 8)]).build()
        payloads = [Codec.encode_heap(heap, end_of_file=True)]
        with _Server(payloads, close=False) as server:
            captured = CaptureClient(poll_interval=POLL_INTERVAL, timeout=5).capture("127.0.0.1", server.port)
        assert len(captured) == 1

    def test_message_split_inside_a_field(self):
        data = _encode([HeapOperation.alloc(1, 8, backtrace="#0 malloc\n#1 main"), HeapOperation.sentinel()])
        cut = data.index(b"malloc") + 2
        with _Server([data[:cut], data[cut:]], close=False, delay=0.05) as server:
            heap = CaptureClient(poll_interval=POLL_INTERVAL, timeout=5).capture("127.0.0.1", server.port)
        assert [op.backtrace for op in heap.operations] == ["#0 malloc\n#1 main"]

    def test_corrupt_frame(self):
        payloads = [Codec.frame_message(b"\x0a\x06\x08")]
        with _Server(payloads, close=False) as server:
            with pytest.raises(MalformedMessage):
                CaptureClient(poll_interval=POLL_INTERVAL, length_prefixed=True, timeout=5).capture(
                    "127.0.0.1", server.port)

    def test_server_bytes_without_prefix(self):
        # 服务端的最后一次发送：一个分配和 end_of_file
        payloads = [b"\x0a\x06\x08\x00\x18\x10\x20\x08", b"\x18\x01"]
        with _Server(payloads, close=False, delay=0.05) as server:
            heap = CaptureClient(poll_interval=POLL_INTERVAL, timeout=5).capture("127.0.0.1", server.port)
        assert [(op.kind, op.address, op.size) for op in heap.operations] == [(ALLOC, 16, 8)]
