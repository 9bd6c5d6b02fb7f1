"""
Copyright (c) 2026, Chen Jie, Joungtao, Xuzheng Jiang
All rights reserved.
This source code is licensed under the BSD-2-Clause license found in the
LICENSE file in the root directory of this source tree.
"""

# capture_client.py
import time
import select
import socket
import struct
import logging

from memdb import wire_codec as Codec
from memdb.errors import CaptureTimeout, ConnectionFailure, MalformedMessage, UnknownHost
from memdb.tracked_heap import TrackedHeap, TrackedHeapBuilder

logger = logging.getLogger(__name__)

DEFAULT_PORT = 8989
DEFAULT_POLL_INTERVAL = 0.1 # 秒
DEFAULT_LOG_INTERVAL = 10000
RECV_BUFFER_SIZE = 65536


def parse_address(address: str, default_port: int = DEFAULT_PORT) -> tuple[str, int]:
    """解析 'host' 或 'host:port' 形式的地址。"""
    host, sep, port = address.rpartition(":")
    if not sep:
        return address, default_port
    try:
        return host, int(port)
    except ValueError:
        return address, default_port


class CaptureClient:
    """
    连接被测进程的 memdb 服务端并采集堆记录。
    每隔 poll_interval 秒检查一次套接字，有数据时读取并解码为片段；
    收到以结束标志结尾或带有 end_of_file 的消息后关闭连接，拼接所有片段并过滤未匹配的释放操作。
    """

    def __init__(
        self,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        timeout: float | None = None,
        length_prefixed: bool = False,
        log_interval: int = DEFAULT_LOG_INTERVAL,
    ):
        self.poll_interval = poll_interval
        self.timeout = timeout
        self.length_prefixed = length_prefixed
        self.log_interval = log_interval

        # 单次采集的内部状态
        self._buffer = bytearray()
        self._fragments: list[TrackedHeap] = []
        self._num_operations = 0
        self._finished = False
        self._peer_closed = False

    def capture(self, host: str, port: int = DEFAULT_PORT) -> TrackedHeap:
        """
        采集一次完整的堆记录，直到服务端发送结束标志或关闭连接。
        Raises:
            UnknownHost: 主机名无法解析。
            ConnectionFailure: 连接被拒绝或中途失败。
            CaptureTimeout: 设置了 timeout 且在截止时间前未结束。
        """
        self._buffer = bytearray()
        self._fragments = []
        self._num_operations = 0
        self._finished = False
        self._peer_closed = False

        deadline = time.monotonic() + self.timeout if self.timeout is not None else None
        with self._connect(host, port) as sock:
            logger.info(f"已连接到 {host}:{port}，开始采集...")
            while not self._finished:
                if deadline is not None and time.monotonic() > deadline:
                    raise CaptureTimeout(f"在 {self.timeout} 秒内未收到结束标志 ({host}:{port})")
                time.sleep(self.poll_interval)
                self._poll(sock)

        heap = TrackedHeap.concatenate(self._fragments).without_unmatched_deallocs()
        logger.info(f"采集完成：共 {len(self._fragments)} 批消息，{len(heap)} 个堆操作，{len(heap.markers)} 个标记。")
        return heap

    def _connect(self, host: str, port: int) -> socket.socket:
        try:
            return socket.create_connection((host, port), timeout=self.timeout)
        except socket.gaierror as e:
            raise UnknownHost(f"无法解析主机名 {host}: {e}") from e
        except OSError as e:
            raise ConnectionFailure(f"无法连接到 {host}:{port}: {e}") from e

    def _read_available(self, sock: socket.socket) -> bytes:
        """读取当前所有可读的数据；对端关闭时返回 b''。"""
        chunks = []
        while select.select([sock], [], [], 0)[0]:
            try:
                chunk = sock.recv(RECV_BUFFER_SIZE)
            except OSError as e:
                raise ConnectionFailure(f"接收数据失败: {e}") from e
            if not chunk:
                if not chunks:
                    return b""
                self._peer_closed = True
                break
            chunks.append(chunk)
        return b"".join(chunks)

    def _poll(self, sock: socket.socket) -> None:
        if not select.select([sock], [], [], 0)[0]:
            return
        self._peer_closed = False
        data = self._read_available(sock)
        if not data:
            self._on_peer_closed()
            return

        self._buffer.extend(data)
        if self.length_prefixed:
            for message in self._drain_frames():
                self._handle_message(Codec.parse_update(message))
                if self._finished:
                    break
        else:
            self._handle_unframed_buffer()

        if self._peer_closed and not self._finished:
            self._on_peer_closed()

    def _handle_unframed_buffer(self) -> None:
        """服务端不加长度前缀：缓冲区能完整解析才视为一条消息，否则等待更多数据。"""
        try:
            update = Codec.parse_update(bytes(self._buffer))
        except MalformedMessage:
            logger.debug(f"缓冲区中的 {len(self._buffer)} 字节还不是完整的消息，等待更多数据。")
            return
        self._buffer.clear()
        self._handle_message(update)

    def _drain_frames(self):
        """从缓冲区中取出所有完整的长度前缀消息。"""
        while len(self._buffer) >= Codec.FRAME_HEADER_SIZE:
            (length,) = struct.unpack(Codec.FRAME_HEADER_FORMAT, self._buffer[:Codec.FRAME_HEADER_SIZE])
            end = Codec.FRAME_HEADER_SIZE + length
            if len(self._buffer) < end:
                return
            message = bytes(self._buffer[Codec.FRAME_HEADER_SIZE:end])
            del self._buffer[:end]
            yield message

    def _handle_message(self, update) -> None:
        fragment = Codec.heap_from_update(update)
        if update.end_of_file or (fragment.operations and fragment.operations[-1].is_sentinel()):
            logger.info("已收到最后一个堆操作，关闭连接。")
            self._finished = True

        # 大小为 0 的分配只作为结束标志使用，不计入堆记录
        if any(op.is_sentinel() for op in fragment.operations):
            fragment = (
                TrackedHeapBuilder()
                .add_operations(op for op in fragment.operations if not op.is_sentinel())
                .add_markers(fragment.markers)
                .build()
            )
        self._fragments.append(fragment)

        previous = self._num_operations
        self._num_operations += len(fragment)
        if self._num_operations // self.log_interval > previous // self.log_interval:
            logger.info(f"已接收 {self._num_operations} 个堆操作 ({len(self._fragments)} 批消息)。")

    def _on_peer_closed(self) -> None:
        if self._buffer:
            logger.warning(f"连接关闭时缓冲区中还有 {len(self._buffer)} 字节不完整的数据，已丢弃。")
        logger.warning("服务端在发送结束标志前关闭了连接，使用已接收的数据。")
        self._finished = True
