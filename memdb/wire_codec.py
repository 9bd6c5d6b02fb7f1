# wire_codec.py
import struct
import logging

from google.protobuf.message import DecodeError

from memdb import message_schema as Schema
from memdb.common_types import ALLOC, DEALLOC, HeapOperation, Marker
from memdb.errors import MalformedMessage
from memdb.tracked_heap import TrackedHeap, TrackedHeapBuilder

logger = logging.getLogger(__name__)

# 套接字上每条消息前的长度前缀
FRAME_HEADER_FORMAT = "<I"
FRAME_HEADER_SIZE = struct.calcsize(FRAME_HEADER_FORMAT)

KIND_CODES = {Schema.KIND_ALLOC: ALLOC, Schema.KIND_DEALLOC: DEALLOC}
KIND_VALUES = {kind: code for code, kind in KIND_CODES.items()}


def parse_update(data: bytes):
    """
    将字节解析为 Update 消息。
    首尾相接的多条消息会被合并为一条 (重复字段依次拼接)。
    Raises:
        MalformedMessage: 数据不是合法的 Update。
    """
    update = Schema.UpdateMessage()
    try:
        update.ParseFromString(data)
    except DecodeError as e:
        raise MalformedMessage(f"无法解析 {len(data)} 字节的消息: {e}") from e
    return update


def heap_from_update(update) -> TrackedHeap:
    """
    将 Update 转换为 TrackedHeap，序号从 0 开始。
    未知的操作类型被跳过，以兼容更新的发送端；结束标志 (大小为 0 的分配) 不在此处剔除。
    """
    builder = TrackedHeapBuilder()
    skipped = 0
    for proto_op in update.heap_operations:
        kind = KIND_CODES.get(proto_op.kind)
        if kind is None:
            skipped += 1
            continue
        builder.add_operation(HeapOperation(
            kind=kind,
            micros_since_start=proto_op.micros_since_server_start,
            address=proto_op.address,
            size=proto_op.size,
            thread_id=proto_op.thread_id,
            backtrace=proto_op.backtrace,
        ))
    builder.add_markers(
        Marker(name=m.name, index=m.index, first_operation_seq_no=m.first_operation_seq_no)
        for m in update.markers
    )
    if skipped:
        logger.debug(f"跳过了 {skipped} 个未知类型的堆操作。")
    return builder.build()


def decode_message(data: bytes) -> TrackedHeap:
    return heap_from_update(parse_update(data))


def update_from_heap(heap: TrackedHeap, end_of_file: bool = False):
    update = Schema.UpdateMessage(end_of_file=end_of_file)
    for op in heap.operations:
        update.heap_operations.add(
            kind=KIND_VALUES[op.kind],
            micros_since_server_start=op.micros_since_start,
            address=op.address,
            size=op.size,
            thread_id=op.thread_id,
            backtrace=op.backtrace,
        )
    for marker in heap.markers:
        update.markers.add(
            name=marker.name,
            index=marker.index,
            first_operation_seq_no=marker.first_operation_seq_no,
        )
    return update


def encode_heap(heap: TrackedHeap, end_of_file: bool = False) -> bytes:
    """将整个堆记录编码为一条 Update 消息。"""
    return update_from_heap(heap, end_of_file).SerializeToString()


def frame_message(payload: bytes) -> bytes:
    """为消息加上 4 字节小端长度前缀。"""
    return struct.pack(FRAME_HEADER_FORMAT, len(payload)) + payload
