# snapshot_manager.py
import io
import os
import logging

import zstandard as zstd

from memdb import wire_codec as Codec
from memdb.errors import FileAccessError, FileNotFound
from memdb.tracked_heap import TrackedHeap

logger = logging.getLogger(__name__)

# zstd 帧的魔数
ZSTD_MAGIC = b"\x28\xb5\x2f\xfd"


def save_tracked_heap(heap: TrackedHeap, path: str, compress: bool = False):
    """
    将整个堆记录作为一条 Update 消息写入文件。
    Args:
        heap (TrackedHeap): 要保存的堆记录。
        path (str): 目标文件路径，所在目录不存在时自动创建。
        compress (bool): 是否使用 zstd 压缩。
    Raises:
        FileAccessError: 无法创建目录或写入文件。
    """
    data = Codec.encode_heap(heap, end_of_file=True)
    if compress:
        data = zstd.ZstdCompressor().compress(data)

    try:
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(path, "wb") as f:
            f.write(data)
    except OSError as e:
        raise FileAccessError(f"无法保存堆记录至 {path}: {e}") from e
    logger.info(f"已保存 {len(heap)} 个堆操作和 {len(heap.markers)} 个标记至: {path}")


def _decompress(data: bytes) -> bytes:
    """解压 zstd 数据；帧头中可能没有原始大小，因此使用流式读取。"""
    dctx = zstd.ZstdDecompressor()
    with dctx.stream_reader(io.BytesIO(data)) as reader:
        return reader.read()


def load_tracked_heap(path: str) -> TrackedHeap:
    """
    从文件加载堆记录，自动识别 zstd 压缩。
    Args:
        path (str): 由 save_tracked_heap 写入的文件。
    Returns:
        TrackedHeap: 加载的堆记录。
    Raises:
        FileNotFound: 文件不存在。
        FileAccessError: 文件无法读取或压缩数据损坏。
        MalformedMessage: 文件内容不是合法的 Update 消息。
    """
    if not os.path.isfile(path):
        raise FileNotFound(path)

    try:
        with open(path, "rb") as f:
            data = f.read()
        if data.startswith(ZSTD_MAGIC):
            logger.info("检测到 zstd 压缩文件，正在解压...")
            data = _decompress(data)
    except (OSError, zstd.ZstdError) as e:
        raise FileAccessError(f"无法读取堆记录 {path}: {e}") from e

    heap = Codec.decode_message(data)
    logger.info(f"已从 {path} 加载 {len(heap)} 个堆操作和 {len(heap.markers)} 个标记。")
    return heap
