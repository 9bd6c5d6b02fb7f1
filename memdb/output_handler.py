# output_handler.py
from memdb.analysis import Diff, Histogram
from memdb.common_types import HeapOperation

# ANSI 颜色码
COLOR_ADD = "\u001b[32m"
COLOR_DEL = "\u001b[31m"
COLOR_RESET = "\u001b[0m"

NO_DIFF = "<no diff>"
NO_HEAP_OPERATIONS = "<no heap operations>"

# 全局配置：默认启用彩色输出
USE_COLOR = True


def set_color(enable: bool):
    """设置终端输出是否带 ANSI 颜色
    Args:
        enable: True=彩色输出, False=纯文本
    """
    global USE_COLOR
    USE_COLOR = enable


def colorize(text: str, color: str) -> str:
    if not USE_COLOR or not text:
        return text
    return f"{color}{text}{COLOR_RESET}"


def _format_decimal(value: float) -> str:
    return f"{value:.3f}".rstrip("0").rstrip(".")


def format_duration(micros: int) -> str:
    """将微秒数格式化为易读的时长，如 '200us'、'300ms'、'1.5s'、'2m 5s'。"""
    if micros == 0:
        return "0s"
    if micros < 1_000:
        return f"{micros}us"
    if micros < 1_000_000:
        return f"{_format_decimal(micros / 1_000)}ms"
    seconds = micros / 1_000_000
    if seconds < 60:
        return f"{_format_decimal(seconds)}s"
    minutes, seconds = divmod(seconds, 60)
    hours, minutes = divmod(int(minutes), 60)
    parts = [f"{hours}h"] if hours else []
    parts.append(f"{minutes}m")
    if seconds:
        parts.append(f"{_format_decimal(seconds)}s")
    return " ".join(parts)


def describe_operation(op: HeapOperation, show_backtrace: bool = False) -> str:
    """
    单行描述一个堆操作，例如：
    `alloc[seq no: 26, duration: 300ms, address: 00000002, size: 16, thread id: 5, backtrace: <hidden>]`
    调用栈可能很长，默认隐藏。
    """
    backtrace = f"\n{op.backtrace}" if show_backtrace else " <hidden>"
    return (
        f"{op.kind}[seq no: {op.seq_no}, duration: {format_duration(op.micros_since_start)}, "
        f"address: {op.address:08x}, size: {op.size}, thread id: {op.thread_id}, "
        f"backtrace:{backtrace}]"
    )


def format_diff(diff: Diff) -> str:
    """新增操作以 '+ ' 开头 (绿色)，移除操作以 '- ' 开头 (红色)，最后附字节数汇总。"""
    if diff.is_empty:
        return NO_DIFF
    added = "".join(f"+ {describe_operation(op)}\n" for op in diff.added)
    removed = "".join(f"- {describe_operation(op)}\n" for op in diff.removed)
    summary = (
        f"{colorize(f'+ {diff.added_bytes} bytes', COLOR_ADD)}, "
        f"{colorize(f'- {diff.removed_bytes} bytes', COLOR_DEL)}"
    )
    return colorize(added, COLOR_ADD) + colorize(removed, COLOR_DEL) + summary


def format_histogram(histogram: Histogram) -> str:
    lines = ["(alloc size:frequency):\n"]
    lines.extend(f"{size:10d}\t{count}\n" for size, count in histogram.frequencies.items())
    return "".join(lines)
