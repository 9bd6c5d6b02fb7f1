"""
Copyright (c) 2026, Chen Jie, Joungtao, Xuzheng Jiang
All rights reserved.
This source code is licensed under the BSD-2-Clause license found in the
LICENSE file in the root directory of this source tree.
"""

# range_resolver.py
from dataclasses import dataclass

from memdb.errors import MalformedRangeSpec
from memdb.tracked_heap import TrackedHeap

RANGE_SEPARATOR = ".."


def parse_marker_spec(spec: str) -> tuple[str, int]:
    """
    解析 'name' 或 'name:index' 形式的标记描述。
    序号部分不是整数时按 0 处理。
    """
    name, _, index_str = spec.partition(":")
    try:
        index = int(index_str) if index_str else 0
    except ValueError:
        index = 0
    return name, index


def _parse_int(spec: str) -> int | None:
    try:
        return int(spec)
    except ValueError:
        return None


def from_position(heap: TrackedHeap, spec: str) -> int | None:
    """
    将位置描述解析为区间起点。
    整数原样返回 (此处不做边界检查)；标记解析为其后第一个操作的序号；
    无法解析时返回 None。
    """
    position = _parse_int(spec)
    if position is not None:
        return position
    marker = heap.marker(*parse_marker_spec(spec))
    if marker is None:
        return None
    return marker.first_operation_seq_no


def to_position(heap: TrackedHeap, spec: str) -> int | None:
    """
    将位置描述解析为区间终点。
    标记解析为其之前的最后一个操作 (first_operation_seq_no - 1)，最小为 0。
    """
    position = _parse_int(spec)
    if position is not None:
        return position
    marker = heap.marker(*parse_marker_spec(spec))
    if marker is None:
        return None
    return max(0, marker.first_operation_seq_no - 1)


@dataclass(frozen=True)
class Range:
    """经过校验的闭区间 [first, last]，允许 first > last (反向区间)。"""
    heap: TrackedHeap
    first: int
    last: int

    @property
    def lo(self) -> int:
        return min(self.first, self.last)

    @property
    def hi(self) -> int:
        return max(self.first, self.last)

    @property
    def is_reversed(self) -> bool:
        return self.first > self.last

    def __len__(self) -> int:
        return self.hi - self.lo + 1

    @staticmethod
    def whole_range_inclusive_str(heap: TrackedHeap) -> str:
        return f"0{RANGE_SEPARATOR}{len(heap) - 1}"

    @classmethod
    def from_bounds(cls, heap: TrackedHeap, first: int, last: int, spec: str | None = None) -> 'Range':
        """校验两个端点都位于 [0, len - 1] 内。"""
        if spec is None:
            spec = f"{first}{RANGE_SEPARATOR}{last}"
        for name, position in (("起点", first), ("终点", last)):
            if not 0 <= position < len(heap):
                raise MalformedRangeSpec(spec, f"{name} {position} 超出范围 0..{len(heap) - 1}")
        return cls(heap, first, last)

    @classmethod
    def from_string(cls, heap: TrackedHeap, spec: str) -> 'Range':
        """
        解析 'from..to' 形式的区间描述。
        Args:
            heap (TrackedHeap): 用于解析标记和检查边界的堆记录。
            spec (str): 区间描述，两端可以是整数或 name[:index] 标记。
        Returns:
            Range: 校验后的区间。
        Raises:
            MalformedRangeSpec: 格式错误、标记不存在或下标越界。
        """
        parts = spec.split(RANGE_SEPARATOR)
        if len(parts) != 2:
            raise MalformedRangeSpec(spec)
        first = from_position(heap, parts[0])
        if first is None:
            raise MalformedRangeSpec(spec, f"无效的起点 '{parts[0]}'")
        last = to_position(heap, parts[1])
        if last is None:
            raise MalformedRangeSpec(spec, f"无效的终点 '{parts[1]}'")
        return cls.from_bounds(heap, first, last, spec)
