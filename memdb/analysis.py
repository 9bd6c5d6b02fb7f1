"""
Copyright (c) 2026, Chen Jie, Joungtao, Xuzheng Jiang
All rights reserved.
This source code is licensed under the BSD-2-Clause license found in the
LICENSE file in the root directory of this source tree.
"""

# analysis.py
import logging
from collections import Counter, deque
from dataclasses import dataclass, field

from memdb.common_types import ALLOC, HeapOperation
from memdb.range_resolver import Range
from memdb.tracked_heap import TrackedHeap

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Diff:
    """区间内新增 (未释放) 的分配以及无法在区间内抵消的释放。"""
    added: tuple[HeapOperation, ...] = ()
    removed: tuple[HeapOperation, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.added and not self.removed

    @property
    def added_bytes(self) -> int:
        return sum(op.size for op in self.added)

    @property
    def removed_bytes(self) -> int:
        return sum(op.size for op in self.removed)


def compute_diff(heap: TrackedHeap, spec: str) -> Diff:
    """
    计算区间内堆的变化。
    按顺序扫描闭区间 [lo, hi] 内的操作：alloc 加入 added；
    dealloc 若能在 added 中找到同地址的 alloc 则二者抵消，否则记入 removed。
    反向区间 (first > last) 交换 added 与 removed。
    Args:
        heap (TrackedHeap): 要分析的堆记录。
        spec (str): 'from..to' 形式的区间描述。
    Returns:
        Diff: 按序号顺序排列的新增与移除操作。
    Raises:
        MalformedRangeSpec: 区间描述无效。
    """
    heap_range = Range.from_string(heap, spec)

    # 保持插入顺序；同一地址可能有多个未释放的分配
    added: dict[int, HeapOperation] = {}
    added_by_address: dict[int, deque[int]] = {}
    removed: list[HeapOperation] = []
    for op in heap.operations[heap_range.lo:heap_range.hi + 1]:
        if op.kind == ALLOC:
            added[op.seq_no] = op
            added_by_address.setdefault(op.address, deque()).append(op.seq_no)
            continue
        pending = added_by_address.get(op.address)
        if pending:
            del added[pending.popleft()]
        else:
            removed.append(op)

    logger.debug(f"区间 {spec}: 新增 {len(added)} 个分配，移除 {len(removed)} 个分配。")
    if heap_range.is_reversed:
        return Diff(added=tuple(removed), removed=tuple(added.values()))
    return Diff(added=tuple(added.values()), removed=tuple(removed))


def pow2_bucket(value: int) -> int:
    """返回不小于 value 的最小 2 的幂；0 和 2 的幂原样返回。"""
    if value == 0 or value & (value - 1) == 0:
        return value
    return 1 << value.bit_length()


@dataclass
class Histogram:
    """分配大小 (或桶) 到分配次数的映射，按键升序排列。"""
    frequencies: dict[int, int] = field(default_factory=dict)


def build_histogram(heap: TrackedHeap, use_buckets: bool = True) -> Histogram:
    """
    统计每个大小 (或 2 的幂桶) 的分配次数，只统计 alloc。
    例如开启分桶时，大小为 16 的分配计入桶 16，大小为 17 的计入桶 32。
    """
    counts = Counter(
        pow2_bucket(op.size) if use_buckets else op.size
        for op in heap.operations
        if op.kind == ALLOC
    )
    return Histogram(frequencies=dict(sorted(counts.items())))
