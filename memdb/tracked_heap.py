"""
Copyright (c) 2026, Chen Jie, Joungtao, Xuzheng Jiang
All rights reserved.
This source code is licensed under the BSD-2-Clause license found in the
LICENSE file in the root directory of this source tree.
"""

# tracked_heap.py
import logging
from dataclasses import dataclass, replace
from functools import cached_property
from typing import Iterable

from memdb.common_types import ALLOC, HeapOperation, Marker
from memdb.errors import DuplicateMarker

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TrackedHeap:
    """
    不可变的堆操作记录：按顺序排列的 HeapOperation 以及一组 Marker。
    只能通过 TrackedHeapBuilder 构造，保证 operations[i].seq_no == i。
    所有筛选类操作都返回新的 TrackedHeap。
    """
    operations: tuple[HeapOperation, ...] = ()
    markers: tuple[Marker, ...] = ()

    def __len__(self) -> int:
        return len(self.operations)

    @cached_property
    def _markers_by_position(self) -> dict[int, list[Marker]]:
        index: dict[int, list[Marker]] = {}
        for marker in self.markers:
            index.setdefault(marker.first_operation_seq_no, []).append(marker)
        return index

    def marker(self, name: str, index: int = 0) -> Marker | None:
        """按 (name, index) 查找标记，找不到时返回 None。"""
        for marker in self.markers:
            if marker.name == name and marker.index == index:
                return marker
        return None

    def markers_at(self, seq_no: int) -> list[Marker]:
        """返回位于指定操作之前的所有标记 (按插入顺序)。"""
        return list(self._markers_by_position.get(seq_no, ()))

    def cumulative_sizes(self) -> list[int]:
        """返回每个操作执行后的累计堆大小。"""
        sizes = []
        current = 0
        for op in self.operations:
            current += op.size_change()
            sizes.append(current)
        return sizes

    def truncate(self, heap_range) -> 'TrackedHeap':
        """
        只保留区间 [lo, hi] 内的操作，重新从 0 编号。
        位置落在 [lo, hi + 1] 内的标记一并保留，并随操作平移。
        Args:
            heap_range (Range): 已校验的区间，反向区间按升序处理。
        Returns:
            TrackedHeap: 截取后的新堆记录。
        """
        lo, hi = heap_range.lo, heap_range.hi
        builder = TrackedHeapBuilder()
        builder.add_operations(self.operations[lo:hi + 1])
        builder.add_markers(
            replace(marker, first_operation_seq_no=marker.first_operation_seq_no - lo)
            for marker in self.markers
            if lo <= marker.first_operation_seq_no <= hi + 1
        )
        return builder.build()

    def without_unmatched_deallocs(self) -> 'TrackedHeap':
        """
        过滤掉找不到对应 alloc 的 dealloc。
        匹配成功的 dealloc 会带上对应 alloc 的大小；过滤后重新编号，
        标记的位置调整为原位置之前保留下来的操作数。
        """
        open_allocs_by_address: dict[int, HeapOperation] = {}
        kept: list[HeapOperation] = []
        # kept_before[i] 为原位置 i 之前保留的操作数
        kept_before = [0]
        for op in self.operations:
            if op.kind == ALLOC:
                open_allocs_by_address[op.address] = op
                kept.append(op)
            else:
                alloc = open_allocs_by_address.pop(op.address, None)
                if alloc is not None:
                    kept.append(op.as_matched(alloc))
            kept_before.append(len(kept))

        dropped = len(self.operations) - len(kept)
        if dropped:
            logger.info(f"已过滤 {dropped} 个未匹配的释放操作，保留 {len(kept)} 个操作。")

        def remap(position: int) -> int:
            if 0 <= position < len(kept_before):
                return kept_before[position]
            # 超出记录范围的标记保持与末尾的相对距离
            return position - len(self.operations) + len(kept)

        builder = TrackedHeapBuilder()
        builder.add_operations(kept)
        builder.add_markers(
            replace(marker, first_operation_seq_no=remap(marker.first_operation_seq_no))
            for marker in self.markers
        )
        return builder.build()

    @classmethod
    def concatenate(cls, heaps: Iterable['TrackedHeap']) -> 'TrackedHeap':
        """按顺序拼接多个堆记录，操作统一重新编号，标记位置保持不变。"""
        builder = TrackedHeapBuilder()
        for heap in heaps:
            builder.add_operations(heap.operations)
            builder.add_markers(heap.markers)
        return builder.build()


class TrackedHeapBuilder:
    """
    TrackedHeap 的唯一构造途径。
    每个加入的操作都会被重写为内部计数器的序号，计数器随后加一。
    """

    def __init__(self, seq_no: int = 0):
        self.seq_no = seq_no
        self.operations: list[HeapOperation] = []
        self.markers: list[Marker] = []
        self._marker_keys: set[tuple[str, int]] = set()

    def add_operation(self, op: HeapOperation) -> 'TrackedHeapBuilder':
        self.operations.append(replace(op, seq_no=self.seq_no))
        self.seq_no += 1
        return self

    def add_operations(self, ops: Iterable[HeapOperation]) -> 'TrackedHeapBuilder':
        for op in ops:
            self.add_operation(op)
        return self

    def add_marker(self, marker: Marker) -> 'TrackedHeapBuilder':
        key = (marker.name, marker.index)
        if key in self._marker_keys:
            raise DuplicateMarker(marker.name, marker.index)
        self._marker_keys.add(key)
        self.markers.append(marker)
        return self

    def add_markers(self, markers: Iterable[Marker]) -> 'TrackedHeapBuilder':
        for marker in markers:
            self.add_marker(marker)
        return self

    def build(self) -> TrackedHeap:
        return TrackedHeap(operations=tuple(self.operations), markers=tuple(self.markers))
