"""
Copyright (c) 2026, Chen Jie, Joungtao, Xuzheng Jiang
All rights reserved.
This source code is licensed under the BSD-2-Clause license found in the
LICENSE file in the root directory of this source tree.
"""

# terminal_plotter.py
import logging
from dataclasses import dataclass

from memdb import output_handler as Output
from memdb.analysis import Diff
from memdb.common_types import HeapOperation, Marker
from memdb.range_resolver import Range
from memdb.tracked_heap import TrackedHeap

logger = logging.getLogger(__name__)

MIN_GRAPH_COLUMNS = 8
MIN_GRAPH_ROWS = 0
GRAPH_COLUMN_WIDTH = 8
LABEL_WIDTH = 16

# 绘图字符
BAR_CHAR = "#"
GROW_CHAR = "+"
SHRINK_CHAR = "-"
MARKER_CHAR = "-"
EMPTY_CELL_CHAR = "."


def _ceil_div(a: int, b: int) -> int:
    return -(-a // b)


# --- 1. 堆大小随时间变化图 ---

def _bar_length(size: int, columns: int, max_heap_size: int) -> int:
    if max_heap_size <= 0:
        return 0
    return _ceil_div(size * columns, max_heap_size)


def _plot_heading(columns: int, max_heap_size: int) -> str:
    return f"{'allocated':>{LABEL_WIDTH}}->" + " " * columns + "<-" + str(max_heap_size)


def _mangle_marker_name(marker: Marker) -> str:
    if marker.index == 0:
        return marker.name
    return f"{marker.name}:{marker.index}"


def _plot_marker(marker: Marker, columns: int) -> str:
    return f"{_mangle_marker_name(marker):>{LABEL_WIDTH}}: " + MARKER_CHAR * columns


def _plot_bar(before: int, after: int) -> str:
    """公共部分用 '#'，增长部分用绿色 '+'，缩减部分用红色 '-'。"""
    change = after - before
    bar = BAR_CHAR * min(before, after)
    if change > 0:
        bar += Output.colorize(GROW_CHAR * change, Output.COLOR_ADD)
    elif change < 0:
        bar += Output.colorize(SHRINK_CHAR * -change, Output.COLOR_DEL)
    return bar


def plot_usage(heap: TrackedHeap, heap_range: Range, columns: int, rows: int) -> str:
    """
    绘制区间内堆大小随操作变化的文本图。
    每行代表若干个连续操作，条形长度按区间内的最大堆大小缩放到 columns 个字符；
    标记以一行 '-' 的形式插在其后第一个操作之前。
    Args:
        heap (TrackedHeap): 完整的堆记录，累计大小总是从头开始计算。
        heap_range (Range): 要绘制的区间，反向区间按升序绘制。
        columns (int): 条形的最大字符数，不少于 MIN_GRAPH_COLUMNS。
        rows (int): 期望的行数，实际行数可能更少。
    Returns:
        str: 绘制好的图。
    """
    if not heap.operations:
        return Output.NO_HEAP_OPERATIONS
    if columns < MIN_GRAPH_COLUMNS:
        raise ValueError(f"列数 {columns} 小于最小值 {MIN_GRAPH_COLUMNS}")
    if rows < MIN_GRAPH_ROWS:
        raise ValueError(f"行数 {rows} 小于最小值 {MIN_GRAPH_ROWS}")

    lo, hi = heap_range.lo, heap_range.hi
    sizes_after = heap.cumulative_sizes()
    max_heap_size = max(0, max(sizes_after[lo:hi + 1]))

    lines = [_plot_heading(columns, max_heap_size)]
    num_operations = hi - lo + 1
    printed_rows = min(num_operations, rows)
    if printed_rows == 0:
        return lines[0] + "\n"
    operations_per_row = _ceil_div(num_operations, printed_rows)

    for row_seq_no in range(lo, hi + 1, operations_per_row):
        lines.extend(_plot_marker(marker, columns) for marker in heap.markers_at(row_seq_no))
        before = sizes_after[row_seq_no - 1] if row_seq_no > 0 else 0
        bar = _plot_bar(
            _bar_length(before, columns, max_heap_size),
            _bar_length(sizes_after[row_seq_no], columns, max_heap_size),
        )
        lines.append(f"{row_seq_no:>{LABEL_WIDTH}}: " + bar)
        # 被合并到本行的操作上的标记
        last_skipped = min(row_seq_no + operations_per_row - 1, hi)
        for skipped_seq_no in range(row_seq_no + 1, last_skipped + 1):
            lines.extend(_plot_marker(marker, columns) for marker in heap.markers_at(skipped_seq_no))

    # 区间末尾的标记
    lines.extend(_plot_marker(marker, columns) for marker in heap.markers_at(hi + 1))
    return "\n".join(lines) + "\n"


# --- 2. 地址空间布局差异图 ---

@dataclass
class _AddressCursor:
    """按地址升序遍历 (address, 该地址上的第一个操作) 列表的游标。"""
    entries: list[tuple[int, HeapOperation]]
    position: int = 0

    def peek(self) -> HeapOperation | None:
        if self.position < len(self.entries):
            return self.entries[self.position][1]
        return None

    def advance_to(self, cell_start: int) -> None:
        """跳过结束地址在单元格起点之前的条目。"""
        while (op := self.peek()) is not None and op.address + op.size < cell_start:
            self.position += 1


def _group_by_address(ops: tuple[HeapOperation, ...]) -> dict[int, list[HeapOperation]]:
    groups: dict[int, list[HeapOperation]] = {}
    for op in ops:
        groups.setdefault(op.address, []).append(op)
    return dict(sorted(groups.items()))


def _in_cell(op: HeapOperation, cell_start: int, cell_end: int) -> bool:
    op_end = op.address + op.size
    start_within = cell_start <= op.address <= cell_end
    end_within = cell_start <= op_end <= cell_end
    spans_cell = op.address < cell_start and op_end > cell_start
    return start_within or end_within or spans_cell


def _try_plot_cell(cursor: _AddressCursor, cell_start: int, cell_end: int, added: bool) -> str | None:
    cursor.advance_to(cell_start)
    op = cursor.peek()
    if op is None or not _in_cell(op, cell_start, cell_end):
        return None
    if added:
        return Output.colorize(f"{op.seq_no:>{GRAPH_COLUMN_WIDTH - 1}}{GROW_CHAR}", Output.COLOR_ADD)
    return Output.colorize(f"{op.seq_no:>{GRAPH_COLUMN_WIDTH - 1}}{SHRINK_CHAR}", Output.COLOR_DEL)


def plot_layout(diff: Diff, columns: int, rows: int) -> str:
    """
    在地址空间网格上绘制差异：每个单元格覆盖一段地址，
    显示与之重叠的新增 (绿色 '+') 或移除 (红色 '-') 操作的序号。
    网格固定为 rows 行、columns 列，每行以起始地址 (十六进制) 开头。
    """
    if columns < 1 or rows < 1:
        raise ValueError(f"布局图的行列数必须为正数: {columns}x{rows}")

    added_groups = _group_by_address(diff.added)
    removed_groups = _group_by_address(diff.removed)
    if not added_groups and not removed_groups:
        return Output.NO_DIFF

    # 同一地址同时出现时，以新增操作为先
    combined = _group_by_address(diff.added + diff.removed)
    min_address = next(iter(combined))
    highest_address, highest_ops = next(reversed(combined.items()))
    # 大小为 0 的条目也要占一个地址
    last_address = highest_address + max(1, highest_ops[0].size)
    num_cells = rows * columns
    max_address = _ceil_div(last_address, num_cells) * num_cells
    logger.debug(f"地址范围: {min_address:#x}..{max_address:#x}")

    # 向上取整，保证最高地址的条目落在 rows 行之内
    per_cell = max(1, _ceil_div(max_address - min_address, num_cells))
    per_row = per_cell * columns

    added_cursor = _AddressCursor([(address, ops[0]) for address, ops in added_groups.items()])
    removed_cursor = _AddressCursor([(address, ops[0]) for address, ops in removed_groups.items()])

    lines = []
    for row in range(rows):
        row_start = min_address + row * per_row
        cells = []
        for column in range(columns):
            cell_start = row_start + column * per_cell
            cell_end = cell_start + per_cell - 1
            cell = _try_plot_cell(added_cursor, cell_start, cell_end, added=True)
            if cell is None:
                cell = _try_plot_cell(removed_cursor, cell_start, cell_end, added=False)
            if cell is None:
                cell = " " * (GRAPH_COLUMN_WIDTH - 1) + EMPTY_CELL_CHAR
            cells.append(cell)
        lines.append(f"{row_start:08x}: " + "".join(cells))
    return "\n".join(lines) + "\n"
