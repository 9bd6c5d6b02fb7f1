# metrics_plotter.py
import logging

import matplotlib.ticker as ticker
from matplotlib.figure import Figure

from memdb.errors import FileAccessError
from memdb.range_resolver import Range
from memdb.tracked_heap import TrackedHeap

logger = logging.getLogger(__name__)

FIGURE_SIZE = (12, 6)
FIGURE_DPI = 100


def plot_usage_figure(heap: TrackedHeap, heap_range: Range) -> Figure:
    """
    绘制区间内累计堆大小随操作序号变化的折线图，并用竖线标出区间内的标记。
    直接使用 Figure 对象，不依赖任何 GUI 后端。
    """
    fig = Figure(figsize=FIGURE_SIZE, dpi=FIGURE_DPI)
    ax = fig.add_subplot(111)

    lo, hi = heap_range.lo, heap_range.hi
    sizes = heap.cumulative_sizes()[lo:hi + 1]
    seq_nos = list(range(lo, hi + 1))
    ax.step(seq_nos, sizes, where='post', color='tab:blue', linewidth=1.5, label='Heap Size')

    ax.set_xlabel('Sequence Number')
    ax.set_ylabel('Allocated (bytes)')

    # 禁用科学计数法和偏移
    formatter = ticker.ScalarFormatter(useOffset=False)
    formatter.set_scientific(False)
    ax.xaxis.set_major_formatter(formatter)
    ax.yaxis.set_major_formatter(ticker.FuncFormatter(lambda y, p: format(int(y), ',')))

    ax.axhline(y=0, color='black', linewidth=1)
    ax.grid(True, alpha=0.3)

    # 标记竖线
    for marker in heap.markers:
        position = marker.first_operation_seq_no
        if lo <= position <= hi + 1:
            label = marker.name if marker.index == 0 else f"{marker.name}:{marker.index}"
            ax.axvline(x=position, color='green', linestyle=':', alpha=0.6, linewidth=1.5)
            ax.text(position, 0.98, label, transform=ax.get_xaxis_transform(),
                    rotation=90, ha='center', va='top', fontsize=7, color='green')

    ax.legend(loc='upper right')
    ax.set_title('Heap Usage Over Time')
    fig.tight_layout()
    return fig


def save_usage_figure(heap: TrackedHeap, heap_range: Range, path: str) -> None:
    """将堆使用图保存为图片文件，格式由扩展名决定。"""
    fig = plot_usage_figure(heap, heap_range)
    try:
        fig.savefig(path)
    except OSError as e:
        raise FileAccessError(f"无法保存图片至 {path}: {e}") from e
    logger.info(f"堆使用图已保存至: {path}")
