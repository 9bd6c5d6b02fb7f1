"""
Copyright (c) 2026, Chen Jie, Joungtao, Xuzheng Jiang
All rights reserved.
This source code is licensed under the BSD-2-Clause license found in the
LICENSE file in the root directory of this source tree.
"""

# main.py
import sys
import logging

from memdb import analysis
from memdb import config
from memdb import output_handler as Output
from memdb import snapshot_manager as SnapshotMngr
from memdb import utils
from memdb.analysis import Diff
from memdb.capture_client import CaptureClient, parse_address
from memdb.errors import MemdbError
from memdb.interactive_mode import InteractiveMode
from memdb.range_resolver import Range
from memdb.tracked_heap import TrackedHeap
from memdb.visualizer import metrics_plotter as MetricsPlotter
from memdb.visualizer import terminal_plotter as Plotter

logger = logging.getLogger(__name__)

APP_NAME = "memdb"


class MemDB:
    """
    持有当前堆记录和最近一次差异结果，提供批处理和交互模式共用的各项操作。
    渲染结果输出到 stdout，进度和错误写入日志。
    """

    def __init__(self, settings: config.Config | None = None):
        self.settings = settings if settings is not None else config.settings
        self.tracked_heap: TrackedHeap | None = None
        self.diff: Diff | None = None

    def run(self) -> int:
        """按固定顺序执行命令行指定的操作，返回进程退出码"""
        s = self.settings
        try:
            if s.capture:
                self.do_capture(s.capture)
            if s.load:
                self.do_load(s.load)
            if self.tracked_heap is None and not s.interactive:
                logger.info("没有可用的堆记录，退出。")
                return 0

            if self.tracked_heap is not None:
                self._run_batch_steps()
        except (MemdbError, ValueError) as e:
            logger.error(f"{e}")
            return 1

        if s.interactive:
            InteractiveMode(self).run()
        return 0

    def _run_batch_steps(self):
        s = self.settings
        if s.histogram:
            self.do_histogram(not s.no_buckets)
        if s.diff:
            self.do_diff(s.diff)
        if s.print_operation is not None:
            self.do_print(s.print_operation, s.backtrace)
        if s.truncate:
            self.do_truncate(s.truncate)
        if s.plot:
            self.do_plot(s.plot_range, s.columns, s.rows)
        if s.plot_layout:
            if self.diff is None:
                logger.info("没有可用的差异结果，请同时指定 --diff。")
            else:
                self.do_plot_layout(s.layout_columns, s.layout_rows)
        if s.plot_image:
            self.do_plot_image(s.plot_image, s.plot_range)
        if s.save:
            self.do_save(s.save)

    def _require_heap(self) -> TrackedHeap:
        if self.tracked_heap is None:
            raise MemdbError("没有可用的堆记录。")
        return self.tracked_heap

    def do_capture(self, address: str):
        host, port = parse_address(address)
        logger.info(f"正在从 {host}:{port} 采集堆记录...")
        client = CaptureClient(
            poll_interval=self.settings.poll_interval,
            timeout=self.settings.capture_timeout,
            length_prefixed=self.settings.length_prefixed,
            log_interval=self.settings.log_interval,
        )
        self.tracked_heap = client.capture(host, port)
        self.diff = None

    def do_load(self, path: str):
        logger.info(f"正在从 {path} 加载堆记录...")
        self.tracked_heap = SnapshotMngr.load_tracked_heap(path)
        self.diff = None

    def do_save(self, path: str):
        logger.info(f"正在保存堆记录至 {path}...")
        SnapshotMngr.save_tracked_heap(self._require_heap(), path, compress=self.settings.compress)

    def do_diff(self, spec: str):
        self.diff = analysis.compute_diff(self._require_heap(), spec)
        print("Diff:")
        print(Output.format_diff(self.diff))

    def do_histogram(self, use_buckets: bool = True):
        histogram = analysis.build_histogram(self._require_heap(), use_buckets)
        print("Histogram:")
        print(Output.format_histogram(histogram))

    def do_print(self, seq_no: int, show_backtrace: bool = False):
        heap = self._require_heap()
        if not 0 <= seq_no < len(heap):
            logger.warning(f"无效的堆操作序号: {seq_no}，堆记录大小: {len(heap)}")
            return
        print("Print:")
        print(Output.describe_operation(heap.operations[seq_no], show_backtrace))

    def do_truncate(self, spec: str):
        heap = self._require_heap()
        heap_range = Range.from_string(heap, spec)
        logger.info(f"截取堆记录至 {heap_range.lo}..{heap_range.hi}...")
        self.tracked_heap = heap.truncate(heap_range)

    def _resolve_range(self, spec: str | None) -> Range:
        heap = self._require_heap()
        return Range.from_string(heap, spec or Range.whole_range_inclusive_str(heap))

    def do_plot(self, spec: str | None, columns: int, rows: int):
        heap = self._require_heap()
        if not heap.operations:
            print(Output.NO_HEAP_OPERATIONS)
            return
        heap_range = self._resolve_range(spec)
        print("Plot:")
        print(Plotter.plot_usage(heap, heap_range, columns, rows))

    def do_plot_layout(self, columns: int, rows: int):
        if self.diff is None:
            raise MemdbError("没有可用的差异结果。")
        print("Layout plot:")
        print(Plotter.plot_layout(self.diff, columns, rows))

    def do_plot_image(self, path: str, spec: str | None = None):
        heap = self._require_heap()
        if not heap.operations:
            logger.warning("堆记录为空，跳过图片导出。")
            return
        MetricsPlotter.save_usage_figure(heap, self._resolve_range(spec), path)


def main(argv: list[str] | None = None) -> int:
    settings = config.initialize_config(argv)
    utils.setup_logging(settings.log_level)
    if settings.no_color:
        Output.set_color(False)
    logger.info(f"{APP_NAME} 启动")
    return MemDB(settings).run()


if __name__ == "__main__":
    sys.exit(main())
