"""
Copyright (c) 2026, Chen Jie, Joungtao, Xuzheng Jiang
All rights reserved.
This source code is licensed under the BSD-2-Clause license found in the
LICENSE file in the root directory of this source tree.
"""

# interactive_mode.py
import logging
from dataclasses import dataclass
from typing import Callable

from memdb.errors import InvalidCommand, MemdbError

logger = logging.getLogger(__name__)

PROMPT = "> "
DEFAULT_PLOT_COLUMNS = 100
DEFAULT_PLOT_ROWS = 40
DEFAULT_PLOT_LAYOUT_COLUMNS = 15
DEFAULT_PLOT_LAYOUT_ROWS = 40

BACKTRACE_ARGS = {"bt", "backtrace"}
NO_BUCKETS_ARGS = {"no-buckets", "nb"}


def _required_arg(args: list[str], position: int, name: str) -> str:
    if position >= len(args):
        raise InvalidCommand(f"缺少第 {position} 个参数 {name}")
    return args[position]


def _to_int(value: str, position: int, name: str) -> int:
    try:
        return int(value)
    except ValueError:
        raise InvalidCommand(f"第 {position} 个参数 {name} 应为整数，实际为 '{value}'") from None


def _required_int_arg(args: list[str], position: int, name: str) -> int:
    return _to_int(_required_arg(args, position, name), position, name)


def _optional_arg(args: list[str], position: int) -> str | None:
    return args[position] if position < len(args) else None


def _optional_int_arg(args: list[str], position: int, name: str, default: int) -> int:
    value = _optional_arg(args, position)
    if value is None:
        return default
    return _to_int(value, position, name)


@dataclass(frozen=True)
class Command:
    name: str
    short_name: str
    help: str
    handler: Callable[[list[str]], None]


class InteractiveMode:
    """
    交互模式：逐行读取命令并调用 MemDB 上对应的操作。
    命令出错时报告错误并继续，输入结束 (EOF) 时退出。
    """

    def __init__(self, memdb, input_fn: Callable[[str], str] = input):
        self.memdb = memdb
        self.input_fn = input_fn
        self.should_quit = False
        self.commands = [
            Command("quit", "q", "Quit application", self._run_quit),
            Command("load", "l", "Load tracked heap [file name]", self._run_load),
            Command("save", "s", "Save tracked heap [file name]", self._run_save),
            Command("capture", "c", "Capture tracked heap [host[:port]]", self._run_capture),
            Command("print", "p", "Print heap operation [sequence number] ?[bt | backtrace]", self._run_print),
            Command("plot", "plot", "Plot heap memory usage ?[range-spec] ?[columns] ?[rows]", self._run_plot),
            Command("plot-layout", "plot-layout", "Plot heap memory layout of the last diff ?[columns] ?[rows]",
                    self._run_plot_layout),
            Command("diff", "d", "Diff between two states of the heap [from..to]", self._run_diff),
            Command("histogram", "hist", "Print histogram of allocations by size ?[no-buckets | nb]",
                    self._run_histogram),
            Command("truncate", "t", "Keep only the heap operations in a range [from..to]", self._run_truncate),
            Command("help", "h", "Usage information", self._run_help),
        ]

    def _has_heap(self) -> bool:
        if self.memdb.tracked_heap is None:
            print("No tracked heap available.")
            return False
        return True

    def _run_quit(self, args: list[str]):
        self.should_quit = True

    def _run_load(self, args: list[str]):
        self.memdb.do_load(_required_arg(args, 1, "file-path"))

    def _run_save(self, args: list[str]):
        if self._has_heap():
            self.memdb.do_save(_required_arg(args, 1, "file-path"))

    def _run_capture(self, args: list[str]):
        self.memdb.do_capture(_required_arg(args, 1, "host[:port]"))

    def _run_print(self, args: list[str]):
        if self._has_heap():
            self.memdb.do_print(
                _required_int_arg(args, 1, "sequence-number"),
                _optional_arg(args, 2) in BACKTRACE_ARGS,
            )

    def _run_plot(self, args: list[str]):
        if self._has_heap():
            self.memdb.do_plot(
                _optional_arg(args, 1),
                _optional_int_arg(args, 2, "columns", DEFAULT_PLOT_COLUMNS),
                _optional_int_arg(args, 3, "rows", DEFAULT_PLOT_ROWS),
            )

    def _run_plot_layout(self, args: list[str]):
        if self.memdb.diff is None:
            print("No diff available.")
            return
        self.memdb.do_plot_layout(
            _optional_int_arg(args, 1, "columns", DEFAULT_PLOT_LAYOUT_COLUMNS),
            _optional_int_arg(args, 2, "rows", DEFAULT_PLOT_LAYOUT_ROWS),
        )

    def _run_diff(self, args: list[str]):
        if self._has_heap():
            self.memdb.do_diff(_required_arg(args, 1, "diff-spec"))

    def _run_histogram(self, args: list[str]):
        if self._has_heap():
            self.memdb.do_histogram(_optional_arg(args, 1) not in NO_BUCKETS_ARGS)

    def _run_truncate(self, args: list[str]):
        if self._has_heap():
            self.memdb.do_truncate(_required_arg(args, 1, "range-spec"))

    def _run_help(self, args: list[str]):
        print("Usage:")
        for command in self.commands:
            print(f"{command.name}, {command.short_name} -> {command.help}")

    def find_command(self, name: str) -> Command | None:
        for command in self.commands:
            if name in (command.name, command.short_name):
                return command
        return None

    def execute(self, line: str):
        """执行一行命令；错误只报告，不中断交互"""
        args = line.split()
        if not args:
            return
        command = self.find_command(args[0])
        if command is None:
            print(f"Unknown command: {args[0]}")
            return
        try:
            command.handler(args)
        except InvalidCommand as e:
            print(f"Invalid command. {e}")
        except (MemdbError, ValueError) as e:
            logger.error(f"{e}")

    def run(self):
        print("Interactive mode:")
        print("type h<enter> for help")
        while not self.should_quit:
            try:
                line = self.input_fn(PROMPT)
            except EOFError:
                break
            self.execute(line)
