"""
Copyright (c) 2026, Chen Jie, Joungtao, Xuzheng Jiang
All rights reserved.
This source code is licensed under the BSD-2-Clause license found in the
LICENSE file in the root directory of this source tree.
"""

# errors.py


class MemdbError(Exception):
    """memdb 所有可预期错误的基类，在命令分派处统一捕获。"""


class MalformedRangeSpec(MemdbError, ValueError):
    """区间描述 `from..to` 格式错误、标记无法解析或下标越界。"""

    def __init__(self, spec: str, reason: str = ""):
        self.spec = spec
        message = f"无效的区间描述 '{spec}'，期望格式为 [from]..[to]"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class DuplicateMarker(MemdbError, ValueError):
    """同一个堆记录中出现了重复的 (name, index) 标记。"""

    def __init__(self, name: str, index: int):
        self.name = name
        self.index = index
        super().__init__(f"名称为 {name}、序号为 {index} 的标记已存在")


class ConnectionFailure(MemdbError, ConnectionError):
    """无法连接到被测进程，或连接中途失败。"""


class CaptureTimeout(ConnectionFailure):
    """采集在截止时间前未收到结束标志。"""


class UnknownHost(MemdbError, OSError):
    """主机名无法解析。"""


class FileNotFound(MemdbError, FileNotFoundError):
    """要加载的快照文件不存在。"""

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"找不到文件: {path}")


class InvalidCommand(MemdbError):
    """交互模式下的命令或参数无效。"""


class MalformedMessage(MemdbError, ValueError):
    """收到的数据无法解析为一条 Update 消息。"""


class FileAccessError(MemdbError, OSError):
    """读写堆记录或图片文件失败 (权限、路径为目录、磁盘已满、压缩数据损坏等)。"""
