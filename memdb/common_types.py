"""
Copyright (c) 2026, Chen Jie, Joungtao, Xuzheng Jiang
All rights reserved.
This source code is licensed under the BSD-2-Clause license found in the
LICENSE file in the root directory of this source tree.
"""

# common_types.py
from dataclasses import dataclass, replace

ALLOC = "alloc"
DEALLOC = "dealloc"
OPERATION_KINDS = (ALLOC, DEALLOC)


@dataclass(frozen=True)
class HeapOperation:
    """
    表示一次被记录的堆操作 (分配或释放)。
    """
    seq_no: int = 0 # 在所属堆记录中的位置，从 0 开始
    kind: str = ALLOC # 'alloc' 或 'dealloc'
    micros_since_start: int = 0 # 距被测进程开始观测的时间 (微秒)
    address: int = 0
    size: int = 0
    """
    操作涉及的字节数。
    - 对于 alloc，为分配的大小。
    - 对于 dealloc，匹配到对应 alloc 之前为 0，匹配后为该 alloc 的大小。
    """
    thread_id: int = 0
    backtrace: str = "" # 调用栈文本，默认输出时隐藏

    @classmethod
    def alloc(cls, address: int, size: int, **kwargs) -> 'HeapOperation':
        return cls(kind=ALLOC, address=address, size=size, **kwargs)

    @classmethod
    def dealloc(cls, address: int, **kwargs) -> 'HeapOperation':
        return cls(kind=DEALLOC, address=address, **kwargs)

    @classmethod
    def sentinel(cls) -> 'HeapOperation':
        """构造流结束标志：大小为 0 的分配。"""
        return cls(kind=ALLOC, size=0)

    @property
    def is_alloc(self) -> bool:
        return self.kind == ALLOC

    def is_sentinel(self) -> bool:
        return self.kind == ALLOC and self.size == 0

    def as_matched(self, alloc: 'HeapOperation') -> 'HeapOperation':
        """返回一个携带所匹配 alloc 大小的 dealloc 副本。"""
        return replace(self, size=alloc.size)

    def size_change(self) -> int:
        """该操作对堆大小的影响：alloc 为正，dealloc 为负。"""
        return self.size if self.kind == ALLOC else -self.size


@dataclass(frozen=True)
class Marker:
    """被测程序在某一时刻设置的命名标记，可按 (name, index) 引用。"""
    name: str
    index: int = 0
    first_operation_seq_no: int = 0 # 紧随标记之后的第一个操作的序号，可能等于堆记录长度
