import pytest

from memdb import output_handler as Output
from memdb.common_types import HeapOperation, Marker
from memdb.tracked_heap import TrackedHeapBuilder


@pytest.fixture(autouse=True)
def restore_color():
    yield
    Output.set_color(True)


@pytest.fixture
def matched_pair():
    """alloc 与 dealloc 地址相同，标记 begin 在 0，end:1 在 1。"""
    return (
        TrackedHeapBuilder()
        .add_operation(HeapOperation.alloc(2, 4, micros_since_start=200_000, thread_id=5,
                                           backtrace="alloc backtrace"))
        .add_operation(HeapOperation.dealloc(2, size=4, micros_since_start=400_000, thread_id=6,
                                             backtrace="dealloc backtrace"))
        .add_marker(Marker("begin", 0, 0))
        .add_marker(Marker("end", 1, 1))
        .build()
    )


@pytest.fixture
def unmatched_pair():
    """alloc 地址 1，dealloc 地址 2，互不匹配。"""
    return (
        TrackedHeapBuilder()
        .add_operation(HeapOperation.alloc(1, 2))
        .add_operation(HeapOperation.dealloc(2))
        .build()
    )
