import pytest

from memdb.common_types import HeapOperation, Marker
from memdb.errors import MalformedRangeSpec
from memdb.range_resolver import Range, from_position, parse_marker_spec, to_position
from memdb.tracked_heap import TrackedHeapBuilder


def _make_heap(num_ops, markers=()):
    return (
        TrackedHeapBuilder()
        .add_operations(HeapOperation.alloc(i, 1) for i in range(num_ops))
        .add_markers(markers)
        .build()
    )


class TestParseMarkerSpec:
    def test_name_only(self):
        assert parse_marker_spec("begin") == ("begin", 0)

    def test_name_and_index(self):
        assert parse_marker_spec("end:1") == ("end", 1)

    def test_non_numeric_index_is_zero(self):
        assert parse_marker_spec("end:x") == ("end", 0)


class TestPositions:
    def test_integers_are_returned_without_bounds_check(self, matched_pair):
        assert from_position(matched_pair, "1982") == 1982
        assert from_position(matched_pair, "-1") == -1
        assert to_position(matched_pair, "1982") == 1982

    def test_from_marker(self, matched_pair):
        assert from_position(matched_pair, "begin") == 0
        assert from_position(matched_pair, "end:1") == 1

    def test_to_marker_is_operation_before_it(self, matched_pair):
        assert to_position(matched_pair, "end:1") == 0

    def test_to_marker_at_start_is_clamped(self, matched_pair):
        assert to_position(matched_pair, "begin") == 0

    def test_unknown_marker(self, matched_pair):
        assert from_position(matched_pair, "arjan") is None
        assert to_position(matched_pair, "end") is None


class TestRange:
    def test_whole_range_str(self):
        assert Range.whole_range_inclusive_str(_make_heap(5)) == "0..4"

    def test_from_string_integers(self):
        heap = _make_heap(5)
        heap_range = Range.from_string(heap, "1..3")
        assert (heap_range.first, heap_range.last) == (1, 3)
        assert (heap_range.lo, heap_range.hi) == (1, 3)
        assert not heap_range.is_reversed
        assert len(heap_range) == 3

    def test_from_string_markers(self):
        heap = _make_heap(4, [Marker("before", 0, 1), Marker("after", 0, 3)])
        heap_range = Range.from_string(heap, "before..after")
        assert (heap_range.first, heap_range.last) == (1, 2)

    def test_reversed_is_accepted(self):
        heap_range = Range.from_string(_make_heap(5), "3..1")
        assert heap_range.is_reversed
        assert (heap_range.lo, heap_range.hi) == (1, 3)

    @pytest.mark.parametrize("spec", ["0", "0..1..2", "", "0...1"])
    def test_wrong_shape(self, spec):
        with pytest.raises(MalformedRangeSpec) as excinfo:
            Range.from_string(_make_heap(5), spec)
        assert excinfo.value.spec == spec

    def test_unknown_marker_message_contains_spec(self, matched_pair):
        with pytest.raises(MalformedRangeSpec) as excinfo:
            Range.from_string(matched_pair, "arjan..1")
        assert "arjan..1" in str(excinfo.value)

    @pytest.mark.parametrize("spec", ["0..5", "-1..2", "5..0"])
    def test_out_of_bounds(self, spec):
        with pytest.raises(MalformedRangeSpec):
            Range.from_string(_make_heap(5), spec)

    def test_empty_heap_has_no_valid_range(self):
        with pytest.raises(MalformedRangeSpec):
            Range.from_string(_make_heap(0), "0..0")

    def test_is_value_error(self):
        with pytest.raises(ValueError):
            Range.from_bounds(_make_heap(1), 0, 1)
