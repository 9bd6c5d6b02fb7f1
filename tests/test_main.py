import pytest

from memdb import config
from memdb import snapshot_manager as SnapshotMngr
from memdb.common_types import HeapOperation, Marker
from memdb.errors import MemdbError
from memdb.main import MemDB, main
from memdb.tracked_heap import TrackedHeapBuilder


@pytest.fixture
def heap_file(tmp_path):
    heap = (
        TrackedHeapBuilder()
        .add_operations([
            HeapOperation.alloc(0x10, 8, micros_since_start=1_000),
            HeapOperation.alloc(0x20, 3, micros_since_start=2_000),
            HeapOperation.dealloc(0x10, size=8, micros_since_start=3_000),
            HeapOperation.alloc(0x30, 16, micros_since_start=4_000, backtrace="#0 malloc"),
        ])
        .add_marker(Marker("begin", 0, 0))
        .add_marker(Marker("end", 0, 4))
        .build()
    )
    path = tmp_path / "heap.memdb"
    SnapshotMngr.save_tracked_heap(heap, str(path))
    return path


def _run(args, capsys):
    code = main([*args, "--no-color"])
    return code, capsys.readouterr().out


class TestConfig:
    def test_defaults(self):
        settings = config.initialize_config([])
        assert settings.columns == 100
        assert settings.rows == 40
        assert settings.layout_columns == 15
        assert settings.poll_interval == 0.1
        assert settings.capture_timeout is None
        assert config.settings is settings

    def test_dashed_flags(self):
        settings = config.initialize_config(["--print-operation", "3", "--plot-range", "0..2", "--no-buckets"])
        assert settings.print_operation == 3
        assert settings.plot_range == "0..2"
        assert settings.no_buckets


class TestBatchMode:
    def test_nothing_to_do(self, capsys):
        code, out = _run([], capsys)
        assert code == 0
        assert out == ""

    def test_histogram(self, heap_file, capsys):
        code, out = _run(["--load", str(heap_file), "--histogram"], capsys)
        assert code == 0
        assert "Histogram:" in out
        assert "         4\t1\n" in out
        assert "         8\t1\n" in out
        assert "        16\t1\n" in out

    def test_histogram_without_buckets(self, heap_file, capsys):
        _, out = _run(["--load", str(heap_file), "--histogram", "--no-buckets"], capsys)
        assert "         3\t1\n" in out

    def test_diff_between_markers(self, heap_file, capsys):
        code, out = _run(["--load", str(heap_file), "--diff", "begin..end"], capsys)
        assert code == 0
        assert "+ alloc[seq no: 1," in out
        assert "+ alloc[seq no: 3," in out
        assert "seq no: 0," not in out
        assert "+ 19 bytes, - 0 bytes" in out

    def test_bad_diff_fails(self, heap_file, capsys):
        code, _ = _run(["--load", str(heap_file), "--diff", "0..99"], capsys)
        assert code == 1

    def test_missing_file_fails(self, tmp_path, capsys):
        code, _ = _run(["--load", str(tmp_path / "missing.memdb")], capsys)
        assert code == 1

    def test_print_operation(self, heap_file, capsys):
        _, out = _run(["--load", str(heap_file), "--print-operation", "3", "--backtrace"], capsys)
        assert "alloc[seq no: 3, duration: 4ms, address: 00000030, size: 16" in out
        assert "#0 malloc" in out

    def test_print_invalid_operation_is_skipped(self, heap_file, capsys):
        code, out = _run(["--load", str(heap_file), "--print-operation", "9"], capsys)
        assert code == 0
        assert "Print:" not in out

    def test_plot(self, heap_file, capsys):
        _, out = _run(["--load", str(heap_file), "--plot", "--columns", "8", "--rows", "4"], capsys)
        assert "Plot:" in out
        assert "allocated->" in out
        assert "begin: --------" in out

    def test_plot_layout_requires_diff(self, heap_file, capsys):
        code, out = _run(["--load", str(heap_file), "--plot-layout"], capsys)
        assert code == 0
        assert "Layout plot:" not in out

    def test_plot_layout(self, heap_file, capsys):
        _, out = _run(
            ["--load", str(heap_file), "--diff", "0..3", "--plot-layout",
             "--layout-columns", "4", "--layout-rows", "2"],
            capsys,
        )
        assert "Layout plot:" in out
        assert "00000020: " in out

    def test_truncate_then_save(self, heap_file, tmp_path, capsys):
        out_path = tmp_path / "out" / "truncated.memdb"
        code, _ = _run(["--load", str(heap_file), "--truncate", "1..2", "--save", str(out_path), "--compress"],
                       capsys)
        assert code == 0
        assert out_path.read_bytes().startswith(SnapshotMngr.ZSTD_MAGIC)
        truncated = SnapshotMngr.load_tracked_heap(str(out_path))
        assert [op.address for op in truncated.operations] == [0x20, 0x10]
        assert truncated.markers == ()

    def test_plot_image(self, heap_file, tmp_path, capsys):
        image = tmp_path / "usage.png"
        code, _ = _run(["--load", str(heap_file), "--plot-image", str(image)], capsys)
        assert code == 0
        assert image.read_bytes().startswith(b"\x89PNG")


class TestMemDB:
    def test_operations_require_heap(self):
        memdb = MemDB(config.initialize_config([]))
        with pytest.raises(MemdbError):
            memdb.do_diff("0..0")

    def test_load_resets_diff(self, heap_file, capsys):
        memdb = MemDB(config.initialize_config([]))
        memdb.do_load(str(heap_file))
        memdb.do_diff("0..1")
        assert memdb.diff is not None
        memdb.do_load(str(heap_file))
        assert memdb.diff is None

    def test_save_failure_is_reported(self, heap_file, tmp_path, capsys):
        code, _ = _run(["--load", str(heap_file), "--save", str(tmp_path)], capsys)
        assert code == 1
