"""
Unit tests for CompilationScheduler.

Tests bounded parallelism, deterministic results and failure handling with
a fake executor that records concurrency.
"""

import threading
import time
from pathlib import Path

import pytest

from ccbuild.build.compilation_executor import CompilationOutcome, CompilationUnit
from ccbuild.build.compilation_scheduler import CompilationScheduler
from ccbuild.errors import CompilationError, ProcessSpawnError


class FakeExecutor:
    """Stands in for CompilationExecutor, tracking concurrent compiles."""

    def __init__(self, failing=(), delays=None, spawn_error=()):
        self.failing = set(failing)
        self.delays = delays or {}
        self.spawn_error = set(spawn_error)
        self.lock = threading.Lock()
        self.active = 0
        self.peak = 0
        self.started = []
        self.threads = set()

    def compile_unit(self, unit):
        name = unit.source.name
        with self.lock:
            self.active += 1
            self.peak = max(self.peak, self.active)
            self.started.append(name)
            self.threads.add(threading.get_ident())
        try:
            time.sleep(self.delays.get(name, 0.01))
            if name in self.spawn_error:
                raise ProcessSpawnError("cannot execute cc", program="cc")
            failed = name in self.failing
            return CompilationOutcome(
                source=unit.source,
                object=unit.object,
                success=not failed,
                returncode=1 if failed else 0,
                diagnostics=f"{name}: error: failed\n" if failed else "",
            )
        finally:
            with self.lock:
                self.active -= 1


def make_units(count):
    return [
        CompilationUnit(Path(f"src{i}.c"), Path(f"out/src{i}.o"), ("cc", "-c", f"src{i}.c"))
        for i in range(count)
    ]


class TestCompilationScheduler:
    """Test suite for CompilationScheduler."""

    def test_results_in_unit_order(self):
        units = make_units(6)
        delays = {"src0.c": 0.08, "src1.c": 0.01, "src2.c": 0.05}
        outcomes = CompilationScheduler(FakeExecutor(delays=delays), jobs=3).compile_all(units)
        assert [o.source for o in outcomes] == [u.source for u in units]
        assert all(o.success for o in outcomes)

    @pytest.mark.parametrize("jobs", [1, 2, 4])
    def test_concurrency_bound(self, jobs):
        executor = FakeExecutor()
        CompilationScheduler(executor, jobs=jobs).compile_all(make_units(10))
        assert executor.peak <= jobs
        assert len(executor.started) == 10

    def test_uses_parallelism(self):
        executor = FakeExecutor(delays={f"src{i}.c": 0.05 for i in range(4)})
        CompilationScheduler(executor, jobs=4).compile_all(make_units(4))
        assert executor.peak > 1

    def test_parallel_matches_serial(self):
        """Test that job count does not change the result set."""
        units = make_units(8)
        serial = CompilationScheduler(FakeExecutor(), jobs=1).compile_all(units)
        parallel = CompilationScheduler(FakeExecutor(), jobs=4).compile_all(units)
        assert serial == parallel

    def test_single_unit_runs_inline(self):
        executor = FakeExecutor()
        [outcome] = CompilationScheduler(executor, jobs=8).compile_all(make_units(1))
        assert outcome.success
        assert executor.threads == {threading.get_ident()}

    def test_single_unit_failure_matches_parallel_path(self):
        units = make_units(1)
        with pytest.raises(CompilationError) as exc_info:
            CompilationScheduler(FakeExecutor(failing={"src0.c"}), jobs=4).compile_all(units)
        assert exc_info.value.primary.source == Path("src0.c")
        assert len(exc_info.value.outcomes) == 1

    def test_empty(self):
        assert CompilationScheduler(FakeExecutor(), jobs=2).compile_all([]) == []

    def test_invalid_jobs(self):
        with pytest.raises(ValueError):
            CompilationScheduler(FakeExecutor(), jobs=0)

    def test_failure_stops_dispatch(self):
        """Test that no unit starts after a failure and in-flight units finish."""
        units = make_units(20)
        executor = FakeExecutor(failing={"src0.c"}, delays={"src0.c": 0.03, "src1.c": 0.1})
        with pytest.raises(CompilationError) as exc_info:
            CompilationScheduler(executor, jobs=2).compile_all(units)

        error = exc_info.value
        assert error.primary.source == Path("src0.c")
        assert "src0.c: error: failed" in str(error)
        assert len(executor.started) < 20
        ran = [o.source.name for o in error.outcomes]
        assert "src1.c" in ran
        assert ran == sorted(ran, key=lambda name: int(name[3:-2]))
        assert set(ran) == set(executor.started)

    def test_failure_serial(self):
        executor = FakeExecutor(failing={"src2.c"})
        with pytest.raises(CompilationError) as exc_info:
            CompilationScheduler(executor, jobs=1).compile_all(make_units(5))
        assert executor.started == ["src0.c", "src1.c", "src2.c"]
        assert [o.success for o in exc_info.value.outcomes] == [True, True, False]

    def test_spawn_error_propagates(self):
        executor = FakeExecutor(spawn_error={"src1.c"})
        with pytest.raises(ProcessSpawnError):
            CompilationScheduler(executor, jobs=2).compile_all(make_units(4))

    def test_progress_bar(self):
        outcomes = CompilationScheduler(FakeExecutor(), jobs=2, show_progress=True).compile_all(make_units(3))
        assert len(outcomes) == 3

    def test_primary_is_first_failure_to_finish(self):
        """Test that the primary cause is the earliest failure in time, not in unit order."""
        executor = FakeExecutor(failing={"src0.c", "src1.c"}, delays={"src0.c": 0.2, "src1.c": 0.02})
        with pytest.raises(CompilationError) as exc_info:
            CompilationScheduler(executor, jobs=2).compile_all(make_units(4))

        error = exc_info.value
        assert error.primary.source == Path("src1.c")
        assert "src1.c: error: failed" in str(error)
        assert [o.source.name for o in error.outcomes] == ["src0.c", "src1.c"]
