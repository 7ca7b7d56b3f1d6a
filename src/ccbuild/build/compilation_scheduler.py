"""Compilation Scheduler.

Runs compilation units with bounded parallelism. ``jobs`` worker threads pull
units from a shared cursor, so at most ``jobs`` compiler processes exist at
any instant. After the first failure no further unit is dispatched; units
already running are allowed to finish so that their diagnostics are not lost.

Outcomes are always reported in unit order regardless of completion order.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional, Sequence

from tqdm import tqdm

from ..errors import CompilationError
from .compilation_executor import CompilationExecutor, CompilationOutcome, CompilationUnit


class CompilationScheduler:
    """Compiles many units concurrently with a fixed job limit."""

    def __init__(self, executor: CompilationExecutor, jobs: int, show_progress: bool = False):
        """Initialize scheduler.

        Args:
            executor: Runs individual units
            jobs: Maximum number of concurrent compiler processes
            show_progress: Show a progress bar of completed units
        """
        if jobs < 1:
            raise ValueError(f"jobs must be at least 1, got {jobs}")
        self.executor = executor
        self.jobs = jobs
        self.show_progress = show_progress

    def compile_all(self, units: Sequence[CompilationUnit]) -> List[CompilationOutcome]:
        """Compile every unit.

        Args:
            units: Units to compile

        Returns:
            One outcome per unit, in unit order

        Raises:
            CompilationError: If any unit failed; carries every outcome that ran
            ProcessSpawnError: If the compiler could not be started
        """
        units = list(units)
        if not units:
            return []

        if len(units) == 1:
            outcome = self.executor.compile_unit(units[0])
            outcomes: List[Optional[CompilationOutcome]] = [outcome]
            errors: List[BaseException] = []
            first_failure = None if outcome.success else outcome
        else:
            outcomes, errors, first_failure = self._run_parallel(units)

        if errors:
            raise errors[0]

        ran = [outcome for outcome in outcomes if outcome is not None]
        failures = [outcome for outcome in ran if not outcome.success]
        if failures:
            primary = first_failure or failures[0]
            message = (
                f"Compilation failed for {primary.source} (exit code {primary.returncode})\n"
                f"{primary.diagnostics}"
            )
            if len(failures) > 1:
                message += f"\n{len(failures) - 1} more unit(s) failed"
            raise CompilationError(message, outcomes=ran, primary=primary)
        return ran

    def _run_parallel(self, units: List[CompilationUnit]):
        outcomes: List[Optional[CompilationOutcome]] = [None] * len(units)
        errors: List[BaseException] = []
        lock = threading.Lock()
        state = {"cursor": 0, "stopped": False, "first_failure": None}

        progress = tqdm(total=len(units), desc="Compiling", unit="file") if self.show_progress else None

        def next_index() -> Optional[int]:
            with lock:
                if state["stopped"] or state["cursor"] >= len(units):
                    return None
                index = state["cursor"]
                state["cursor"] += 1
                return index

        def worker() -> None:
            while True:
                index = next_index()
                if index is None:
                    return
                try:
                    outcome = self.executor.compile_unit(units[index])
                except Exception as e:
                    with lock:
                        state["stopped"] = True
                        errors.append(e)
                    return
                with lock:
                    outcomes[index] = outcome
                    if not outcome.success and not state["stopped"]:
                        state["stopped"] = True
                        state["first_failure"] = outcome
                        logging.info(f"Stopping dispatch after failure of {outcome.source}")
                if progress is not None:
                    progress.update(1)

        workers = min(self.jobs, len(units))
        try:
            with ThreadPoolExecutor(max_workers=workers) as pool:
                futures = [pool.submit(worker) for _ in range(workers)]
                for future in futures:
                    future.result()
        finally:
            if progress is not None:
                progress.close()

        return outcomes, errors, state["first_failure"]
