"""Process Execution and Output Relay.

This module runs one external tool (compiler, assembler, archiver) and
relays its diagnostic output line by line while the process is running.

Design:
    - subprocess.Popen inside a ``with`` block, so pipes and the process
      handle are released on every exit path
    - stderr is drained by a dedicated relay thread and forwarded to a sink
    - a failing sink never stops the drain; its first error is re-raised
      after the process has been waited on
"""

import logging
import subprocess
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Mapping, Optional, Sequence

from ..errors import ProcessSpawnError
from ..output import BuildOutput

DiagnosticSink = Callable[[str], None]


@dataclass
class ProcessResult:
    """Result of one external process.

    Attributes:
        returncode: Exit status
        diagnostics: Full stderr text
        stdout: Captured stdout text (empty unless capture was requested)
    """

    returncode: int
    diagnostics: str
    stdout: str = ""

    @property
    def success(self) -> bool:
        return self.returncode == 0


class ProcessRunner:
    """Spawns tools and relays their stderr to a diagnostic sink."""

    def __init__(self, sink: Optional[DiagnosticSink] = None, output: Optional[BuildOutput] = None):
        """Initialize process runner.

        Args:
            sink: Receives each stderr line as it arrives (defaults to warning directives)
            output: Directive writer used by the default sink
        """
        if sink is None:
            output = output or BuildOutput()
            sink = output.warning
        self.sink = sink

    def run(
        self,
        argv: Sequence[str],
        env: Optional[Mapping[str, str]] = None,
        cwd: Optional[Path] = None,
        capture_stdout: bool = False
    ) -> ProcessResult:
        """Run a process to completion.

        Args:
            argv: Program and arguments
            env: Complete process environment (None to inherit)
            cwd: Working directory
            capture_stdout: Capture stdout instead of discarding it

        Returns:
            ProcessResult with exit status and diagnostics

        Raises:
            ProcessSpawnError: If the program cannot be started
        """
        argv = [str(arg) for arg in argv]
        logging.debug(f"Running: {' '.join(argv)}")

        lines: List[str] = []
        sink_errors: List[BaseException] = []

        try:
            proc = subprocess.Popen(
                argv,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE if capture_stdout else subprocess.DEVNULL,
                stderr=subprocess.PIPE,
                env=dict(env) if env is not None else None,
                cwd=str(cwd) if cwd is not None else None,
                text=True,
                errors="replace",
            )
        except OSError as e:
            raise ProcessSpawnError(f"Failed to execute {argv[0]}: {e}", program=argv[0]) from e

        with proc:
            relay = threading.Thread(
                target=self._relay,
                args=(proc.stderr, lines, sink_errors),
                daemon=True,
            )
            relay.start()
            try:
                stdout = proc.stdout.read() if capture_stdout else ""
            finally:
                returncode = proc.wait()
                relay.join()

        if sink_errors:
            raise sink_errors[0]

        logging.debug(f"{argv[0]} exited with {returncode}")
        return ProcessResult(returncode=returncode, diagnostics="".join(lines), stdout=stdout)

    def _relay(self, stream, lines: List[str], sink_errors: List[BaseException]) -> None:
        for line in stream:
            lines.append(line)
            try:
                self.sink(line.rstrip("\r\n"))
            except BaseException as e:
                # Keep draining so the child never blocks on a full pipe,
                # even when the sink raises SystemExit or KeyboardInterrupt
                if not sink_errors:
                    sink_errors.append(e)
