"""Directive output for the enclosing build process.

The host build process reads our stdout and recognizes sentinel lines of the
form ``<prefix><key>=<value>``. Two kinds matter to the core:

- revalidation declarations (``rerun-if-env-changed``, ``rerun-if-changed``)
  naming every environment variable and discovery file consulted
- ``warning`` lines relaying raw compiler diagnostics

Writes are serialized with a lock because relay threads of concurrent
compilations all write here.
"""

import sys
import threading
from typing import Optional, Set, TextIO, Tuple


class BuildOutput:
    """Thread-safe writer of sentinel directive lines."""

    def __init__(
        self,
        prefix: str = "cargo:",
        stream: Optional[TextIO] = None,
        metadata: bool = True,
        warnings: bool = True
    ):
        """Initialize directive writer.

        Args:
            prefix: Sentinel prefix recognized by the host build process
            stream: Output stream (defaults to sys.stdout at write time)
            metadata: Whether to emit revalidation declarations
            warnings: Whether to emit relayed diagnostic lines
        """
        self.prefix = prefix
        self.stream = stream
        self.metadata = metadata
        self.warnings = warnings
        self._lock = threading.Lock()
        self._declared: Set[Tuple[str, str]] = set()

    def _write(self, key: str, value: str) -> None:
        stream = self.stream if self.stream is not None else sys.stdout
        with self._lock:
            stream.write(f"{self.prefix}{key}={value}\n")
            stream.flush()

    def _declare_once(self, key: str, value: str) -> None:
        if not self.metadata:
            return
        with self._lock:
            if (key, value) in self._declared:
                return
            self._declared.add((key, value))
        self._write(key, value)

    def rerun_if_env_changed(self, name: str) -> None:
        """Declare that a change of environment variable *name* invalidates the build."""
        self._declare_once("rerun-if-env-changed", name)

    def rerun_if_changed(self, path) -> None:
        """Declare that a change of file *path* invalidates the build."""
        self._declare_once("rerun-if-changed", str(path))

    def warning(self, line: str) -> None:
        """Relay one line of tool diagnostics."""
        if self.warnings:
            self._write("warning", line.rstrip("\r\n"))

    @property
    def declared(self) -> Set[Tuple[str, str]]:
        """Snapshot of (key, value) declarations emitted so far."""
        with self._lock:
            return set(self._declared)
