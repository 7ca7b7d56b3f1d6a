"""Compilation Executor.

This module turns a frozen build spec into compilation units and runs a
single unit through the compiler.

Design:
    - Object paths are derived from the source's parent directory hash, so
      two ``main.c`` files in different directories never collide
    - argv construction follows the toolchain family (GNU-style or cl.exe)
    - MSVC ``.asm`` sources go through the MSVC assembler
    - Diagnostics are relayed line by line by the process runner
"""

import hashlib
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from ..config.build_spec import FrozenBuildSpec
from ..packages.toolchain import ToolchainIdentity
from .process_runner import ProcessRunner


@dataclass(frozen=True)
class CompilationUnit:
    """One source file and the exact command that compiles it."""

    source: Path
    object: Path
    argv: Tuple[str, ...]
    env: Optional[Tuple[Tuple[str, str], ...]] = None

    def process_env(self) -> Optional[Dict[str, str]]:
        return dict(self.env) if self.env is not None else None


@dataclass
class CompilationOutcome:
    """Result of compiling one unit.

    Attributes:
        source: Source file
        object: Object file path
        success: Whether the compiler exited 0
        returncode: Compiler exit status
        diagnostics: Raw compiler stderr
    """

    source: Path
    object: Path
    success: bool
    returncode: int
    diagnostics: str = ""


def object_path(out_dir: Path, source: Path) -> Path:
    """Object file path for *source* inside *out_dir*.

    Example:
        src/main.c -> <out_dir>/<16 hex chars>-main.o
    """
    dir_hash = hashlib.sha256(str(source.parent).encode("utf-8")).hexdigest()[:16]
    return out_dir / f"{dir_hash}-{source.name}.o"


class CompilationExecutor:
    """Builds and runs compilation units for one toolchain."""

    def __init__(
        self,
        identity: ToolchainIdentity,
        runner: ProcessRunner,
        environ: Optional[Mapping[str, str]] = None
    ):
        """Initialize compilation executor.

        Args:
            identity: Resolved toolchain
            runner: Process runner relaying diagnostics
            environ: Environment the build was configured from
        """
        self.identity = identity
        self.runner = runner
        self.environ = environ

    def object_path(self, out_dir: Path, source: Path) -> Path:
        return object_path(out_dir, source)

    def _common_flags(self, spec: FrozenBuildSpec, probed_flags: Iterable[str]) -> List[str]:
        flags = list(self.identity.base_flags)
        flags.extend(f"-I{directory}" for directory in spec.include_dirs)
        for name, value in spec.definitions:
            flags.append(f"-D{name}" if value is None else f"-D{name}={value}")
        flags.extend(spec.flags)
        flags.extend(probed_flags)
        return flags

    def _assembler(self) -> str:
        msvc = self.identity.msvc
        if msvc is not None and msvc.assembler is not None:
            return str(msvc.assembler)
        return str(self.identity.compiler.with_name("ml64.exe"))

    def build_argv(self, source: Path, obj: Path, common_flags: List[str]) -> List[str]:
        """Full command line compiling *source* into *obj*."""
        if self.identity.is_msvc:
            if source.suffix.lower() == ".asm":
                return [self._assembler(), "-nologo", "-c", f"-Fo{obj}", str(source)]
            return self.identity.command() + common_flags + ["-c", str(source), f"-Fo{obj}"]
        return self.identity.command() + common_flags + ["-c", str(source), "-o", str(obj)]

    def units_for(self, spec: FrozenBuildSpec, probed_flags: Iterable[str] = ()) -> List[CompilationUnit]:
        """Create one compilation unit per source, in source order.

        Args:
            spec: Frozen build configuration
            probed_flags: Candidate flags the compiler accepted

        Returns:
            Compilation units with object directories created
        """
        common = self._common_flags(spec, probed_flags)
        env = self.identity.process_env(self.environ)
        env_items = tuple(sorted(env.items())) if env is not None else None

        units = []
        for source in spec.files:
            obj = self.object_path(spec.out_dir, source)
            obj.parent.mkdir(parents=True, exist_ok=True)
            units.append(CompilationUnit(
                source=source,
                object=obj,
                argv=tuple(self.build_argv(source, obj, common)),
                env=env_items,
            ))
        return units

    def compile_unit(self, unit: CompilationUnit) -> CompilationOutcome:
        """Compile a single unit.

        Returns:
            CompilationOutcome; a failing compiler is reported, not raised

        Raises:
            ProcessSpawnError: If the compiler cannot be started
        """
        result = self.runner.run(unit.argv, env=unit.process_env())
        return CompilationOutcome(
            source=unit.source,
            object=unit.object,
            success=result.success,
            returncode=result.returncode,
            diagnostics=result.diagnostics,
        )
