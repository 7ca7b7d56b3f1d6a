"""
Build system components for ccbuild.

This module provides the build pipeline:
- Process execution with diagnostic relay
- Flag support probing
- Concurrent compilation
- Static archive creation
- Build orchestration
"""

from .archive_creator import Archive, ArchiveCreator
from .compilation_executor import CompilationExecutor, CompilationOutcome, CompilationUnit
from .compilation_scheduler import CompilationScheduler
from .flag_prober import FlagProber, ProbeCache
from .orchestrator import BuildOrchestrator, BuildResult
from .process_runner import ProcessResult, ProcessRunner

__all__ = [
    "Archive",
    "ArchiveCreator",
    "CompilationExecutor",
    "CompilationOutcome",
    "CompilationUnit",
    "CompilationScheduler",
    "FlagProber",
    "ProbeCache",
    "BuildOrchestrator",
    "BuildResult",
    "ProcessResult",
    "ProcessRunner",
]
