"""ccbuild: compile C/C++/assembly sources into static archives from a build script.

Example usage:
    from ccbuild import BuildSpec

    BuildSpec().files(["src/foo.c"]).include("include").compile("foo")
"""

from .build import BuildOrchestrator, BuildResult
from .config import BuildSpec, FlagGroup, TargetTriple
from .errors import (
    ArchiveError,
    CCBuildError,
    CompilationError,
    ConfigurationError,
    ProcessSpawnError,
    ToolchainNotFound,
    UnsupportedFlag,
)
from .output import BuildOutput
from .packages.toolchain import ToolchainFamily, ToolchainIdentity, ToolchainLocator

__all__ = [
    "BuildOrchestrator",
    "BuildResult",
    "BuildSpec",
    "FlagGroup",
    "TargetTriple",
    "ArchiveError",
    "CCBuildError",
    "CompilationError",
    "ConfigurationError",
    "ProcessSpawnError",
    "ToolchainNotFound",
    "UnsupportedFlag",
    "BuildOutput",
    "ToolchainFamily",
    "ToolchainIdentity",
    "ToolchainLocator",
]
