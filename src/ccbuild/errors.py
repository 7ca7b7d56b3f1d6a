"""Exception types for ccbuild.

Every failure surfaced to a caller derives from CCBuildError so that the
enclosing build script can catch one type. Messages carry the raw output of
the failing external tool where there is one.
"""

from typing import List, Optional


class CCBuildError(Exception):
    """Base exception for all ccbuild errors."""
    pass


class ConfigurationError(CCBuildError):
    """Raised for invalid or missing build inputs (empty source list, bad triple)."""
    pass


class ToolchainNotFound(CCBuildError):
    """Raised when no usable compiler, archiver or MSVC installation is found."""
    pass


class ProcessSpawnError(CCBuildError):
    """Raised when an external executable cannot be started at all."""

    def __init__(self, message: str, program: str = ""):
        super().__init__(message)
        self.program = program


class UnsupportedFlag(CCBuildError):
    """A candidate flag rejected by the compiler.

    Never raised to callers: rejected flags are dropped from the build.
    """
    pass


class CompilationError(CCBuildError):
    """Raised when one or more compiler invocations exit non-zero.

    Attributes:
        outcomes: Outcomes of every unit that ran, in unit order
        primary: The failure that finished first and stopped dispatch
    """

    def __init__(self, message: str, outcomes: Optional[List] = None, primary=None):
        super().__init__(message)
        self.outcomes = outcomes or []
        self.primary = primary


class ArchiveError(CCBuildError):
    """Raised when the archiver exits non-zero."""
    pass
