"""Toolchain discovery for ccbuild.

Host detection and MSVC installation discovery. Toolchain resolution itself
lives in ``ccbuild.packages.toolchain``.
"""

from .msvc_discovery import (
    InstallationSource,
    MsvcEnvironment,
    MsvcInstallation,
    MsvcResolver,
    PathSource,
    RegistrySource,
    VsWhereSource,
)
from .platform_utils import PlatformDetector, PlatformError

__all__ = [
    "InstallationSource",
    "MsvcEnvironment",
    "MsvcInstallation",
    "MsvcResolver",
    "PathSource",
    "RegistrySource",
    "VsWhereSource",
    "PlatformDetector",
    "PlatformError",
]
