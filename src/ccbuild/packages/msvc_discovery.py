"""MSVC Installation Discovery.

This module finds Visual Studio installations and resolves, for one of them,
the tool executables and the Windows SDK / Universal CRT directories needed
to compile for a given architecture.

Discovery is split into sources that only return data, so that selection and
resolution can be tested against a fake installation tree:

    1. VsWhereSource   - the Visual Studio component-discovery tool (vswhere.exe)
    2. RegistrySource  - SOFTWARE\\Microsoft\\VisualStudio\\SxS\\VS7
    3. PathSource      - cl.exe already on PATH (e.g. a developer prompt)

Directory Structure (Visual Studio 2017 and later):
    <install>/VC/Auxiliary/Build/Microsoft.VCToolsVersion.default.txt
    <install>/VC/Tools/MSVC/<tools-version>/bin/Host<host>/<target>/cl.exe
    <install>/VC/Tools/MSVC/<tools-version>/include
    <install>/VC/Tools/MSVC/<tools-version>/lib/<target>

Windows Kits:
    <kits-root>/Include/<sdk-version>/{ucrt,um,shared,winrt}
    <kits-root>/Lib/<sdk-version>/{ucrt,um}/<target>
"""

import json
import logging
import os
import re
import shutil
import subprocess
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from ..output import BuildOutput

try:
    import winreg
except ImportError:  # not a Windows host
    winreg = None

DEFAULT_VSWHERE = Path(
    os.environ.get("ProgramFiles(x86)", r"C:\Program Files (x86)")
) / "Microsoft Visual Studio" / "Installer" / "vswhere.exe"

DEFAULT_KITS_ROOT = Path(
    os.environ.get("ProgramFiles(x86)", r"C:\Program Files (x86)")
) / "Windows Kits" / "10"

VC_TOOLS_COMPONENT = "Microsoft.VisualStudio.Component.VC.Tools.x86.x64"

# Subdirectories of VC/bin in pre-2017 installations, keyed by target arch.
LEGACY_BIN_SUBDIRS: Dict[str, str] = {
    "x86": "",
    "x64": "amd64",
    "arm": "arm",
}

ASSEMBLERS: Dict[str, str] = {
    "x86": "ml.exe",
    "x64": "ml64.exe",
    "arm": "armasm.exe",
    "arm64": "armasm64.exe",
}


def version_key(version: str) -> Tuple[int, ...]:
    """Numeric sort key of a dotted version string ('17.9.34607.119', 'v10.0')."""
    return tuple(int(part) for part in re.findall(r"\d+", version))


@dataclass(frozen=True)
class MsvcInstallation:
    """One discovered Visual Studio / Build Tools instance.

    Attributes:
        version: Installation version (e.g. '17.9.34607.119')
        install_path: Root directory of the installation
        source: Name of the source that found it
        compiler: cl.exe path when the source found the compiler directly
    """

    version: str
    install_path: Path
    source: str
    compiler: Optional[Path] = None


@dataclass(frozen=True)
class MsvcEnvironment:
    """Tools and search directories resolved from one installation."""

    installation: MsvcInstallation
    tools_version: Optional[str]
    compiler: Path
    linker: Path
    archiver: Path
    assembler: Optional[Path]
    include_dirs: Tuple[Path, ...]
    lib_dirs: Tuple[Path, ...]

    def process_env(self, environ: Mapping[str, str]) -> Dict[str, str]:
        """Variables to add to the compiler's environment.

        INCLUDE and LIB set by a developer prompt take precedence over the
        discovered directories. The tool directory is prepended to PATH so the
        compiler finds its own DLLs.
        """
        env: Dict[str, str] = {}
        if not environ.get("INCLUDE") and self.include_dirs:
            env["INCLUDE"] = os.pathsep.join(str(p) for p in self.include_dirs)
        if not environ.get("LIB") and self.lib_dirs:
            env["LIB"] = os.pathsep.join(str(p) for p in self.lib_dirs)
        path = environ.get("PATH", "")
        bin_dir = str(self.compiler.parent)
        env["PATH"] = os.pathsep.join(p for p in (bin_dir, path) if p)
        return env


class InstallationSource(ABC):
    """A way of enumerating installed MSVC toolsets."""

    name = "source"

    @abstractmethod
    def find_installations(self) -> List[MsvcInstallation]:
        """Return discovered installations, or [] if this source is unavailable."""
        pass


class VsWhereSource(InstallationSource):
    """Queries vswhere.exe for installations that include the VC toolset."""

    name = "vswhere"

    def __init__(self, vswhere_path: Optional[Path] = None, timeout: int = 30):
        self.vswhere_path = vswhere_path or DEFAULT_VSWHERE
        self.timeout = timeout

    def find_installations(self) -> List[MsvcInstallation]:
        if not self.vswhere_path.is_file():
            logging.debug(f"vswhere not found at {self.vswhere_path}")
            return []

        cmd = [
            str(self.vswhere_path),
            "-products", "*",
            "-requires", VC_TOOLS_COMPONENT,
            "-format", "json",
            "-utf8",
        ]
        try:
            result = subprocess.run(cmd, capture_output=True, timeout=self.timeout)
        except (OSError, subprocess.TimeoutExpired) as e:
            logging.warning(f"vswhere query failed: {e}")
            return []

        if result.returncode != 0:
            logging.debug(f"vswhere returned {result.returncode}")
            return []

        return self.parse(result.stdout.decode("utf-8", errors="replace"))

    def parse(self, text: str) -> List[MsvcInstallation]:
        """Parse vswhere JSON output."""
        try:
            entries = json.loads(text or "[]")
        except json.JSONDecodeError as e:
            logging.warning(f"Unparsable vswhere output: {e}")
            return []

        installs = []
        for entry in entries:
            path = entry.get("installationPath")
            version = entry.get("installationVersion")
            if path and version:
                installs.append(MsvcInstallation(version, Path(path), self.name))
        return installs


class RegistrySource(InstallationSource):
    """Reads installation roots from the Windows registry."""

    name = "registry"

    KEY = r"SOFTWARE\Microsoft\VisualStudio\SxS\VS7"

    def find_installations(self) -> List[MsvcInstallation]:
        if winreg is None:
            return []

        installs = []
        try:
            access = winreg.KEY_READ | winreg.KEY_WOW64_32KEY
            with winreg.OpenKey(winreg.HKEY_LOCAL_MACHINE, self.KEY, 0, access) as key:
                index = 0
                while True:
                    try:
                        version, path, _ = winreg.EnumValue(key, index)
                    except OSError:
                        break
                    index += 1
                    if version_key(version) and isinstance(path, str):
                        installs.append(MsvcInstallation(version, Path(path), self.name))
        except OSError as e:
            logging.debug(f"Registry key {self.KEY} not readable: {e}")
            return []
        return installs


class PathSource(InstallationSource):
    """Uses a cl.exe found on the executable search path."""

    name = "path"

    def __init__(self, search_path: Optional[str] = None):
        self.search_path = search_path

    def find_installations(self) -> List[MsvcInstallation]:
        found = shutil.which("cl.exe", path=self.search_path)
        if found is None:
            return []
        compiler = Path(found).resolve()
        return [MsvcInstallation("0", compiler.parent, self.name, compiler=compiler)]


def default_sources(search_path: Optional[str] = None) -> List[InstallationSource]:
    """Discovery sources in fallback order."""
    return [VsWhereSource(), RegistrySource(), PathSource(search_path)]


def discover_installations(sources: Sequence[InstallationSource]) -> List[MsvcInstallation]:
    """Return the installations of the first source that finds any."""
    for source in sources:
        installs = source.find_installations()
        if installs:
            logging.info(f"Found {len(installs)} MSVC installation(s) via {source.name}")
            return installs
    return []


def order_installations(
    installs: Sequence[MsvcInstallation],
    requested_version: Optional[str] = None
) -> List[MsvcInstallation]:
    """Order installations by preference: highest version first.

    With *requested_version* (e.g. '16.0' from VisualStudioVersion) only
    installations whose major version matches are kept.
    """
    candidates = list(installs)
    if requested_version:
        wanted = version_key(requested_version)[:1]
        candidates = [i for i in candidates if version_key(i.version)[:1] == wanted]
    return sorted(candidates, key=lambda i: version_key(i.version), reverse=True)


def _read_kits_root_from_registry() -> Optional[Path]:
    if winreg is None:
        return None
    key_path = r"SOFTWARE\Microsoft\Windows Kits\Installed Roots"
    try:
        access = winreg.KEY_READ | winreg.KEY_WOW64_32KEY
        with winreg.OpenKey(winreg.HKEY_LOCAL_MACHINE, key_path, 0, access) as key:
            value, _ = winreg.QueryValueEx(key, "KitsRoot10")
            return Path(value)
    except OSError:
        return None


def _highest_subdir(directory: Path, required: Optional[str] = None) -> Optional[str]:
    """Name of the highest-versioned subdirectory, optionally requiring a child entry."""
    if not directory.is_dir():
        return None
    names = [
        p.name for p in directory.iterdir()
        if p.is_dir() and version_key(p.name) and (required is None or (p / required).exists())
    ]
    if not names:
        return None
    return max(names, key=version_key)


class MsvcResolver:
    """Resolves tool paths and SDK directories from an installation."""

    def __init__(
        self,
        target_arch: str,
        host_arch: str = "x64",
        kits_root: Optional[Path] = None,
        output: Optional[BuildOutput] = None
    ):
        """Initialize resolver.

        Args:
            target_arch: MSVC architecture of the target (x86, x64, arm, arm64)
            host_arch: MSVC architecture of the host
            kits_root: Windows Kits 10 root (defaults to registry, then the standard location)
            output: Directive writer receiving declarations for files read
        """
        self.target_arch = target_arch
        self.host_arch = host_arch
        self.kits_root = kits_root
        self.output = output

    def resolve(self, installation: MsvcInstallation) -> Optional[MsvcEnvironment]:
        """Resolve *installation*, or None if it has no toolset for the target."""
        if installation.compiler is not None:
            return self._from_compiler(installation)

        vc_tools = installation.install_path / "VC" / "Tools" / "MSVC"
        if vc_tools.is_dir():
            return self._from_modern_layout(installation, vc_tools)
        return self._from_legacy_layout(installation)

    def _tools_version(self, installation: MsvcInstallation, vc_tools: Path) -> Optional[str]:
        version_file = (
            installation.install_path / "VC" / "Auxiliary" / "Build"
            / "Microsoft.VCToolsVersion.default.txt"
        )
        if version_file.is_file():
            if self.output is not None:
                self.output.rerun_if_changed(version_file)
            version = version_file.read_text(encoding="utf-8").strip()
            if (vc_tools / version).is_dir():
                return version
        return _highest_subdir(vc_tools)

    def _from_modern_layout(
        self, installation: MsvcInstallation, vc_tools: Path
    ) -> Optional[MsvcEnvironment]:
        tools_version = self._tools_version(installation, vc_tools)
        if tools_version is None:
            return None
        tools_dir = vc_tools / tools_version

        bin_dir = None
        for host in dict.fromkeys([self.host_arch, "x64", "x86"]):
            candidate = tools_dir / "bin" / f"Host{host}" / self.target_arch
            if (candidate / "cl.exe").is_file():
                bin_dir = candidate
                break
        if bin_dir is None:
            logging.debug(f"No cl.exe for {self.target_arch} in {tools_dir}")
            return None

        include_dirs = [tools_dir / "include"]
        lib_dirs = [tools_dir / "lib" / self.target_arch]
        sdk_includes, sdk_libs = self._sdk_dirs()
        include_dirs.extend(sdk_includes)
        lib_dirs.extend(sdk_libs)

        return self._environment(installation, tools_version, bin_dir, include_dirs, lib_dirs)

    def _from_legacy_layout(self, installation: MsvcInstallation) -> Optional[MsvcEnvironment]:
        subdir = LEGACY_BIN_SUBDIRS.get(self.target_arch)
        if subdir is None:
            return None
        vc_dir = installation.install_path / "VC"
        bin_dir = vc_dir / "bin" / subdir if subdir else vc_dir / "bin"
        if not (bin_dir / "cl.exe").is_file():
            return None

        lib_dir = vc_dir / "lib" / subdir if subdir else vc_dir / "lib"
        include_dirs = [vc_dir / "include"]
        lib_dirs = [lib_dir]
        sdk_includes, sdk_libs = self._sdk_dirs()
        include_dirs.extend(sdk_includes)
        lib_dirs.extend(sdk_libs)

        return self._environment(installation, None, bin_dir, include_dirs, lib_dirs)

    def _from_compiler(self, installation: MsvcInstallation) -> MsvcEnvironment:
        bin_dir = installation.compiler.parent
        return self._environment(installation, None, bin_dir, [], [])

    def _environment(self, installation, tools_version, bin_dir, include_dirs, lib_dirs):
        assembler = bin_dir / ASSEMBLERS.get(self.target_arch, "ml64.exe")
        return MsvcEnvironment(
            installation=installation,
            tools_version=tools_version,
            compiler=bin_dir / "cl.exe",
            linker=bin_dir / "link.exe",
            archiver=bin_dir / "lib.exe",
            assembler=assembler if assembler.is_file() else None,
            include_dirs=tuple(p for p in include_dirs if p.is_dir()),
            lib_dirs=tuple(p for p in lib_dirs if p.is_dir()),
        )

    def _sdk_dirs(self) -> Tuple[List[Path], List[Path]]:
        """Windows 10/11 SDK and Universal CRT include and library directories."""
        kits_root = self.kits_root or _read_kits_root_from_registry() or DEFAULT_KITS_ROOT
        version = _highest_subdir(kits_root / "Include", required="um")
        if version is None:
            logging.debug(f"No Windows SDK found under {kits_root}")
            return [], []

        include = kits_root / "Include" / version
        lib = kits_root / "Lib" / version
        includes = [include / name for name in ("ucrt", "um", "shared", "winrt")]
        libs = [lib / name / self.target_arch for name in ("ucrt", "um")]
        return includes, libs
