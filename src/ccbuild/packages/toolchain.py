"""Toolchain resolution.

This module decides which compiler and archiver executables apply to a
host/target/language combination, and which baseline flags every compiler
invocation gets. The result is a ToolchainIdentity, produced once per build
and shared read-only by every worker.

Resolution order for the compiler:
    1. An explicit override on the BuildSpec
    2. CC / CXX through the layered environment resolver
    3. A family default derived from the target triple

For MSVC targets without an override, installed toolsets are discovered
(vswhere, then registry, then PATH) and the highest version is used.
"""

import hashlib
import logging
import os
import shutil
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from ..config.build_spec import FrozenBuildSpec
from ..config.env_resolver import EnvResolver
from ..config.target import MSVC_ARCHITECTURES, QNX_ARCHIVER_PREFIXES, TargetTriple
from ..errors import ToolchainNotFound
from ..output import BuildOutput
from .msvc_discovery import (
    InstallationSource,
    MsvcEnvironment,
    MsvcResolver,
    default_sources,
    discover_installations,
    order_installations,
)

KNOWN_WRAPPERS = ("ccache", "sccache", "distcc", "cachepot", "buildcache")


class ToolchainFamily(Enum):
    """Closed set of compiler/archiver conventions."""

    UNIX = "unix"
    MSVC = "msvc"
    MINGW = "mingw"
    WASM = "wasm"

    @classmethod
    def for_target(cls, target: TargetTriple) -> "ToolchainFamily":
        if target.is_msvc:
            return cls.MSVC
        if target.is_mingw:
            return cls.MINGW
        if target.is_wasm:
            return cls.WASM
        return cls.UNIX


@dataclass(frozen=True)
class ToolchainIdentity:
    """Resolved compiler and archiver for one build operation.

    Attributes:
        family: Toolchain family tag
        compiler: Absolute path to the compiler
        archiver: Absolute path to the archiver
        base_flags: Flags applied to every compilation, in order
        target: Target triple
        cpp: Whether the compiler is the C++ driver
        wrapper: Compiler wrapper such as ccache, if any
        sysroot: Wasm sysroot, if any
        msvc: Resolved MSVC installation data (MSVC family only)
        env: Extra environment for tool processes
    """

    family: ToolchainFamily
    compiler: Path
    archiver: Path
    base_flags: Tuple[str, ...]
    target: TargetTriple
    cpp: bool = False
    wrapper: Optional[Path] = None
    sysroot: Optional[Path] = None
    msvc: Optional[MsvcEnvironment] = None
    env: Tuple[Tuple[str, str], ...] = ()

    @property
    def is_msvc(self) -> bool:
        return self.family is ToolchainFamily.MSVC

    @property
    def language(self) -> str:
        return "c++" if self.cpp else "c"

    def command(self) -> List[str]:
        """Leading argv elements of a compiler invocation."""
        cmd = [str(self.wrapper)] if self.wrapper else []
        cmd.append(str(self.compiler))
        return cmd

    def process_env(self, base: Optional[Mapping[str, str]] = None) -> Optional[Dict[str, str]]:
        """Complete environment for tool processes, or None to inherit ours.

        Args:
            base: Environment the build was configured from
        """
        if base is None and not self.env:
            return None
        env = dict(os.environ if base is None else base)
        env.update(self.env)
        return env

    def fingerprint(self) -> str:
        """Stable key identifying this compiler configuration.

        Returns:
            First 16 characters of a SHA256 hash
        """
        parts = [self.family.value, str(self.wrapper or ""), str(self.compiler), self.language]
        parts.extend(self.base_flags)
        return hashlib.sha256("\0".join(parts).encode("utf-8")).hexdigest()[:16]


class ToolchainLocator:
    """Resolves a ToolchainIdentity from a frozen build spec."""

    def __init__(
        self,
        spec: FrozenBuildSpec,
        resolver: EnvResolver,
        msvc_sources: Optional[Sequence[InstallationSource]] = None,
        kits_root: Optional[Path] = None,
        output: Optional[BuildOutput] = None
    ):
        """Initialize locator.

        Args:
            spec: Frozen build configuration
            resolver: Layered environment resolver for this build
            msvc_sources: MSVC discovery sources (defaults to vswhere, registry, PATH)
            kits_root: Windows Kits root override for SDK directories
            output: Directive writer for discovery file declarations
        """
        self.spec = spec
        self.resolver = resolver
        self.msvc_sources = msvc_sources
        self.kits_root = kits_root
        self.output = output
        self.family = ToolchainFamily.for_target(spec.target)

    def locate(self, cpp: Optional[bool] = None) -> ToolchainIdentity:
        """Resolve the toolchain.

        Args:
            cpp: Resolve the C++ driver (defaults to the build's C++ mode)

        Returns:
            Immutable toolchain identity

        Raises:
            ToolchainNotFound: If no usable compiler or archiver exists
            ConfigurationError: If an MSVC target has no architecture mapping
        """
        cpp = self.spec.cpp if cpp is None else cpp
        if self.family is ToolchainFamily.MSVC:
            identity = self._locate_msvc(cpp)
        else:
            identity = self._locate_gnu_like(cpp)
        logging.info(
            f"Using {identity.family.value} toolchain: compiler={identity.compiler} "
            f"archiver={identity.archiver}"
        )
        return identity

    def _which(self, name: str) -> Optional[Path]:
        """Absolute path of executable *name*, searched on the resolver's PATH."""
        candidate = Path(name)
        if candidate.is_absolute() or os.sep in name or (os.altsep and os.altsep in name):
            return candidate.absolute() if candidate.is_file() else None
        found = shutil.which(name, path=self.resolver.search_path() or os.defpath)
        return Path(found).absolute() if found else None

    def _first_found(self, names: Sequence[str], kind: str) -> Path:
        for name in names:
            path = self._which(name)
            if path is not None:
                return path
        raise ToolchainNotFound(
            f"Failed to find {kind} for target {self.spec.target}: tried {', '.join(names)}. "
            "Is it installed?"
        )

    def _split_compiler(self, raw: str) -> Tuple[Optional[str], str, List[str]]:
        """Split a CC-style value into (wrapper, compiler, extra args)."""
        if Path(raw).is_file():
            return None, raw, []
        tokens = raw.split()
        wrapper = None
        if len(tokens) > 1 and Path(tokens[0]).stem in KNOWN_WRAPPERS:
            wrapper = tokens.pop(0)
        return wrapper, tokens[0], tokens[1:]

    def _compiler_override(self, var: str) -> Optional[str]:
        """Explicit compiler or CC/CXX value; blank values count as unset."""
        raw = self.spec.compiler or self.resolver.get(var)
        if raw is None or not raw.strip():
            return None
        return raw.strip()

    def _resolve_override(self, raw: str) -> Tuple[Optional[Path], Path, List[str]]:
        """Resolve an override into (wrapper path, compiler path, leading flags)."""
        wrapper, name, extra = self._split_compiler(raw)
        compiler = self._first_found([name], "compiler")
        wrapper_path = None
        if wrapper is not None:
            wrapper_path = self._first_found([wrapper], "compiler wrapper")
        return wrapper_path, compiler, extra

    def _default_compilers(self, cpp: bool) -> List[str]:
        target = self.spec.target
        gnu = "g++" if cpp else "gcc"
        clang = "clang++" if cpp else "clang"

        if self.family is ToolchainFamily.WASM:
            return [clang]
        if target.is_android:
            return [f"{target.triple}-{clang}"]
        if self.family is ToolchainFamily.MINGW:
            if self.spec.host.is_windows:
                return [gnu]
            return [f"{target.gnu_prefix}-{gnu}"]
        if self.spec.is_cross:
            prefix = target.gnu_prefix or target.triple
            return [f"{prefix}-{gnu}"]
        return ["c++" if cpp else "cc"]

    def _default_archivers(self) -> List[str]:
        target = self.spec.target
        if self.family is ToolchainFamily.WASM or target.is_android:
            return ["llvm-ar", "ar"]
        if target.os == "nto":
            prefix = QNX_ARCHIVER_PREFIXES.get(target.arch, f"nto{target.arch}")
            return [f"{prefix}-ar"]
        if target.vendor == "wrs":
            return ["wr-ar"]
        if self.spec.is_cross and not (self.family is ToolchainFamily.MINGW and self.spec.host.is_windows):
            prefix = target.gnu_prefix or target.triple
            return [f"{prefix}-ar", "ar"]
        return ["ar"]

    def _resolve_archiver(self, defaults: List[str]) -> Path:
        explicit = self.spec.archiver or self.resolver.get("AR")
        if explicit:
            return self._first_found([explicit], "archiver")
        return self._first_found(defaults, "archiver")

    def _is_clang_like(self, compiler: Path) -> bool:
        return "clang" in compiler.name or self.spec.target.is_apple

    def _gnu_opt_flag(self, compiler: Path) -> str:
        level = self.spec.opt_level
        if level == "z" and not self._is_clang_like(compiler):
            return "-Os"
        return f"-O{level}"

    def _locate_gnu_like(self, cpp: bool) -> ToolchainIdentity:
        spec = self.spec
        target = spec.target
        var = "CXX" if cpp else "CC"

        raw = self._compiler_override(var)
        wrapper_path = None
        extra: List[str] = []
        if raw:
            wrapper_path, compiler, extra = self._resolve_override(raw)
        else:
            compiler = self._first_found(self._default_compilers(cpp), "compiler")

        archiver = self._resolve_archiver(self._default_archivers())

        flags = list(extra)
        sysroot = None
        if not spec.no_default_flags:
            flags.append(self._gnu_opt_flag(compiler))
            if spec.debug:
                flags.append("-g")
            if self.family is ToolchainFamily.WASM:
                flags.append(f"--target={target.triple}")
                raw_sysroot = self.resolver.get("WASI_SYSROOT")
                if raw_sysroot:
                    sysroot = Path(raw_sysroot)
                    flags.append(f"--sysroot={sysroot}")
            else:
                flags.extend(["-ffunction-sections", "-fdata-sections"])
            if self.family is ToolchainFamily.UNIX and not target.is_windows:
                flags.append("-fPIC")
            width = target.pointer_width
            if width and self.family in (ToolchainFamily.UNIX, ToolchainFamily.MINGW):
                flags.append(f"-m{width}")
            if cpp:
                stdlib = self.resolver.get("CXXSTDLIB", "c++" if target.uses_libcxx else None)
                if stdlib and self._is_clang_like(compiler):
                    flags.append(f"-stdlib=lib{stdlib}")

        flags.extend(self.resolver.get_flags("CXXFLAGS" if cpp else "CFLAGS"))

        return ToolchainIdentity(
            family=self.family,
            compiler=compiler,
            archiver=archiver,
            base_flags=tuple(flags),
            target=target,
            cpp=cpp,
            wrapper=wrapper_path,
            sysroot=sysroot,
        )

    def _msvc_opt_flag(self) -> str:
        level = self.spec.opt_level
        if level == "0":
            return "-Od"
        if level in ("1", "s", "z"):
            return "-O1"
        return "-O2"

    def _locate_msvc(self, cpp: bool) -> ToolchainIdentity:
        spec = self.spec
        target_arch = spec.target.msvc_arch
        var = "CXX" if cpp else "CC"

        msvc = None
        env: Dict[str, str] = {}
        wrapper_path = None
        extra: List[str] = []
        raw = self._compiler_override(var)
        if raw:
            wrapper_path, compiler, extra = self._resolve_override(raw)
            archiver = self._resolve_archiver([str(compiler.with_name("lib.exe")), "lib.exe"])
        else:
            msvc = self._discover_msvc(target_arch)
            compiler = msvc.compiler
            explicit_ar = spec.archiver or self.resolver.get("AR")
            archiver = self._first_found([explicit_ar], "archiver") if explicit_ar else msvc.archiver
            env = msvc.process_env(self.resolver.environ)

        flags = list(extra)
        if not spec.no_default_flags:
            flags.extend(["-nologo", "-MD", self._msvc_opt_flag()])
            if spec.debug:
                flags.append("-Z7")
            if cpp:
                flags.append("-EHsc")
        flags.extend(self.resolver.get_flags("CXXFLAGS" if cpp else "CFLAGS"))

        return ToolchainIdentity(
            family=ToolchainFamily.MSVC,
            compiler=compiler,
            archiver=archiver,
            base_flags=tuple(flags),
            target=spec.target,
            cpp=cpp,
            wrapper=wrapper_path,
            msvc=msvc,
            env=tuple(sorted(env.items())),
        )

    def _discover_msvc(self, target_arch: str) -> MsvcEnvironment:
        sources = self.msvc_sources
        if sources is None:
            sources = default_sources(self.resolver.search_path())

        installs = discover_installations(sources)
        requested = self.resolver.get("VisualStudioVersion")
        host = self.spec.host
        host_arch = MSVC_ARCHITECTURES.get(host.arch, "x64") if host.is_windows else "x64"
        msvc_resolver = MsvcResolver(target_arch, host_arch, self.kits_root, self.output)

        for installation in order_installations(installs, requested):
            environment = msvc_resolver.resolve(installation)
            if environment is not None:
                logging.info(
                    f"Selected MSVC {installation.version} at {installation.install_path} "
                    f"(tools {environment.tools_version or 'unknown'})"
                )
                return environment

        raise ToolchainNotFound(
            f"No MSVC installation with a {target_arch} toolset found for target "
            f"{self.spec.target}. Install Visual Studio Build Tools or set CC."
        )
