"""Target triple parsing.

A triple is ``<arch>-<vendor>-<os>[-<env>]`` (``wasm32-wasip1`` and
``aarch64-linux-android`` style two- and three-part forms are accepted too).
This module only understands the pieces the toolchain locator needs:
architecture, OS, environment/ABI, and a handful of lookup tables that map
triples onto toolchain-specific names.
"""

from dataclasses import dataclass
from typing import Dict, Optional

from ..errors import ConfigurationError

# Default binary prefixes of GNU cross toolchains, keyed by target triple.
GNU_CROSS_PREFIXES: Dict[str, str] = {
    "aarch64-unknown-linux-gnu": "aarch64-linux-gnu",
    "aarch64-unknown-linux-musl": "aarch64-linux-musl",
    "arm-unknown-linux-gnueabi": "arm-linux-gnueabi",
    "arm-unknown-linux-gnueabihf": "arm-linux-gnueabihf",
    "arm-unknown-linux-musleabi": "arm-linux-musleabi",
    "arm-unknown-linux-musleabihf": "arm-linux-musleabihf",
    "armv7-unknown-linux-gnueabihf": "arm-linux-gnueabihf",
    "armv7-unknown-linux-musleabihf": "arm-linux-musleabihf",
    "i586-unknown-linux-gnu": "i686-linux-gnu",
    "i686-unknown-linux-gnu": "i686-linux-gnu",
    "i686-unknown-linux-musl": "musl",
    "mips-unknown-linux-gnu": "mips-linux-gnu",
    "mipsel-unknown-linux-gnu": "mipsel-linux-gnu",
    "powerpc-unknown-linux-gnu": "powerpc-linux-gnu",
    "powerpc64-unknown-linux-gnu": "powerpc64-linux-gnu",
    "powerpc64le-unknown-linux-gnu": "powerpc64le-linux-gnu",
    "riscv64gc-unknown-linux-gnu": "riscv64-linux-gnu",
    "s390x-unknown-linux-gnu": "s390x-linux-gnu",
    "x86_64-unknown-linux-gnu": "x86_64-linux-gnu",
    "x86_64-unknown-linux-musl": "musl",
    "x86_64-unknown-netbsd": "x86_64--netbsd",
    "i686-pc-windows-gnu": "i686-w64-mingw32",
    "x86_64-pc-windows-gnu": "x86_64-w64-mingw32",
    "i686-uwp-windows-gnu": "i686-w64-mingw32",
    "x86_64-uwp-windows-gnu": "x86_64-w64-mingw32",
}

# Architecture names used inside MSVC tool and SDK directory layouts.
MSVC_ARCHITECTURES: Dict[str, str] = {
    "i586": "x86",
    "i686": "x86",
    "x86_64": "x64",
    "thumbv7a": "arm",
    "aarch64": "arm64",
    "arm64ec": "arm64",
}

# QNX Neutrino archiver prefixes keyed by architecture.
QNX_ARCHIVER_PREFIXES: Dict[str, str] = {
    "i586": "ntox86",
    "aarch64": "ntoaarch64",
    "x86_64": "ntox86_64",
}


@dataclass(frozen=True)
class TargetTriple:
    """A parsed target triple."""

    triple: str
    arch: str
    vendor: str
    os: str
    env: str

    @classmethod
    def parse(cls, triple: str) -> "TargetTriple":
        """Parse *triple*.

        Raises:
            ConfigurationError: If the triple is empty or has fewer than two parts
        """
        text = (triple or "").strip()
        parts = text.split("-")
        if len(parts) < 2 or not all(parts):
            raise ConfigurationError(f"Malformed target triple: {triple!r}")

        arch = parts[0]
        if len(parts) == 2:
            # wasm32-wasip1, x86_64-linux
            vendor, os_name, env = "unknown", parts[1], ""
        elif len(parts) == 3:
            if parts[1] in ("linux", "none"):
                # aarch64-linux-android
                vendor, os_name, env = "unknown", parts[1], parts[2]
            else:
                vendor, os_name, env = parts[1], parts[2], ""
        else:
            vendor, os_name, env = parts[1], parts[2], "-".join(parts[3:])

        return cls(triple=text, arch=arch, vendor=vendor, os=os_name, env=env)

    def __str__(self) -> str:
        return self.triple

    @property
    def underscored(self) -> str:
        """The triple with dashes replaced by underscores."""
        return self.triple.replace("-", "_")

    @property
    def is_windows(self) -> bool:
        return self.os == "windows"

    @property
    def is_msvc(self) -> bool:
        return self.is_windows and self.env == "msvc"

    @property
    def is_mingw(self) -> bool:
        return self.is_windows and self.env in ("gnu", "gnullvm")

    @property
    def is_wasm(self) -> bool:
        return self.arch.startswith("wasm")

    @property
    def is_android(self) -> bool:
        return self.env.startswith("android") or self.os == "android"

    @property
    def is_apple(self) -> bool:
        return self.vendor == "apple" or self.os in ("darwin", "macos", "ios")

    @property
    def is_x86(self) -> bool:
        return self.arch in ("i386", "i586", "i686", "x86_64")

    @property
    def pointer_width(self) -> Optional[int]:
        """32 or 64 for x86 targets, None where bitness flags do not apply."""
        if self.arch in ("i386", "i586", "i686"):
            return 32
        if self.arch == "x86_64":
            return 64
        return None

    @property
    def msvc_arch(self) -> str:
        """Architecture name used by MSVC tool directories.

        Raises:
            ConfigurationError: If the architecture has no MSVC equivalent
        """
        try:
            return MSVC_ARCHITECTURES[self.arch]
        except KeyError:
            raise ConfigurationError(
                f"Target {self.triple} has no MSVC architecture mapping"
            ) from None

    @property
    def gnu_prefix(self) -> Optional[str]:
        """Binary prefix of the GNU cross toolchain for this triple, if known."""
        prefix = GNU_CROSS_PREFIXES.get(self.triple)
        if prefix is None and self.is_mingw:
            bits = "x86_64" if self.arch == "x86_64" else "i686"
            prefix = f"{bits}-w64-mingw32"
        return prefix

    @property
    def uses_libcxx(self) -> bool:
        """Whether the platform's default C++ standard library is libc++."""
        return (
            self.is_apple
            or self.is_wasm
            or self.is_android
            or self.os in ("freebsd", "openbsd")
        )
