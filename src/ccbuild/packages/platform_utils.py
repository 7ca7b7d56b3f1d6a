"""Platform Detection Utilities.

This module provides utilities for detecting the host platform as a target
triple and the host's available parallelism.

Supported Hosts:
    - Windows: i686-pc-windows-msvc, x86_64-pc-windows-msvc, aarch64-pc-windows-msvc
    - Linux: x86_64/i686/aarch64/armv7/riscv64gc-unknown-linux-gnu
    - macOS: x86_64-apple-darwin, aarch64-apple-darwin
    - FreeBSD: x86_64-unknown-freebsd
"""

import platform
import sys

import psutil


class PlatformError(Exception):
    """Raised when platform detection fails or platform is unsupported."""

    pass


class PlatformDetector:
    """Detects the host platform for toolchain selection."""

    @staticmethod
    def normalize_machine(machine: str) -> str:
        """Map platform.machine() output onto a triple architecture.

        Args:
            machine: Raw machine name (e.g. 'AMD64', 'arm64')

        Returns:
            Architecture component of a target triple
        """
        machine = machine.lower()
        if machine in ("x86_64", "amd64"):
            return "x86_64"
        if machine in ("i386", "i686", "x86"):
            return "i686"
        if machine in ("aarch64", "arm64"):
            return "aarch64"
        if machine.startswith("armv7") or machine == "armhf":
            return "armv7"
        if machine.startswith("riscv64"):
            return "riscv64gc"
        return machine

    @staticmethod
    def detect_host_triple() -> str:
        """Detect the target triple of the machine running the build.

        Returns:
            Host triple (e.g. 'x86_64-unknown-linux-gnu')

        Raises:
            PlatformError: If the platform is unsupported
        """
        system = platform.system().lower()
        arch = PlatformDetector.normalize_machine(platform.machine())

        if system == "windows":
            if arch == "x86_64" and sys.maxsize <= 2**32:
                arch = "i686"
            return f"{arch}-pc-windows-msvc"
        elif system == "linux":
            suffix = "gnueabihf" if arch == "armv7" else "gnu"
            return f"{arch}-unknown-linux-{suffix}"
        elif system == "darwin":
            return f"{arch}-apple-darwin"
        elif system == "freebsd":
            return f"{arch}-unknown-freebsd"
        else:
            raise PlatformError(f"Unsupported platform: {system} {arch}")

    @staticmethod
    def default_jobs() -> int:
        """Host parallelism used when no job count is configured."""
        return psutil.cpu_count(logical=True) or 1
