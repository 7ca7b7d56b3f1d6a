"""Shared fixtures for ccbuild tests.

Tools are POSIX shell scripts placed in a temporary directory that serves as
the whole PATH of the build environment, so tests never depend on the host's
real compilers. Tests using them are skipped on Windows.
"""

import os
import stat
from pathlib import Path

import pytest

# Touches the file after -o; fails when the source contains "#error".
FAKE_CC = """
out=""
src=""
while [ $# -gt 0 ]; do
    case "$1" in
        -o) shift; out="$1" ;;
        -c) shift; src="$1" ;;
    esac
    shift
done
if [ -n "$src" ] && grep -q "#error" "$src"; then
    echo "$src: error: forced failure" >&2
    exit 1
fi
if [ -n "$out" ]; then : > "$out"; fi
exit 0
"""

# "cq" appends member names to the archive, "s" succeeds.
FAKE_AR = """
mode="$1"; shift
case "$mode" in
    cq)
        while [ $# -gt 0 ] && [ "${1#-}" != "$1" ]; do shift; done
        archive="$1"; shift
        for obj in "$@"; do echo "$obj" >> "$archive"; done
        ;;
esac
exit 0
"""


def _write_tool(directory: Path, name: str, body: str) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    tool = directory / name
    # Builds hand tools a PATH holding only bin_dir; keep the system utilities reachable
    system_path = os.environ.get("PATH", os.defpath)
    tool.write_text(f"#!/bin/sh\nPATH=\"$PATH:{system_path}\"\nexport PATH\n" + body)
    tool.chmod(tool.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return tool


@pytest.fixture
def bin_dir(tmp_path):
    """Directory holding fake tools, used as the only PATH entry."""
    directory = tmp_path / "bin"
    directory.mkdir()
    return directory


@pytest.fixture
def make_tool(bin_dir):
    """Factory writing executable shell scripts into bin_dir."""
    def _make(name: str, body: str = "exit 0\n") -> Path:
        return _write_tool(bin_dir, name, body)
    return _make


@pytest.fixture
def fake_cc(make_tool):
    return make_tool("cc", FAKE_CC)


@pytest.fixture
def fake_ar(make_tool):
    return make_tool("ar", FAKE_AR)


@pytest.fixture
def base_env(bin_dir, tmp_path):
    """Minimal environment for a native x86_64 Linux build."""
    return {
        "PATH": str(bin_dir),
        "TARGET": "x86_64-unknown-linux-gnu",
        "HOST": "x86_64-unknown-linux-gnu",
        "OUT_DIR": str(tmp_path / "out"),
        "OPT_LEVEL": "0",
        "NUM_JOBS": "2",
    }
