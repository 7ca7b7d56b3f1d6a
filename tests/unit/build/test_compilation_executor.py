"""
Unit tests for CompilationExecutor.

Tests object naming, argv construction per family and single-unit compiles.
"""

import hashlib
from pathlib import Path
from unittest.mock import Mock

import pytest

from ccbuild.build.compilation_executor import CompilationExecutor, CompilationUnit, object_path
from ccbuild.build.process_runner import ProcessResult, ProcessRunner
from ccbuild.config.build_spec import BuildSpec
from ccbuild.config.target import TargetTriple
from ccbuild.packages.msvc_discovery import MsvcEnvironment, MsvcInstallation
from ccbuild.packages.toolchain import ToolchainFamily, ToolchainIdentity


@pytest.fixture
def env(tmp_path):
    return {
        "TARGET": "x86_64-unknown-linux-gnu",
        "HOST": "x86_64-unknown-linux-gnu",
        "OUT_DIR": str(tmp_path / "out"),
        "NUM_JOBS": "1",
    }


def unix_identity(wrapper=None):
    return ToolchainIdentity(
        family=ToolchainFamily.UNIX,
        compiler=Path("/usr/bin/cc"),
        archiver=Path("/usr/bin/ar"),
        base_flags=("-O0", "-fPIC"),
        target=TargetTriple.parse("x86_64-unknown-linux-gnu"),
        wrapper=wrapper,
    )


def msvc_identity(tmp_path, assembler=True):
    bin_dir = tmp_path / "msvc"
    environment = MsvcEnvironment(
        installation=MsvcInstallation("17.0", tmp_path, "fake"),
        tools_version="14.38",
        compiler=bin_dir / "cl.exe",
        linker=bin_dir / "link.exe",
        archiver=bin_dir / "lib.exe",
        assembler=bin_dir / "ml64.exe" if assembler else None,
        include_dirs=(),
        lib_dirs=(),
    )
    return ToolchainIdentity(
        family=ToolchainFamily.MSVC,
        compiler=bin_dir / "cl.exe",
        archiver=bin_dir / "lib.exe",
        base_flags=("-nologo", "-MD", "-Od"),
        target=TargetTriple.parse("x86_64-pc-windows-msvc"),
        msvc=environment,
        env=(("INCLUDE", "C:\\inc"),),
    )


class TestObjectPath:
    """Test suite for object file naming."""

    def test_format(self, tmp_path):
        source = Path("src") / "main.c"
        expected_hash = hashlib.sha256(str(source.parent).encode("utf-8")).hexdigest()[:16]
        assert object_path(tmp_path, source) == tmp_path / f"{expected_hash}-main.c.o"

    def test_same_name_different_directories(self, tmp_path):
        first = object_path(tmp_path, Path("a") / "main.c")
        second = object_path(tmp_path, Path("b") / "main.c")
        assert first != second
        assert first.name.endswith("-main.c.o")

    def test_deterministic(self, tmp_path):
        assert object_path(tmp_path, Path("x/y.c")) == object_path(tmp_path, Path("x/y.c"))


class TestCompilationExecutor:
    """Test suite for unit construction and execution."""

    def test_unix_argv(self, env, tmp_path):
        spec = (
            BuildSpec(environ=env)
            .file("src/foo.c")
            .include("include")
            .define("FOO", "1")
            .define("BAR")
            .flag("-Wall")
            .freeze()
        )
        executor = CompilationExecutor(unix_identity(), Mock(spec=ProcessRunner))
        [unit] = executor.units_for(spec, ["-Wextra"])

        assert unit.source == Path("src/foo.c")
        assert unit.object.parent == tmp_path / "out"
        assert unit.object.parent.is_dir()
        assert list(unit.argv) == [
            "/usr/bin/cc", "-O0", "-fPIC",
            "-Iinclude", "-DFOO=1", "-DBAR",
            "-Wall", "-Wextra",
            "-c", "src/foo.c", "-o", str(unit.object),
        ]
        assert unit.env is None

    def test_wrapper_leads_argv(self, env):
        spec = BuildSpec(environ=env).file("a.c").freeze()
        executor = CompilationExecutor(unix_identity(Path("/usr/bin/ccache")), Mock(spec=ProcessRunner))
        [unit] = executor.units_for(spec)
        assert unit.argv[:2] == ("/usr/bin/ccache", "/usr/bin/cc")

    def test_units_in_source_order(self, env):
        spec = BuildSpec(environ=env).files(["c.c", "a.c", "b.c"]).freeze()
        units = CompilationExecutor(unix_identity(), Mock(spec=ProcessRunner)).units_for(spec)
        assert [u.source.name for u in units] == ["c.c", "a.c", "b.c"]

    def test_environ_passed_to_units(self, env):
        spec = BuildSpec(environ=env).file("a.c").freeze()
        executor = CompilationExecutor(unix_identity(), Mock(spec=ProcessRunner), environ={"PATH": "/x"})
        [unit] = executor.units_for(spec)
        assert unit.process_env() == {"PATH": "/x"}

    def test_msvc_argv(self, env, tmp_path):
        spec = BuildSpec(environ=env).file("foo.c").include("inc").define("X", "2").freeze()
        identity = msvc_identity(tmp_path)
        [unit] = CompilationExecutor(identity, Mock(spec=ProcessRunner), environ={}).units_for(spec)
        assert list(unit.argv) == [
            str(identity.compiler), "-nologo", "-MD", "-Od", "-Iinc", "-DX=2",
            "-c", "foo.c", f"-Fo{unit.object}",
        ]
        assert unit.process_env() == {"INCLUDE": "C:\\inc"}

    def test_msvc_asm_uses_assembler(self, env, tmp_path):
        spec = BuildSpec(environ=env).file("start.asm").freeze()
        identity = msvc_identity(tmp_path)
        [unit] = CompilationExecutor(identity, Mock(spec=ProcessRunner)).units_for(spec)
        assert list(unit.argv) == [
            str(tmp_path / "msvc" / "ml64.exe"), "-nologo", "-c", f"-Fo{unit.object}", "start.asm",
        ]

    def test_msvc_asm_without_discovered_assembler(self, env, tmp_path):
        spec = BuildSpec(environ=env).file("start.asm").freeze()
        identity = msvc_identity(tmp_path, assembler=False)
        [unit] = CompilationExecutor(identity, Mock(spec=ProcessRunner)).units_for(spec)
        assert unit.argv[0] == str(tmp_path / "msvc" / "ml64.exe")

    def test_compile_unit_success(self, tmp_path):
        runner = Mock(spec=ProcessRunner)
        runner.run.return_value = ProcessResult(0, "")
        unit = CompilationUnit(Path("a.c"), tmp_path / "a.o", ("cc", "-c", "a.c"))
        outcome = CompilationExecutor(unix_identity(), runner).compile_unit(unit)
        assert outcome.success
        assert outcome.returncode == 0
        assert outcome.object == tmp_path / "a.o"
        runner.run.assert_called_once_with(("cc", "-c", "a.c"), env=None)

    def test_compile_unit_failure_is_an_outcome(self, tmp_path):
        runner = Mock(spec=ProcessRunner)
        runner.run.return_value = ProcessResult(1, "a.c:1: error: boom\n")
        unit = CompilationUnit(Path("a.c"), tmp_path / "a.o", ("cc",))
        outcome = CompilationExecutor(unix_identity(), runner).compile_unit(unit)
        assert not outcome.success
        assert outcome.returncode == 1
        assert "boom" in outcome.diagnostics
