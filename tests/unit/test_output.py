"""
Unit tests for BuildOutput.
"""

import io
import threading

from ccbuild.output import BuildOutput


class TestBuildOutput:
    """Test suite for directive output."""

    def test_default_prefix(self):
        stream = io.StringIO()
        output = BuildOutput(stream=stream)
        output.rerun_if_env_changed("CC")
        output.rerun_if_changed("/tmp/version.txt")
        output.warning("foo.c:1: warning: unused\n")
        assert stream.getvalue().splitlines() == [
            "cargo:rerun-if-env-changed=CC",
            "cargo:rerun-if-changed=/tmp/version.txt",
            "cargo:warning=foo.c:1: warning: unused",
        ]

    def test_custom_prefix(self):
        stream = io.StringIO()
        BuildOutput(prefix="build:", stream=stream).rerun_if_env_changed("AR")
        assert stream.getvalue() == "build:rerun-if-env-changed=AR\n"

    def test_declarations_deduplicated(self):
        stream = io.StringIO()
        output = BuildOutput(stream=stream)
        for _ in range(3):
            output.rerun_if_env_changed("CFLAGS")
        assert stream.getvalue().count("CFLAGS") == 1
        assert ("rerun-if-env-changed", "CFLAGS") in output.declared

    def test_warnings_are_not_deduplicated(self):
        stream = io.StringIO()
        output = BuildOutput(stream=stream)
        output.warning("same")
        output.warning("same")
        assert stream.getvalue().count("cargo:warning=same") == 2

    def test_disabled_channels(self):
        stream = io.StringIO()
        output = BuildOutput(stream=stream, metadata=False, warnings=False)
        output.rerun_if_env_changed("CC")
        output.warning("x")
        assert stream.getvalue() == ""

    def test_concurrent_writes_do_not_interleave(self):
        stream = io.StringIO()
        output = BuildOutput(stream=stream)

        def emit(n):
            for i in range(200):
                output.warning(f"worker{n}-line{i}")

        threads = [threading.Thread(target=emit, args=(n,)) for n in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        lines = stream.getvalue().splitlines()
        assert len(lines) == 800
        assert all(line.startswith("cargo:warning=worker") for line in lines)
