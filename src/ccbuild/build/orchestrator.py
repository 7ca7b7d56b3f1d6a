"""
Build orchestration for ccbuild.

This module drives one build operation from configuration to archive:
- Freeze the BuildSpec and resolve the environment layers
- Locate the toolchain (compiler, archiver, baseline flags)
- Probe optional flags against the compiler
- Compile all sources with bounded parallelism
- Assemble the objects into a static archive
"""

import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Mapping, Optional, Sequence, Union

from ..config.build_spec import BuildSpec, FrozenBuildSpec
from ..config.env_resolver import EnvResolver
from ..errors import ConfigurationError
from ..output import BuildOutput
from ..packages.msvc_discovery import InstallationSource
from ..packages.toolchain import ToolchainIdentity, ToolchainLocator
from .archive_creator import Archive, ArchiveCreator
from .compilation_executor import CompilationExecutor, CompilationOutcome
from .compilation_scheduler import CompilationScheduler
from .flag_prober import FlagProber, ProbeCache
from .process_runner import ProcessRunner


@dataclass
class BuildResult:
    """Result of a complete build operation."""

    archive: Archive
    objects: List[Path]
    outcomes: List[CompilationOutcome]
    identity: ToolchainIdentity
    probed_flags: List[str] = field(default_factory=list)
    library_name: str = ""
    search_dir: Optional[Path] = None
    build_time: float = 0.0

    @property
    def archive_path(self) -> Path:
        return self.archive.path


def library_name(name: str) -> str:
    """Link name of an archive, with any lib prefix and archive suffix removed.

    Example:
        >>> library_name("libfoo.a")
        'foo'
    """
    if name.endswith(".lib"):
        name = name[:-len(".lib")]
    elif name.startswith("lib") and name.endswith(".a"):
        name = name[len("lib"):-len(".a")]
    if not name:
        raise ConfigurationError("Archive name must not be empty")
    return name


def archive_file_name(name: str, msvc: bool) -> str:
    base = library_name(name)
    return f"{base}.lib" if msvc else f"lib{base}.a"


class BuildOrchestrator:
    """
    Orchestrates one build operation.

    Example usage:
        spec = BuildSpec().file("foo.c").target("x86_64-unknown-linux-gnu")
        result = BuildOrchestrator(verbose=True).build(spec, "foo")
        print(f"Archive: {result.archive_path}")
    """

    def __init__(
        self,
        output: Optional[BuildOutput] = None,
        runner: Optional[ProcessRunner] = None,
        msvc_sources: Optional[Sequence[InstallationSource]] = None,
        verbose: bool = False,
        environ: Optional[Mapping[str, str]] = None,
        probe_runner: Optional[ProcessRunner] = None
    ):
        """Initialize build orchestrator.

        Args:
            output: Directive writer (defaults to stdout with the cargo: prefix)
            runner: Runner for compiler and archiver processes
            msvc_sources: MSVC discovery sources
            verbose: Print progress information
            environ: Environment overriding the one the BuildSpec was created with
            probe_runner: Runner for flag trial compiles (diagnostics discarded by default)
        """
        self.output = output or BuildOutput()
        self.runner = runner or ProcessRunner(output=self.output)
        self.probe_runner = probe_runner
        self.msvc_sources = msvc_sources
        self.verbose = verbose
        self.environ = environ

    def build(self, spec: Union[BuildSpec, FrozenBuildSpec], name: str) -> BuildResult:
        """Compile every source of *spec* into a static archive.

        Args:
            spec: Build configuration (frozen on entry if mutable)
            name: Library name, e.g. "foo" or "libfoo.a"

        Returns:
            BuildResult describing the archive

        Raises:
            ConfigurationError: If the configuration is invalid
            ToolchainNotFound: If no toolchain could be located
            CompilationError: If any source failed to compile
            ArchiveError: If the archiver failed
        """
        start_time = time.time()

        environ = self.environ
        if isinstance(spec, BuildSpec):
            if environ is None:
                environ = spec.environ
            try:
                frozen = spec.freeze()
            finally:
                for var in spec.consulted_env:
                    self.output.rerun_if_env_changed(var)
        else:
            frozen = spec

        resolver = EnvResolver(
            frozen.target.triple,
            frozen.host.triple,
            environ=environ,
            output=self.output,
        )

        if self.verbose:
            print(f"[1/4] Locating toolchain for {frozen.target} (host {frozen.host})...")
        locator = ToolchainLocator(frozen, resolver, self.msvc_sources, output=self.output)
        identity = locator.locate()
        if self.verbose:
            print(f"      Compiler: {identity.compiler}")
            print(f"      Archiver: {identity.archiver}")

        archive_name = archive_file_name(name, identity.is_msvc)

        probed_flags: List[str] = []
        if frozen.probe_flags:
            if self.verbose:
                print(f"[2/4] Probing {len(frozen.probe_flags)} optional flags...")
            prober = FlagProber(
                identity,
                self.probe_runner,
                frozen.out_dir,
                cache=ProbeCache(),
                max_workers=frozen.jobs,
                environ=resolver.environ,
            )
            probed_flags = prober.filter(frozen.probe_flags)
            if self.verbose:
                print(f"      Accepted: {' '.join(probed_flags) or '(none)'}")

        if self.verbose:
            print(f"[3/4] Compiling {len(frozen.files)} sources with {frozen.jobs} jobs...")
        executor = CompilationExecutor(identity, self.runner, environ=resolver.environ)
        units = executor.units_for(frozen, probed_flags)
        scheduler = CompilationScheduler(executor, frozen.jobs, show_progress=frozen.show_progress)
        outcomes = scheduler.compile_all(units)

        objects = [outcome.object for outcome in outcomes] + list(frozen.objects)

        if self.verbose:
            print(f"[4/4] Creating {archive_name}...")
        archive = ArchiveCreator(self.runner, resolver).create_archive(
            identity,
            frozen.out_dir / archive_name,
            objects,
        )

        build_time = time.time() - start_time
        if self.verbose:
            print(f"Build time: {build_time:.2f}s")

        return BuildResult(
            archive=archive,
            objects=objects,
            outcomes=outcomes,
            identity=identity,
            probed_flags=probed_flags,
            library_name=library_name(name),
            search_dir=frozen.out_dir,
            build_time=build_time,
        )
