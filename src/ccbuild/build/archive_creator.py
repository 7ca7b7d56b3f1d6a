"""Archive Creator.

This module creates static library archives from compiled object files.

Design:
    - Any previous archive is removed first, so the result holds exactly the
      given members in the given order
    - Unix-style archivers: ``ar cq`` to append members, then ``ar s`` to
      write the symbol index; archivers without ``s`` support (BusyBox) fall
      back to the ``ranlib`` beside them
    - MSVC: ``lib.exe -nologo -out:<archive>``
    - ARFLAGS from the environment are appended to the create step
"""

import logging
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from ..config.env_resolver import EnvResolver
from ..errors import ArchiveError
from ..packages.toolchain import ToolchainIdentity
from .process_runner import ProcessRunner


@dataclass(frozen=True)
class Archive:
    """A static archive and its members, in archive order."""

    path: Path
    members: Tuple[Path, ...]


def ranlib_for(archiver: Path) -> Path:
    """The ranlib that ships beside *archiver* (e.g. llvm-ar -> llvm-ranlib)."""
    stem = archiver.stem
    name = f"{stem[:-2]}ranlib" if stem.endswith("ar") else "ranlib"
    return archiver.with_name(name + archiver.suffix)


class ArchiveCreator:
    """Creates static library archives from object files."""

    def __init__(self, runner: ProcessRunner, resolver: Optional[EnvResolver] = None):
        """Initialize archive creator.

        Args:
            runner: Process runner for archiver invocations
            resolver: Layered environment resolver (ARFLAGS, PATH)
        """
        self.runner = runner
        self.resolver = resolver

    def _env(self, identity: ToolchainIdentity):
        return identity.process_env(self.resolver.environ if self.resolver else None)

    def _arflags(self) -> List[str]:
        return self.resolver.get_flags("ARFLAGS") if self.resolver else []

    def create_archive(
        self,
        identity: ToolchainIdentity,
        archive_path: Path,
        object_files: Sequence[Path]
    ) -> Archive:
        """Create static library archive from object files.

        Args:
            identity: Toolchain whose archiver is used
            archive_path: Path for the output archive
            object_files: Object files, in the order they should appear

        Returns:
            The created Archive

        Raises:
            ArchiveError: If the archiver fails
            ProcessSpawnError: If the archiver cannot be started
        """
        if not object_files:
            raise ArchiveError("No object files provided for archive")

        archive_path.parent.mkdir(parents=True, exist_ok=True)
        if archive_path.exists():
            archive_path.unlink()

        members = tuple(Path(obj) for obj in object_files)
        objs = [str(obj) for obj in members]
        archiver = str(identity.archiver)
        env = self._env(identity)

        if identity.is_msvc:
            cmd = [archiver, "-nologo", f"-out:{archive_path}"] + self._arflags() + objs
            self._run(cmd, env, archive_path)
        else:
            cmd = [archiver, "cq"] + self._arflags() + [str(archive_path)] + objs
            self._run(cmd, env, archive_path)
            self._index(identity, archive_path, env)

        if not archive_path.exists():
            raise ArchiveError(f"Archive was not created: {archive_path}")

        logging.info(f"Created {archive_path.name} from {len(members)} object files")
        return Archive(path=archive_path, members=members)

    def _run(self, cmd: List[str], env, archive_path: Path) -> None:
        result = self.runner.run(cmd, env=env)
        if not result.success:
            raise ArchiveError(
                f"Archive creation failed for {archive_path.name} "
                f"(exit code {result.returncode})\n{result.diagnostics}"
            )

    def _index(self, identity: ToolchainIdentity, archive_path: Path, env) -> None:
        result = self.runner.run([str(identity.archiver), "s", str(archive_path)], env=env)
        if result.success:
            return

        ranlib = ranlib_for(identity.archiver)
        if not ranlib.is_file():
            search_path = self.resolver.search_path() if self.resolver else None
            found = shutil.which("ranlib", path=search_path)
            if found is None:
                raise ArchiveError(
                    f"Failed to index {archive_path.name} and no ranlib was found\n"
                    f"{result.diagnostics}"
                )
            ranlib = Path(found)

        logging.warning(f"{identity.archiver.name} s failed, indexing {archive_path.name} with {ranlib}")
        self._run([str(ranlib), str(archive_path)], env, archive_path)
