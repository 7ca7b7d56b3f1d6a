"""Flag Support Prober.

Decides whether the resolved compiler accepts a candidate flag by compiling
a trivial translation unit with it. A flag is accepted only if the compiler
exits 0 and prints nothing on stderr: compilers such as MSVC report unknown
options as a warning (D9002) and still exit 0.

Results are memoized per (toolchain fingerprint, flag) in a ProbeCache that
is safe to share between threads. Concurrent callers asking for the same
pair wait for the first caller's trial compile instead of running their own.
"""

import logging
import threading
import uuid
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from ..config.build_spec import FlagGroup, ProbeCandidate
from ..errors import ProcessSpawnError
from ..packages.toolchain import ToolchainIdentity
from .process_runner import ProcessRunner

MAX_NAME_ATTEMPTS = 16

TRIAL_SOURCE = "int main(void) { return 0; }\n"
TRIAL_SOURCE_CPP = "int main() { return 0; }\n"

ProbeKey = Tuple[str, str]


def _discard(line: str) -> None:
    pass


def default_name_factory() -> str:
    return f"flag_check_{uuid.uuid4().hex[:12]}"


class ProbeCache:
    """Thread-safe memo of probe results.

    The first caller for a key computes the result. Callers arriving while
    that computation is in flight block on it and observe the same value.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._results: Dict[ProbeKey, bool] = {}
        self._pending: Dict[ProbeKey, Future] = {}
        self.computations = 0

    def get(self, key: ProbeKey) -> Optional[bool]:
        with self._lock:
            return self._results.get(key)

    def __len__(self) -> int:
        with self._lock:
            return len(self._results)

    def get_or_compute(self, key: ProbeKey, compute: Callable[[], bool]) -> bool:
        """Return the cached result for *key*, computing it at most once.

        Args:
            key: (toolchain fingerprint, flag)
            compute: Runs the trial compile

        Returns:
            Whether the flag is supported
        """
        with self._lock:
            if key in self._results:
                return self._results[key]
            future = self._pending.get(key)
            owner = future is None
            if owner:
                future = Future()
                self._pending[key] = future
                self.computations += 1

        if not owner:
            return future.result()

        try:
            result = compute()
        except BaseException as e:
            with self._lock:
                del self._pending[key]
            future.set_exception(e)
            raise

        with self._lock:
            self._results[key] = result
            del self._pending[key]
        future.set_result(result)
        return result


class FlagProber:
    """Runs trial compiles for candidate flags against one toolchain."""

    def __init__(
        self,
        identity: ToolchainIdentity,
        runner: Optional[ProcessRunner],
        scratch_dir: Path,
        cache: Optional[ProbeCache] = None,
        max_workers: int = 1,
        name_factory: Optional[Callable[[], str]] = None,
        environ: Optional[Dict[str, str]] = None
    ):
        """Initialize prober.

        Args:
            identity: Toolchain whose compiler is probed
            runner: Process runner (defaults to one that discards diagnostics)
            scratch_dir: Directory for trial sources and objects
            cache: Shared probe cache (a fresh one if omitted)
            max_workers: Upper bound on concurrent trial compiles
            name_factory: Produces trial file stems
            environ: Environment the build was configured from
        """
        self.identity = identity
        self.runner = runner or ProcessRunner(sink=_discard)
        self.scratch_dir = scratch_dir
        self.cache = cache if cache is not None else ProbeCache()
        self.max_workers = max(1, max_workers)
        self.name_factory = name_factory or default_name_factory
        self.environ = environ

    def is_supported(self, flag: str) -> bool:
        """Whether the compiler accepts *flag*, using the cache when possible."""
        key = (self.identity.fingerprint(), flag)
        return self.cache.get_or_compute(key, lambda: self._probe(flag))

    def filter(self, candidates: Iterable[ProbeCandidate]) -> List[str]:
        """Keep the accepted candidates, in candidate order.

        Args:
            candidates: Single flags and FlagGroups

        Returns:
            Accepted flags; a group contributes its first accepted member
        """
        candidates = list(candidates)
        distinct: List[str] = []
        for candidate in candidates:
            members = candidate.flags if isinstance(candidate, FlagGroup) else (candidate,)
            for flag in members:
                if flag not in distinct:
                    distinct.append(flag)

        if len(distinct) > 1 and self.max_workers > 1:
            with ThreadPoolExecutor(max_workers=min(self.max_workers, len(distinct))) as pool:
                verdicts = dict(zip(distinct, pool.map(self.is_supported, distinct)))
        else:
            verdicts = {flag: self.is_supported(flag) for flag in distinct}

        accepted: List[str] = []
        for candidate in candidates:
            if isinstance(candidate, FlagGroup):
                chosen = next((flag for flag in candidate.flags if verdicts[flag]), None)
                if chosen is not None:
                    accepted.append(chosen)
            elif verdicts[candidate]:
                accepted.append(candidate)
        return accepted

    def _reserve_trial_files(self) -> Tuple[Path, Path]:
        """Create a uniquely named trial source, retrying on name collisions."""
        self.scratch_dir.mkdir(parents=True, exist_ok=True)
        suffix = ".cpp" if self.identity.cpp else ".c"
        obj_suffix = ".obj" if self.identity.is_msvc else ".o"
        text = TRIAL_SOURCE_CPP if self.identity.cpp else TRIAL_SOURCE

        for _ in range(MAX_NAME_ATTEMPTS):
            stem = self.name_factory()
            source = self.scratch_dir / f"{stem}{suffix}"
            try:
                with open(source, "x") as f:
                    f.write(text)
            except FileExistsError:
                continue
            return source, self.scratch_dir / f"{stem}{obj_suffix}"

        raise FileExistsError(
            f"Could not create a unique trial file in {self.scratch_dir} "
            f"after {MAX_NAME_ATTEMPTS} attempts"
        )

    def _trial_argv(self, flag: str, source: Path, obj: Path) -> List[str]:
        argv = self.identity.command()
        argv.extend(self.identity.base_flags)
        argv.append(flag)
        if self.identity.is_msvc:
            argv.extend(["-c", str(source), f"-Fo{obj}"])
        else:
            argv.extend(["-c", str(source), "-o", str(obj)])
        return argv

    def _probe(self, flag: str) -> bool:
        source, obj = self._reserve_trial_files()
        try:
            result = self.runner.run(
                self._trial_argv(flag, source, obj),
                env=self.identity.process_env(self.environ),
                cwd=self.scratch_dir,
            )
        except ProcessSpawnError as e:
            logging.warning(f"Treating {flag} as unsupported: {e}")
            return False
        finally:
            for path in (source, obj):
                path.unlink(missing_ok=True)

        supported = result.success and not result.diagnostics.strip()
        logging.debug(f"Flag {flag} supported by {self.identity.compiler.name}: {supported}")
        return supported
