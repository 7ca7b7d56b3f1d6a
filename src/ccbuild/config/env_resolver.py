"""Layered environment variable resolution.

Configuration variables such as ``CC`` or ``CFLAGS`` can be overridden per
target, per role (host vs. target artifacts) or globally. Lookup order, most
specific first::

    <VAR>_<target-triple>          e.g. CC_aarch64-unknown-linux-gnu
    <VAR>_<target_triple>          e.g. CC_aarch64_unknown_linux_gnu
    HOST_<VAR> or TARGET_<VAR>     depending on the role
    <VAR>

Every name consulted is declared to the host build process so that changing
it invalidates cached results upstream.
"""

import logging
import os
import shlex
from typing import List, Mapping, Optional

from ..output import BuildOutput


class EnvResolver:
    """Resolves layered configuration variables for one build operation."""

    def __init__(
        self,
        target: str,
        host: str,
        is_host_build: Optional[bool] = None,
        environ: Optional[Mapping[str, str]] = None,
        output: Optional[BuildOutput] = None
    ):
        """Initialize resolver.

        Args:
            target: Target triple
            host: Host triple
            is_host_build: Whether the artifacts are for the host; defaults to host == target
            environ: Environment to read (defaults to os.environ)
            output: Directive writer receiving revalidation declarations
        """
        self.target = target
        self.host = host
        self.is_host_build = (host == target) if is_host_build is None else is_host_build
        self.environ = os.environ if environ is None else environ
        self.output = output
        self.consulted: List[str] = []

    @property
    def role(self) -> str:
        return "HOST" if self.is_host_build else "TARGET"

    def candidate_names(self, var: str) -> List[str]:
        """Names tried for *var*, most specific first."""
        return [
            f"{var}_{self.target}",
            f"{var}_{self.target.replace('-', '_')}",
            f"{self.role}_{var}",
            var,
        ]

    def _lookup(self, name: str) -> Optional[str]:
        if name not in self.consulted:
            self.consulted.append(name)
        if self.output is not None:
            self.output.rerun_if_env_changed(name)
        value = self.environ.get(name)
        logging.debug(f"{name} = {value!r}")
        return value

    def get(self, var: str, default: Optional[str] = None) -> Optional[str]:
        """Return the effective value of *var*, or *default* if no layer defines it."""
        for name in self.candidate_names(var):
            value = self._lookup(name)
            if value is not None:
                return value
        return default

    def get_plain(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """Read an unlayered variable (e.g. TARGET, NUM_JOBS), still declaring it."""
        value = self._lookup(name)
        return default if value is None else value

    def get_flags(self, var: str) -> List[str]:
        """Resolve *var* and split it into individual flags."""
        value = self.get(var)
        if not value:
            return []
        return parse_flag_string(value)

    def search_path(self) -> Optional[str]:
        """The PATH of the resolver's environment."""
        return self.environ.get("PATH")


def parse_flag_string(flag_string: str) -> List[str]:
    """Parse a flag string that may contain quoted values.

    Example:
        >>> parse_flag_string('-DFOO="bar baz" -DTEST')
        ['-DFOO=bar baz', '-DTEST']
    """
    try:
        return shlex.split(flag_string)
    except ValueError:
        return flag_string.split()
