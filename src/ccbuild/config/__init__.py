"""Configuration modules for ccbuild."""

from .build_spec import BuildSpec, FlagGroup, FrozenBuildSpec
from .env_resolver import EnvResolver, parse_flag_string
from .target import TargetTriple

__all__ = [
    "BuildSpec",
    "FlagGroup",
    "FrozenBuildSpec",
    "EnvResolver",
    "parse_flag_string",
    "TargetTriple",
]
