"""lfsconf package bootstrap.

Resolves LFS configuration and provisions the LFS JWT signing secret. The
public surface re-exports the startup entry point and its result types.
"""
from __future__ import annotations

from .config import ConfigError, ConfigStore
from .lfs import LFSConfig, load_lfs_config

__all__ = [
    "ConfigError",
    "ConfigStore",
    "LFSConfig",
    "__version__",
    "get_version",
    "load_lfs_config",
]

# NOTE: The version is duplicated in ``pyproject.toml`` and managed by Hatch.
__version__ = "0.1.0"


def get_version() -> str:
    """Return the current package version."""
    return __version__
