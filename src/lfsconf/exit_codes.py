"""Exit codes returned by the ``lfsconf`` CLI."""
from __future__ import annotations

from enum import IntEnum


class ExitCode(IntEnum):
    """One code per failure class so scripts can tell them apart."""

    OK = 0
    INVALID_CONFIG = 2
    SECRET_GENERATION = 3
    SECRET_SOURCE = 4
    SECRET_PERSISTENCE = 5
    STORAGE = 6


__all__ = ["ExitCode"]
