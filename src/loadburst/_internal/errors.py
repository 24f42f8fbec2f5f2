"""Custom exception hierarchy for LoadBurst."""

from __future__ import annotations


class LoadBurstError(Exception):
    """Base exception for all LoadBurst errors.

    All custom exceptions in LoadBurst inherit from this class, making it
    easy to catch any LoadBurst-specific error with a single except clause.
    """


class ConfigError(LoadBurstError):
    """Raised when configuration is invalid or missing.

    Examples:
        - An environment variable has a non-numeric value.
        - No target URL was given for a run.
    """


class AlreadyRunningError(LoadBurstError):
    """Raised when a run is started while another run is still active.

    The active run is left untouched; the caller decides whether to
    report it or ignore it.
    """
