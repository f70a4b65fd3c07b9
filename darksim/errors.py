"""Typed errors raised by darksim.

Expected degradations (short samples, fewer facilities than requested,
undelivered orders) are reported in results and never raised.
"""

from __future__ import annotations


class DarksimError(Exception):
    """Base class for all darksim errors."""


class ConfigError(DarksimError, ValueError):
    """A configuration value is missing or out of range."""


class InvalidSelectionError(DarksimError, ValueError):
    """A requested operation has an invalid facility or agent-count selection."""


class NoFeasibleConfigurationError(DarksimError):
    """Every tested agent count produced zero deliveries."""


class InvalidTransitionError(DarksimError, RuntimeError):
    """An agent or order was moved along an edge missing from its transition table."""
