"""
Exceptions raised by the whole-game causal workflow.
"""


class WholeGameError(Exception):
    """Base class for workflow errors."""


class DataError(WholeGameError, ValueError):
    """Raised when the observation table does not match the expected schema."""


class DomainError(WholeGameError, ValueError):
    """Raised when a value falls outside the domain of a formula (e.g. p in {0, 1})."""


class ConvergenceError(WholeGameError):
    """Raised when a regression fails to converge."""
