"""
empcal.core.errors
==================

Caller-visible failures of fitting and calibration.

Numeric trouble inside an objective (infeasible parameters, non-finite
likelihoods) never raises: objectives return a penalty so the optimizer can
move on. Only fit-level failures surface here.
"""

from __future__ import annotations
from typing import Optional


class CalibrationError(Exception):
    """Base class for all empcal errors."""


class InvalidControlsError(CalibrationError, ValueError):
    """Control estimates are malformed (non-finite, negative SE, misaligned)."""


class InsufficientDataError(CalibrationError, ValueError):
    """Too few controls to fit the requested model."""


class IdentifiabilityError(InsufficientDataError):
    """The controls cannot identify the slope terms of an error model."""


class ConvergenceError(CalibrationError, RuntimeError):
    """The optimizer stopped without meeting its convergence criterion."""

    def __init__(
        self, message: str, *, iterations: Optional[int] = None, reason: str = ""
    ) -> None:
        super().__init__(message)
        self.iterations = iterations
        self.reason = reason


class DegenerateProfileWarning(UserWarning):
    """A likelihood profile is flat, empty, or does not bracket its maximum."""
