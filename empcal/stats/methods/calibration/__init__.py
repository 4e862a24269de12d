"""
empcal.stats.methods.calibration
================================

Apply a fitted systematic-error model to new estimates.
"""

from empcal.stats.methods.calibration.core import (
    calibrate_confidence_interval,
    calibrate_p,
    compute_expected_absolute_systematic_error,
    compute_traditional_ci,
    compute_traditional_p,
)

__all__ = [
    "calibrate_confidence_interval",
    "calibrate_p",
    "compute_expected_absolute_systematic_error",
    "compute_traditional_ci",
    "compute_traditional_p",
]
