"""
empcal: empirical calibration of observational effect estimates.

Effect estimates from observational studies carry systematic error on top of
random sampling error. empcal characterizes that systematic error from
*control* exposure-outcome pairs whose true effect is known: negative controls
(true relative risk of 1) and positive controls (known, non-zero effect).

A fitted model describes the systematic error as a Gaussian whose mean and
spread may vary with the true effect size. Calibration then folds this error
distribution into the sampling distribution of a new estimate, restoring
nominal operating characteristics of p-values and confidence intervals.
Every fit is a pure function of the controls it receives; the Bayesian null
fit is reproducible given a seed.

Example
-------
>>> import empcal
>>> assert hasattr(empcal, "core")
>>> assert hasattr(empcal, "stats")
>>> null = empcal.fit_null([0.1, -0.05, 0.3, 0.2], [0.1, 0.12, 0.2, 0.15])  # doctest: +SKIP
>>> empcal.calibrate_p(null, 0.5, 0.1)  # doctest: +SKIP
"""

from empcal import core, stats
from empcal.__version__ import __version__
from empcal.core.errors import (
    CalibrationError,
    ConvergenceError,
    DegenerateProfileWarning,
    IdentifiabilityError,
    InsufficientDataError,
    InvalidControlsError,
)
from empcal.core.models import (
    CalibratedInterval,
    CalibratedP,
    ErrorModel,
    McmcNullModel,
    NullModel,
    error_model_to_null,
    null_to_error_model,
)
from empcal.core.names import Parameterization
from empcal.stats.methods.calibration.core import (
    calibrate_confidence_interval,
    calibrate_p,
    compute_expected_absolute_systematic_error,
    compute_traditional_ci,
    compute_traditional_p,
)
from empcal.stats.methods.error_model.core import fit_error_model
from empcal.stats.methods.error_model.profile import (
    fit_error_model_from_profiles,
    fit_null_from_profiles,
)
from empcal.stats.methods.null.core import fit_mcmc_null, fit_null

__all__ = [
    "__version__",
    "CalibratedInterval",
    "CalibratedP",
    "CalibrationError",
    "ConvergenceError",
    "DegenerateProfileWarning",
    "ErrorModel",
    "IdentifiabilityError",
    "InsufficientDataError",
    "InvalidControlsError",
    "McmcNullModel",
    "NullModel",
    "Parameterization",
    "calibrate_confidence_interval",
    "calibrate_p",
    "compute_expected_absolute_systematic_error",
    "compute_traditional_ci",
    "compute_traditional_p",
    "error_model_to_null",
    "fit_error_model",
    "fit_error_model_from_profiles",
    "fit_mcmc_null",
    "fit_null",
    "fit_null_from_profiles",
    "null_to_error_model",
]
