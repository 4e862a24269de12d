"""
empcal.stats.methods.error_model.core
=====================================

Systematic error as a function of the true effect size.

Given controls (log_rr_i, se_i, t_i) with known true log effect t_i, the
systematic error at t_i is Gaussian with

    mean_i   = mean_intercept + mean_slope * t_i
    spread_i = sd_intercept + sd_slope * |t_i|          (linear)
    spread_i = exp(sd_intercept + sd_slope * t_i)       (legacy)

and the estimate is the convolution of the systematic error with the
estimate's own sampling error. The legacy log-linear spread is kept so that
previously published coefficients remain usable; new fits default to the
linear form.

- `error_model_neg_log_likelihood`: linear objective
- `legacy_error_model_neg_log_likelihood`: log-linear objective
- `fit_error_model`: maximum likelihood fit of the four coefficients
"""

from __future__ import annotations
import logging
import math
from typing import Callable, Optional, Sequence, Tuple, Union

import numpy as np
from scipy.stats import norm

from empcal.core.controls import ArrayLike, ControlEstimates
from empcal.core.errors import IdentifiabilityError
from empcal.core.models import ErrorModel
from empcal.core.names import Parameterization
from empcal.core.settings import DEFAULT_FIT_SETTINGS, FitSettings
from empcal.stats.common.gaussian import log_gaussian_convolution
from empcal.stats.common.optimization import (
    finite_difference_hessian,
    minimize_objective,
)

logger = logging.getLogger(__name__)

# Starting coefficients (mean_intercept, mean_slope, sd_intercept, sd_slope).
LINEAR_START = (0.0, 1.0, 0.1, 0.0)
LEGACY_START = (0.0, 1.0, -2.0, 0.0)

# Slopes of systematic error that does not depend on the true effect.
NO_SHIFT_SLOPES = (1.0, 0.0)


def _point_log_likelihoods(
    log_rr: np.ndarray,
    se_log_rr: np.ndarray,
    mean: np.ndarray,
    spread: np.ndarray,
    settings: FitSettings,
) -> np.ndarray:
    """Per-control log-likelihood; -inf where the spread is negative."""
    with np.errstate(all="ignore"):
        conv = log_gaussian_convolution(log_rr, mean, se_log_rr, spread)
        exact = norm.logpdf(log_rr, loc=mean, scale=se_log_rr)
    ll = np.where(spread < settings.spread_threshold, exact, conv)
    return np.where(spread < 0, -np.inf, ll)


def _total(ll: np.ndarray, settings: FitSettings) -> float:
    with np.errstate(all="ignore"):
        result = -float(np.sum(ll))
    if not math.isfinite(result):
        logger.debug("Non-finite error-model likelihood; using penalty")
        return settings.penalty
    return result


def error_model_neg_log_likelihood(
    theta: Sequence[float],
    log_rr: np.ndarray,
    se_log_rr: np.ndarray,
    true_log_rr: np.ndarray,
    settings: FitSettings = DEFAULT_FIT_SETTINGS,
) -> float:
    """
    Negative log-likelihood of the linear error model.

    Args:
        theta: (mean_intercept, mean_slope, sd_intercept, sd_slope)
        log_rr: Control estimates
        se_log_rr: Standard errors of the estimates
        true_log_rr: True log effects of the controls
        settings: Penalty and spread threshold

    Returns:
        The negative log-likelihood, or `settings.penalty` when any control's
        spread is negative or the total is not finite.
    """
    a, b, c, d = (float(x) for x in theta)
    true_log_rr = np.asarray(true_log_rr, dtype=float)
    if true_log_rr.size == 0:
        return settings.penalty
    mean = a + b * true_log_rr
    spread = c + d * np.abs(true_log_rr)
    ll = _point_log_likelihoods(
        np.asarray(log_rr, dtype=float),
        np.asarray(se_log_rr, dtype=float),
        mean,
        spread,
        settings,
    )
    return _total(ll, settings)


def legacy_error_model_neg_log_likelihood(
    theta: Sequence[float],
    log_rr: np.ndarray,
    se_log_rr: np.ndarray,
    true_log_rr: np.ndarray,
    settings: FitSettings = DEFAULT_FIT_SETTINGS,
) -> float:
    """Negative log-likelihood of the legacy model, spread = exp(c + d * t)."""
    a, b, c, d = (float(x) for x in theta)
    true_log_rr = np.asarray(true_log_rr, dtype=float)
    if true_log_rr.size == 0:
        return settings.penalty
    mean = a + b * true_log_rr
    with np.errstate(over="ignore"):
        spread = np.exp(c + d * true_log_rr)
    with np.errstate(all="ignore"):
        ll = log_gaussian_convolution(
            np.asarray(log_rr, dtype=float),
            mean,
            np.asarray(se_log_rr, dtype=float),
            spread,
        )
    return _total(ll, settings)


def objective_for(
    parameterization: Union[Parameterization, str],
) -> Callable[..., float]:
    """Return the point-estimate objective of a parameterization."""
    if Parameterization(parameterization) is Parameterization.LEGACY:
        return legacy_error_model_neg_log_likelihood
    return error_model_neg_log_likelihood


def start_for(parameterization: Union[Parameterization, str]) -> Tuple[float, ...]:
    if Parameterization(parameterization) is Parameterization.LEGACY:
        return LEGACY_START
    return LINEAR_START


def check_identifiable(true_log_rr: np.ndarray) -> bool:
    """
    Check that controls can identify an error model.

    Returns:
        True when there are positive controls; False when all controls are
        negative, so that only the intercepts can be fitted.

    Raises:
        IdentifiabilityError: No negative control among the controls
    """
    true_log_rr = np.asarray(true_log_rr, dtype=float)
    if not np.any(true_log_rr == 0):
        raise IdentifiabilityError(
            "At least one negative control (true_log_rr == 0) is required"
        )
    return np.unique(true_log_rr).size >= 2


def fit_theta(
    objective: Callable[[np.ndarray], float],
    start: Sequence[float],
    *,
    fit_slopes: bool,
    no_shift_slopes: Tuple[float, float],
    settings: FitSettings,
    estimate_covariance: bool,
) -> Tuple[np.ndarray, Optional[np.ndarray]]:
    """
    Minimize a 4-coefficient objective, optionally holding the slopes fixed.

    Returns:
        The fitted coefficients and, when requested, their covariance (the
        inverse Hessian of the objective over the coefficients that were fitted;
        fixed coefficients get zero variance).
    """
    free = np.array([0, 1, 2, 3] if fit_slopes else [0, 2])
    fixed = np.asarray(start, dtype=float).copy()
    if not fit_slopes:
        fixed[[1, 3]] = no_shift_slopes

    def reduced(x: np.ndarray) -> float:
        theta = fixed.copy()
        theta[free] = x
        return objective(theta)

    result = minimize_objective(reduced, fixed[free], settings=settings)
    theta = fixed.copy()
    theta[free] = result.x

    covariance = None
    if estimate_covariance:
        covariance = np.zeros((4, 4))
        hessian = finite_difference_hessian(reduced, result.x, penalty=settings.penalty)
        try:
            if not np.all(np.isfinite(hessian)):
                raise np.linalg.LinAlgError("non-finite Hessian")
            covariance[np.ix_(free, free)] = np.linalg.inv(hessian)
        except np.linalg.LinAlgError as exc:
            logger.warning("Covariance is undefined: %s", exc)
            covariance[np.ix_(free, free)] = np.nan
    return theta, covariance


def fit_error_model(
    log_rr: ArrayLike,
    se_log_rr: ArrayLike,
    true_log_rr: ArrayLike,
    *,
    parameterization: Union[Parameterization, str] = Parameterization.LINEAR,
    settings: Optional[FitSettings] = None,
    estimate_covariance: bool = False,
    assume_no_bias_shift: bool = False,
) -> ErrorModel:
    """
    Fit the systematic error model on negative and positive controls.

    Args:
        log_rr: Control estimates
        se_log_rr: Standard errors of the estimates
        true_log_rr: True log effects (0 for negative controls)
        parameterization: Spread function, linear (default) or legacy
        settings: Optimizer settings
        estimate_covariance: Also estimate the covariance of the coefficients
        assume_no_bias_shift: With only negative controls, fit the intercepts
            and hold the slopes at (1, 0) instead of failing

    Returns:
        ErrorModel with the fitted coefficients

    Raises:
        IdentifiabilityError: No negative control, or a single distinct true
            effect without `assume_no_bias_shift`
        ConvergenceError: The optimizer did not converge
    """
    settings = settings or DEFAULT_FIT_SETTINGS
    parameterization = Parameterization(parameterization)
    controls = ControlEstimates.from_sequences(log_rr, se_log_rr, true_log_rr)

    fit_slopes = check_identifiable(controls.true_log_rr)
    if not fit_slopes and not assume_no_bias_shift:
        raise IdentifiabilityError(
            "At least 2 distinct true effects are required to fit the slopes; "
            "pass assume_no_bias_shift=True to fit the intercepts only"
        )

    base = objective_for(parameterization)

    def objective(theta: np.ndarray) -> float:
        return base(
            theta,
            controls.log_rr,
            controls.se_log_rr,
            controls.true_log_rr,
            settings,
        )

    theta, covariance = fit_theta(
        objective,
        start_for(parameterization),
        fit_slopes=fit_slopes,
        no_shift_slopes=NO_SHIFT_SLOPES,
        settings=settings,
        estimate_covariance=estimate_covariance,
    )
    model = ErrorModel.from_theta(theta, parameterization, covariance)
    logger.info(
        "Fitted %s error model on %d controls: %s",
        parameterization.value,
        controls.n,
        np.array2string(theta, precision=4),
    )
    return model
