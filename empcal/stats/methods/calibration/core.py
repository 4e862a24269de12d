"""
empcal.stats.methods.calibration.core
=====================================

Calibrated p-values and confidence intervals.

A fitted systematic-error model N(mean(t), spread(t)^2) is convolved with the
sampling distribution N(log_rr, se^2) of a new estimate. The calibrated
z-score of the estimate at a hypothesised true effect t is

    z(t) = (log_rr - mean(t)) / sqrt(spread(t)^2 + se^2)

- p-values evaluate z at the null hypothesis (t = 0 by default)
- confidence intervals invert z over t: the calibrated estimate solves
  z(t) = 0 and the bounds solve z(t) = +-q, q the normal quantile of the
  requested coverage

Also provided for comparison are the uncalibrated Wald quantities and the
expected absolute systematic error of a null distribution.

Mathematical Background
-----------------------
For X ~ N(mu, s^2), E|X| = s sqrt(2/pi) exp(-mu^2 / (2 s^2)) + mu (1 - 2 Phi(-mu/s)).
"""

from __future__ import annotations
import logging
import math
from typing import List, Optional, Sequence, Tuple, Union

import numpy as np
from scipy.optimize import brentq
from scipy.stats import norm

from empcal.core.errors import CalibrationError
from empcal.core.models import (
    CalibratedInterval,
    CalibratedP,
    ErrorModel,
    McmcNullModel,
    NullModel,
    PosteriorSummary,
    SystematicErrorModel,
    error_model_to_null,
    null_to_error_model,
)
from empcal.core.names import Alternative
from empcal.core.settings import DEFAULT_CALIBRATION_SETTINGS, CalibrationSettings

logger = logging.getLogger(__name__)

FloatOrSequence = Union[float, Sequence[float], np.ndarray]


def _quantile(ci_width: float) -> float:
    if not 0 < ci_width < 1:
        raise ValueError(f"ci_width must be in (0, 1), got {ci_width}")
    return float(norm.ppf(1 - (1 - ci_width) / 2))


def _z_score(diff: np.ndarray, var: np.ndarray) -> np.ndarray:
    """diff / sqrt(var), with the point-mass limit when var == 0."""
    with np.errstate(divide="ignore", invalid="ignore"):
        z = diff / np.sqrt(var)
    return np.where(var == 0, np.where(diff == 0, 0.0, np.sign(diff) * np.inf), z)


def _p_from_z(z: np.ndarray, alternative: Alternative) -> np.ndarray:
    if alternative == "two-sided":
        p = 2.0 * np.minimum(norm.cdf(z), norm.sf(z))
    elif alternative == "greater":
        p = norm.sf(z)
    elif alternative == "less":
        p = norm.cdf(z)
    else:
        raise ValueError(f"Unknown alternative: {alternative}")
    return np.clip(p, 0.0, 1.0)


def _estimates(
    log_rr: FloatOrSequence, se_log_rr: FloatOrSequence
) -> Tuple[np.ndarray, np.ndarray, bool]:
    scalar = np.ndim(log_rr) == 0 and np.ndim(se_log_rr) == 0
    lr, se = np.broadcast_arrays(
        np.atleast_1d(np.asarray(log_rr, dtype=float)),
        np.atleast_1d(np.asarray(se_log_rr, dtype=float)),
    )
    if np.any(se < 0):
        raise ValueError("se_log_rr cannot be negative")
    return lr, se, scalar


def compute_traditional_p(
    log_rr: FloatOrSequence,
    se_log_rr: FloatOrSequence,
    alternative: Alternative = "two-sided",
) -> Union[float, np.ndarray]:
    """Uncalibrated p-value of H0: true log effect = 0, normal approximation."""
    lr, se, scalar = _estimates(log_rr, se_log_rr)
    p = _p_from_z(_z_score(lr, np.square(se)), alternative)
    return float(p[0]) if scalar else p


def compute_traditional_ci(
    log_rr: float, se_log_rr: float, ci_width: float = 0.95
) -> Tuple[float, float]:
    """Uncalibrated Wald interval (log_lb, log_ub)."""
    if se_log_rr < 0:
        raise ValueError("se_log_rr cannot be negative")
    q = _quantile(ci_width)
    return log_rr - q * se_log_rr, log_rr + q * se_log_rr


def calibrate_p(
    model: SystematicErrorModel,
    log_rr: FloatOrSequence,
    se_log_rr: FloatOrSequence,
    *,
    true_log_rr: float = 0.0,
    alternative: Alternative = "two-sided",
) -> Union[CalibratedP, List[CalibratedP]]:
    """
    Calibrate the p-value of one or more estimates.

    Args:
        model: NullModel, ErrorModel or McmcNullModel
        log_rr: Estimate(s) of interest
        se_log_rr: Standard error(s) of the estimates
        true_log_rr: True log effect under the null hypothesis (ErrorModel only)
        alternative: "two-sided", "greater" (upper tail) or "less" (lower tail)

    Returns:
        A CalibratedP for scalar input, a list otherwise. For McmcNullModel the
        p-value is the posterior median, with its credible interval as bounds.

    Examples:
        >>> from empcal.core.models import NullModel
        >>> calibrate_p(NullModel(mean=0.2, sd=0.1), 0.2, 0.05).p
        1.0
    """
    lr, se, scalar = _estimates(log_rr, se_log_rr)

    if isinstance(model, McmcNullModel):
        means = model.mean_draws
        var_sys = 1.0 / model.precision_draws
        tail = (1.0 - model.ci_width) / 2.0
        results = []
        for x, s in zip(lr, se):
            ps = _p_from_z(_z_score(x - means, var_sys + s**2), alternative)
            lo, mid, hi = np.quantile(ps, [tail, 0.5, 1.0 - tail])
            results.append(CalibratedP(p=float(mid), lb=float(lo), ub=float(hi)))
    elif isinstance(model, (NullModel, ErrorModel)):
        if isinstance(model, NullModel):
            mean, spread = model.mean, model.sd
        else:
            mean = float(model.mean_at(true_log_rr))
            spread = float(model.spread_at(true_log_rr))
            if spread < 0:
                raise ValueError(
                    f"Error model has a negative spread at true_log_rr={true_log_rr}"
                )
        ps = _p_from_z(_z_score(lr - mean, spread**2 + np.square(se)), alternative)
        results = [CalibratedP(p=float(p)) for p in ps]
    else:
        raise TypeError(f"Unsupported systematic error model: {type(model).__name__}")

    return results[0] if scalar else results


def _roots(
    z_fn, grid: np.ndarray, z_grid: np.ndarray, target: float, xtol: float
) -> List[float]:
    """All solutions of z(t) = target bracketed by consecutive grid points."""
    f = z_grid - target
    ok = np.isfinite(f)
    roots: List[float] = []
    for i in np.nonzero(ok[:-1] & ok[1:] & (np.sign(f[:-1]) != np.sign(f[1:])))[0]:
        if f[i] == 0:
            roots.append(float(grid[i]))
        elif f[i + 1] == 0:
            roots.append(float(grid[i + 1]))
        else:
            roots.append(
                float(brentq(lambda t: float(z_fn(t)) - target, grid[i], grid[i + 1], xtol=xtol))
            )
    return roots


def _calibrate_one(
    model: ErrorModel,
    log_rr: float,
    se_log_rr: float,
    q: float,
    settings: CalibrationSettings,
) -> CalibratedInterval:
    def z_fn(t):
        spread = model.spread_at(t)
        z = _z_score(log_rr - model.mean_at(t), np.square(spread) + se_log_rr**2)
        return np.where(spread < 0, np.nan, z)

    grid = np.linspace(-settings.search_limit, settings.search_limit, settings.scan_points)
    z_grid = z_fn(grid)

    estimates = _roots(z_fn, grid, z_grid, 0.0, settings.xtol)
    if not estimates:
        raise CalibrationError(
            f"No true effect in [-{settings.search_limit}, {settings.search_limit}] "
            f"is centred on log_rr={log_rr}"
        )
    estimate = estimates[0]

    # Only the run of grid points with a non-negative spread around the
    # estimate is searched.
    finite = np.isfinite(z_grid)
    k = min(max(int(np.searchsorted(grid, estimate, side="right")) - 1, 0), grid.size - 1)
    bad_left = np.nonzero(~finite[:k])[0]
    bad_right = np.nonzero(~finite[k + 1 :])[0]
    start = int(bad_left[-1]) + 1 if bad_left.size else 0
    end = k + int(bad_right[0]) if bad_right.size else grid.size - 1
    seg_grid = grid[start : end + 1]
    seg_z = z_grid[start : end + 1]

    bounds = _roots(z_fn, seg_grid, seg_z, q, settings.xtol) + _roots(
        z_fn, seg_grid, seg_z, -q, settings.xtol
    )
    lower = [b for b in bounds if b < estimate]
    upper = [b for b in bounds if b > estimate]

    def spread_edge(a: float, b: float) -> float:
        return float(brentq(lambda t: float(model.spread_at(t)), a, b, xtol=settings.xtol))

    # The interval is the hull of {t : |z(t)| <= q} within that run. An end
    # that stays inside the set is open at the search range and cut off where
    # the spread reaches zero.
    truncated = False
    if abs(seg_z[0]) <= q or not lower:
        if start == 0:
            log_lb = -math.inf
        else:
            log_lb = spread_edge(grid[start - 1], grid[start])
            truncated = True
    else:
        log_lb = min(lower)
    if abs(seg_z[-1]) <= q or not upper:
        if end == grid.size - 1:
            log_ub = math.inf
        else:
            log_ub = spread_edge(grid[end], grid[end + 1])
            truncated = True
    else:
        log_ub = max(upper)

    if math.isinf(log_lb) or math.isinf(log_ub):
        logger.warning(
            "Calibrated interval for log_rr=%.4g, se=%.4g is unbounded: (%s, %s)",
            log_rr,
            se_log_rr,
            log_lb,
            log_ub,
        )
    if truncated:
        logger.warning(
            "Calibrated interval for log_rr=%.4g, se=%.4g is cut off where the "
            "error model's spread reaches zero: (%.4g, %.4g)",
            log_rr,
            se_log_rr,
            log_lb,
            log_ub,
        )

    return CalibratedInterval(
        log_rr=estimate,
        log_lb=log_lb,
        log_ub=log_ub,
        se_log_rr=(log_ub - log_lb) / (2.0 * q),
    )


def calibrate_confidence_interval(
    model: SystematicErrorModel,
    log_rr: FloatOrSequence,
    se_log_rr: FloatOrSequence,
    *,
    ci_width: float = 0.95,
    settings: Optional[CalibrationSettings] = None,
) -> Union[CalibratedInterval, List[CalibratedInterval]]:
    """
    Calibrate the estimate and confidence interval of one or more estimates.

    Null models are first expressed as error models whose systematic error
    does not vary with the true effect.

    Args:
        model: ErrorModel, NullModel or McmcNullModel
        log_rr: Estimate(s) of interest
        se_log_rr: Standard error(s) of the estimates
        ci_width: Nominal coverage of the interval
        settings: Search range and tolerance of the root finding

    Returns:
        A CalibratedInterval for scalar input, a list otherwise. A bound that
        no true effect in the search range reaches is reported as -inf/+inf;
        where the spread of a linear model reaches zero first, the bound is
        cut off at that point.

    Raises:
        ValueError: The model's mean does not depend on the true effect
        CalibrationError: No true effect centres the estimate
    """
    settings = settings or DEFAULT_CALIBRATION_SETTINGS
    if isinstance(model, (NullModel, McmcNullModel)):
        model = null_to_error_model(model)
    elif not isinstance(model, ErrorModel):
        raise TypeError(f"Unsupported systematic error model: {type(model).__name__}")
    if model.mean_slope == 0:
        raise ValueError("Cannot invert an error model with a mean slope of 0")

    q = _quantile(ci_width)
    lr, se, scalar = _estimates(log_rr, se_log_rr)
    results = [
        _calibrate_one(model, float(x), float(s), q, settings) for x, s in zip(lr, se)
    ]
    return results[0] if scalar else results


def _expected_absolute(mean: np.ndarray, sd: np.ndarray) -> np.ndarray:
    with np.errstate(divide="ignore", invalid="ignore"):
        folded = sd * math.sqrt(2.0 / math.pi) * np.exp(
            -np.square(mean) / (2.0 * np.square(sd))
        ) + mean * (1.0 - 2.0 * norm.cdf(-mean / sd))
    return np.where(sd == 0, np.abs(mean), folded)


def compute_expected_absolute_systematic_error(
    model: SystematicErrorModel,
) -> Union[float, PosteriorSummary]:
    """
    Expected absolute systematic error of the null distribution.

    Args:
        model: NullModel, ErrorModel (taken at a true effect of 0) or
            McmcNullModel

    Returns:
        A float, or for McmcNullModel the posterior median with its credible
        interval.

    Examples:
        >>> from empcal.core.models import NullModel
        >>> compute_expected_absolute_systematic_error(NullModel(mean=0.3, sd=0.0))
        0.3
    """
    if isinstance(model, McmcNullModel):
        values = _expected_absolute(model.mean_draws, model.sd_draws)
        tail = (1.0 - model.ci_width) / 2.0
        lo, mid, hi = np.quantile(values, [tail, 0.5, 1.0 - tail])
        return PosteriorSummary(estimate=float(mid), lb=float(lo), ub=float(hi))
    if isinstance(model, ErrorModel):
        model = error_model_to_null(model)
    if not isinstance(model, NullModel):
        raise TypeError(f"Unsupported systematic error model: {type(model).__name__}")
    return float(_expected_absolute(np.asarray(model.mean), np.asarray(model.sd)))
