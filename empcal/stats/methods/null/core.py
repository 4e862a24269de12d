"""
empcal.stats.methods.null.core
==============================

Null distribution of systematic error.

Each negative control's estimate is modelled as

    log_rr_i ~ N(mean, se_i^2 + sd^2)

where N(mean, sd^2) is the systematic error shared by all controls. The
parameters are searched as (mean, precision), precision = 1 / sd^2, so that
the "no systematic error" limit sits at infinity rather than on a boundary.

- `null_neg_log_likelihood`: the objective
- `fit_null`: maximum likelihood
- `fit_mcmc_null`: posterior draws under a weak Gamma prior on the precision
"""

from __future__ import annotations
import logging
import math
from typing import Optional, Sequence

import numpy as np
from scipy.stats import gamma, norm

from empcal.core.controls import ArrayLike, ControlEstimates
from empcal.core.errors import InsufficientDataError
from empcal.core.models import McmcNullModel, NullModel
from empcal.core.settings import (
    DEFAULT_FIT_SETTINGS,
    DEFAULT_MCMC_SETTINGS,
    FitSettings,
    McmcSettings,
)
from empcal.stats.common.gaussian import log_gaussian_convolution
from empcal.stats.common.mcmc import run_ensemble_sampler
from empcal.stats.common.optimization import minimize_objective

logger = logging.getLogger(__name__)


def null_neg_log_likelihood(
    theta: Sequence[float],
    log_rr: np.ndarray,
    se_log_rr: np.ndarray,
    settings: FitSettings = DEFAULT_FIT_SETTINGS,
) -> float:
    """
    Negative log-likelihood of a null distribution.

    Args:
        theta: (mean, precision) of the systematic error
        log_rr: Control estimates
        se_log_rr: Standard errors of the estimates
        settings: Penalty and spread threshold

    Returns:
        The negative log-likelihood, or `settings.penalty` for a non-positive
        precision, an empty control set, or a non-finite total.
    """
    mean, precision = float(theta[0]), float(theta[1])
    if not precision > 0:
        return settings.penalty

    log_rr = np.asarray(log_rr, dtype=float)
    se_log_rr = np.asarray(se_log_rr, dtype=float)
    if log_rr.size == 0:
        return settings.penalty

    sd = 1.0 / math.sqrt(precision)
    with np.errstate(all="ignore"):
        if sd < settings.spread_threshold:
            ll = norm.logpdf(mean, loc=log_rr, scale=se_log_rr)
        else:
            ll = log_gaussian_convolution(log_rr, mean, se_log_rr, sd)
        result = -float(np.sum(ll))

    if not math.isfinite(result):
        logger.debug("Non-finite null likelihood at theta=%s; using penalty", theta)
        return settings.penalty
    return result


def null_neg_log_posterior(
    theta: Sequence[float],
    log_rr: np.ndarray,
    se_log_rr: np.ndarray,
    settings: FitSettings = DEFAULT_FIT_SETTINGS,
    prior_shape: float = DEFAULT_MCMC_SETTINGS.prior_shape,
    prior_rate: float = DEFAULT_MCMC_SETTINGS.prior_rate,
) -> float:
    """Null negative log-likelihood plus a Gamma(shape, rate) prior on the precision."""
    result = null_neg_log_likelihood(theta, log_rr, se_log_rr, settings)
    if result >= settings.penalty:
        return settings.penalty
    result -= float(gamma.logpdf(theta[1], a=prior_shape, scale=1.0 / prior_rate))
    return result if math.isfinite(result) else settings.penalty


def fit_null(
    log_rr: ArrayLike,
    se_log_rr: ArrayLike,
    settings: Optional[FitSettings] = None,
) -> NullModel:
    """
    Fit the null distribution by maximum likelihood.

    The search runs over (mean, log precision), with the log precision capped
    so that the fitted sd never drops below `settings.spread_threshold`; the
    objective itself is always evaluated at (mean, precision).

    Args:
        log_rr: Estimates of the negative controls
        se_log_rr: Their standard errors
        settings: Optimizer settings

    Returns:
        NullModel with the fitted mean and sd

    Raises:
        InsufficientDataError: Fewer than 2 controls
        ConvergenceError: The optimizer did not converge

    Examples:
        >>> null = fit_null([0.1, 0.3, -0.1, 0.2], [0.1, 0.1, 0.1, 0.1])  # doctest: +SKIP
        >>> null.sd >= 0  # doctest: +SKIP
        True
    """
    settings = settings or DEFAULT_FIT_SETTINGS
    controls = ControlEstimates.from_sequences(log_rr, se_log_rr)
    if controls.n < 2:
        raise InsufficientDataError(
            f"At least 2 negative controls are required, got {controls.n}"
        )

    max_log_precision = -2.0 * math.log(settings.spread_threshold)

    def objective(x: np.ndarray) -> float:
        return null_neg_log_likelihood(
            (x[0], math.exp(x[1])), controls.log_rr, controls.se_log_rr, settings
        )

    result = minimize_objective(
        objective,
        [0.0, math.log(100.0)],
        settings=settings,
        bounds=[(None, None), (None, max_log_precision)],
    )
    null = NullModel(mean=float(result.x[0]), sd=math.exp(-0.5 * float(result.x[1])))
    logger.info(
        "Fitted null on %d controls: mean=%.4f sd=%.4f", controls.n, null.mean, null.sd
    )
    return null


def _null_log_posterior(
    theta: np.ndarray,
    log_rr: np.ndarray,
    se_log_rr: np.ndarray,
    settings: FitSettings,
    prior_shape: float,
    prior_rate: float,
) -> float:
    if not theta[1] > 0:
        return -np.inf
    # Feasibility comes from the likelihood alone, not the prior.
    nll = null_neg_log_likelihood(theta, log_rr, se_log_rr, settings)
    if nll >= settings.penalty:
        return -np.inf
    return -nll + float(gamma.logpdf(theta[1], a=prior_shape, scale=1.0 / prior_rate))


def fit_mcmc_null(
    log_rr: ArrayLike,
    se_log_rr: ArrayLike,
    settings: Optional[McmcSettings] = None,
    seed: Optional[int] = None,
    fit_settings: Optional[FitSettings] = None,
) -> McmcNullModel:
    """
    Sample the posterior of the null distribution.

    The likelihood is that of `fit_null`; the precision carries a
    Gamma(1e-4, 1e-4) prior by default. Walkers start around the
    maximum-likelihood fit.

    Args:
        log_rr: Estimates of the negative controls
        se_log_rr: Their standard errors
        settings: Sampler settings
        seed: Seed for a reproducible chain; None draws fresh entropy
        fit_settings: Settings of the likelihood and the starting fit

    Returns:
        McmcNullModel holding the (mean, precision) draws and acceptance rate
    """
    settings = settings or DEFAULT_MCMC_SETTINGS
    fit_settings = fit_settings or DEFAULT_FIT_SETTINGS
    controls = ControlEstimates.from_sequences(log_rr, se_log_rr)
    start = fit_null(controls.log_rr, controls.se_log_rr, fit_settings)

    chain = run_ensemble_sampler(
        _null_log_posterior,
        [start.mean, start.precision],
        args=(
            controls.log_rr,
            controls.se_log_rr,
            fit_settings,
            settings.prior_shape,
            settings.prior_rate,
        ),
        n_walkers=settings.n_walkers,
        n_steps=settings.n_steps,
        burn_in=settings.burn_in,
        thin=settings.thin,
        scatter=settings.init_scatter,
        seed=seed,
    )
    model = McmcNullModel(
        chain=chain.draws,
        acceptance_rate=chain.acceptance_rate,
        ci_width=settings.ci_width,
    )
    logger.info(
        "Sampled null posterior: draws=%d acceptance=%.3f mean=%.4f sd=%.4f",
        model.n_draws,
        model.acceptance_rate,
        model.mean,
        model.sd,
    )
    return model
