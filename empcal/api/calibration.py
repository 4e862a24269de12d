"""
empcal.api.calibration
======================

Study-level calibration workflows.

Each workflow fits a systematic-error model on the controls of a study and
calibrates the study's estimates of interest against it.

Examples
--------
>>> from empcal.api.calibration import calibrate_against_controls
>>> result = calibrate_against_controls(
...     control_log_rr, control_se, control_true, log_rr=0.4, se_log_rr=0.1
... )  # doctest: +SKIP
>>> result.intervals[0].rr  # doctest: +SKIP
"""

from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import List, Optional, Union

import numpy as np
import polars as pl

from empcal.backends.polars.io import controls_from_frame
from empcal.core.controls import ArrayLike, ControlEstimates
from empcal.core.models import (
    CalibratedInterval,
    CalibratedP,
    SystematicErrorModel,
)
from empcal.core.names import Alternative, Parameterization
from empcal.core.settings import McmcSettings
from empcal.stats.methods.calibration.core import (
    calibrate_confidence_interval,
    calibrate_p,
)
from empcal.stats.methods.error_model.core import fit_error_model
from empcal.stats.methods.null.core import fit_mcmc_null, fit_null

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CalibrationResult:
    """Fitted model with the calibrated p-values and intervals of the estimates."""

    model: SystematicErrorModel
    p: List[CalibratedP]
    intervals: List[CalibratedInterval]


def _calibrate(
    model: SystematicErrorModel,
    log_rr: Union[float, ArrayLike],
    se_log_rr: Union[float, ArrayLike],
    ci_width: float,
    alternative: Alternative,
) -> CalibrationResult:
    lr = np.atleast_1d(np.asarray(log_rr, dtype=float))
    se = np.atleast_1d(np.asarray(se_log_rr, dtype=float))
    p = calibrate_p(model, lr, se, alternative=alternative)
    intervals = calibrate_confidence_interval(model, lr, se, ci_width=ci_width)
    return CalibrationResult(model=model, p=list(p), intervals=list(intervals))


def calibrate_against_negative_controls(
    nc_log_rr: ArrayLike,
    nc_se_log_rr: ArrayLike,
    log_rr: Union[float, ArrayLike],
    se_log_rr: Union[float, ArrayLike],
    *,
    bayesian: bool = False,
    seed: Optional[int] = None,
    mcmc_settings: Optional[McmcSettings] = None,
    ci_width: float = 0.95,
    alternative: Alternative = "two-sided",
) -> CalibrationResult:
    """
    Calibrate estimates against the negative controls of a study.

    Parameters
    ----------
    nc_log_rr, nc_se_log_rr : array-like
        Estimates and standard errors of the negative controls
    log_rr, se_log_rr : float or array-like
        Estimates of interest
    bayesian : bool, default=False
        Sample the null posterior instead of the maximum-likelihood fit, so
        that p-values carry credible intervals
    seed : int, optional
        Seed of the sampler when `bayesian` is set
    mcmc_settings : McmcSettings, optional
        Sampler settings when `bayesian` is set
    ci_width : float, default=0.95
        Coverage of the calibrated intervals
    alternative : {"two-sided", "greater", "less"}
        Alternative hypothesis of the p-values

    Returns
    -------
    CalibrationResult
        One p-value and one interval per estimate, in input order
    """
    if bayesian:
        model = fit_mcmc_null(nc_log_rr, nc_se_log_rr, settings=mcmc_settings, seed=seed)
    else:
        model = fit_null(nc_log_rr, nc_se_log_rr)
    return _calibrate(model, log_rr, se_log_rr, ci_width, alternative)


def calibrate_against_controls(
    control_log_rr: ArrayLike,
    control_se_log_rr: ArrayLike,
    control_true_log_rr: ArrayLike,
    log_rr: Union[float, ArrayLike],
    se_log_rr: Union[float, ArrayLike],
    *,
    ci_width: float = 0.95,
    parameterization: Union[Parameterization, str] = Parameterization.LINEAR,
    alternative: Alternative = "two-sided",
) -> CalibrationResult:
    """
    Calibrate estimates against negative and positive controls.

    Parameters
    ----------
    control_log_rr, control_se_log_rr, control_true_log_rr : array-like
        Estimates, standard errors and true log effects of the controls
    log_rr, se_log_rr : float or array-like
        Estimates of interest
    ci_width : float, default=0.95
        Coverage of the calibrated intervals
    parameterization : {"linear", "legacy"}
        Spread function of the error model
    alternative : {"two-sided", "greater", "less"}
        Alternative hypothesis of the p-values (null: true log effect 0)

    Returns
    -------
    CalibrationResult
        One p-value and one interval per estimate, in input order
    """
    model = fit_error_model(
        control_log_rr,
        control_se_log_rr,
        control_true_log_rr,
        parameterization=parameterization,
    )
    return _calibrate(model, log_rr, se_log_rr, ci_width, alternative)


def _fit_for(controls: ControlEstimates) -> SystematicErrorModel:
    if controls.distinct_true_effects().size >= 2:
        return fit_error_model(
            controls.log_rr, controls.se_log_rr, controls.true_log_rr
        )
    logger.info("Controls carry a single true effect; fitting a null distribution")
    return fit_null(controls.log_rr, controls.se_log_rr)


def calibrate_frame(
    controls: pl.DataFrame,
    estimates: pl.DataFrame,
    *,
    log_rr: str = "logRr",
    se_log_rr: str = "seLogRr",
    true_log_rr: str = "trueLogRr",
    ci_width: float = 0.95,
    alternative: Alternative = "two-sided",
) -> pl.DataFrame:
    """
    Calibrate the estimates of a frame against the controls of another.

    An error model is fitted when the controls carry at least two distinct
    true effects, a null distribution otherwise.

    Parameters
    ----------
    controls : pl.DataFrame
        Control estimates; the true-effect column is optional
    estimates : pl.DataFrame
        Estimates of interest
    log_rr, se_log_rr, true_log_rr : str
        Column names, shared by both frames
    ci_width : float, default=0.95
        Coverage of the calibrated intervals
    alternative : {"two-sided", "greater", "less"}
        Alternative hypothesis of the p-values

    Returns
    -------
    pl.DataFrame
        `estimates` with calibratedP, calibratedLogRr, calibratedLogLb,
        calibratedLogUb and calibratedSeLogRr columns appended
    """
    model = _fit_for(
        controls_from_frame(
            controls, log_rr=log_rr, se_log_rr=se_log_rr, true_log_rr=true_log_rr
        )
    )
    result = _calibrate(
        model,
        estimates[log_rr].cast(pl.Float64).to_numpy(),
        estimates[se_log_rr].cast(pl.Float64).to_numpy(),
        ci_width,
        alternative,
    )
    return estimates.with_columns(
        pl.Series("calibratedP", [r.p for r in result.p], dtype=pl.Float64),
        pl.Series("calibratedLogRr", [r.log_rr for r in result.intervals], dtype=pl.Float64),
        pl.Series("calibratedLogLb", [r.log_lb for r in result.intervals], dtype=pl.Float64),
        pl.Series("calibratedLogUb", [r.log_ub for r in result.intervals], dtype=pl.Float64),
        pl.Series(
            "calibratedSeLogRr", [r.se_log_rr for r in result.intervals], dtype=pl.Float64
        ),
    )
