"""
empcal.backends.polars.io
=========================

Conversions between polars DataFrames and empcal inputs and results.

- Sources: control estimates and likelihood profiles from long-format frames
- Sinks: MCMC chains, error-model coefficients and calibrated results as frames

No statistics live here, only reshaping.

Doctest (smoke):
>>> import polars as pl
>>> from empcal.backends.polars.io import controls_from_frame
>>> df = pl.DataFrame({"logRr": [0.1, -0.2], "seLogRr": [0.1, 0.2]})
>>> controls_from_frame(df).n
2
"""

from __future__ import annotations
import logging
from typing import List, Optional, Sequence, Tuple

import numpy as np
import polars as pl

from empcal.core.controls import ControlEstimates, LikelihoodProfile
from empcal.core.errors import InvalidControlsError
from empcal.core.models import (
    CalibratedInterval,
    CalibratedP,
    ErrorModel,
    McmcNullModel,
)

logger = logging.getLogger(__name__)


def _require(df: pl.DataFrame, *columns: str) -> None:
    missing = [c for c in columns if c not in df.columns]
    if missing:
        raise InvalidControlsError(f"Missing columns: {', '.join(missing)}")


def controls_from_frame(
    df: pl.DataFrame,
    *,
    log_rr: str = "logRr",
    se_log_rr: str = "seLogRr",
    true_log_rr: str = "trueLogRr",
) -> ControlEstimates:
    """
    Read control estimates from a frame.

    Rows with a missing or non-finite estimate or standard error are dropped
    with a warning. Without a `true_log_rr` column all controls are taken to
    be negative controls.
    """
    _require(df, log_rr, se_log_rr)
    has_true = true_log_rr in df.columns
    cols = [log_rr, se_log_rr] + ([true_log_rr] if has_true else [])

    usable = df.select(cols).filter(
        pl.all_horizontal(
            [pl.col(c).is_not_null() & pl.col(c).cast(pl.Float64).is_finite() for c in cols]
        )
    )
    dropped = df.height - usable.height
    if dropped:
        logger.warning("Dropping %d control(s) with missing or non-finite values", dropped)

    return ControlEstimates.from_sequences(
        usable[log_rr].cast(pl.Float64).to_numpy(),
        usable[se_log_rr].cast(pl.Float64).to_numpy(),
        usable[true_log_rr].cast(pl.Float64).to_numpy() if has_true else None,
    )


def profiles_from_frame(
    df: pl.DataFrame,
    *,
    group: str = "outcomeId",
    point: str = "point",
    value: str = "value",
    true_log_rr: Optional[str] = None,
) -> Tuple[List[LikelihoodProfile], np.ndarray]:
    """
    Read one likelihood profile per group from a long-format frame.

    Args:
        df: One row per (control, grid point)
        group: Column identifying the control
        point: Grid point column (log effect)
        value: Log-likelihood column
        true_log_rr: Optional column with the control's true log effect

    Returns:
        Profiles in order of first appearance, and their true log effects
        (zeros when `true_log_rr` is not given)
    """
    _require(df, group, point, value, *([true_log_rr] if true_log_rr else []))
    profiles: List[LikelihoodProfile] = []
    truths: List[float] = []
    for part in df.partition_by(group, maintain_order=True):
        part = part.sort(point)
        profiles.append(
            LikelihoodProfile(
                part[point].cast(pl.Float64).to_numpy(),
                part[value].cast(pl.Float64).fill_null(float("-inf")).to_numpy(),
            )
        )
        if true_log_rr:
            values = part[true_log_rr].unique()
            if values.len() != 1:
                raise InvalidControlsError(
                    f"{true_log_rr} must be constant within {group}={part[group][0]}"
                )
            truths.append(float(values[0]))
        else:
            truths.append(0.0)
    return profiles, np.asarray(truths, dtype=float)


def chain_to_frame(model: McmcNullModel) -> pl.DataFrame:
    """Posterior draws as a frame, for trace and autocorrelation inspection."""
    return pl.DataFrame(
        {
            "draw": np.arange(model.n_draws),
            "mean": model.mean_draws,
            "precision": model.precision_draws,
            "sd": model.sd_draws,
        }
    )


def error_model_to_frame(model: ErrorModel, ci_width: float = 0.95) -> pl.DataFrame:
    """Coefficients of an error model, with intervals when a covariance is known."""
    names = ["meanIntercept", "meanSlope", "sdIntercept", "sdSlope"]
    data = {"parameter": names, "estimate": model.as_theta().tolist()}
    if model.covariance is not None:
        cis = list(model.coefficient_cis(ci_width).values())
        data["lb"] = [lo for lo, _ in cis]
        data["ub"] = [hi for _, hi in cis]
    return pl.DataFrame(data).with_columns(
        pl.lit(model.parameterization.value).alias("parameterization")
    )


def calibrated_intervals_to_frame(results: Sequence[CalibratedInterval]) -> pl.DataFrame:
    return pl.DataFrame(
        {
            "logRr": [r.log_rr for r in results],
            "logLb": [r.log_lb for r in results],
            "logUb": [r.log_ub for r in results],
            "seLogRr": [r.se_log_rr for r in results],
        }
    ).with_columns(
        pl.col("logRr").exp().alias("rr"),
        pl.col("logLb").exp().alias("lb"),
        pl.col("logUb").exp().alias("ub"),
    )


def calibrated_p_to_frame(results: Sequence[CalibratedP]) -> pl.DataFrame:
    return pl.DataFrame(
        {
            "p": [r.p for r in results],
            "lb": [r.lb for r in results],
            "ub": [r.ub for r in results],
        },
        schema={"p": pl.Float64, "lb": pl.Float64, "ub": pl.Float64},
    )
