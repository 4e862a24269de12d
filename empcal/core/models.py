"""
empcal.core.models
==================

Fitted systematic-error models and calibrated results.

Three model variants are produced by the fitters and consumed by calibration:

- `NullModel`: a single Gaussian (mean, sd) of systematic error, independent
  of the true effect size.
- `McmcNullModel`: posterior draws of the null distribution.
- `ErrorModel`: mean and spread of the systematic error as functions of the
  true effect size.

`SystematicErrorModel` is the union of the three; calibration functions
dispatch on it explicitly.

Examples
--------
>>> from empcal.core.models import NullModel, null_to_error_model, error_model_to_null
>>> null = NullModel(mean=0.1, sd=0.2)
>>> model = null_to_error_model(null)
>>> model.mean_slope, model.sd_slope
(1.0, 0.0)
>>> error_model_to_null(model) == null
True
"""

from __future__ import annotations
import math
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple, Union

import numpy as np
from scipy.stats import norm

from empcal.core.names import LogRr, Parameterization, SeLogRr


@dataclass(frozen=True)
class NullModel:
    """Maximum-likelihood null distribution of systematic error."""

    mean: float
    sd: float

    def __post_init__(self) -> None:
        if not math.isfinite(self.mean):
            raise ValueError(f"Null mean must be finite, got {self.mean}")
        if not (self.sd >= 0) or math.isinf(self.sd):
            raise ValueError(f"Null sd must be finite and non-negative, got {self.sd}")

    @property
    def precision(self) -> float:
        return math.inf if self.sd == 0 else 1.0 / self.sd**2


@dataclass(frozen=True, eq=False)
class McmcNullModel:
    """Posterior draws of the null distribution.

    Attributes:
        chain: (n, 2) array of (mean, precision) draws after burn-in
        acceptance_rate: Fraction of accepted proposals
        ci_width: Width of the equal-tailed credible intervals

    The chain is exposed as is so that autocorrelation and mixing can be
    inspected by the caller.
    """

    chain: np.ndarray
    acceptance_rate: float
    ci_width: float = 0.95

    def __post_init__(self) -> None:
        chain = np.asarray(self.chain, dtype=float)
        if chain.ndim != 2 or chain.shape[1] != 2 or chain.shape[0] == 0:
            raise ValueError("chain must be a non-empty (n, 2) array")
        object.__setattr__(self, "chain", chain)

    def _interval(self, draws: np.ndarray) -> Tuple[float, float]:
        tail = (1.0 - self.ci_width) / 2.0
        lo, hi = np.quantile(draws, [tail, 1.0 - tail])
        return float(lo), float(hi)

    @property
    def n_draws(self) -> int:
        return int(self.chain.shape[0])

    @property
    def mean_draws(self) -> np.ndarray:
        return self.chain[:, 0]

    @property
    def precision_draws(self) -> np.ndarray:
        return self.chain[:, 1]

    @property
    def sd_draws(self) -> np.ndarray:
        return 1.0 / np.sqrt(self.chain[:, 1])

    @property
    def mean(self) -> float:
        """Posterior median of the mean."""
        return float(np.median(self.mean_draws))

    @property
    def precision(self) -> float:
        """Posterior median of the precision."""
        return float(np.median(self.precision_draws))

    @property
    def sd(self) -> float:
        return 1.0 / math.sqrt(self.precision)

    @property
    def mean_ci(self) -> Tuple[float, float]:
        return self._interval(self.mean_draws)

    @property
    def precision_ci(self) -> Tuple[float, float]:
        return self._interval(self.precision_draws)

    @property
    def sd_ci(self) -> Tuple[float, float]:
        lo, hi = self.precision_ci
        return 1.0 / math.sqrt(hi), 1.0 / math.sqrt(lo)

    def to_null(self) -> NullModel:
        """Collapse the posterior to its point estimate."""
        return NullModel(mean=self.mean, sd=self.sd)


@dataclass(frozen=True)
class ErrorModel:
    """Systematic error as a function of the true log effect `t`.

    mean(t) = mean_intercept + mean_slope * t

    spread(t) = sd_intercept + sd_slope * |t|          (linear)
    spread(t) = exp(sd_intercept + sd_slope * t)       (legacy)

    A model whose mean slope is 1 and spread slope is 0 has systematic error
    that does not change with the true effect.
    """

    mean_intercept: float
    mean_slope: float
    sd_intercept: float
    sd_slope: float
    parameterization: Parameterization = Parameterization.LINEAR
    covariance: Optional[np.ndarray] = field(default=None, compare=False, repr=False)

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "parameterization", Parameterization(self.parameterization)
        )

    @classmethod
    def from_theta(
        cls,
        theta: np.ndarray,
        parameterization: Parameterization = Parameterization.LINEAR,
        covariance: Optional[np.ndarray] = None,
    ) -> "ErrorModel":
        a, b, c, d = (float(x) for x in theta)
        return cls(a, b, c, d, parameterization, covariance)

    def as_theta(self) -> np.ndarray:
        return np.array(
            [self.mean_intercept, self.mean_slope, self.sd_intercept, self.sd_slope]
        )

    def mean_at(self, true_log_rr: Union[float, np.ndarray]) -> np.ndarray:
        return self.mean_intercept + self.mean_slope * np.asarray(true_log_rr)

    def spread_at(self, true_log_rr: Union[float, np.ndarray]) -> np.ndarray:
        t = np.asarray(true_log_rr, dtype=float)
        if self.parameterization is Parameterization.LEGACY:
            return np.exp(self.sd_intercept + self.sd_slope * t)
        return self.sd_intercept + self.sd_slope * np.abs(t)

    def coefficient_cis(self, ci_width: float = 0.95) -> Dict[str, Tuple[float, float]]:
        """Wald intervals of the coefficients from the estimated covariance."""
        if self.covariance is None:
            raise ValueError("Model was fitted without a covariance estimate")
        z = float(norm.ppf(1 - (1 - ci_width) / 2))
        se = np.sqrt(np.diag(self.covariance))
        names = ("mean_intercept", "mean_slope", "sd_intercept", "sd_slope")
        return {
            name: (float(est - z * s), float(est + z * s))
            for name, est, s in zip(names, self.as_theta(), se)
        }


SystematicErrorModel = Union[NullModel, ErrorModel, McmcNullModel]


@dataclass(frozen=True)
class CalibratedP:
    """A calibrated p-value; bounds are set for posterior-sampled nulls only."""

    p: float
    lb: Optional[float] = None
    ub: Optional[float] = None


@dataclass(frozen=True)
class PosteriorSummary:
    """Posterior median of a derived quantity with its credible interval."""

    estimate: float
    lb: float
    ub: float


@dataclass(frozen=True)
class CalibratedInterval:
    """A calibrated estimate and confidence interval on the log scale."""

    log_rr: LogRr
    log_lb: LogRr
    log_ub: LogRr
    se_log_rr: SeLogRr

    @property
    def rr(self) -> float:
        return math.exp(self.log_rr)

    @property
    def lb(self) -> float:
        return math.exp(self.log_lb)

    @property
    def ub(self) -> float:
        return math.exp(self.log_ub)


def null_to_error_model(
    null: Union[NullModel, McmcNullModel],
    mean_slope: float = 1.0,
    sd_slope: float = 0.0,
) -> ErrorModel:
    """Express a null distribution as an error model.

    The default slopes describe systematic error that is the same at every
    true effect size: the expected estimate moves one-for-one with the true
    effect and the spread stays constant.

    A mean slope of 0 would instead describe estimates that ignore the true
    effect, which cannot be inverted into a calibrated interval, so the mean
    slope defaults to 1. This is the convention of the R EmpiricalCalibration
    package (`convertNullToErrorModel`).
    """
    if isinstance(null, McmcNullModel):
        null = null.to_null()
    return ErrorModel(
        mean_intercept=null.mean,
        mean_slope=float(mean_slope),
        sd_intercept=null.sd,
        sd_slope=float(sd_slope),
    )


def error_model_to_null(model: ErrorModel) -> NullModel:
    """Recover the null distribution (systematic error at a true effect of 0)."""
    if model.parameterization is Parameterization.LEGACY:
        return NullModel(mean=model.mean_intercept, sd=math.exp(model.sd_intercept))
    return NullModel(mean=model.mean_intercept, sd=model.sd_intercept)
