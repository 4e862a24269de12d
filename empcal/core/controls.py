"""
empcal.core.controls
====================

Validated inputs for model fitting.

- `ControlEstimates`: aligned arrays of (log_rr, se_log_rr, true_log_rr) for
  negative and positive controls.
- `LikelihoodProfile`: a tabulated log-likelihood curve of one control, used
  instead of the normal approximation when a control carries little information.

Examples
--------
>>> from empcal.core.controls import ControlEstimates, LikelihoodProfile
>>> controls = ControlEstimates.from_sequences([0.1, 0.2], [0.1, 0.1])
>>> controls.n, controls.n_negative
(2, 2)
>>> profile = LikelihoodProfile([-1.0, 0.0, 1.0], [-2.0, 0.0, -2.0])
>>> profile.classify()
'regular'
>>> float(profile.log_likelihood_at(0.5))
-1.0
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Literal, Optional, Sequence, Union

import numpy as np

from empcal.core.errors import InvalidControlsError
from empcal.core.settings import DEFAULT_PROFILE_SETTINGS, ProfileSettings

ArrayLike = Union[Sequence[float], np.ndarray]
ProfileKind = Literal["regular", "point_mass", "flat", "empty", "unbracketed"]


def _as_float_array(values: ArrayLike, name: str) -> np.ndarray:
    arr = np.atleast_1d(np.asarray(values, dtype=float))
    if arr.ndim != 1:
        raise InvalidControlsError(f"{name} must be one-dimensional")
    return arr


@dataclass(frozen=True, eq=False)
class ControlEstimates:
    """Effect estimates of a set of controls, on the log scale.

    Order carries no meaning. Standard errors must be finite and non-negative;
    a zero standard error marks an exact estimate.

    Attributes:
        log_rr: Estimated log relative risks
        se_log_rr: Standard errors of the estimates
        true_log_rr: True log relative risks (0 for negative controls)
    """

    log_rr: np.ndarray
    se_log_rr: np.ndarray
    true_log_rr: np.ndarray

    @classmethod
    def from_sequences(
        cls,
        log_rr: ArrayLike,
        se_log_rr: ArrayLike,
        true_log_rr: Optional[ArrayLike] = None,
    ) -> "ControlEstimates":
        """Build and validate controls; `true_log_rr` defaults to all zeros."""
        lr = _as_float_array(log_rr, "log_rr")
        se = _as_float_array(se_log_rr, "se_log_rr")
        tr = (
            np.zeros_like(lr)
            if true_log_rr is None
            else _as_float_array(true_log_rr, "true_log_rr")
        )

        if lr.size == 0:
            raise InvalidControlsError("At least one control estimate is required")
        if not (lr.size == se.size == tr.size):
            raise InvalidControlsError(
                f"Length mismatch: log_rr={lr.size}, se_log_rr={se.size}, "
                f"true_log_rr={tr.size}"
            )
        if not np.all(np.isfinite(lr)):
            raise InvalidControlsError("log_rr must be finite")
        if not np.all(np.isfinite(se)):
            raise InvalidControlsError("se_log_rr must be finite")
        if np.any(se < 0):
            raise InvalidControlsError("se_log_rr cannot be negative")
        if not np.all(np.isfinite(tr)):
            raise InvalidControlsError("true_log_rr must be finite")

        return cls(log_rr=lr, se_log_rr=se, true_log_rr=tr)

    @property
    def n(self) -> int:
        return int(self.log_rr.size)

    @property
    def n_negative(self) -> int:
        return int(np.count_nonzero(self.true_log_rr == 0))

    def distinct_true_effects(self) -> np.ndarray:
        return np.unique(self.true_log_rr)


@dataclass(frozen=True, init=False, eq=False)
class LikelihoodProfile:
    """Log-likelihood of one control tabulated over a grid of log effects.

    Only finite grid entries are kept, and values are shifted so that the
    maximum is 0; a profile is only ever used up to a constant.

    Attributes:
        points: Strictly increasing log-effect grid
        values: Log-likelihood at each grid point
    """

    points: np.ndarray
    values: np.ndarray

    def __init__(self, points: ArrayLike, values: ArrayLike) -> None:
        p = _as_float_array(points, "points")
        v = _as_float_array(values, "values")
        if p.size != v.size:
            raise InvalidControlsError(
                f"Profile has {p.size} points but {v.size} values"
            )
        if not np.all(np.isfinite(p)):
            raise InvalidControlsError("Profile points must be finite")
        if p.size > 1 and not np.all(np.diff(p) > 0):
            raise InvalidControlsError("Profile points must be strictly increasing")
        if np.any(np.isnan(v)) or np.any(v == np.inf):
            raise InvalidControlsError("Profile values must be finite or -inf")

        keep = np.isfinite(v)
        p, v = p[keep], v[keep]
        if v.size:
            v = v - v.max()

        object.__setattr__(self, "points", p)
        object.__setattr__(self, "values", v)

    @property
    def lower(self) -> float:
        return float(self.points[0])

    @property
    def upper(self) -> float:
        return float(self.points[-1])

    @property
    def mode(self) -> float:
        """Grid point with the highest log-likelihood."""
        return float(self.points[int(np.argmax(self.values))])

    def classify(
        self, settings: ProfileSettings = DEFAULT_PROFILE_SETTINGS
    ) -> ProfileKind:
        """Return how the profile can be used.

        - empty: no finite entries
        - point_mass: all mass at a single grid point
        - flat: no variation in log-likelihood (uninformative)
        - unbracketed: maximum on the grid boundary
        - regular: interior maximum
        """
        if self.values.size == 0:
            return "empty"
        if self.values.size == 1:
            return "point_mass"
        if self.values.max() - self.values.min() < settings.flat_tolerance:
            return "flat"
        i_max = int(np.argmax(self.values))
        if i_max in (0, self.values.size - 1):
            return "unbracketed"
        return "regular"

    def log_likelihood_at(self, x: ArrayLike) -> np.ndarray:
        """Interpolate the profile at `x`.

        Piecewise linear inside the grid. Outside, the edge slope is extended
        but never allowed to rise away from the grid.
        """
        x = np.asarray(x, dtype=float)
        p, v = self.points, self.values
        if p.size == 1:
            return np.where(x == p[0], v[0], -np.inf)

        out = np.interp(x, p, v)
        slope_lo = max((v[1] - v[0]) / (p[1] - p[0]), 0.0)
        slope_hi = min((v[-1] - v[-2]) / (p[-1] - p[-2]), 0.0)
        out = np.where(x < p[0], v[0] + slope_lo * (x - p[0]), out)
        out = np.where(x > p[-1], v[-1] + slope_hi * (x - p[-1]), out)
        return out
