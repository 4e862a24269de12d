"""
empcal.stats.methods.error_model.profile
========================================

Error-model fitting from likelihood profiles.

Controls with few outcome events have log-likelihood curves that are far
from quadratic, so summarising them by an estimate and a standard error
biases the fit. Here each control contributes the marginal likelihood of its
own tabulated profile under the modelled systematic error:

    L_i = integral exp(ll_i(x)) N(x; mean_i, spread_i^2) dx

The integral runs over mean_i +- window_width * spread_i. The grid is the union
of equally spaced points and the profile's own grid points inside the window.
The profile is interpolated linearly, which preserves monotonicity, and summed
with trapezoid weights on the log scale. Beyond the tabulated grid the profile
is extrapolated with its edge slope, never rising away from the grid, so a
profile that is still high at its boundary is treated as uninformative past it
rather than inventing a drop.

Degenerate profiles:

- point mass: the control is an exact estimate at that point
- flat or empty: no information; the control contributes nothing
- maximum on the boundary: used as is, with the conservative extrapolation

Each raises a `DegenerateProfileWarning` when the fit is prepared.
"""

from __future__ import annotations
import logging
import math
import warnings
from typing import List, Optional, Sequence, Tuple, Union

import numpy as np
from scipy.special import logsumexp
from scipy.stats import norm

from empcal.core.controls import ArrayLike, LikelihoodProfile, ProfileKind
from empcal.core.errors import (
    DegenerateProfileWarning,
    IdentifiabilityError,
    InsufficientDataError,
    InvalidControlsError,
)
from empcal.core.models import ErrorModel, NullModel, error_model_to_null
from empcal.core.names import Parameterization
from empcal.core.settings import (
    DEFAULT_FIT_SETTINGS,
    DEFAULT_PROFILE_SETTINGS,
    FitSettings,
    ProfileSettings,
)
from empcal.stats.methods.error_model.core import (
    NO_SHIFT_SLOPES,
    check_identifiable,
    fit_theta,
    start_for,
)

logger = logging.getLogger(__name__)

_UNINFORMATIVE = ("empty", "flat")


def classify_profiles(
    profiles: Sequence[LikelihoodProfile],
    settings: ProfileSettings = DEFAULT_PROFILE_SETTINGS,
    warn: bool = True,
) -> List[ProfileKind]:
    """Classify each profile, warning about degenerate ones."""
    kinds: List[ProfileKind] = []
    for i, profile in enumerate(profiles):
        kind = profile.classify(settings)
        if warn and kind in _UNINFORMATIVE:
            warnings.warn(
                f"Likelihood profile {i} is {kind}; the control is ignored",
                DegenerateProfileWarning,
                stacklevel=3,
            )
        elif warn and kind == "point_mass":
            warnings.warn(
                f"Likelihood profile {i} has a single point at {profile.mode:.4g}; "
                "treating it as an exact estimate",
                DegenerateProfileWarning,
                stacklevel=3,
            )
        elif warn and kind == "unbracketed":
            warnings.warn(
                f"Likelihood profile {i} peaks at its boundary "
                f"[{profile.lower:.4g}, {profile.upper:.4g}]; "
                "extrapolating without a drop",
                DegenerateProfileWarning,
                stacklevel=3,
            )
        kinds.append(kind)
    return kinds


def profile_log_likelihood(
    profile: LikelihoodProfile,
    kind: ProfileKind,
    mean: float,
    spread: float,
    fit_settings: FitSettings = DEFAULT_FIT_SETTINGS,
    settings: ProfileSettings = DEFAULT_PROFILE_SETTINGS,
) -> float:
    """
    Log marginal likelihood of one control under N(mean, spread^2) systematic error.

    Args:
        profile: The control's likelihood profile
        kind: Its classification (see `LikelihoodProfile.classify`)
        mean: Mean of the systematic error at the control's true effect
        spread: Spread of the systematic error at the control's true effect
        fit_settings: Spread threshold
        settings: Integration window and grid size

    Returns:
        The log likelihood (up to a per-profile constant); -inf for a negative
        spread, 0 for an uninformative profile.
    """
    if not spread >= 0:
        return -math.inf
    if kind in _UNINFORMATIVE:
        return 0.0
    if kind == "point_mass":
        with np.errstate(all="ignore"):
            return float(norm.logpdf(profile.points[0], loc=mean, scale=spread))
    if spread < fit_settings.spread_threshold:
        return float(profile.log_likelihood_at(mean))

    lo = mean - settings.window_width * spread
    hi = mean + settings.window_width * spread
    inside = profile.points[(profile.points > lo) & (profile.points < hi)]
    x = np.union1d(np.linspace(lo, hi, settings.grid_points), inside)
    dx = np.diff(x)
    weights = np.zeros_like(x)
    weights[:-1] += dx / 2.0
    weights[1:] += dx / 2.0

    terms = (
        profile.log_likelihood_at(x)
        + norm.logpdf(x, loc=mean, scale=spread)
        + np.log(weights)
    )
    return float(logsumexp(terms))


def _mean_and_spread(
    theta: Sequence[float],
    true_log_rr: np.ndarray,
    parameterization: Parameterization,
) -> Tuple[np.ndarray, np.ndarray]:
    a, b, c, d = (float(x) for x in theta)
    mean = a + b * true_log_rr
    if parameterization is Parameterization.LEGACY:
        with np.errstate(over="ignore"):
            spread = np.exp(c + d * true_log_rr)
    else:
        spread = c + d * np.abs(true_log_rr)
    return mean, spread


def profile_error_model_neg_log_likelihood(
    theta: Sequence[float],
    profiles: Sequence[LikelihoodProfile],
    true_log_rr: np.ndarray,
    settings: FitSettings = DEFAULT_FIT_SETTINGS,
    profile_settings: ProfileSettings = DEFAULT_PROFILE_SETTINGS,
    parameterization: Union[Parameterization, str] = Parameterization.LINEAR,
    kinds: Optional[Sequence[ProfileKind]] = None,
) -> float:
    """
    Negative log-likelihood of an error model given likelihood profiles.

    Args:
        theta: (mean_intercept, mean_slope, sd_intercept, sd_slope)
        profiles: One likelihood profile per control
        true_log_rr: True log effects of the controls
        settings: Penalty and spread threshold
        profile_settings: Integration settings
        parameterization: Spread function
        kinds: Precomputed profile classifications

    Returns:
        The negative log-likelihood, or `settings.penalty` when any spread is
        negative or the total is not finite.
    """
    true_log_rr = np.asarray(true_log_rr, dtype=float)
    if len(profiles) == 0:
        return settings.penalty
    if kinds is None:
        kinds = classify_profiles(profiles, profile_settings, warn=False)

    mean, spread = _mean_and_spread(
        theta, true_log_rr, Parameterization(parameterization)
    )
    result = 0.0
    for profile, kind, m, s in zip(profiles, kinds, mean, spread):
        result -= profile_log_likelihood(
            profile, kind, float(m), float(s), settings, profile_settings
        )
        if not math.isfinite(result):
            logger.debug("Non-finite profile likelihood at theta=%s; using penalty", theta)
            return settings.penalty
    return result


def fit_error_model_from_profiles(
    profiles: Sequence[LikelihoodProfile],
    true_log_rr: ArrayLike,
    *,
    parameterization: Union[Parameterization, str] = Parameterization.LINEAR,
    settings: Optional[FitSettings] = None,
    profile_settings: Optional[ProfileSettings] = None,
    estimate_covariance: bool = False,
    assume_no_bias_shift: bool = False,
) -> ErrorModel:
    """
    Fit the systematic error model from likelihood profiles of the controls.

    Identifiability rules and the optimizer are those of `fit_error_model`.

    Raises:
        InvalidControlsError: Profiles and true effects are misaligned
        InsufficientDataError: No informative profile
        IdentifiabilityError: See `fit_error_model`
        ConvergenceError: The optimizer did not converge
    """
    settings = settings or DEFAULT_FIT_SETTINGS
    profile_settings = profile_settings or DEFAULT_PROFILE_SETTINGS
    parameterization = Parameterization(parameterization)
    profiles = list(profiles)
    true_log_rr = np.atleast_1d(np.asarray(true_log_rr, dtype=float))
    if len(profiles) != true_log_rr.size:
        raise InvalidControlsError(
            f"Length mismatch: {len(profiles)} profiles, {true_log_rr.size} true effects"
        )
    if not np.all(np.isfinite(true_log_rr)):
        raise InvalidControlsError("true_log_rr must be finite")

    kinds = classify_profiles(profiles, profile_settings)
    if all(kind in _UNINFORMATIVE for kind in kinds):
        raise InsufficientDataError("No informative likelihood profile was supplied")

    fit_slopes = check_identifiable(true_log_rr)
    if not fit_slopes and not assume_no_bias_shift:
        raise IdentifiabilityError(
            "At least 2 distinct true effects are required to fit the slopes; "
            "pass assume_no_bias_shift=True to fit the intercepts only"
        )

    def objective(theta: np.ndarray) -> float:
        return profile_error_model_neg_log_likelihood(
            theta,
            profiles,
            true_log_rr,
            settings,
            profile_settings,
            parameterization,
            kinds,
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
        "Fitted %s error model on %d likelihood profiles: %s",
        parameterization.value,
        len(profiles),
        np.array2string(theta, precision=4),
    )
    return model


def fit_null_from_profiles(
    profiles: Sequence[LikelihoodProfile],
    settings: Optional[FitSettings] = None,
    profile_settings: Optional[ProfileSettings] = None,
) -> NullModel:
    """
    Fit the null distribution from likelihood profiles of negative controls.

    Raises:
        InsufficientDataError: Fewer than 2 profiles, or none informative
        ConvergenceError: The optimizer did not converge
    """
    profiles = list(profiles)
    if len(profiles) < 2:
        raise InsufficientDataError(
            f"At least 2 negative controls are required, got {len(profiles)}"
        )
    model = fit_error_model_from_profiles(
        profiles,
        np.zeros(len(profiles)),
        settings=settings,
        profile_settings=profile_settings,
        assume_no_bias_shift=True,
    )
    return error_model_to_null(model)
