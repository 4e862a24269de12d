"""
empcal.core.settings
====================

Explicit configuration for optimizers, samplers and calibration routines.

Nothing here is global mutable state: every fitting function takes its
settings as an argument and falls back to the frozen defaults below.

Examples
--------
>>> from dataclasses import replace
>>> from empcal.core.settings import DEFAULT_FIT_SETTINGS
>>> strict = replace(DEFAULT_FIT_SETTINGS, penalty=1e6)
>>> strict.penalty
1000000.0
"""

from __future__ import annotations
from dataclasses import dataclass


@dataclass(frozen=True)
class FitSettings:
    """Settings shared by the maximum-likelihood fitters.

    Attributes:
        penalty: Finite value returned by objectives instead of NaN/Inf
        spread_threshold: Spread below which the systematic error is treated as absent
        max_iterations: Iteration budget of the Nelder-Mead search
        xatol: Absolute parameter tolerance for convergence
        fatol: Absolute objective tolerance for convergence
        initial_step: Minimum edge length of the initial simplex
    """

    penalty: float = 99999.0
    spread_threshold: float = 1e-6
    max_iterations: int = 5000
    xatol: float = 1e-6
    fatol: float = 1e-9
    initial_step: float = 0.1


@dataclass(frozen=True)
class McmcSettings:
    """Settings of the Bayesian null fit.

    The Gamma(prior_shape, prior_rate) prior on the precision is nearly
    uninformative; it only keeps the precision from running off to infinity.
    """

    n_walkers: int = 16
    n_steps: int = 5000
    burn_in: int = 1000
    thin: int = 1
    prior_shape: float = 1e-4
    prior_rate: float = 1e-4
    init_scatter: float = 1e-2
    ci_width: float = 0.95


@dataclass(frozen=True)
class ProfileSettings:
    """Numerical integration over likelihood profiles.

    Attributes:
        grid_points: Points of the integration grid per control
        window_width: Half-width of the integration window, in modelled spreads
        flat_tolerance: Log-likelihood range below which a profile counts as flat
    """

    grid_points: int = 64
    window_width: float = 6.0
    flat_tolerance: float = 1e-8


@dataclass(frozen=True)
class CalibrationSettings:
    """Root finding for calibrated confidence intervals."""

    search_limit: float = 50.0
    scan_points: int = 2001
    xtol: float = 1e-10


DEFAULT_FIT_SETTINGS = FitSettings()
DEFAULT_MCMC_SETTINGS = McmcSettings()
DEFAULT_PROFILE_SETTINGS = ProfileSettings()
DEFAULT_CALIBRATION_SETTINGS = CalibrationSettings()
