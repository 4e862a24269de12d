"""Shared simulated controls."""

from __future__ import annotations

import numpy as np
import pytest


def simulate(rng, true_log_rr, *, mean_intercept, mean_slope, sd_intercept, sd_slope):
    """Draw control estimates under a linear systematic error model."""
    true_log_rr = np.asarray(true_log_rr, dtype=float)
    se = rng.uniform(0.05, 0.2, size=true_log_rr.size)
    bias_mean = mean_intercept + mean_slope * true_log_rr
    bias_sd = sd_intercept + sd_slope * np.abs(true_log_rr)
    systematic = rng.normal(bias_mean, bias_sd)
    return rng.normal(systematic, se), se


@pytest.fixture()
def rng():
    return np.random.default_rng(20240611)


@pytest.fixture()
def negative_controls(rng):
    """200 negative controls with systematic error N(0.1, 0.2^2)."""
    return simulate(
        rng,
        np.zeros(200),
        mean_intercept=0.1,
        mean_slope=1.0,
        sd_intercept=0.2,
        sd_slope=0.0,
    )


@pytest.fixture()
def mixed_controls(rng):
    """Negative and positive controls under (0.2, 0.9, 0.15, 0.1)."""
    true_log_rr = np.concatenate(
        [np.zeros(100), np.full(100, np.log(2.0)), np.full(100, np.log(4.0))]
    )
    log_rr, se = simulate(
        rng,
        true_log_rr,
        mean_intercept=0.2,
        mean_slope=0.9,
        sd_intercept=0.15,
        sd_slope=0.1,
    )
    return log_rr, se, true_log_rr


@pytest.fixture()
def single_positive_controls(rng):
    """50 negative controls with systematic error N(0.2, 0.2^2) and one positive at log(4)."""
    log_rr, se = simulate(
        rng,
        np.zeros(50),
        mean_intercept=0.2,
        mean_slope=1.0,
        sd_intercept=0.2,
        sd_slope=0.0,
    )
    true_log_rr = np.append(np.zeros(50), np.log(4.0))
    return np.append(log_rr, 0.2 + np.log(4.0)), np.append(se, 0.1), true_log_rr
