"""Error-model fitting from point estimates."""

import math

import numpy as np
import pytest

from empcal.core.errors import IdentifiabilityError, InvalidControlsError
from empcal.core.models import error_model_to_null
from empcal.core.names import Parameterization
from empcal.core.settings import DEFAULT_FIT_SETTINGS
from empcal.stats.methods.error_model import (
    error_model_neg_log_likelihood,
    fit_error_model,
    legacy_error_model_neg_log_likelihood,
)
from empcal.stats.methods.null import fit_null


def test_objective_penalises_negative_spread(mixed_controls):
    log_rr, se, true_log_rr = mixed_controls
    value = error_model_neg_log_likelihood((0.2, 0.9, -0.1, 0.0), log_rr, se, true_log_rr)
    assert value == DEFAULT_FIT_SETTINGS.penalty


def test_negative_slope_penalised_only_where_spread_goes_negative(mixed_controls):
    log_rr, se, true_log_rr = mixed_controls
    # spread at log(4) is 0.15 - 0.05 * 1.386 > 0
    assert error_model_neg_log_likelihood(
        (0.2, 0.9, 0.15, -0.05), log_rr, se, true_log_rr
    ) < DEFAULT_FIT_SETTINGS.penalty
    # spread at log(4) is 0.15 - 0.2 * 1.386 < 0
    assert error_model_neg_log_likelihood(
        (0.2, 0.9, 0.15, -0.2), log_rr, se, true_log_rr
    ) == DEFAULT_FIT_SETTINGS.penalty


def test_objective_reduces_to_null_for_no_shift_slopes(negative_controls):
    from empcal.stats.methods.null import null_neg_log_likelihood

    log_rr, se = negative_controls
    a = error_model_neg_log_likelihood((0.1, 1.0, 0.2, 0.0), log_rr, se, np.zeros(log_rr.size))
    b = null_neg_log_likelihood((0.1, 25.0), log_rr, se)
    assert a == pytest.approx(b)


def test_legacy_objective_never_penalises_spread(mixed_controls):
    log_rr, se, true_log_rr = mixed_controls
    value = legacy_error_model_neg_log_likelihood((0.2, 0.9, -3.0, -1.0), log_rr, se, true_log_rr)
    assert math.isfinite(value)
    assert value < DEFAULT_FIT_SETTINGS.penalty


def test_fit_recovers_coefficients(mixed_controls):
    log_rr, se, true_log_rr = mixed_controls
    model = fit_error_model(log_rr, se, true_log_rr)
    assert model.parameterization is Parameterization.LINEAR
    assert model.mean_intercept == pytest.approx(0.2, abs=0.08)
    assert model.mean_slope == pytest.approx(0.9, abs=0.15)
    assert model.sd_intercept == pytest.approx(0.15, abs=0.08)
    assert model.covariance is None


def test_legacy_fit(mixed_controls):
    log_rr, se, true_log_rr = mixed_controls
    model = fit_error_model(log_rr, se, true_log_rr, parameterization="legacy")
    assert model.parameterization is Parameterization.LEGACY
    assert model.mean_intercept == pytest.approx(0.2, abs=0.08)
    assert float(model.spread_at(0.0)) == pytest.approx(0.15, abs=0.08)
    assert error_model_to_null(model).sd == pytest.approx(float(model.spread_at(0.0)))


def test_covariance_estimate(mixed_controls):
    log_rr, se, true_log_rr = mixed_controls
    model = fit_error_model(log_rr, se, true_log_rr, estimate_covariance=True)
    assert model.covariance.shape == (4, 4)
    variances = np.diag(model.covariance)
    assert np.all(np.isfinite(variances))
    assert np.all(variances > 0)
    for name, (lo, hi) in model.coefficient_cis(0.95).items():
        assert lo <= getattr(model, name) <= hi


def test_negative_controls_only_requires_opt_in(negative_controls):
    log_rr, se = negative_controls
    with pytest.raises(IdentifiabilityError):
        fit_error_model(log_rr, se, np.zeros(log_rr.size))


def test_no_bias_shift_matches_null_fit(negative_controls):
    log_rr, se = negative_controls
    model = fit_error_model(log_rr, se, np.zeros(log_rr.size), assume_no_bias_shift=True)
    null = fit_null(log_rr, se)
    assert (model.mean_slope, model.sd_slope) == (1.0, 0.0)
    assert model.mean_intercept == pytest.approx(null.mean, abs=1e-3)
    assert model.sd_intercept == pytest.approx(null.sd, abs=1e-3)


def test_no_bias_shift_covariance_fixes_slopes(negative_controls):
    log_rr, se = negative_controls
    model = fit_error_model(
        log_rr, se, np.zeros(log_rr.size), assume_no_bias_shift=True, estimate_covariance=True
    )
    assert model.covariance[1, 1] == 0.0
    assert model.covariance[3, 3] == 0.0
    assert model.covariance[0, 0] > 0.0


def test_positive_controls_only_are_not_identifiable():
    with pytest.raises(IdentifiabilityError):
        fit_error_model([0.7, 1.4], [0.1, 0.1], [np.log(2), np.log(4)])


def test_misaligned_controls():
    with pytest.raises(InvalidControlsError):
        fit_error_model([0.1, 0.2], [0.1, 0.1], [0.0])


def test_single_positive_control_keeps_intercepts(single_positive_controls):
    model = fit_error_model(*single_positive_controls)
    assert model.mean_intercept == pytest.approx(0.2, abs=0.1)
    assert model.sd_intercept == pytest.approx(0.2, abs=0.1)


def test_covariance_near_spread_boundary_is_finite_or_undefined(single_positive_controls):
    model = fit_error_model(*single_positive_controls, estimate_covariance=True)
    cov = model.covariance
    assert cov.shape == (4, 4)
    # Either every evaluation stayed feasible or the covariance is marked undefined.
    assert np.all(np.isfinite(cov)) or np.all(np.isnan(cov))
