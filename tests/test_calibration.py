"""Calibrated p-values, confidence intervals and expected absolute systematic error."""

import math

import numpy as np
import pytest

from empcal.core.errors import CalibrationError
from empcal.core.models import (
    CalibratedInterval,
    CalibratedP,
    ErrorModel,
    McmcNullModel,
    NullModel,
    PosteriorSummary,
    error_model_to_null,
    null_to_error_model,
)
from empcal.stats.methods.calibration import (
    calibrate_confidence_interval,
    calibrate_p,
    compute_expected_absolute_systematic_error,
    compute_traditional_ci,
    compute_traditional_p,
)
from empcal.stats.methods.error_model import fit_error_model


@pytest.fixture()
def mcmc_null():
    rng = np.random.default_rng(3)
    chain = np.column_stack([rng.normal(0.1, 0.02, 4000), rng.gamma(50.0, 0.5, 4000)])
    return McmcNullModel(chain=chain, acceptance_rate=0.4)


def test_traditional_p_and_ci():
    assert compute_traditional_p(0.0, 0.1) == pytest.approx(1.0)
    assert compute_traditional_p(1.96 * 0.1, 0.1) == pytest.approx(0.05, abs=1e-3)
    lb, ub = compute_traditional_ci(0.5, 0.1)
    assert lb == pytest.approx(0.5 - 0.196, abs=1e-3)
    assert ub == pytest.approx(0.5 + 0.196, abs=1e-3)


def test_p_is_one_at_null_mean():
    result = calibrate_p(NullModel(mean=0.2, sd=0.1), 0.2, 0.05)
    assert isinstance(result, CalibratedP)
    assert result.p == pytest.approx(1.0)
    assert result.lb is None and result.ub is None


def test_systematic_error_inflates_p():
    calibrated = calibrate_p(NullModel(mean=0.0, sd=0.3), 0.5, 0.1).p
    assert calibrated > compute_traditional_p(0.5, 0.1)


def test_no_systematic_error_reduces_to_traditional():
    assert calibrate_p(NullModel(mean=0.0, sd=0.0), 0.3, 0.1).p == pytest.approx(
        compute_traditional_p(0.3, 0.1)
    )


def test_one_sided_p_values_sum_to_one():
    null = NullModel(mean=0.1, sd=0.2)
    greater = calibrate_p(null, 0.6, 0.1, alternative="greater").p
    less = calibrate_p(null, 0.6, 0.1, alternative="less").p
    assert greater + less == pytest.approx(1.0)
    assert greater < less


def test_vector_input_gives_list():
    results = calibrate_p(NullModel(mean=0.0, sd=0.1), [0.1, 0.5, 1.0], [0.1, 0.1, 0.1])
    assert isinstance(results, list)
    assert len(results) == 3
    assert results[0].p > results[1].p > results[2].p


def test_error_model_p_uses_null_at_true_effect():
    model = ErrorModel(0.1, 0.9, 0.2, 0.05)
    null = error_model_to_null(model)
    assert calibrate_p(model, 0.4, 0.1).p == pytest.approx(calibrate_p(null, 0.4, 0.1).p)


def test_mcmc_p_carries_credible_interval(mcmc_null):
    result = calibrate_p(mcmc_null, 0.5, 0.1)
    assert result.lb <= result.p <= result.ub
    assert result.lb < result.ub


def test_unknown_model_type_raises():
    with pytest.raises(TypeError):
        calibrate_p(object(), 0.1, 0.1)
    with pytest.raises(TypeError):
        calibrate_confidence_interval(object(), 0.1, 0.1)


def test_negative_se_raises():
    with pytest.raises(ValueError):
        calibrate_p(NullModel(mean=0.0, sd=0.1), 0.1, -0.1)


def test_null_model_interval_is_shifted_and_widened():
    result = calibrate_confidence_interval(NullModel(mean=0.1, sd=0.2), 0.5, 0.1)
    assert isinstance(result, CalibratedInterval)
    half_width = 1.959964 * math.sqrt(0.2**2 + 0.1**2)
    assert result.log_rr == pytest.approx(0.4, abs=1e-6)
    assert result.log_lb == pytest.approx(0.4 - half_width, abs=1e-5)
    assert result.log_ub == pytest.approx(0.4 + half_width, abs=1e-5)
    assert result.se_log_rr == pytest.approx(math.sqrt(0.05), abs=1e-5)


def test_error_model_interval_is_wider_than_wald():
    model = ErrorModel(0.1, 0.8, 0.15, 0.1)
    log_rr, se = math.log(0.7), 0.001
    result = calibrate_confidence_interval(model, log_rr, se)
    wald_lb, wald_ub = compute_traditional_ci(log_rr, se)
    assert result.log_ub - result.log_lb > wald_ub - wald_lb
    assert result.log_lb < result.log_rr < result.log_ub
    assert result.lb < result.rr < result.ub
    assert float(model.mean_at(result.log_rr)) == pytest.approx(log_rr, abs=1e-6)


def test_interval_contains_true_effect_at_matching_z():
    model = ErrorModel(0.0, 1.0, 0.1, 0.0)
    result = calibrate_confidence_interval(model, 0.3, 0.1, ci_width=0.9)
    assert result.log_lb < 0.3 < result.log_ub
    assert result.log_ub - result.log_lb == pytest.approx(
        2 * 1.644854 * math.sqrt(0.02), abs=1e-5
    )


def test_flat_mean_gives_unbounded_interval():
    model = ErrorModel(0.0, 0.01, 0.5, 0.0)
    result = calibrate_confidence_interval(model, 0.0, 0.1)
    assert result.log_lb == -math.inf
    assert result.log_ub == math.inf
    assert result.log_rr == pytest.approx(0.0, abs=1e-6)


def test_estimate_out_of_reach_raises():
    model = ErrorModel(100.0, 1.0, 0.1, 0.0)
    with pytest.raises(CalibrationError):
        calibrate_confidence_interval(model, 0.0, 0.1)


def test_zero_mean_slope_cannot_be_inverted():
    with pytest.raises(ValueError):
        calibrate_confidence_interval(ErrorModel(0.0, 0.0, 0.1, 0.0), 0.1, 0.1)


def test_vector_intervals(mcmc_null):
    results = calibrate_confidence_interval(mcmc_null, [0.2, 0.8], [0.1, 0.2])
    assert len(results) == 2
    assert results[0].log_rr < results[1].log_rr


def test_conversion_round_trip():
    null = NullModel(mean=0.12, sd=0.34)
    model = null_to_error_model(null)
    assert (model.mean_slope, model.sd_slope) == (1.0, 0.0)
    assert error_model_to_null(model) == null


def test_expected_absolute_systematic_error():
    assert compute_expected_absolute_systematic_error(NullModel(mean=0.0, sd=0.2)) == pytest.approx(
        0.2 * math.sqrt(2 / math.pi)
    )
    assert compute_expected_absolute_systematic_error(NullModel(mean=-0.3, sd=0.0)) == pytest.approx(0.3)
    # A large mean relative to the spread approaches |mean|.
    assert compute_expected_absolute_systematic_error(NullModel(mean=2.0, sd=0.01)) == pytest.approx(2.0)


def test_expected_absolute_systematic_error_of_error_model():
    model = ErrorModel(0.1, 0.9, 0.2, 0.05)
    assert compute_expected_absolute_systematic_error(model) == pytest.approx(
        compute_expected_absolute_systematic_error(error_model_to_null(model))
    )


def test_expected_absolute_systematic_error_of_posterior(mcmc_null):
    summary = compute_expected_absolute_systematic_error(mcmc_null)
    assert isinstance(summary, PosteriorSummary)
    assert summary.lb <= summary.estimate <= summary.ub


def test_interval_is_cut_off_where_spread_reaches_zero(caplog):
    # spread(t) = 0.18 - 0.13 |t| is negative beyond |t| = 0.18 / 0.13
    model = ErrorModel(0.21, 1.03, 0.18, -0.13)
    with caplog.at_level("WARNING"):
        result = calibrate_confidence_interval(model, 1.6, 0.1)
    assert result.log_rr == pytest.approx((1.6 - 0.21) / 1.03, abs=1e-6)
    assert result.log_lb == pytest.approx(1.148, abs=0.01)
    assert result.log_ub == pytest.approx(0.18 / 0.13, abs=1e-6)
    assert result.log_lb < result.log_rr < result.log_ub
    assert result.se_log_rr > 0
    assert "spread reaches zero" in caplog.text


def test_interval_with_negative_fitted_spread_slope(single_positive_controls):
    model = fit_error_model(*single_positive_controls)
    assert model.sd_slope < 0
    spread_zero = -model.sd_intercept / model.sd_slope
    log_rr = float(model.mean_at(0.95 * spread_zero))
    result = calibrate_confidence_interval(model, log_rr, 0.1)
    assert result.log_rr == pytest.approx(0.95 * spread_zero, abs=1e-6)
    assert result.log_lb < result.log_rr < result.log_ub
    assert result.log_ub == pytest.approx(spread_zero, abs=1e-6)
    assert math.isfinite(result.se_log_rr)
    assert result.se_log_rr > 0
