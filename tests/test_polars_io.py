"""polars frame conversions."""

import math

import numpy as np
import polars as pl
import pytest

from empcal.backends.polars.io import (
    calibrated_intervals_to_frame,
    calibrated_p_to_frame,
    chain_to_frame,
    controls_from_frame,
    error_model_to_frame,
    profiles_from_frame,
)
from empcal.core.errors import InvalidControlsError
from empcal.core.models import CalibratedInterval, CalibratedP, ErrorModel, McmcNullModel


def test_controls_from_frame_drops_incomplete_rows(caplog):
    df = pl.DataFrame(
        {
            "logRr": [0.1, None, 0.3, float("nan")],
            "seLogRr": [0.1, 0.2, 0.3, 0.1],
            "trueLogRr": [0.0, 0.0, math.log(2), 0.0],
        }
    )
    with caplog.at_level("WARNING"):
        controls = controls_from_frame(df)
    assert controls.n == 2
    assert controls.true_log_rr.tolist() == pytest.approx([0.0, math.log(2)])
    assert "Dropping 2 control(s)" in caplog.text


def test_controls_from_frame_custom_columns():
    df = pl.DataFrame({"estimate": [0.1, 0.2], "se": [0.1, 0.1]})
    controls = controls_from_frame(df, log_rr="estimate", se_log_rr="se")
    assert controls.n_negative == 2


def test_controls_from_frame_missing_column():
    with pytest.raises(InvalidControlsError, match="seLogRr"):
        controls_from_frame(pl.DataFrame({"logRr": [0.1]}))


def test_profiles_from_frame_groups_and_sorts():
    df = pl.DataFrame(
        {
            "outcomeId": [7, 7, 7, 3, 3, 3],
            "point": [1.0, -1.0, 0.0, -1.0, 0.0, 1.0],
            "value": [-2.0, -2.0, 0.0, -1.0, -0.5, 0.0],
            "trueLogRr": [0.0, 0.0, 0.0, 0.5, 0.5, 0.5],
        }
    )
    profiles, truths = profiles_from_frame(df, true_log_rr="trueLogRr")
    assert len(profiles) == 2
    np.testing.assert_array_equal(profiles[0].points, [-1.0, 0.0, 1.0])
    assert profiles[0].classify() == "regular"
    assert profiles[1].classify() == "unbracketed"
    assert truths.tolist() == [0.0, 0.5]


def test_profiles_from_frame_rejects_varying_truth():
    df = pl.DataFrame(
        {
            "outcomeId": [1, 1],
            "point": [0.0, 1.0],
            "value": [0.0, -1.0],
            "trueLogRr": [0.0, 0.5],
        }
    )
    with pytest.raises(InvalidControlsError):
        profiles_from_frame(df, true_log_rr="trueLogRr")


def test_profiles_default_to_negative_controls():
    df = pl.DataFrame({"outcomeId": [1, 1, 2, 2], "point": [0.0, 1.0, 0.0, 1.0], "value": [0.0, -1.0, -1.0, 0.0]})
    _, truths = profiles_from_frame(df)
    assert truths.tolist() == [0.0, 0.0]


def test_chain_to_frame():
    model = McmcNullModel(chain=np.array([[0.1, 4.0], [0.2, 16.0]]), acceptance_rate=0.5)
    df = chain_to_frame(model)
    assert df.columns == ["draw", "mean", "precision", "sd"]
    assert df["sd"].to_list() == pytest.approx([0.5, 0.25])


def test_error_model_to_frame():
    plain = error_model_to_frame(ErrorModel(0.1, 0.9, 0.2, 0.05))
    assert plain.columns == ["parameter", "estimate", "parameterization"]
    assert plain["parameterization"].unique().to_list() == ["linear"]

    with_cov = error_model_to_frame(
        ErrorModel(0.1, 0.9, 0.2, 0.05, covariance=np.eye(4) * 1e-4)
    )
    assert {"lb", "ub"} <= set(with_cov.columns)
    assert (with_cov["lb"] < with_cov["estimate"]).all()


def test_calibrated_results_to_frame():
    intervals = calibrated_intervals_to_frame(
        [CalibratedInterval(log_rr=0.0, log_lb=-0.1, log_ub=0.1, se_log_rr=0.05)]
    )
    assert intervals["rr"].to_list() == pytest.approx([1.0])
    p = calibrated_p_to_frame([CalibratedP(p=0.2), CalibratedP(p=0.3, lb=0.1, ub=0.5)])
    assert p["lb"].to_list() == [None, 0.1]
