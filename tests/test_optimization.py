"""Nelder-Mead wrapper and finite-difference Hessian."""

from dataclasses import replace

import numpy as np
import pytest

from empcal.core.errors import ConvergenceError
from empcal.core.settings import DEFAULT_FIT_SETTINGS
from empcal.stats.common.optimization import (
    finite_difference_hessian,
    initial_simplex,
    minimize_objective,
)


def test_initial_simplex_shape_and_steps():
    sim = initial_simplex([0.0, 10.0], 0.1)
    assert sim.shape == (3, 2)
    assert sim[1, 0] == pytest.approx(0.1)
    assert sim[2, 1] == pytest.approx(11.0)


def test_minimizes_quadratic():
    result = minimize_objective(lambda x: (x[0] - 1.0) ** 2 + (x[1] + 2.0) ** 2, [0.0, 0.0])
    assert result.x == pytest.approx([1.0, -2.0], abs=1e-4)


def test_respects_bounds():
    result = minimize_objective(
        lambda x: (x[0] - 3.0) ** 2, [0.0], bounds=[(None, 1.0)]
    )
    assert result.x[0] <= 1.0
    assert result.x[0] == pytest.approx(1.0, abs=1e-4)


def test_iteration_budget_exhausted_raises():
    settings = replace(DEFAULT_FIT_SETTINGS, max_iterations=2)
    with pytest.raises(ConvergenceError) as info:
        minimize_objective(lambda x: (x[0] - 5.0) ** 2 + (x[1] - 5.0) ** 2, [0.0, 0.0], settings=settings)
    assert info.value.iterations is not None


def test_penalty_plateau_raises():
    with pytest.raises(ConvergenceError) as info:
        minimize_objective(lambda x: DEFAULT_FIT_SETTINGS.penalty, [0.0, 0.0])
    assert info.value.reason == "infeasible"


def test_hessian_of_quadratic():
    H = finite_difference_hessian(
        lambda x: x[0] ** 2 + 3.0 * x[1] ** 2 + x[0] * x[1], np.array([0.3, -0.2])
    )
    assert H == pytest.approx(np.array([[2.0, 1.0], [1.0, 6.0]]), abs=1e-3)


def _bounded_quadratic(x):
    return DEFAULT_FIT_SETTINGS.penalty if x[1] < 0 else x[0] ** 2 + x[1] ** 2


def test_hessian_shrinks_step_near_penalty():
    H = finite_difference_hessian(
        _bounded_quadratic, np.array([0.0, 5e-6]), penalty=DEFAULT_FIT_SETTINGS.penalty
    )
    assert H == pytest.approx(np.eye(2) * 2.0, abs=1e-2)


def test_hessian_on_penalty_boundary_is_undefined():
    H = finite_difference_hessian(
        _bounded_quadratic, np.array([0.0, 0.0]), penalty=DEFAULT_FIT_SETTINGS.penalty
    )
    assert np.all(np.isnan(H))
