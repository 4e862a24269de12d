"""
empcal.stats.common.optimization
================================

Derivative-free minimization of (negative) log-likelihood objectives.

Objectives in this package never raise on infeasible parameters; they return
a large finite penalty instead. A simplex search copes with such plateaus
where gradient methods would not, so every fit goes through `minimize_objective`,
which wraps scipy's Nelder-Mead and turns a failed search into a
`ConvergenceError` rather than handing back an arbitrary last iterate.
"""

from __future__ import annotations
import logging
from typing import Any, Callable, Optional, Sequence, Tuple

import numpy as np
from scipy.optimize import OptimizeResult, minimize

from empcal.core.errors import ConvergenceError
from empcal.core.settings import DEFAULT_FIT_SETTINGS, FitSettings

logger = logging.getLogger(__name__)

Objective = Callable[..., float]


def initial_simplex(x0: Sequence[float], step: float) -> np.ndarray:
    """Return an (n+1, n) simplex around `x0`.

    Each vertex moves one coordinate by `step`, scaled up for coordinates
    larger than one in magnitude.
    """
    x0 = np.asarray(x0, dtype=float)
    sim = np.tile(x0, (x0.size + 1, 1))
    for i, xi in enumerate(x0):
        sim[i + 1, i] = xi + step * max(1.0, abs(xi))
    return sim


def minimize_objective(
    fn: Objective,
    x0: Sequence[float],
    *,
    args: Tuple[Any, ...] = (),
    settings: FitSettings = DEFAULT_FIT_SETTINGS,
    bounds: Optional[Sequence[Tuple[Optional[float], Optional[float]]]] = None,
) -> OptimizeResult:
    """
    Minimize `fn(x, *args)` with Nelder-Mead.

    Args:
        fn: Objective returning a finite float
        x0: Starting point
        args: Extra positional arguments passed to `fn`
        settings: Iteration budget and tolerances
        bounds: Optional box constraints per coordinate

    Returns:
        The scipy result of a converged search

    Raises:
        ConvergenceError: If the search ends without meeting the tolerances
    """
    x0 = np.asarray(x0, dtype=float)
    options = {
        "maxiter": settings.max_iterations,
        "maxfev": settings.max_iterations * (x0.size + 1),
        "xatol": settings.xatol,
        "fatol": settings.fatol,
        "initial_simplex": initial_simplex(x0, settings.initial_step),
    }
    result = minimize(fn, x0, args=args, method="Nelder-Mead", bounds=bounds, options=options)
    logger.debug(
        "Nelder-Mead finished: success=%s nit=%d nfev=%d fun=%.6g x=%s",
        result.success,
        result.nit,
        result.nfev,
        result.fun,
        np.array2string(result.x, precision=6),
    )
    if not result.success:
        raise ConvergenceError(
            f"Optimization did not converge after {result.nit} iterations: "
            f"{result.message}",
            iterations=int(result.nit),
            reason=str(result.message),
        )
    if result.fun >= settings.penalty:
        raise ConvergenceError(
            "Optimization converged to an infeasible region "
            f"(objective {result.fun:.6g} >= penalty {settings.penalty:.6g})",
            iterations=int(result.nit),
            reason="infeasible",
        )
    return result


def finite_difference_hessian(
    fn: Callable[[np.ndarray], float],
    x: Sequence[float],
    h: float = 1e-5,
    penalty: Optional[float] = None,
    min_h: float = 1e-8,
) -> np.ndarray:
    """
    Central finite-difference Hessian of `fn` at `x`.

    When `penalty` is given, a step that evaluates `fn` at or above it is
    retried at a tenth of its size, down to `min_h`. If no step stays clear
    of the penalty the Hessian is undefined and all entries are NaN.
    """
    x = np.asarray(x, dtype=float)
    n = x.size

    while h >= min_h:
        H = np.zeros((n, n))
        hit_penalty = False
        for i in range(n):
            for j in range(i, n):
                x_pp = x.copy(); x_pp[i] += h; x_pp[j] += h
                x_pm = x.copy(); x_pm[i] += h; x_pm[j] -= h
                x_mp = x.copy(); x_mp[i] -= h; x_mp[j] += h
                x_mm = x.copy(); x_mm[i] -= h; x_mm[j] -= h

                values = [fn(x_pp), fn(x_pm), fn(x_mp), fn(x_mm)]
                if penalty is not None and max(values) >= penalty:
                    hit_penalty = True
                    break
                H[i, j] = (values[0] - values[1] - values[2] + values[3]) / (4.0 * h * h)
                H[j, i] = H[i, j]
            if hit_penalty:
                break
        if not hit_penalty:
            return H
        logger.debug("Hessian step %.1e reaches the penalty at x=%s; shrinking", h, x)
        h /= 10.0

    return np.full((n, n), np.nan)
