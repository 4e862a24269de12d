"""
empcal.stats.common.mcmc
========================

Seeded Markov-chain Monte Carlo over a log posterior.

Uses emcee's affine-invariant ensemble sampler. The sampler is insensitive to
the very different scales of its coordinates (a mean near zero next to a
precision in the hundreds), so no per-coordinate step tuning is needed.
Reproducibility comes from a private `RandomState`: the same seed gives the
same chain, and no seed draws fresh entropy.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional, Sequence, Tuple

import emcee
import numpy as np

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class ChainResult:
    """Flattened draws after burn-in and thinning, with the acceptance rate."""

    draws: np.ndarray
    acceptance_rate: float


def run_ensemble_sampler(
    log_prob: Callable[..., float],
    start: Sequence[float],
    *,
    args: Tuple[Any, ...] = (),
    n_walkers: int = 16,
    n_steps: int = 5000,
    burn_in: int = 1000,
    thin: int = 1,
    scatter: float = 1e-2,
    seed: Optional[int] = None,
) -> ChainResult:
    """
    Sample from `log_prob(theta, *args)` starting near `start`.

    Walkers are initialised at `start` perturbed by relative Gaussian noise
    of size `scatter`; perturbations that land where `log_prob` is not finite
    are redrawn.

    Args:
        log_prob: Log posterior (up to a constant); may return -inf
        start: A point with finite log posterior
        args: Extra positional arguments for `log_prob`
        n_walkers: Ensemble size (at least twice the dimension)
        n_steps: Steps per walker, including burn-in
        burn_in: Leading steps discarded per walker
        thin: Keep every `thin`-th step
        scatter: Relative spread of the initial ensemble
        seed: Seed of the sampler's random state

    Returns:
        ChainResult with draws of shape (n_kept, ndim)
    """
    start = np.asarray(start, dtype=float)
    ndim = start.size
    if n_walkers < 2 * ndim:
        raise ValueError(f"n_walkers must be at least {2 * ndim}, got {n_walkers}")
    if not 0 <= burn_in < n_steps:
        raise ValueError(f"burn_in must be in [0, n_steps), got {burn_in}")
    if not np.isfinite(log_prob(start, *args)):
        raise ValueError("log_prob must be finite at the starting point")

    random_state = np.random.RandomState(seed)
    scale = scatter * np.maximum(np.abs(start), 1.0)
    p0 = np.empty((n_walkers, ndim))
    for k in range(n_walkers):
        for _ in range(1000):
            proposal = start + scale * random_state.standard_normal(ndim)
            if np.isfinite(log_prob(proposal, *args)):
                break
        else:
            proposal = start
        p0[k] = proposal

    sampler = emcee.EnsembleSampler(n_walkers, ndim, log_prob, args=args)
    initial_state = emcee.State(p0, random_state=random_state.get_state())
    sampler.run_mcmc(initial_state, n_steps, progress=False)

    draws = sampler.get_chain(discard=burn_in, thin=thin, flat=True)
    acceptance_rate = float(np.mean(sampler.acceptance_fraction))
    logger.debug(
        "Ensemble sampler done: walkers=%d steps=%d draws=%d acceptance=%.3f",
        n_walkers,
        n_steps,
        draws.shape[0],
        acceptance_rate,
    )
    return ChainResult(draws=draws, acceptance_rate=acceptance_rate)
