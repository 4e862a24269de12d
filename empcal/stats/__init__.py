"""
Statistical methods for estimating and correcting systematic error.

The layout separates generic numerics from the systematic-error methods
built on top of them:

1. **Common** (empcal.stats.common):
   Scheme-agnostic numerics: the Gaussian convolution density, the
   Nelder-Mead driver and finite-difference Hessian, and the seeded MCMC driver.

2. **Methods** (empcal.stats.methods):
   Objectives and fitters of the null model and the error model (point
   estimates and likelihood profiles), and the calibration functions that
   apply a fitted model to a new estimate.

Example:
--------
>>> # Generic numerics
>>> from empcal.stats.common.gaussian import gaussian_convolution
>>> round(gaussian_convolution(0.0, 0.0, 0.3, 0.4), 4)
0.7979

>>> # Method-level fit
>>> from empcal.stats.methods.null.core import fit_null
>>> null = fit_null([0.1, 0.3, -0.1, 0.2], [0.1, 0.1, 0.1, 0.1])  # doctest: +SKIP
"""
