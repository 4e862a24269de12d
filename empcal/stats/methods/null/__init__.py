"""
empcal.stats.methods.null
=========================

Null distribution of systematic error fitted on negative controls.
"""

from empcal.stats.methods.null.core import (
    fit_mcmc_null,
    fit_null,
    null_neg_log_likelihood,
    null_neg_log_posterior,
)

__all__ = [
    "fit_mcmc_null",
    "fit_null",
    "null_neg_log_likelihood",
    "null_neg_log_posterior",
]
