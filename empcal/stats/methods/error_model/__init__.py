"""
empcal.stats.methods.error_model
================================

Systematic error whose mean and spread depend on the true effect size,
fitted on negative and positive controls from point estimates or from
likelihood profiles.
"""

from empcal.stats.methods.error_model.core import (
    error_model_neg_log_likelihood,
    fit_error_model,
    legacy_error_model_neg_log_likelihood,
)
from empcal.stats.methods.error_model.profile import (
    fit_error_model_from_profiles,
    fit_null_from_profiles,
    profile_error_model_neg_log_likelihood,
)

__all__ = [
    "error_model_neg_log_likelihood",
    "fit_error_model",
    "fit_error_model_from_profiles",
    "fit_null_from_profiles",
    "legacy_error_model_neg_log_likelihood",
    "profile_error_model_neg_log_likelihood",
]
