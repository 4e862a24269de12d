"""
Systematic-error methods.

This module contains the objectives and fitters that turn control estimates
into systematic-error models, and the calibration functions that apply them:

- `null`: effect-size-independent null distribution (maximum likelihood and
  posterior sampling)
- `error_model`: mean and spread of systematic error as functions of the
  true effect, from point estimates or from likelihood profiles
- `calibration`: calibrated p-values and confidence intervals
"""
