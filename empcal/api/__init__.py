"""
empcal.api - User-Friendly Facade
=================================

Off-the-shelf entry points that chain fitting and calibration for the common
study workflows, phrased in the terms of an observational study rather than
in terms of the underlying models.

Examples
--------
>>> from empcal.api.calibration import calibrate_against_negative_controls
>>> result = calibrate_against_negative_controls(
...     [0.1, 0.2, -0.05, 0.15], [0.1, 0.1, 0.12, 0.2], 0.7, 0.1
... )  # doctest: +SKIP
>>> result.p[0].p  # doctest: +SKIP

Unified Interface
-----------------
All workflows are in `empcal.api.calibration`:
- `calibrate_against_negative_controls()`: null distribution, p-values and intervals
- `calibrate_against_controls()`: error model from negative and positive controls
- `calibrate_frame()`: the same on polars DataFrames

Architecture
------------
This facade delegates to:
- empcal.core: Inputs, models and settings
- empcal.stats: Fitting and calibration
- empcal.backends: DataFrame conversions
"""
