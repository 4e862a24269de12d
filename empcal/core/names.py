"""
empcal.core.names
=================

Typed names shared across the package.

- `Parameterization`: an Enum for the spread functions of an error model.
- `LogRr`, `SeLogRr`: NewType wrappers for clarity.
- `Alternative`: literal tags for the alternative hypothesis of a p-value.

Examples
--------
>>> from empcal.core.names import Parameterization
>>> Parameterization.LINEAR.value
'linear'
>>> Parameterization("legacy") is Parameterization.LEGACY
True
"""

from __future__ import annotations
from enum import Enum
from typing import Literal, NewType


class Parameterization(str, Enum):
    """How the spread of the systematic error depends on the true effect.

    - LINEAR: spread = sd_intercept + sd_slope * |true_log_rr|
    - LEGACY: spread = exp(sd_intercept + sd_slope * true_log_rr)
    """

    LINEAR = "linear"
    LEGACY = "legacy"


# Typed aliases for log-scale quantities (thin wrappers over float).
LogRr = NewType("LogRr", float)
SeLogRr = NewType("SeLogRr", float)

Alternative = Literal["two-sided", "greater", "less"]
