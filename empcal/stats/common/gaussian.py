"""
empcal.stats.common.gaussian
============================

Density of the difference of two independent Gaussians.

If X ~ N(mu1, sd1^2) and Y ~ N(mu2, sd2^2), then X - Y ~ N(mu1 - mu2,
sd1^2 + sd2^2), and the density of X - Y at 0 is

    (2 pi (sd1^2 + sd2^2))^(-1/2) exp(-(mu1 - mu2)^2 / (2 (sd1^2 + sd2^2)))

For a control with estimate mu1 and standard error sd1, this is the
likelihood of the estimate under systematic error N(mu2, sd2^2). The
expression is symmetric in swapping (mu1, sd1) with (mu2, sd2).

The log form is evaluated directly so that very unlikely observations do not
underflow to a zero density.
"""

from __future__ import annotations
import math
from typing import Union

import numpy as np

ArrayOrFloat = Union[float, np.ndarray]

_LOG_2PI = math.log(2.0 * math.pi)


def log_gaussian_convolution(
    mu1: ArrayOrFloat, mu2: ArrayOrFloat, sd1: ArrayOrFloat, sd2: ArrayOrFloat
) -> ArrayOrFloat:
    """
    Log density of N(mu1 - mu2, sd1^2 + sd2^2) at zero.

    Args:
        mu1, mu2: Means of the two Gaussians
        sd1, sd2: Standard deviations (>= 0)

    Returns:
        Log density; broadcasts over numpy arrays. With zero total variance the
        distribution is a point mass: +inf when mu1 == mu2, -inf otherwise.
    """
    var = np.square(sd1) + np.square(sd2)
    diff2 = np.square(np.subtract(mu1, mu2))
    with np.errstate(divide="ignore", invalid="ignore"):
        out = -0.5 * (_LOG_2PI + np.log(var)) - diff2 / (2.0 * var)
    # Point mass limit: the 0/0 case only arises when mu1 == mu2.
    out = np.where(var == 0, np.where(diff2 == 0, np.inf, -np.inf), out)
    if np.ndim(out) == 0:
        return float(out)
    return out


def gaussian_convolution(
    mu1: ArrayOrFloat, mu2: ArrayOrFloat, sd1: ArrayOrFloat, sd2: ArrayOrFloat
) -> ArrayOrFloat:
    """
    Density of N(mu1 - mu2, sd1^2 + sd2^2) at zero.

    Examples:
        >>> round(gaussian_convolution(0.0, 0.0, 0.3, 0.4), 4)
        0.7979
        >>> gaussian_convolution(1.0, 0.2, 0.1, 0.5) == gaussian_convolution(0.2, 1.0, 0.5, 0.1)
        True
    """
    return np.exp(log_gaussian_convolution(mu1, mu2, sd1, sd2))
