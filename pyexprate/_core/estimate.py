"""
Initial parameter estimation for y = A + B exp(lambda x).

The exponential is matched to the quadratic fit at the mean x:
equal value, slope and curvature at the expansion point.
"""

import numpy as np
from dataclasses import dataclass

from .quadratic import quadratic_fit


@dataclass
class ExponentialParameters:
    """Current (A, B, lambda) of one fit, with its score."""
    A: float
    B: float
    lam: float
    sum_sq_err: float

    @property
    def tau(self) -> float:
        """Time constant 1/lambda (inf for lambda == 0)."""
        with np.errstate(divide='ignore'):
            return float(np.float64(1.0) / np.float64(self.lam))

    def is_finite(self) -> bool:
        return bool(np.isfinite([self.A, self.B, self.lam, self.sum_sq_err]).all())


def exp_sum_sq_error(xs: np.ndarray, ys: np.ndarray,
                     A: float, B: float, lam: float) -> float:
    """Sum of (A + B exp(lam x) - y)**2 over the dataset."""
    with np.errstate(over='ignore', invalid='ignore'):
        err = A + B * np.exp(lam * xs) - ys
        return float(np.sum(err * err))


def estimate_exp_parameters(xs: np.ndarray, ys: np.ndarray) -> ExponentialParameters:
    """
    Estimate (A, B, lambda) from a quadratic fit.

    Parameters
    ----------
    xs, ys : ndarray, shape (n,)
        Single dataset

    Returns
    -------
    ExponentialParameters
        Initial guess and its sum of squared errors. A vanishing slope at
        the mean x makes lambda non-finite; this is left for the caller's
        validity checks.
    """
    xs = np.asarray(xs, dtype=np.float64)
    ys = np.asarray(ys, dtype=np.float64)
    c0, c1, c2 = quadratic_fit(xs, ys)
    x = np.mean(xs)

    with np.errstate(divide='ignore', invalid='ignore', over='ignore'):
        slope = c1 + 2.0 * c2 * x
        lam = 2.0 * c2 / slope
        the_exp = np.exp(lam * x)
        B = slope / (lam * the_exp)
        A = c0 + c1 * x + c2 * x * x - B * the_exp

    return ExponentialParameters(
        A=float(A),
        B=float(B),
        lam=float(lam),
        sum_sq_err=exp_sum_sq_error(xs, ys, A, B, lam),
    )
