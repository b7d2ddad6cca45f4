"""
SciPy/NumPy equivalents of the core primitives.

Uses LAPACK and MINPACK instead of the hand-written Householder solver
and guarded Newton iteration.
"""

import numpy as np
from dataclasses import dataclass
from numpy.polynomial import polynomial as P
from scipy import linalg, optimize

from .._core.estimate import estimate_exp_parameters, exp_sum_sq_error


@dataclass
class ReferenceFit:
    """Result of a reference exponential fit."""
    A: float
    B: float
    tau: float
    sum_sq_err: float
    nfev: int            # Function evaluations used by the optimizer


def solve_3x3_reference(matrix, rhs) -> np.ndarray:
    """Solve a 3x3 system with LAPACK (scipy.linalg.solve)."""
    return linalg.solve(np.asarray(matrix, dtype=np.float64),
                        np.asarray(rhs, dtype=np.float64))


def fit_quadratic_reference(xs, ys) -> np.ndarray:
    """(c0, c1, c2) via numpy.polynomial least squares."""
    return P.polyfit(np.asarray(xs, dtype=np.float64),
                     np.asarray(ys, dtype=np.float64), 2)


def fit_exponential_reference(xs, ys, **kwargs) -> ReferenceFit:
    """
    Fit y = A + B exp(x / tau) with scipy.optimize.curve_fit.

    The optimizer is seeded with the quadratic-based estimate, so any
    difference from the core comes from the iteration, not the start.

    Parameters
    ----------
    xs, ys : array_like, shape (n,)
        Single dataset
    **kwargs
        Passed to ``scipy.optimize.curve_fit``

    Returns
    -------
    ReferenceFit
    """
    xs = np.asarray(xs, dtype=np.float64)
    ys = np.asarray(ys, dtype=np.float64)
    start = estimate_exp_parameters(xs, ys)

    def model(x, A, B, lam):
        return A + B * np.exp(lam * x)

    kwargs.setdefault('maxfev', 10000)
    popt, _, info, _, _ = optimize.curve_fit(
        model, xs, ys, p0=[start.A, start.B, start.lam], full_output=True, **kwargs
    )
    A, B, lam = popt
    return ReferenceFit(
        A=float(A),
        B=float(B),
        tau=float(1.0 / lam),
        sum_sq_err=exp_sum_sq_error(xs, ys, A, B, lam),
        nfev=int(info['nfev']),
    )
