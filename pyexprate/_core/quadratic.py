"""
Least-squares quadratic fit via the normal equations.
"""

import numpy as np

from .householder import householder_solve


def quadratic_fit(xs: np.ndarray, ys: np.ndarray) -> np.ndarray:
    """
    Fit y = c0 + c1 x + c2 x**2 to a single dataset.

    Parameters
    ----------
    xs, ys : ndarray, shape (n,)
        Sample positions and values

    Returns
    -------
    coefs : ndarray, shape (3,)
        (c0, c1, c2). Fewer than three distinct x values leave the normal
        equations singular, which shows up as non-finite coefficients.
    """
    xs = np.asarray(xs, dtype=np.float64)
    ys = np.asarray(ys, dtype=np.float64)
    x_sq = xs * xs

    # Upper triangle from the power sums, lower triangle mirrored
    A = np.zeros((3, 3))
    A[0, 0] = len(xs)
    A[0, 1] = np.sum(xs)
    A[0, 2] = np.sum(x_sq)
    A[1, 2] = np.sum(x_sq * xs)
    A[2, 2] = np.sum(x_sq * x_sq)
    A[1, 1] = A[0, 2]
    A[1, 0] = A[0, 1]
    A[2, 0] = A[0, 2]
    A[2, 1] = A[1, 2]

    y = np.array([np.sum(ys), np.sum(xs * ys), np.sum(x_sq * ys)])

    return householder_solve(A, y)
