"""
3x3 linear solver via Householder triangularization.

Workhorse for the quadratic fit and every Newton step.
"""

import numpy as np


def householder_solve(A: np.ndarray, y: np.ndarray) -> np.ndarray:
    """
    Solve A x = y for a single 3x3 system.

    Works on private copies of ``A`` and ``y``; the caller's arrays are
    never modified.

    Parameters
    ----------
    A : ndarray, shape (3, 3)
        Coefficient matrix (row-major, ``A[row, col]``)
    y : ndarray, shape (3,)
        Right-hand side

    Returns
    -------
    x : ndarray, shape (3,)
        Solution. A zero pivot after triangularization gives inf/nan
        entries instead of raising.

    Notes
    -----
    Algorithm:
    1. For each pivot column n, reflect the active submatrix
       A[n:, n:] and y[n:] with v = A[n:, n] - alpha e1, where
       alpha = -sign(A[n, n]) ||A[n:, n]||
    2. Skip the reflection when ||v||^2 == 0 (column already triangular)
    3. Back-substitute from the last row to the first
    """
    A = np.array(A, dtype=np.float64)
    y = np.array(y, dtype=np.float64)
    x = np.empty(3, dtype=np.float64)

    with np.errstate(divide='ignore', invalid='ignore', over='ignore'):
        # Upper-triangularize
        for n in range(3):
            v = A[n:, n].copy()
            alpha = np.sqrt(np.dot(v, v))
            if A[n, n] > 0:
                alpha = -alpha
            v[0] -= alpha

            beta = np.dot(v, v)
            if beta == 0:
                continue

            # Reflect each remaining column, then the right-hand side
            for j in range(n, 3):
                gamma = np.dot(v, A[n:, j])
                A[n:, j] -= 2 * gamma / beta * v
            gamma = np.dot(v, y[n:])
            y[n:] -= 2 * gamma / beta * v

        # Back-substitution
        for j in range(2, -1, -1):
            acc = y[j]
            for k in range(2, j, -1):
                acc -= A[j, k] * x[k]
            x[j] = acc / A[j, j]

    return x
