"""
Exponential rate fitting with a NumPy-style interface.

This is the user-facing API: broadcasting wrappers around the core
primitives plus the batch fit itself.
"""

import numpy as np
import pandas as pd
from typing import Optional, Tuple, Union

from ._backends import get_backend, BackendBase, BatchFitResult
from ._core import (
    ExponentialParameters,
    FitConfiguration,
    FitStatus,
    NewtonStep,
    estimate_exp_parameters,
    exp_newton_step,
    exp_sum_sq_error,
    householder_solve,
    quadratic_fit,
)
from ._utils import check_matrix, check_pairs, check_vector


def solve_3x3(matrix, rhs) -> np.ndarray:
    """
    Solve ``matrix @ x = rhs`` by Householder triangularization.

    Parameters
    ----------
    matrix : array_like, shape (..., 3, 3)
        Coefficient matrices (row-major)
    rhs : array_like, shape (..., 3)
        Right-hand sides; leading dimensions broadcast against ``matrix``

    Returns
    -------
    ndarray, shape (..., 3)
        Solutions. Singular systems give inf/nan entries, never an error.

    Examples
    --------
    >>> solve_3x3([[1, 0, 0], [0, 2, 0], [0, 0, 3]], [5, -4, 6])
    array([ 5., -2.,  2.])
    """
    matrix = check_matrix(matrix)
    rhs = check_vector(rhs, name='rhs', length=3)
    batch = np.broadcast_shapes(matrix.shape[:-2], rhs.shape[:-1])
    matrix = np.broadcast_to(matrix, batch + (3, 3))
    rhs = np.broadcast_to(rhs, batch + (3,))

    x = np.empty(batch + (3,))
    for index in np.ndindex(*batch):
        x[index] = householder_solve(matrix[index], rhs[index])
    return x


def fit_quadratic(xs, ys) -> np.ndarray:
    """
    Least-squares coefficients for y = c0 + c1 x + c2 x**2.

    Parameters
    ----------
    xs, ys : array_like, shape (..., n)
        Samples along the last axis; leading dimensions broadcast

    Returns
    -------
    ndarray, shape (..., 3)
        (c0, c1, c2) for each dataset

    Examples
    --------
    >>> xs = np.arange(50.0)
    >>> fit_quadratic(xs, 5 + 3 * xs + 4 * xs**2).round(6)
    array([5., 3., 4.])
    """
    xs, ys, batch = check_pairs(xs, ys)
    coefs = np.empty(batch + (3,))
    for index in np.ndindex(*batch):
        coefs[index] = quadratic_fit(xs[index], ys[index])
    return coefs


def sum_sq_error(xs, ys, A, B, lam) -> np.ndarray:
    """
    Sum of squared residuals of y = A + B exp(lam x).

    ``A``, ``B`` and ``lam`` broadcast against the leading dimensions of
    the data.
    """
    xs, ys, batch = check_pairs(xs, ys)
    batch = np.broadcast_shapes(batch, np.shape(A), np.shape(B), np.shape(lam))
    xs = np.broadcast_to(xs, batch + xs.shape[-1:])
    ys = np.broadcast_to(ys, batch + ys.shape[-1:])
    A, B, lam = (np.broadcast_to(np.asarray(p, dtype=np.float64), batch) for p in (A, B, lam))

    result = np.empty(batch)
    for index in np.ndindex(*batch):
        result[index] = exp_sum_sq_error(xs[index], ys[index], A[index], B[index], lam[index])
    return result


def estimate_parameters(xs, ys) -> Tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
    """
    Initial guess for y = A + B exp(lam x) from a quadratic fit.

    Returns
    -------
    A, B, lam, sum_sq_err : ndarray
        One value per dataset (batch shape)
    """
    xs, ys, batch = check_pairs(xs, ys)
    A, B, lam, sse = (np.empty(batch) for _ in range(4))
    for index in np.ndindex(*batch):
        p = estimate_exp_parameters(xs[index], ys[index])
        A[index], B[index], lam[index], sse[index] = p.A, p.B, p.lam, p.sum_sq_err
    return A, B, lam, sse


def newton_step(xs, ys, A: float, B: float, lam: float,
                trust_radius: float = 0.1) -> Tuple[ExponentialParameters, NewtonStep]:
    """
    One guarded Newton step for a single dataset.

    Parameters
    ----------
    xs, ys : array_like, shape (n,)
        Single dataset
    A, B, lam : float
        Current parameters
    trust_radius : float
        Maximum relative change of any parameter

    Returns
    -------
    params : ExponentialParameters
        Updated parameters and their sum of squared errors
    step : NewtonStep
        Unguarded step, applied scale and guard flag
    """
    xs, ys, batch = check_pairs(xs, ys)
    if batch:
        raise ValueError("newton_step works on a single dataset; xs and ys must be 1-dimensional")
    if not trust_radius > 0:
        raise ValueError(f"trust_radius must be positive, got {trust_radius}")

    params = ExponentialParameters(A=float(A), B=float(B), lam=float(lam), sum_sq_err=np.nan)
    step = exp_newton_step(xs, ys, params, trust_radius)
    return params, step


class ExponentialFit:
    """
    Batch of fits to y = A + B exp(x / tau).

    Examples
    --------
    >>> xs = np.arange(100) / 10
    >>> ys = 5 + 4 * np.exp(xs / -10) + np.random.randn(100) * 0.01
    >>> fit = fit_exponential(xs, ys)
    >>> fit.A, fit.B, fit.tau          # Fitted parameters
    >>> fit.is_bad                      # Failed fits
    >>> fit.to_frame()                  # One row per dataset
    >>> fit.summary()                   # Text report
    """

    def __init__(self, result: BatchFitResult, config: FitConfiguration, backend: BackendBase):
        self._result = result
        self.config = config
        self.backend = backend

    @property
    def A(self) -> np.ndarray:
        return self._result.A

    @property
    def B(self) -> np.ndarray:
        return self._result.B

    @property
    def tau(self) -> np.ndarray:
        return self._result.tau

    @property
    def lam(self) -> np.ndarray:
        """Rate constant 1/tau (nan for unprocessed slots)."""
        return self._result.lam

    @property
    def is_bad(self) -> np.ndarray:
        return self._result.is_bad

    @property
    def status(self) -> np.ndarray:
        """FitStatus per dataset (object array)."""
        return self._result.status

    @property
    def sum_sq_err(self) -> np.ndarray:
        return self._result.sum_sq_err

    @property
    def n_rounds(self) -> np.ndarray:
        return self._result.n_rounds

    @property
    def shape(self) -> Tuple[int, ...]:
        return self._result.shape

    @property
    def n_fits(self) -> int:
        return self._result.size

    @property
    def n_completed(self) -> int:
        """Number of datasets whose slots were written."""
        return self._result.n_completed

    @property
    def aborted(self) -> bool:
        """True if ``run_each_fit`` stopped the batch early."""
        return self._result.aborted

    def masked(self) -> Tuple[np.ma.MaskedArray, np.ma.MaskedArray, np.ma.MaskedArray]:
        """(A, B, tau) as masked arrays, masked where the fit is bad."""
        return tuple(np.ma.masked_array(p, mask=self.is_bad) for p in (self.A, self.B, self.tau))

    def predict(self, x) -> np.ndarray:
        """
        Evaluate every fitted curve at ``x``.

        Returns
        -------
        ndarray, shape (*batch_shape, *np.shape(x))
        """
        x = np.asarray(x, dtype=np.float64)
        expand = (Ellipsis,) + (np.newaxis,) * x.ndim
        with np.errstate(over='ignore', invalid='ignore'):
            return self.A[expand] + self.B[expand] * np.exp(x * self.lam[expand])

    def to_frame(self) -> pd.DataFrame:
        """One row per dataset, in batch (C) order."""
        return pd.DataFrame({
            'A': self.A.ravel(),
            'B': self.B.ravel(),
            'tau': self.tau.ravel(),
            'lambda': self.lam.ravel(),
            'is_bad': self.is_bad.ravel(),
            'status': [s.value for s in self.status.ravel()],
            'sum_sq_err': self.sum_sq_err.ravel(),
            'n_rounds': self.n_rounds.ravel(),
        })

    def summary(self, max_rows: int = 20):
        """Print a summary of the batch."""
        frame = self.to_frame()
        counts = frame['status'].value_counts()

        print()
        print("=" * 80)
        print("EXPONENTIAL FIT RESULTS   y = A + B exp(x / tau)")
        print("=" * 80)
        print()
        print(f"Datasets:       {self.n_fits} (batch shape {self.shape})")
        print(f"Completed:      {self.n_completed}" + ("  (stopped early)" if self.aborted else ""))
        print(f"Bad fits:       {int(np.sum(self.is_bad))}")
        print()
        print("Status:")
        for name, count in counts.items():
            print(f"  {name:<20} {count:>8d}")
        print()

        print(f"{'#':>6} {'A':>14} {'B':>14} {'tau':>14} {'SSE':>12} {'rounds':>7}  status")
        print("-" * 80)
        for i, row in frame.head(max_rows).iterrows():
            print(f"{i:>6d} {row['A']:>14.6g} {row['B']:>14.6g} {row['tau']:>14.6g} "
                  f"{row['sum_sq_err']:>12.4g} {row['n_rounds']:>7d}  {row['status']}")
        if len(frame) > max_rows:
            print(f"  ... {len(frame) - max_rows} more")
        print("-" * 80)
        print()
        print(f"Backend: {self.backend.name}")
        print(f"trust_radius={self.config.trust_radius}, iterations={self.config.iterations}, "
              f"threshold={self.config.threshold}")
        print("=" * 80)
        print()

    def __repr__(self):
        return (f"ExponentialFit(n_fits={self.n_fits}, completed={self.n_completed}, "
                f"bad={int(np.sum(self.is_bad))})")


def fit_exponential(
    xs,
    ys,
    config: Optional[FitConfiguration] = None,
    out: Optional[Tuple[np.ndarray, np.ndarray, np.ndarray]] = None,
    backend: Union[str, BackendBase] = 'cpu',
    **options
) -> ExponentialFit:
    """
    Fit y = A + B exp(x / tau) to one or many datasets.

    Parameters
    ----------
    xs, ys : array_like, shape (..., n)
        Samples along the last axis. Leading dimensions broadcast, so a
        single ``xs`` row can be shared by every row of ``ys``.
    config : FitConfiguration, optional
        Base configuration; keyword ``options`` override it
    out : tuple of ndarray, optional
        Caller-owned (A, B, tau) arrays with the batch shape, written in
        place. Slots of datasets that are never fitted are left untouched.
    backend : str or BackendBase
        'cpu', 'threaded', 'pytorch' or 'auto'
    **options
        trust_radius, iterations, threshold, min_lambda, max_lambda,
        run_each_iteration, run_each_fit. Unknown names are ignored.

    Returns
    -------
    ExponentialFit
        Fitted parameters, failure flags and per-fit diagnostics

    Examples
    --------
    >>> xs = np.arange(100, 130, dtype=float)
    >>> ys = 150 + 10 * np.exp(xs / -10)
    >>> fit = fit_exponential(xs, ys)
    >>> fit.tau                          # close to -10
    >>> fit = fit_exponential(xs, np.stack([ys, 2 * ys]), iterations=100)
    >>> fit.to_frame()
    """
    config = FitConfiguration.from_options(options, base=config)
    xs, ys, batch = check_pairs(xs, ys)
    backend = get_backend(backend)

    result = BatchFitResult.empty(batch, out=out)
    backend.fit_batch(xs, ys, config, result)
    return ExponentialFit(result, config, backend)


def fit_exp_rate(xs, ys, *args, **options):
    """
    Fit exponentials and return masked (A, B, tau).

    Options may be given as keywords or as a flat key/value sequence.

    Examples
    --------
    >>> xs = np.arange(100) / 10
    >>> A, B, tau = fit_exp_rate(xs, 5 + 4 * np.exp(xs / -10))
    >>> A, B, tau = fit_exp_rate(xs, ys, 'iterations', 100, 'threshold', 1e-6)
    """
    config = FitConfiguration.from_pairs(args) if args else None
    return fit_exponential(xs, ys, config=config, **options).masked()
