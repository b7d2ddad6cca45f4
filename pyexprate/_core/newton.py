"""
Guarded Newton step on the sum-of-squares objective.
"""

import numpy as np
from dataclasses import dataclass

from .householder import householder_solve
from .estimate import ExponentialParameters, exp_sum_sq_error


@dataclass
class NewtonStep:
    """Outcome of one guarded Newton step."""
    step: np.ndarray   # Unguarded (dA, dB, dlambda)
    scale: float       # Factor applied to the step, in (0, 1] for nonzero parameters
    guarded: bool      # True if the trust region shrank the step


def gradient_and_hessian(xs: np.ndarray, ys: np.ndarray, params: ExponentialParameters):
    """
    Negative gradient and Hessian of S/2, S = sum (A + B exp(lam x) - y)**2.

    Returns
    -------
    neg_gradient : ndarray, shape (3,)
    hessian : ndarray, shape (3, 3)
        Symmetric; upper triangle accumulated, lower triangle mirrored.
    """
    A, B, lam = params.A, params.B, params.lam

    with np.errstate(over='ignore', invalid='ignore'):
        the_exp = np.exp(lam * xs)
        dy = A + B * the_exp - ys
        b_exp = B * the_exp
        weird = b_exp + dy

        neg_gradient = -np.array([
            np.sum(dy),
            np.sum(dy * the_exp),
            np.sum(dy * xs * b_exp),
        ])

        H = np.zeros((3, 3))
        H[0, 0] = len(xs)
        H[0, 1] = np.sum(the_exp)
        H[0, 2] = np.sum(xs * b_exp)
        H[1, 1] = np.sum(the_exp * the_exp)
        H[1, 2] = np.sum(xs * the_exp * weird)
        H[2, 2] = np.sum(xs * xs * b_exp * weird)
    H[1, 0] = H[0, 1]
    H[2, 0] = H[0, 2]
    H[2, 1] = H[1, 2]

    return neg_gradient, H


def trust_region_scale(values: np.ndarray, step: np.ndarray, trust_radius: float) -> float:
    """
    Largest factor <= 1 keeping every |scale * step_i| <= trust_radius |value_i|.

    A single oversized component caps the whole step. Zero step components
    impose no limit; NaN ratios are ignored.
    """
    scale = 1.0
    with np.errstate(divide='ignore', invalid='ignore'):
        ratios = trust_radius * np.abs(values) / np.abs(step)
    for ratio in ratios:
        if ratio < scale:
            scale = float(ratio)
    return scale


def exp_newton_step(xs: np.ndarray, ys: np.ndarray, params: ExponentialParameters,
                    trust_radius: float = 0.1) -> NewtonStep:
    """
    Take one guarded Newton step, updating ``params`` in place.

    Parameters
    ----------
    xs, ys : ndarray, shape (n,)
        Single dataset
    params : ExponentialParameters
        Current estimate; A, B, lam and sum_sq_err are overwritten
    trust_radius : float
        Maximum step as a fraction of each parameter's magnitude

    Returns
    -------
    NewtonStep
        Unguarded step, applied scale and whether guarding triggered
    """
    xs = np.asarray(xs, dtype=np.float64)
    ys = np.asarray(ys, dtype=np.float64)

    neg_gradient, H = gradient_and_hessian(xs, ys, params)
    step = householder_solve(H, neg_gradient)

    values = np.array([params.A, params.B, params.lam])
    scale = trust_region_scale(values, step, trust_radius)

    with np.errstate(over='ignore', invalid='ignore'):
        values = values + step * scale
    params.A, params.B, params.lam = (float(v) for v in values)
    params.sum_sq_err = exp_sum_sq_error(xs, ys, params.A, params.B, params.lam)

    return NewtonStep(step=step, scale=scale, guarded=scale < 1.0)
