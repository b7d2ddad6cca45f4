"""
Utility functions.
"""

import numpy as np


def check_matrix(A, name='matrix', dtype=np.float64):
    """Validate a stack of 3x3 matrices."""
    A = np.asarray(A, dtype=dtype)
    if A.ndim < 2 or A.shape[-2:] != (3, 3):
        raise ValueError(f"{name} must have shape (..., 3, 3), got {A.shape}")
    return A


def check_vector(y, name='y', dtype=np.float64, length=None):
    """Validate array input whose last axis is the sample axis."""
    y = np.asarray(y, dtype=dtype)
    if y.ndim < 1:
        raise ValueError(f"{name} must be at least 1-dimensional")
    if length is not None and y.shape[-1] != length:
        raise ValueError(f"{name} must have last dimension {length}, got {y.shape[-1]}")
    if y.shape[-1] == 0:
        raise ValueError(f"{name} must contain at least one sample")
    return y


def check_pairs(xs, ys):
    """
    Validate and broadcast x/y data.

    Returns the broadcast arrays and the batch shape (leading dimensions).
    Non-finite values are allowed through: they produce bad fits, not errors.
    """
    xs = check_vector(xs, name='xs')
    ys = check_vector(ys, name='ys')
    if xs.shape[-1] != ys.shape[-1]:
        raise ValueError(
            f"xs and ys must have the same number of samples "
            f"({xs.shape[-1]} != {ys.shape[-1]})"
        )
    try:
        xs, ys = np.broadcast_arrays(xs, ys)
    except ValueError:
        raise ValueError(
            f"xs shape {xs.shape} cannot be broadcast against ys shape {ys.shape}"
        )
    return xs, ys, xs.shape[:-1]
