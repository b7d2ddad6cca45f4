"""
Reference implementations (SciPy) for cross-checking the core.

Numerically equivalent to the core within fitting tolerance.
"""

from .scipy_fit import (
    solve_3x3_reference,
    fit_quadratic_reference,
    fit_exponential_reference,
)

__all__ = [
    "solve_3x3_reference",
    "fit_quadratic_reference",
    "fit_exponential_reference",
]
