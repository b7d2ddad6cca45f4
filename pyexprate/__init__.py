"""
PyExpRate: robust least-squares fitting of y = A + B exp(x / tau).

Copyright (C) 2024 SGCX
Licensed under GPL-3.0
"""

__version__ = "1.0.0"

# Import main user-facing API
from .exprate import (
    solve_3x3,
    fit_quadratic,
    estimate_parameters,
    sum_sq_error,
    newton_step,
    fit_exponential,
    fit_exp_rate,
    ExponentialFit,
)
from ._core import FitConfiguration, FitStatus, IterationInfo, FitProgress

# Import backend utilities (for advanced users)
from ._backends import get_backend, list_available_backends

__all__ = [
    'solve_3x3',
    'fit_quadratic',
    'estimate_parameters',
    'sum_sq_error',
    'newton_step',
    'fit_exponential',
    'fit_exp_rate',
    'ExponentialFit',
    'FitConfiguration',
    'FitStatus',
    'IterationInfo',
    'FitProgress',
    'get_backend',
    'list_available_backends',
]
