"""
Core algorithms (backend-agnostic).
"""

from .householder import householder_solve
from .quadratic import quadratic_fit
from .estimate import ExponentialParameters, estimate_exp_parameters, exp_sum_sq_error
from .newton import NewtonStep, exp_newton_step
from .config import FitConfiguration
from .driver import FitStatus, IterationInfo, FitProgress, SingleFitResult, fit_single

__all__ = [
    "householder_solve",
    "quadratic_fit",
    "ExponentialParameters",
    "estimate_exp_parameters",
    "exp_sum_sq_error",
    "NewtonStep",
    "exp_newton_step",
    "FitConfiguration",
    "FitStatus",
    "IterationInfo",
    "FitProgress",
    "SingleFitResult",
    "fit_single",
]
