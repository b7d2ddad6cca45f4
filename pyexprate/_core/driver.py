"""
Per-dataset fitting loop.

estimate -> guarded Newton iterations -> converged or failed.
Backends call ``fit_single`` once per dataset and own the batch loop.
"""

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import numpy as np

from .config import FitConfiguration
from .estimate import ExponentialParameters, estimate_exp_parameters
from .newton import exp_newton_step

logger = logging.getLogger(__name__)


class FitStatus(Enum):
    """Final state of one dataset's fit."""
    NOT_RUN = "not_run"                  # Slot never processed (batch stopped)
    CONVERGED = "converged"
    MAX_ITERATIONS = "max_iterations"
    LAMBDA_TOO_SMALL = "lambda_too_small"
    LAMBDA_TOO_LARGE = "lambda_too_large"
    NON_FINITE = "non_finite"            # lambda (or A, B, score) is inf/nan

    @property
    def is_bad(self) -> bool:
        return self is not FitStatus.CONVERGED


@dataclass
class IterationInfo:
    """Snapshot passed to ``run_each_iteration``."""
    A: float
    B: float
    lambda_: float
    round: int
    sum_sq_err: float
    old_sum_sq_err: float
    threshold: float
    forced_round: bool = False

    def as_dict(self) -> dict:
        """Field set with 'lambda' as key; 'forced_round' only when true."""
        d = {
            'A': self.A,
            'B': self.B,
            'lambda': self.lambda_,
            'round': self.round,
            'sum_sq_err': self.sum_sq_err,
            'old_sum_sq_err': self.old_sum_sq_err,
            'threshold': self.threshold,
        }
        if self.forced_round:
            d['forced_round'] = True
        return d


@dataclass
class FitProgress:
    """Snapshot passed to ``run_each_fit``."""
    fit_count: int
    N_fits: int
    sum_sq_err: float
    old_sum_sq_err: float
    threshold: float
    N_rounds: int

    def as_dict(self) -> dict:
        return {
            'fit_count': self.fit_count,
            'N_fits': self.N_fits,
            'sum_sq_err': self.sum_sq_err,
            'old_sum_sq_err': self.old_sum_sq_err,
            'threshold': self.threshold,
            'N_rounds': self.N_rounds,
        }


@dataclass
class SingleFitResult:
    """Final values for one dataset (kept even when the fit is bad)."""
    A: float
    B: float
    lam: float
    tau: float
    status: FitStatus
    sum_sq_err: float
    old_sum_sq_err: float
    n_rounds: int

    @property
    def is_bad(self) -> bool:
        return self.status.is_bad

    def progress(self, fit_count: int, n_fits: int, threshold: float) -> FitProgress:
        return FitProgress(
            fit_count=fit_count,
            N_fits=n_fits,
            sum_sq_err=self.sum_sq_err,
            old_sum_sq_err=self.old_sum_sq_err,
            threshold=threshold,
            N_rounds=self.n_rounds,
        )


def lambda_status(params: ExponentialParameters, config: FitConfiguration) -> Optional[FitStatus]:
    """Failure status for the current parameters, or None if they are usable."""
    if not math.isfinite(params.lam):
        return FitStatus.NON_FINITE
    if abs(params.lam) < config.min_lambda:
        return FitStatus.LAMBDA_TOO_SMALL
    if config.max_lambda > 0 and abs(params.lam) > config.max_lambda:
        return FitStatus.LAMBDA_TOO_LARGE
    if not params.is_finite():
        return FitStatus.NON_FINITE
    return None


def needs_another_round(force: bool, old_score: float, score: float, threshold: float) -> bool:
    """Loop condition: forced round, or relative score change above threshold."""
    return force or abs(old_score - score) > old_score * threshold


def fit_single(xs: np.ndarray, ys: np.ndarray, config: FitConfiguration) -> SingleFitResult:
    """
    Fit one dataset to y = A + B exp(x / tau).

    Parameters
    ----------
    xs, ys : ndarray, shape (n,)
        Single dataset
    config : FitConfiguration
        Validated configuration

    Returns
    -------
    SingleFitResult
        Final parameters and status. Exceptions raised by
        ``config.run_each_iteration`` propagate unchanged.
    """
    params = estimate_exp_parameters(xs, ys)
    old_score = math.nan
    counter = 0
    status = None

    # First round is forced so the loop is always entered
    force_next_round = True

    def notify():
        if config.run_each_iteration is not None:
            config.run_each_iteration(IterationInfo(
                A=params.A,
                B=params.B,
                lambda_=params.lam,
                round=counter,
                sum_sq_err=params.sum_sq_err,
                old_sum_sq_err=old_score,
                threshold=config.threshold,
                forced_round=force_next_round,
            ))

    while needs_another_round(force_next_round, old_score, params.sum_sq_err, config.threshold):
        counter += 1
        if counter > config.iterations:
            status = FitStatus.MAX_ITERATIONS
            break
        status = lambda_status(params, config)
        if status is not None:
            break

        notify()

        old_score = params.sum_sq_err
        # A truncated step always forces another round
        force_next_round = exp_newton_step(xs, ys, params, config.trust_radius).guarded

    notify()

    # The last step may have moved lambda out of bounds
    if status is None:
        status = lambda_status(params, config) or FitStatus.CONVERGED

    logger.debug(
        "fit finished: status=%s rounds=%d lambda=%g sum_sq_err=%g",
        status.value, counter, params.lam, params.sum_sq_err,
    )

    return SingleFitResult(
        A=params.A,
        B=params.B,
        lam=params.lam,
        tau=params.tau,
        status=status,
        sum_sq_err=params.sum_sq_err,
        old_sum_sq_err=old_score,
        n_rounds=counter,
    )
