"""
Abstract base classes for backends.

Defines the interface all backends must implement.
"""

from abc import ABC, abstractmethod
import logging
import numpy as np
from typing import Optional, Tuple
from dataclasses import dataclass

from .._core.config import FitConfiguration
from .._core.driver import FitStatus, SingleFitResult

logger = logging.getLogger(__name__)


@dataclass
class BatchFitResult:
    """
    Output slots for a batch of exponential fits.

    Every array has the batch shape. Slots of datasets that were never
    processed keep their initial values (A = B = tau = 0 unless supplied
    by the caller, is_bad = True, status = NOT_RUN).
    """
    A: np.ndarray
    B: np.ndarray
    tau: np.ndarray
    lam: np.ndarray
    is_bad: np.ndarray
    status: np.ndarray        # object array of FitStatus
    sum_sq_err: np.ndarray
    n_rounds: np.ndarray
    n_completed: int = 0
    aborted: bool = False

    @classmethod
    def empty(cls, shape: Tuple[int, ...],
              out: Optional[Tuple[np.ndarray, np.ndarray, np.ndarray]] = None) -> 'BatchFitResult':
        """Allocate default slots, reusing caller-supplied (A, B, tau) arrays."""
        if out is None:
            A, B, tau = (np.zeros(shape) for _ in range(3))
        else:
            if len(out) != 3:
                raise ValueError("out must be a tuple of three arrays (A, B, tau)")
            for name, arr in zip(('A', 'B', 'tau'), out):
                if not isinstance(arr, np.ndarray) or arr.shape != shape:
                    raise ValueError(f"out array {name} must be an ndarray of shape {shape}")
            A, B, tau = out

        status = np.empty(shape, dtype=object)
        status.fill(FitStatus.NOT_RUN)
        return cls(
            A=A,
            B=B,
            tau=tau,
            lam=np.full(shape, np.nan),
            is_bad=np.ones(shape, dtype=bool),
            status=status,
            sum_sq_err=np.full(shape, np.nan),
            n_rounds=np.zeros(shape, dtype=np.int64),
        )

    @property
    def shape(self) -> Tuple[int, ...]:
        return self.is_bad.shape

    @property
    def size(self) -> int:
        return self.is_bad.size

    def store(self, flat_index: int, result: SingleFitResult) -> None:
        """Write one dataset's result into its slot (C order)."""
        index = np.unravel_index(flat_index, self.shape) if self.shape else ()
        self.A[index] = result.A
        self.B[index] = result.B
        self.tau[index] = result.tau
        self.lam[index] = result.lam
        self.is_bad[index] = result.is_bad
        self.status[index] = result.status
        self.sum_sq_err[index] = result.sum_sq_err
        self.n_rounds[index] = result.n_rounds
        self.n_completed += 1


def keep_going(config: FitConfiguration, result: SingleFitResult,
               fit_count: int, n_fits: int) -> bool:
    """
    Run the per-fit callback, if any, and interpret its return value.

    0 (or False) stops the batch; None and anything else continue.
    """
    if config.run_each_fit is None:
        return True
    ret = config.run_each_fit(result.progress(fit_count, n_fits, config.threshold))
    if ret is not None and ret == 0:
        logger.info("run_each_fit requested stop after fit %d of %d", fit_count, n_fits)
        return False
    return True


def flatten_datasets(xs: np.ndarray, ys: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Reshape broadcast (..., n) data to (n_fits, n) in C order."""
    n = xs.shape[-1]
    return xs.reshape(-1, n), ys.reshape(-1, n)


class BackendBase(ABC):
    """Abstract base class for all backends."""

    @abstractmethod
    def fit_batch(
        self,
        xs: np.ndarray,
        ys: np.ndarray,
        config: FitConfiguration,
        out: BatchFitResult,
    ) -> BatchFitResult:
        """
        Fit every dataset in a batch.

        Parameters
        ----------
        xs, ys : ndarray, shape (..., n)
            Broadcast data; leading dimensions index the datasets
        config : FitConfiguration
            Validated configuration
        out : BatchFitResult
            Output slots with the batch shape, filled in place

        Returns
        -------
        BatchFitResult
            ``out``, with ``aborted`` set if ``run_each_fit`` stopped the run
        """
        pass

    @abstractmethod
    def get_device_info(self) -> dict:
        """Get backend information."""
        pass
