"""
Sequential CPU backend using NumPy.

This is the reference implementation: datasets are fitted first to last.
"""

import logging
import numpy as np

from .._core.config import FitConfiguration
from .._core.driver import fit_single
from .base import BackendBase, BatchFitResult, flatten_datasets, keep_going

logger = logging.getLogger(__name__)


class CPUBackendFP64(BackendBase):
    """
    CPU backend using NumPy.

    Fits one dataset at a time in C order. Both callbacks run on the
    calling thread.
    """

    def __init__(self):
        self.name = "cpu_fp64"
        self.precision = "fp64"

    def fit_batch(
        self,
        xs: np.ndarray,
        ys: np.ndarray,
        config: FitConfiguration,
        out: BatchFitResult,
    ) -> BatchFitResult:
        """Fit datasets in order, stopping when ``run_each_fit`` returns 0."""
        xs_flat, ys_flat = flatten_datasets(xs, ys)
        n_fits = len(xs_flat)
        logger.info("Fitting %d dataset(s) on %s", n_fits, self.name)

        for i in range(n_fits):
            result = fit_single(xs_flat[i], ys_flat[i], config)
            out.store(i, result)
            if not keep_going(config, result, i + 1, n_fits):
                out.aborted = True
                break

        return out

    def get_device_info(self) -> dict:
        """Get backend information."""
        return {
            'backend': 'cpu',
            'precision': 'fp64',
            'library': f'NumPy {np.__version__}',
        }
