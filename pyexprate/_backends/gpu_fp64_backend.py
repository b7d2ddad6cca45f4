"""
GPU backend using PyTorch with FP64 precision.

Runs the whole batch as one vectorised state machine: every dataset
advances one Newton round per pass, finished datasets drop out.
"""

import logging
import numpy as np
import warnings
from typing import Optional

from .._core.config import FitConfiguration
from .._core.driver import FitStatus, SingleFitResult
from .base import BackendBase, BatchFitResult, flatten_datasets, keep_going

logger = logging.getLogger(__name__)

# Integer status codes used on the device; 0 means still iterating
_RUNNING = 0
_STATUS_CODES = {
    1: FitStatus.CONVERGED,
    2: FitStatus.MAX_ITERATIONS,
    3: FitStatus.LAMBDA_TOO_SMALL,
    4: FitStatus.LAMBDA_TOO_LARGE,
    5: FitStatus.NON_FINITE,
}


class PyTorchBackendFP64(BackendBase):
    """
    PyTorch backend with FP64 precision.

    Same iteration as the CPU backends, vectorised across datasets.

    Limitations:
    - ``run_each_iteration`` is not supported (raises ValueError)
    - ``run_each_fit`` is called after the whole batch has been computed,
      in dataset order. A stop signal leaves the remaining slots unwritten
    """

    def __init__(self, device: Optional[str] = None):
        """Initialize PyTorch FP64 backend."""
        self.name = "pytorch_fp64"
        self.precision = "fp64"

        try:
            import torch
            self.torch = torch
        except ImportError:
            raise ImportError(
                "PyTorch required for GPU backend. "
                "Install: pip install torch"
            )

        if device == 'mps':
            raise RuntimeError(
                "FP64 not supported on Apple Metal. "
                "Use backend='cpu' or backend='threaded'."
            )

        if device is None:
            if torch.cuda.is_available():
                device = 'cuda'
            else:
                warnings.warn("No CUDA GPU available, using CPU")
                device = 'cpu'

        self.device = torch.device(device)

    def _tensor(self, array: np.ndarray):
        return self.torch.as_tensor(
            np.ascontiguousarray(array), dtype=self.torch.float64, device=self.device
        )

    def householder_solve(self, A, y):
        """Batched Householder solve: A (m, 3, 3), y (m, 3) -> x (m, 3)."""
        torch = self.torch
        A = A.clone()
        y = y.clone()

        for n in range(3):
            v = A[:, n:, n].clone()
            alpha = torch.linalg.vector_norm(v, dim=1)
            alpha = torch.where(A[:, n, n] > 0, -alpha, alpha)
            v[:, 0] -= alpha

            beta = (v * v).sum(dim=1)
            apply = beta != 0
            beta_safe = torch.where(apply, beta, torch.ones_like(beta))

            sub = A[:, n:, n:]
            gamma = torch.einsum('bk,bkj->bj', v, sub)
            reflected = sub - (2 * gamma / beta_safe[:, None])[:, None, :] * v[:, :, None]
            A[:, n:, n:] = torch.where(apply[:, None, None], reflected, sub)

            rhs = y[:, n:]
            gamma = (v * rhs).sum(dim=1)
            reflected = rhs - (2 * gamma / beta_safe)[:, None] * v
            y[:, n:] = torch.where(apply[:, None], reflected, rhs)

        x = torch.empty_like(y)
        for j in range(2, -1, -1):
            acc = y[:, j].clone()
            for k in range(2, j, -1):
                acc = acc - A[:, j, k] * x[:, k]
            x[:, j] = acc / A[:, j, j]
        return x

    def quadratic_fit(self, xs, ys):
        """Batched normal-equation quadratic fit: (m, n) -> (m, 3)."""
        torch = self.torch
        m, n = xs.shape
        x_sq = xs * xs

        A = torch.zeros(m, 3, 3, dtype=torch.float64, device=self.device)
        A[:, 0, 0] = n
        A[:, 0, 1] = xs.sum(dim=1)
        A[:, 0, 2] = x_sq.sum(dim=1)
        A[:, 1, 2] = (x_sq * xs).sum(dim=1)
        A[:, 2, 2] = (x_sq * x_sq).sum(dim=1)
        A[:, 1, 1] = A[:, 0, 2]
        A[:, 1, 0] = A[:, 0, 1]
        A[:, 2, 0] = A[:, 0, 2]
        A[:, 2, 1] = A[:, 1, 2]

        y = torch.stack([ys.sum(dim=1), (xs * ys).sum(dim=1), (x_sq * ys).sum(dim=1)], dim=1)
        return self.householder_solve(A, y)

    @staticmethod
    def sum_sq_error(xs, ys, A, B, lam):
        err = A[:, None] + B[:, None] * (lam[:, None] * xs).exp() - ys
        return (err * err).sum(dim=1)

    def estimate_parameters(self, xs, ys):
        """Batched initial (A, B, lambda, sum_sq_err)."""
        coefs = self.quadratic_fit(xs, ys)
        c0, c1, c2 = coefs[:, 0], coefs[:, 1], coefs[:, 2]
        x = xs.mean(dim=1)

        slope = c1 + 2.0 * c2 * x
        lam = 2.0 * c2 / slope
        the_exp = (lam * x).exp()
        B = slope / (lam * the_exp)
        A = c0 + c1 * x + c2 * x * x - B * the_exp
        return A, B, lam, self.sum_sq_error(xs, ys, A, B, lam)

    def newton_step(self, xs, ys, A, B, lam, trust_radius):
        """Batched guarded Newton step; returns new (A, B, lam, score, guarded)."""
        torch = self.torch
        m, n = xs.shape

        the_exp = (lam[:, None] * xs).exp()
        b_exp = B[:, None] * the_exp
        dy = A[:, None] + b_exp - ys
        weird = b_exp + dy

        neg_gradient = -torch.stack([
            dy.sum(dim=1),
            (dy * the_exp).sum(dim=1),
            (dy * xs * b_exp).sum(dim=1),
        ], dim=1)

        H = torch.zeros(m, 3, 3, dtype=torch.float64, device=self.device)
        H[:, 0, 0] = n
        H[:, 0, 1] = the_exp.sum(dim=1)
        H[:, 0, 2] = (xs * b_exp).sum(dim=1)
        H[:, 1, 1] = (the_exp * the_exp).sum(dim=1)
        H[:, 1, 2] = (xs * the_exp * weird).sum(dim=1)
        H[:, 2, 2] = (xs * xs * b_exp * weird).sum(dim=1)
        H[:, 1, 0] = H[:, 0, 1]
        H[:, 2, 0] = H[:, 0, 2]
        H[:, 2, 1] = H[:, 1, 2]

        step = self.householder_solve(H, neg_gradient)

        values = torch.stack([A, B, lam], dim=1)
        ratios = trust_radius * values.abs() / step.abs()
        ratios = torch.where(torch.isnan(ratios), torch.full_like(ratios, float('inf')), ratios)
        scale = torch.clamp(ratios.min(dim=1).values, max=1.0)

        values = values + step * scale[:, None]
        A, B, lam = values[:, 0], values[:, 1], values[:, 2]
        return A, B, lam, self.sum_sq_error(xs, ys, A, B, lam), scale < 1.0

    def bounds_code(self, A, B, lam, score, config: FitConfiguration):
        """Vectorised lambda/finiteness check; 0 where parameters are usable."""
        torch = self.torch
        code = torch.zeros(lam.shape, dtype=torch.int64, device=self.device)
        magnitude = lam.abs()

        # Later assignments take priority
        finite = torch.isfinite(A) & torch.isfinite(B) & torch.isfinite(score)
        code[~finite] = 5
        if config.max_lambda > 0:
            code[magnitude > config.max_lambda] = 4
        code[magnitude < config.min_lambda] = 3
        code[~torch.isfinite(lam)] = 5
        return code

    def fit_batch(
        self,
        xs: np.ndarray,
        ys: np.ndarray,
        config: FitConfiguration,
        out: BatchFitResult,
    ) -> BatchFitResult:
        """Fit all datasets at once, then report them in order."""
        if config.run_each_iteration is not None:
            raise ValueError(
                "run_each_iteration is not supported by the PyTorch backend. "
                "Use backend='cpu' or backend='threaded'."
            )
        torch = self.torch

        xs_flat, ys_flat = flatten_datasets(xs, ys)
        n_fits = len(xs_flat)
        logger.info("Fitting %d dataset(s) on %s (%s)", n_fits, self.name, self.device)

        xs_t = self._tensor(xs_flat)
        ys_t = self._tensor(ys_flat)

        A, B, lam, score = self.estimate_parameters(xs_t, ys_t)
        old = torch.full_like(score, float('nan'))
        force = torch.ones(n_fits, dtype=torch.bool, device=self.device)
        counter = torch.zeros(n_fits, dtype=torch.int64, device=self.device)
        status = torch.zeros(n_fits, dtype=torch.int64, device=self.device)

        while True:
            running = status == _RUNNING
            if not bool(running.any()):
                break

            cond = force | ((old - score).abs() > old * config.threshold)
            status[running & ~cond] = 1

            stepping = running & cond
            counter = counter + stepping.long()
            code = self.bounds_code(A, B, lam, score, config)
            code[counter > config.iterations] = 2
            failed = stepping & (code != _RUNNING)
            status[failed] = code[failed]

            idx = (stepping & ~failed).nonzero(as_tuple=True)[0]
            if len(idx) == 0:
                continue

            old[idx] = score[idx]
            new_A, new_B, new_lam, new_score, guarded = self.newton_step(
                xs_t[idx], ys_t[idx], A[idx], B[idx], lam[idx], config.trust_radius
            )
            A[idx], B[idx], lam[idx], score[idx] = new_A, new_B, new_lam, new_score
            force[idx] = guarded

        # The last step may have moved lambda out of bounds
        converged = status == 1
        final_code = self.bounds_code(A, B, lam, score, config)
        status = torch.where(converged & (final_code != _RUNNING), final_code, status)

        A, B, lam, score, old = (t.cpu().numpy() for t in (A, B, lam, score, old))
        status = status.cpu().numpy()
        counter = counter.cpu().numpy()

        with np.errstate(divide='ignore'):
            tau = 1.0 / lam

        for i in range(n_fits):
            result = SingleFitResult(
                A=float(A[i]),
                B=float(B[i]),
                lam=float(lam[i]),
                tau=float(tau[i]),
                status=_STATUS_CODES[int(status[i])],
                sum_sq_err=float(score[i]),
                old_sum_sq_err=float(old[i]),
                n_rounds=int(counter[i]),
            )
            out.store(i, result)
            if not keep_going(config, result, i + 1, n_fits):
                out.aborted = True
                break

        return out

    def get_device_info(self) -> dict:
        """Get backend information."""
        return {
            'backend': 'gpu' if self.device.type == 'cuda' else 'cpu',
            'precision': 'fp64',
            'device': str(self.device),
            'library': f'PyTorch {self.torch.__version__}',
        }
