"""
Test the batch exponential fit: convergence, failure flags, callbacks
and early termination.
"""

import math

import pytest
import numpy as np
import pandas as pd

from pyexprate import (
    fit_exponential,
    fit_exp_rate,
    ExponentialFit,
    FitConfiguration,
    FitStatus,
    IterationInfo,
    FitProgress,
)
from pyexprate.reference import fit_exponential_reference


def noisy_decay(seed=42, n=100, A=5.0, B=4.0, tau=-10.0, sigma=0.01):
    """Synthetic data y = A + B exp(x / tau) + noise on x = 0, 0.1, ..."""
    rng = np.random.RandomState(seed)
    xs = np.arange(n) / 10
    ys = A + B * np.exp(xs / tau) + rng.randn(n) * sigma
    return xs, ys


class TestExponentialFit:
    """Test parameter recovery."""

    def test_noiseless_decay(self):
        """x = 100..129, A=150, B=10, tau=-10."""
        xs = np.arange(100, 130, dtype=float)
        ys = 150 + 10 * np.exp(xs / -10)
        fit = fit_exponential(xs, ys)
        np.testing.assert_allclose([fit.A, fit.B, fit.tau], [150, 10, -10], rtol=1e-2)

    def test_large_dense_dataset(self):
        """x = 0..29999, tau=-1e5: converges to high precision."""
        xs = np.arange(30000, dtype=float)
        ys = 10 + 100 * np.exp(xs / -1e5)
        fit = fit_exponential(xs, ys, iterations=100)
        np.testing.assert_allclose([fit.A, fit.B, fit.tau], [10, 100, -1e5], rtol=1e-7)

    def test_noiseless_growth(self):
        xs = np.arange(100) / 10
        ys = -3 + 2 * np.exp(xs / 20)
        fit = fit_exponential(xs, ys)
        np.testing.assert_allclose([fit.A, fit.B, fit.tau], [-3, 2, 20], rtol=1e-6)

    def test_noisy_decay_converges(self):
        xs, ys = noisy_decay()
        fit = fit_exponential(xs, ys)
        assert fit.status[()] is FitStatus.CONVERGED
        assert not fit.is_bad
        np.testing.assert_allclose([fit.A, fit.B, fit.tau], [5, 4, -10], rtol=0.05)

    def test_matches_reference_optimum(self):
        """The converged score is within the threshold of curve_fit's optimum."""
        xs, ys = noisy_decay(seed=7, sigma=0.05)
        fit = fit_exponential(xs, ys)
        ref = fit_exponential_reference(xs, ys)
        assert not fit.is_bad
        assert float(fit.sum_sq_err) <= ref.sum_sq_err * (1 + 1e-3)

    def test_batch_shared_xs(self):
        """One xs row is shared by every ys row; order is preserved."""
        xs = np.arange(100) / 10
        taus = np.array([-10.0, -5.0, 15.0])
        ys = 1 + 2 * np.exp(xs[None, :] / taus[:, None])
        fit = fit_exponential(xs, ys)
        assert fit.shape == (3,)
        np.testing.assert_allclose(fit.tau, taus, rtol=1e-6)
        np.testing.assert_allclose(fit.A, 1, rtol=1e-6)
        np.testing.assert_allclose(fit.B, 2, rtol=1e-6)

    def test_multidimensional_batch(self):
        xs = np.arange(60) / 6
        ys = np.empty((2, 3, 60))
        for i in range(2):
            for j in range(3):
                ys[i, j] = i + 1 + (j + 1) * np.exp(xs / -(4 + i + j))
        fit = fit_exponential(xs, ys)
        assert fit.shape == (2, 3)
        assert fit.n_completed == 6
        np.testing.assert_allclose(fit.tau, [[-4, -5, -6], [-5, -6, -7]], rtol=1e-6)

    def test_lambda_is_inverse_tau(self):
        xs, ys = noisy_decay()
        fit = fit_exponential(xs, ys)
        np.testing.assert_allclose(fit.lam * fit.tau, 1.0)


class TestFailureFlags:
    """Test is_bad and the failure reasons."""

    def test_iteration_cap(self):
        xs, ys = noisy_decay()
        fit = fit_exponential(xs, ys, iterations=0)
        assert fit.is_bad
        assert fit.status[()] is FitStatus.MAX_ITERATIONS
        assert fit.n_rounds == 1
        # Bad fits still carry values
        assert np.isfinite(fit.A) and np.isfinite(fit.tau)

    def test_lambda_too_small(self):
        xs, ys = noisy_decay()
        fit = fit_exponential(xs, ys, min_lambda=1.0)
        assert fit.is_bad
        assert fit.status[()] is FitStatus.LAMBDA_TOO_SMALL

    def test_lambda_too_large(self):
        xs, ys = noisy_decay()
        fit = fit_exponential(xs, ys, max_lambda=0.01)
        assert fit.is_bad
        assert fit.status[()] is FitStatus.LAMBDA_TOO_LARGE

    def test_linear_data_has_no_rate(self):
        """Straight-line data gives lambda ~ 0: bad on the first check."""
        xs = np.arange(10.0)
        fit = fit_exponential(xs, 2 * xs + 1)
        assert fit.is_bad
        assert fit.status[()] is FitStatus.LAMBDA_TOO_SMALL
        assert fit.n_rounds == 1

    def test_non_finite_estimate(self):
        """NaN data fails fast with a distinguishable reason."""
        xs, ys = noisy_decay()
        ys[10] = np.nan
        fit = fit_exponential(xs, ys)
        assert fit.is_bad
        assert fit.status[()] is FitStatus.NON_FINITE
        assert fit.n_rounds == 1

    def test_bad_only_on_failure(self):
        """Converged fits are never flagged bad; failed ones always are."""
        xs = np.arange(100) / 10
        ys = np.stack([
            noisy_decay(seed=1)[1],
            noisy_decay(seed=2, tau=-3)[1],
            2 * xs + 1,
            noisy_decay(seed=3, tau=8)[1],
        ])
        fit = fit_exponential(xs, ys)
        for status, bad in zip(fit.status, fit.is_bad):
            assert bad == (status is not FitStatus.CONVERGED)
        assert fit.status[2] is FitStatus.LAMBDA_TOO_SMALL
        assert not fit.is_bad[0]

    def test_masked_output(self):
        xs, ys = noisy_decay()
        A, B, tau = fit_exp_rate(xs, np.stack([ys, 2 * xs]))
        assert isinstance(A, np.ma.MaskedArray)
        assert not A.mask[0]
        assert A.mask[1] and B.mask[1] and tau.mask[1]


class TestCallbacks:
    """Test run_each_iteration and run_each_fit."""

    def test_iteration_records(self):
        records = []
        xs, ys = noisy_decay()
        fit = fit_exponential(xs, ys, run_each_iteration=records.append)

        assert len(records) >= 2
        assert all(isinstance(r, IterationInfo) for r in records)
        first = records[0]
        assert first.round == 1
        assert first.forced_round
        assert math.isnan(first.old_sum_sq_err)
        assert first.threshold == 0.001

        rounds = [r.round for r in records]
        assert rounds == sorted(rounds)
        # Final call repeats the last round with the final values
        last = records[-1]
        assert last.round == fit.n_rounds
        assert last.sum_sq_err == pytest.approx(float(fit.sum_sq_err))
        assert last.lambda_ == pytest.approx(float(fit.lam))

    def test_iteration_dict_fields(self):
        dicts = []
        xs, ys = noisy_decay()
        fit_exponential(xs, ys, run_each_iteration=lambda info: dicts.append(info.as_dict()))

        base = {'A', 'B', 'lambda', 'round', 'sum_sq_err', 'old_sum_sq_err', 'threshold'}
        assert set(dicts[0]) == base | {'forced_round'}
        for d in dicts:
            assert set(d) in (base, base | {'forced_round'})

    def test_fit_records(self):
        records = []
        xs = np.arange(100) / 10
        ys = np.stack([noisy_decay(seed=s)[1] for s in range(4)])
        fit = fit_exponential(xs, ys, run_each_fit=lambda p: records.append(p))

        assert [r.fit_count for r in records] == [1, 2, 3, 4]
        assert all(r.N_fits == 4 for r in records)
        assert all(isinstance(r, FitProgress) for r in records)
        assert [r.N_rounds for r in records] == list(fit.n_rounds)
        assert set(records[0].as_dict()) == {
            'fit_count', 'N_fits', 'sum_sq_err', 'old_sum_sq_err', 'threshold', 'N_rounds'
        }
        assert not fit.aborted

    def test_stop_signal(self):
        """Returning 0 on fit k leaves fits k+1..N untouched."""
        xs = np.arange(100) / 10
        ys = np.stack([noisy_decay(seed=s)[1] for s in range(5)])
        seen = []

        def stop_after_two(progress):
            seen.append(progress.fit_count)
            return 0 if progress.fit_count == 2 else 1

        out = tuple(np.full(5, -1.0) for _ in range(3))
        fit = fit_exponential(xs, ys, out=out, run_each_fit=stop_after_two)

        assert seen == [1, 2]
        assert fit.aborted
        assert fit.n_completed == 2
        assert fit.A is out[0]
        np.testing.assert_allclose(out[2][:2], -10, rtol=0.05)
        np.testing.assert_array_equal(out[0][2:], -1.0)
        np.testing.assert_array_equal(out[1][2:], -1.0)
        np.testing.assert_array_equal(out[2][2:], -1.0)
        assert all(s is FitStatus.NOT_RUN for s in fit.status[2:])
        assert fit.is_bad[2:].all()

    def test_none_return_continues(self):
        xs = np.arange(100) / 10
        ys = np.stack([noisy_decay(seed=s)[1] for s in range(3)])
        fit = fit_exponential(xs, ys, run_each_fit=lambda p: None)
        assert fit.n_completed == 3
        assert not fit.aborted

    def test_false_return_stops(self):
        xs = np.arange(100) / 10
        ys = np.stack([noisy_decay(seed=s)[1] for s in range(3)])
        fit = fit_exponential(xs, ys, run_each_fit=lambda p: False)
        assert fit.n_completed == 1

    def test_callback_errors_propagate(self):
        xs = np.arange(100) / 10
        ys = np.stack([noisy_decay(seed=s)[1] for s in range(3)])
        calls = []

        def explode(progress):
            calls.append(progress.fit_count)
            raise RuntimeError("stop everything")

        with pytest.raises(RuntimeError, match="stop everything"):
            fit_exponential(xs, ys, run_each_fit=explode)
        assert calls == [1]

        def explode_iteration(info):
            raise KeyError("bad iteration")

        with pytest.raises(KeyError):
            fit_exponential(xs, ys, run_each_iteration=explode_iteration)


class TestInterface:
    """Test option handling and result helpers."""

    def test_pairs_and_keywords(self):
        xs, ys = noisy_decay()
        A, B, tau = fit_exp_rate(xs, ys, 'iterations', 0)
        assert A.mask.all()
        with pytest.raises(ValueError):
            fit_exp_rate(xs, ys, 'iterations')

    def test_config_object(self):
        xs, ys = noisy_decay()
        fit = fit_exponential(xs, ys, config=FitConfiguration(iterations=0))
        assert fit.status[()] is FitStatus.MAX_ITERATIONS
        # Keywords override the config
        fit = fit_exponential(xs, ys, config=FitConfiguration(iterations=0), iterations=50)
        assert fit.status[()] is FitStatus.CONVERGED

    def test_invalid_config_rejected_before_fitting(self):
        xs, ys = noisy_decay()
        calls = []
        with pytest.raises(ValueError):
            fit_exponential(xs, ys, trust_radius=-1, run_each_fit=calls.append)
        assert calls == []

    def test_out_shape_checked(self):
        xs, ys = noisy_decay()
        with pytest.raises(ValueError):
            fit_exponential(xs, np.stack([ys, ys]), out=(np.zeros(3), np.zeros(3), np.zeros(3)))

    def test_to_frame(self):
        xs = np.arange(100) / 10
        ys = np.stack([noisy_decay(seed=s)[1] for s in range(3)])
        frame = fit_exponential(xs, ys).to_frame()
        assert isinstance(frame, pd.DataFrame)
        assert len(frame) == 3
        assert list(frame.columns) == [
            'A', 'B', 'tau', 'lambda', 'is_bad', 'status', 'sum_sq_err', 'n_rounds'
        ]
        assert (frame['status'] == 'converged').all()

    def test_predict(self):
        xs = np.arange(100) / 10
        ys = np.stack([1 + 2 * np.exp(xs / -5), 3 - np.exp(xs / 12)])
        fit = fit_exponential(xs, ys)
        pred = fit.predict(xs)
        assert pred.shape == (2, 100)
        np.testing.assert_allclose(pred, ys, rtol=1e-6)

    def test_summary(self, capsys):
        xs, ys = noisy_decay()
        fit = fit_exponential(xs, ys)
        fit.summary()
        captured = capsys.readouterr()
        assert 'EXPONENTIAL FIT RESULTS' in captured.out
        assert 'converged' in captured.out
        assert isinstance(fit, ExponentialFit)
        assert 'ExponentialFit' in repr(fit)
