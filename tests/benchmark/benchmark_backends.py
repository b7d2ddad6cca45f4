#!/usr/bin/env python3
"""
Backend Benchmark - many independent decay curves

Fits the same synthetic batch on every available backend and reports
throughput and agreement with the sequential CPU backend.
"""

import time

import numpy as np
import pandas as pd

from pyexprate import fit_exponential
from pyexprate._backends import get_backend, list_available_backends

N_FITS = 20000
N_POINTS = 200

print()
print("="*80)
print("BACKEND BENCHMARK - Exponential decay batch")
print("="*80)
print()

# ============================================================================
# GENERATE DATA
# ============================================================================

rng = np.random.RandomState(42)
xs = np.linspace(0, 10, N_POINTS)
A_true = rng.uniform(-5, 5, N_FITS)
B_true = rng.uniform(1, 10, N_FITS)
tau_true = -rng.uniform(2, 20, N_FITS)
ys = (A_true[:, None] + B_true[:, None] * np.exp(xs[None, :] / tau_true[:, None])
      + 0.01 * rng.randn(N_FITS, N_POINTS))

print(f"Datasets:          {N_FITS:,}")
print(f"Points per curve:  {N_POINTS}")
print(f"Backends:          {', '.join(list_available_backends())}")
print()

# ============================================================================
# RUN
# ============================================================================

rows = []
reference = None

for name in list_available_backends():
    backend = get_backend(name)

    # Warm-up
    fit_exponential(xs, ys[:100], backend=backend)

    start = time.time()
    fit = fit_exponential(xs, ys, backend=backend)
    elapsed = time.time() - start

    if reference is None:
        reference = fit

    good = ~fit.is_bad
    rows.append({
        'backend': backend.name,
        'seconds': elapsed,
        'fits/second': N_FITS / elapsed,
        'bad fits': int(fit.is_bad.sum()),
        'median |tau err|': float(np.median(np.abs(fit.tau[good] / tau_true[good] - 1))),
        'max |d tau| vs cpu': float(np.nanmax(np.abs(fit.tau - reference.tau) / np.abs(reference.tau))),
    })
    print(f"✓ {backend.name:<15} {elapsed:>8.2f} s")

print()
print("="*80)
print("RESULTS")
print("="*80)
print(pd.DataFrame(rows).to_string(index=False))
print()
