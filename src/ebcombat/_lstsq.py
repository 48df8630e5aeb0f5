"""NA-aware ordinary least squares across many features.

ComBat regresses every feature (row of the data matrix) on the same
design.  When no values are missing the whole matrix is solved in a
single call:

    B̂ = (X'X)⁻¹ X'Yᵀ   →  shape (p, G)

which is one ``(p × n) @ (n × G)`` BLAS-3 product plus a ``p × p``
solve, instead of G separate least-squares fits.

Features with missing entries cannot share that solve because each
one observes a different subset of samples.  Those rows are fitted
one at a time against the design restricted to their observed
samples.  Complete rows still go through the joint solve, so the
primitive degenerates to the dense fast path when nothing is missing
and callers never branch on missingness themselves.

A feature whose observed samples leave the restricted design rank
deficient (e.g. every value in one batch is missing, or the row is
entirely missing) gets a NaN coefficient column rather than aborting
the run.

Parallelism
~~~~~~~~~~~
When ``n_jobs != 1`` the per-feature loop is spread across
``joblib.Parallel(prefer="threads")``.  NumPy's LAPACK routines release
the GIL, so threads overlap without serialising the data.  Each task
writes a disjoint column of the output; results are merged by
position.
"""

from __future__ import annotations

import numpy as np
from joblib import Parallel, delayed


def _fit_one(X: np.ndarray, y: np.ndarray) -> np.ndarray:
    """OLS of one feature on its observed samples; NaN if unidentifiable."""
    observed = ~np.isnan(y)
    X_obs = X[observed]
    p = X.shape[1]
    if X_obs.shape[0] < p or np.linalg.matrix_rank(X_obs) < p:
        return np.full(p, np.nan)
    return np.linalg.solve(X_obs.T @ X_obs, X_obs.T @ y[observed])


def na_lstsq(X: np.ndarray, Y: np.ndarray, n_jobs: int = 1) -> np.ndarray:
    """Regress every row of *Y* on *X*, ignoring missing values per row.

    Args:
        X: Design matrix ``(n_samples, p)`` with full column rank.
        Y: Data matrix ``(n_features, n_samples)``; NaN = missing.
        n_jobs: Worker threads for rows with missing values.

    Returns:
        Coefficient matrix ``(p, n_features)``.
    """
    n_features = Y.shape[0]
    p = X.shape[1]
    B = np.empty((p, n_features))

    missing = np.isnan(Y).any(axis=1)
    complete = ~missing

    if complete.any():
        B[:, complete] = np.linalg.solve(X.T @ X, X.T @ Y[complete].T)

    rows = np.flatnonzero(missing)
    if rows.size == 0:
        return B

    if n_jobs == 1:
        for g in rows:
            B[:, g] = _fit_one(X, Y[g])
    else:
        fitted = Parallel(n_jobs=n_jobs, prefer="threads")(
            delayed(_fit_one)(X, Y[g]) for g in rows
        )
        B[:, rows] = np.column_stack(fitted)
    return B
