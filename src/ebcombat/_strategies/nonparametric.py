"""Non-parametric empirical-Bayes shrinkage (leave-one-out kernel).

No prior family is assumed.  Instead, the empirical distribution of
the *other* features' raw estimates {(γ̂_k, δ̂²_k) : k ≠ g} serves as
the prior for feature g, and the posterior mean is a weighted average
over those candidates:

    γ*_g = Σ_k w_gk γ̂_k / Σ_k w_gk
    δ²*_g = Σ_k w_gk δ̂²_k / Σ_k w_gk

with w_gk the Gaussian likelihood of feature g's observed standardized
values under N(γ̂_k, δ̂²_k):

    w_gk = (2π δ̂²_k)^(−n/2) · exp(−Σ_j (Z_gj − γ̂_k)² / (2 δ̂²_k))

The weights are normalised in log space (subtracting the largest
log-likelihood before exponentiating).  The ratios are identical to
the direct product but do not underflow for batches with many
samples.  Candidates with a non-finite likelihood get zero weight.

Each feature costs O(G · n) work, so a batch costs O(G² · n); features
are independent and may be spread across joblib threads.
"""

from __future__ import annotations

import numpy as np
from joblib import Parallel, delayed

from . import ShrinkageResult

_LOG_2PI = np.log(2.0 * np.pi)


def _kernel_posterior(
    g: int,
    s_data: np.ndarray,
    gamma_hat: np.ndarray,
    delta_hat: np.ndarray,
) -> tuple[float, float]:
    """Leave-one-out likelihood-weighted estimate for feature *g*."""
    x = s_data[g]
    x = x[~np.isnan(x)]
    n = x.shape[0]

    cand_g = np.delete(gamma_hat, g)
    cand_d = np.delete(delta_hat, g)

    sum2 = np.sum((x[np.newaxis, :] - cand_g[:, np.newaxis]) ** 2, axis=1)
    with np.errstate(divide="ignore", invalid="ignore"):
        log_lh = -0.5 * n * (_LOG_2PI + np.log(cand_d)) - sum2 / (2.0 * cand_d)

    valid = np.isfinite(log_lh) & np.isfinite(cand_g) & np.isfinite(cand_d)
    if not valid.any():
        return float("nan"), float("nan")

    log_lh = log_lh[valid]
    weights = np.exp(log_lh - log_lh.max())
    total = weights.sum()
    return (
        float(np.dot(weights, cand_g[valid]) / total),
        float(np.dot(weights, cand_d[valid]) / total),
    )


class NonParametricStrategy:
    """Leave-one-out kernel-weighted posterior means."""

    name: str = "nonparametric"

    def shrink(
        self,
        s_data: np.ndarray,
        gamma_hat: np.ndarray,
        delta_hat: np.ndarray,
        gamma_bar: float,
        t2: float,
        a_prior: float,
        b_prior: float,
        *,
        mean_only: bool = False,
        max_iter: int = 1000,
        n_jobs: int = 1,
    ) -> ShrinkageResult:
        """Shrink one batch; see :class:`~ebcombat._strategies.ShrinkageStrategy`.

        The prior hyper-parameters and ``max_iter`` are unused.
        """
        if mean_only:
            delta_hat = np.ones_like(delta_hat)

        n_features = s_data.shape[0]
        if n_jobs == 1:
            pairs = [
                _kernel_posterior(g, s_data, gamma_hat, delta_hat)
                for g in range(n_features)
            ]
        else:
            pairs = Parallel(n_jobs=n_jobs, prefer="threads")(
                delayed(_kernel_posterior)(g, s_data, gamma_hat, delta_hat)
                for g in range(n_features)
            )

        estimates = np.array(pairs, dtype=float).reshape(n_features, 2)
        gamma_star = estimates[:, 0]
        delta_star = np.ones(n_features) if mean_only else estimates[:, 1]
        return ShrinkageResult(gamma_star=gamma_star, delta_star=delta_star)
