"""Empirical-Bayes hyper-prior estimation.

ComBat places, for each batch *i*, the priors

    γ_ig ~ N(γ̄_i, τ²_i)          δ²_ig ~ InvGamma(λ_i, θ_i)

on the per-feature batch effects and estimates the hyper-parameters
from the raw estimates of *all* features in that batch, which is the
"empirical" in empirical Bayes.

* γ̄_i and τ²_i are the sample mean and variance (ddof=1) of
  ``gamma_hat[i]``.
* λ_i and θ_i come from the method of moments for the inverse gamma.
  With sample mean m and variance v (ddof=1) of ``delta_hat[i]``:

      shape  λ = (2v + m²) / v
      rate   θ = (m³ + m·v) / v

  These follow from E[δ²] = θ/(λ−1) and Var[δ²] = θ²/((λ−1)²(λ−2)).

Features whose estimates are NaN (all values missing in a batch) are
ignored when pooling, so a single degenerate feature does not poison
the priors of every other feature.

References:
    Johnson, W. E., Li, C. & Rabinovic, A. (2007). Adjusting batch
    effects in microarray expression data using empirical Bayes
    methods. *Biostatistics*, 8(1), 118–127.
"""

from __future__ import annotations

import warnings
from dataclasses import dataclass

import numpy as np


def _moments(values: np.ndarray) -> tuple[float, float]:
    """NaN-ignoring mean and sample variance (ddof=1)."""
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", RuntimeWarning)
        return float(np.nanmean(values)), float(np.nanvar(values, ddof=1))


def aprior(delta_hat: np.ndarray) -> float:
    """Method-of-moments inverse-gamma shape for one batch."""
    m, v = _moments(delta_hat)
    with np.errstate(divide="ignore", invalid="ignore"):
        return float(np.float64(2 * v + m**2) / v)


def bprior(delta_hat: np.ndarray) -> float:
    """Method-of-moments inverse-gamma rate for one batch."""
    m, v = _moments(delta_hat)
    with np.errstate(divide="ignore", invalid="ignore"):
        return float(np.float64(m * v + m**3) / v)


@dataclass(frozen=True)
class Priors:
    """Per-batch hyper-parameters, each of shape ``(n_batch,)``.

    In mean-only mode ``delta_hat`` is constant, so ``a_prior`` and
    ``b_prior`` are not finite; they are never used in that mode.
    """

    gamma_bar: np.ndarray
    t2: np.ndarray
    a_prior: np.ndarray
    b_prior: np.ndarray

    def for_batch(self, i: int) -> tuple[float, float, float, float]:
        """``(gamma_bar, t2, a_prior, b_prior)`` for batch *i*."""
        return (
            float(self.gamma_bar[i]),
            float(self.t2[i]),
            float(self.a_prior[i]),
            float(self.b_prior[i]),
        )


def estimate_priors(gamma_hat: np.ndarray, delta_hat: np.ndarray) -> Priors:
    """Estimate the hyper-priors of every batch.

    Args:
        gamma_hat: Raw location estimates ``(n_batch, n_features)``.
        delta_hat: Raw scale estimates ``(n_batch, n_features)``.

    Returns:
        A frozen :class:`Priors`.
    """
    moments = [_moments(row) for row in gamma_hat]
    return Priors(
        gamma_bar=np.array([m for m, _ in moments]),
        t2=np.array([v for _, v in moments]),
        a_prior=np.array([aprior(row) for row in delta_hat]),
        b_prior=np.array([bprior(row) for row in delta_hat]),
    )
