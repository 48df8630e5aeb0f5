"""Standardize features against the ComBat design.

Every feature g is regressed on the full design (batch indicators plus
covariates).  The fitted coefficients give

* the **grand mean** α̂_g: the reference batch's coefficient when a
  reference batch is set, otherwise the sample-size-weighted average of
  the batch coefficients;
* the **standardized mean** α̂_g + X_j β̂_g: the grand mean plus the
  covariate part of the fit, i.e. the expected value with batch
  removed;
* the **pooled variance** σ̂²_g of the residuals around the full fit.

The standardized data Z_gj = (Y_gj − α̂_g − X_j β̂_g) / σ̂_g then carry
the batch effects on a common scale across features, which is what
lets the empirical-Bayes priors pool information across features.

Pooled variance keeps two conventions: without missing values it is
the mean of squared residuals (divisor n); with missing values it is
the NaN-ignoring sample variance of the residuals (divisor n − 1, and
centred).  Both are computed over the reference batch's samples only
when a reference batch is set.
"""

from __future__ import annotations

import warnings
from dataclasses import dataclass

import numpy as np

from ._lstsq import na_lstsq
from .design import DesignInfo


@dataclass(frozen=True)
class Standardization:
    """Output of :func:`standardize`.

    Attributes:
        B_hat: Design coefficients ``(n_design_cols, n_features)``.
        grand_mean: Per-feature grand mean ``(n_features,)``.
        var_pooled: Per-feature pooled variance ``(n_features,)``.
        stand_mean: Expected value with batch removed
            ``(n_features, n_samples)``.
        s_data: Standardized data ``(n_features, n_samples)``.
    """

    B_hat: np.ndarray
    grand_mean: np.ndarray
    var_pooled: np.ndarray
    stand_mean: np.ndarray
    s_data: np.ndarray


def pooled_variance(
    dat: np.ndarray,
    fitted: np.ndarray,
    has_missing: bool,
) -> np.ndarray:
    """Per-feature residual variance around *fitted*.

    Args:
        dat: Observed values ``(n_features, n_samples)``.
        fitted: Design-implied values, same shape.
        has_missing: Whether the full data matrix contains NaN.

    Returns:
        Array ``(n_features,)``.  NaN for a feature with too few
        observed samples.
    """
    resid = dat - fitted
    if not has_missing:
        return np.mean(resid**2, axis=1)
    with warnings.catch_warnings():
        # All-missing rows yield NaN, which is the intended result.
        warnings.simplefilter("ignore", RuntimeWarning)
        return np.nanvar(resid, axis=1, ddof=1)


def standardize(
    dat: np.ndarray,
    info: DesignInfo,
    n_jobs: int = 1,
) -> Standardization:
    """Fit the standardization model and standardize *dat*.

    Args:
        dat: Data matrix ``(n_features, n_samples)``; NaN = missing.
        info: Validated design.
        n_jobs: Worker threads for features with missing values.

    Returns:
        A :class:`Standardization`.  ``s_data`` has the shape and NaN
        positions of *dat*.
    """
    design = info.design
    n_batch = info.n_batch
    has_missing = bool(np.isnan(dat).any())

    B_hat = na_lstsq(design, dat, n_jobs=n_jobs)

    if info.ref_index is not None:
        grand_mean = B_hat[info.ref_index].copy()
    else:
        grand_mean = (info.n_batches / info.n_array) @ B_hat[:n_batch]

    fitted = (design @ B_hat).T
    if info.ref_index is not None:
        ref = info.batch_indices[info.ref_index]
        var_pooled = pooled_variance(dat[:, ref], fitted[:, ref], has_missing)
    else:
        var_pooled = pooled_variance(dat, fitted, has_missing)

    covariate_design = design.copy()
    covariate_design[:, :n_batch] = 0.0
    stand_mean = grand_mean[:, np.newaxis] + (covariate_design @ B_hat).T

    with np.errstate(divide="ignore", invalid="ignore"):
        s_data = (dat - stand_mean) / np.sqrt(var_pooled)[:, np.newaxis]

    return Standardization(
        B_hat=B_hat,
        grand_mean=grand_mean,
        var_pooled=var_pooled,
        stand_mean=stand_mean,
        s_data=s_data,
    )
