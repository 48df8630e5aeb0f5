"""Diagnostics for ComBat adjustments.

Two kinds of diagnostics are provided.

Prior-fit diagnostics
~~~~~~~~~~~~~~~~~~~~~
The parametric strategy assumes γ̂ ~ N(γ̄, τ²) and δ̂² ~ InvGamma(a, b)
across features.  :func:`prior_density_diagnostics` collects the data
needed to judge that assumption for one batch:

* a Gaussian kernel density estimate of γ̂ next to the fitted normal
  density, plus normal Q-Q pairs;
* a kernel density estimate of δ̂² next to the density of draws from
  the fitted inverse gamma, plus Q-Q pairs against those draws.

Nothing is rendered; the arrays can be handed to any plotting library.
When all four curves agree the parametric strategy is appropriate;
otherwise ``parametric=False`` avoids the distributional assumption.

Batch-effect tests
~~~~~~~~~~~~~~~~~~
:func:`f_pvalue` computes, per feature, the p-value of the nested-model
F-test comparing a full design against a reduced one:

    F_g = ((RSS0_g − RSS1_g) / (df1 − df0)) / (RSS1_g / (n − df1))

:func:`batch_effect_pvalues` applies it with batch indicators as the
full design and an intercept as the reduced one.  A successful
adjustment should leave few features with small p-values.
"""

from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass
from typing import Any

import numpy as np
from scipy import stats as sp_stats

from ._compat import _as_float_matrix
from .design import build_design

logger = logging.getLogger(__name__)

_GRID_POINTS = 100


# ------------------------------------------------------------------ #
# Prior-fit diagnostics
# ------------------------------------------------------------------ #


@dataclass(frozen=True)
class PriorDiagnostics:
    """Density and quantile data behind the prior-fit plots.

    Attributes:
        batch: Batch label the diagnostics describe.
        gamma_grid: Evaluation grid for the location densities.
        gamma_kde: Kernel density of ``gamma_hat`` on ``gamma_grid``.
        gamma_prior_density: Fitted normal prior density on the grid.
        gamma_qq: ``(theoretical, sample)`` normal quantile pairs.
        delta_grid: Evaluation grid for the scale densities.
        delta_kde: Kernel density of ``delta_hat`` on ``delta_grid``.
        delta_prior_kde: Kernel density of inverse-gamma draws.
        delta_qq: ``(sample, theoretical)`` quantile pairs.
    """

    batch: Any
    gamma_grid: np.ndarray
    gamma_kde: np.ndarray
    gamma_prior_density: np.ndarray
    gamma_qq: tuple[np.ndarray, np.ndarray]
    delta_grid: np.ndarray
    delta_kde: np.ndarray
    delta_prior_kde: np.ndarray
    delta_qq: tuple[np.ndarray, np.ndarray]

    def to_dict(self) -> dict[str, Any]:
        """Plain-Python representation."""
        return {
            "batch": self.batch,
            "gamma_grid": self.gamma_grid.tolist(),
            "gamma_kde": self.gamma_kde.tolist(),
            "gamma_prior_density": self.gamma_prior_density.tolist(),
            "gamma_qq": [q.tolist() for q in self.gamma_qq],
            "delta_grid": self.delta_grid.tolist(),
            "delta_kde": self.delta_kde.tolist(),
            "delta_prior_kde": self.delta_prior_kde.tolist(),
            "delta_qq": [q.tolist() for q in self.delta_qq],
        }


def _kde_on_grid(values: np.ndarray, grid: np.ndarray) -> np.ndarray:
    """Gaussian KDE of *values* on *grid*; NaN if it cannot be fitted."""
    try:
        return sp_stats.gaussian_kde(values)(grid)
    except (np.linalg.LinAlgError, ValueError) as exc:
        logger.debug("Kernel density estimate failed: %s", exc)
        return np.full(grid.shape, np.nan)


def prior_density_diagnostics(
    gamma_hat: np.ndarray,
    delta_hat: np.ndarray,
    gamma_bar: float,
    t2: float,
    a_prior: float,
    b_prior: float,
    *,
    batch: Any = None,
    random_state: int | np.random.Generator | None = None,
) -> PriorDiagnostics:
    """Compare one batch's raw estimates with their fitted priors.

    Args:
        gamma_hat: Raw location estimates ``(n_features,)``.
        delta_hat: Raw scale estimates ``(n_features,)``.
        gamma_bar: Fitted normal prior mean.
        t2: Fitted normal prior variance.
        a_prior: Fitted inverse-gamma shape.
        b_prior: Fitted inverse-gamma rate.
        batch: Label recorded on the result.
        random_state: Seed or generator for the inverse-gamma draws.

    Returns:
        A frozen :class:`PriorDiagnostics`.
    """
    rng = np.random.default_rng(random_state)
    g = gamma_hat[np.isfinite(gamma_hat)]
    d = delta_hat[np.isfinite(delta_hat)]

    gamma_grid = np.linspace(g.min(), g.max(), _GRID_POINTS)
    gamma_kde = _kde_on_grid(g, gamma_grid)
    gamma_prior_density = sp_stats.norm.pdf(gamma_grid, gamma_bar, np.sqrt(t2))
    (theoretical, sample), _ = sp_stats.probplot(g, dist="norm")

    # 1 / Gamma(shape=a, rate=b) is InvGamma(a, scale=b).
    invgam = sp_stats.invgamma.rvs(a_prior, scale=b_prior, size=d.size, random_state=rng)
    upper = max(d.max(), invgam.max())
    delta_grid = np.linspace(min(d.min(), invgam.min()), upper, _GRID_POINTS)
    delta_kde = _kde_on_grid(d, delta_grid)
    delta_prior_kde = _kde_on_grid(invgam, delta_grid)
    delta_qq = (np.sort(d), np.sort(invgam))

    return PriorDiagnostics(
        batch=batch,
        gamma_grid=gamma_grid,
        gamma_kde=gamma_kde,
        gamma_prior_density=gamma_prior_density,
        gamma_qq=(np.asarray(theoretical), np.asarray(sample)),
        delta_grid=delta_grid,
        delta_kde=delta_kde,
        delta_prior_kde=delta_prior_kde,
        delta_qq=delta_qq,
    )


# ------------------------------------------------------------------ #
# Batch-effect tests
# ------------------------------------------------------------------ #


def _residual_ss(dat: np.ndarray, design: np.ndarray) -> np.ndarray:
    """Per-feature residual sum of squares after projecting out *design*."""
    coefs, *_ = np.linalg.lstsq(design, dat.T, rcond=None)
    resid = dat - (design @ coefs).T
    return np.sum(resid**2, axis=1)


def f_pvalue(dat: Any, mod: Any, mod0: Any) -> np.ndarray:
    """Per-feature nested-model F-test p-values.

    Args:
        dat: Data ``(n_features, n_samples)`` without missing values.
        mod: Full design ``(n_samples, df1)``.
        mod0: Reduced design ``(n_samples, df0)`` nested in *mod*.

    Returns:
        P-values ``(n_features,)``.

    Raises:
        ValueError: If the designs do not match the data, *mod0* has
            as many columns as *mod*, or *dat* has missing values.
    """
    values = _as_float_matrix(dat, name="dat")
    full = _as_float_matrix(np.asarray(mod, dtype=float).reshape(values.shape[1], -1), name="mod")
    reduced = _as_float_matrix(
        np.asarray(mod0, dtype=float).reshape(values.shape[1], -1), name="mod0"
    )
    if np.isnan(values).any():
        raise ValueError("f_pvalue requires data without missing values.")

    n = values.shape[1]
    df1 = full.shape[1]
    df0 = reduced.shape[1]
    if df1 <= df0:
        raise ValueError(
            f"'mod' must have more columns than 'mod0' (got {df1} and {df0})."
        )

    rss1 = _residual_ss(values, full)
    rss0 = _residual_ss(values, reduced)
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", RuntimeWarning)
        fstats = ((rss0 - rss1) / (df1 - df0)) / (rss1 / (n - df1))
    return sp_stats.f.sf(fstats, df1 - df0, n - df1)


def batch_effect_pvalues(dat: Any, batch: Any) -> np.ndarray:
    """F-test p-values for a batch effect in every feature.

    Args:
        dat: Data ``(n_features, n_samples)`` without missing values.
        batch: One batch label per sample (at least two levels).

    Returns:
        P-values ``(n_features,)``.
    """
    values = _as_float_matrix(dat, name="dat")
    info = build_design(batch, values.shape[1])
    if info.n_batch < 2:
        raise ValueError("batch_effect_pvalues requires at least two batches.")
    intercept = np.ones((values.shape[1], 1))
    return f_pvalue(values, info.batch_design, intercept)


__all__ = [
    "PriorDiagnostics",
    "batch_effect_pvalues",
    "f_pvalue",
    "prior_density_diagnostics",
]
