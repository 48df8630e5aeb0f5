"""ComBat batch-effect adjustment.

ComBat (Johnson, Li & Rabinovic 2007) removes additive and
multiplicative batch effects from a features × samples matrix while
preserving the signal modelled by the caller's covariates.  Each
feature is modelled as

    Y_gj = α_g + X_j β_g + γ_ig + δ_ig ε_gj

with sample *j* in batch *i*.  The pipeline runs five stages in a
fixed order:

1. **Design** — batch indicators plus covariates, validated for
   confounding (:mod:`.design`).
2. **Standardization** — regress every feature on the design, remove
   α_g + X_j β_g and divide by the pooled standard deviation
   (:mod:`.standardize`).
3. **Location/scale** — raw per-batch γ̂ (mean) and δ̂² (variance) of
   the standardized data (:mod:`.estimate`).
4. **Empirical Bayes** — hyper-priors pooled across features
   (:mod:`.priors`), then per-feature shrinkage toward them with the
   parametric or non-parametric strategy (:mod:`._strategies`).
5. **Adjustment** — subtract γ*, divide by √δ*², and map back to the
   original scale.  A reference batch, if given, is returned exactly
   as it was supplied.

Missing values are allowed anywhere in the data.  Every regression
uses only the observed samples of each feature, and missing positions
stay missing in the output.

Any batch with a single sample cannot support a variance estimate,
so the whole run switches to mean-only adjustment (γ only).

References:
    Johnson, W. E., Li, C. & Rabinovic, A. (2007). Adjusting batch
    effects in microarray expression data using empirical Bayes
    methods. *Biostatistics*, 8(1), 118–127.

    Zhang, Y., Jenkins, D. F., Manimaran, S. & Johnson, W. E. (2018).
    Alternative empirical Bayes models for adjusting for batch effects
    in genomic studies. *BMC Bioinformatics*, 19, 262.
"""

from __future__ import annotations

import logging
from typing import Any

import numpy as np
import pandas as pd

from ._compat import _as_float_matrix, _ensure_pandas_df, _is_dataframe_like
from ._config import get_n_jobs
from ._context import AdjustmentContext
from ._results import CombatResult
from ._strategies import resolve_strategy
from .design import DesignInfo, build_design
from .diagnostics import prior_density_diagnostics
from .estimate import fit_location_scale
from .priors import estimate_priors
from .standardize import standardize

_logger = logging.getLogger(__name__)


def _adjust(
    s_data: np.ndarray,
    stand_mean: np.ndarray,
    var_pooled: np.ndarray,
    gamma_star: np.ndarray,
    delta_star: np.ndarray,
    info: DesignInfo,
) -> np.ndarray:
    """Remove shrunk batch effects and return to the original scale."""
    bayesdata = s_data.copy()
    with np.errstate(divide="ignore", invalid="ignore"):
        for i, idx in enumerate(info.batch_indices):
            bayesdata[:, idx] = (
                bayesdata[:, idx] - gamma_star[i][:, np.newaxis]
            ) / np.sqrt(delta_star[i])[:, np.newaxis]
        return bayesdata * np.sqrt(var_pooled)[:, np.newaxis] + stand_mean


def _wrap_like(values: np.ndarray, template: Any) -> np.ndarray | pd.DataFrame:
    """Return *values* as a DataFrame shaped like *template* if it was one."""
    if _is_dataframe_like(template):
        frame = _ensure_pandas_df(template, name="dat")
        return pd.DataFrame(values, index=frame.index, columns=frame.columns)
    return values


def combat_fit(
    dat: Any,
    batch: Any,
    mod: Any = None,
    *,
    parametric: bool = True,
    prior_plots: bool = False,
    mean_only: bool = False,
    ref_batch: Any = None,
    max_iter: int = 1000,
    n_jobs: int | None = None,
    random_state: int | None = None,
    logger: logging.Logger | None = None,
) -> CombatResult:
    """Adjust *dat* for batch effects and return every estimate.

    Args:
        dat: Measurement matrix ``(n_features, n_samples)``; NaN marks a
            missing value.  NumPy array, pandas or Polars DataFrame.
        batch: One batch label per sample.  Exactly one grouping
            variable: a 1-D array-like, ``pd.Series``, or a
            single-column DataFrame.
        mod: Optional covariate matrix ``(n_samples, k)`` describing the
            signal to preserve.  Must not encode batch.  All-ones
            (intercept) columns are dropped.
        parametric: Use the parametric (iterative) shrinkage strategy;
            ``False`` selects the non-parametric kernel strategy.
        prior_plots: With the parametric strategy, collect
            :class:`~ebcombat.diagnostics.PriorDiagnostics` for the
            first batch.  Never changes the adjusted data.
        mean_only: Adjust locations only.  Forced on when any batch
            has a single sample.
        ref_batch: Batch label to use as reference.  Its samples are
            returned unchanged and every other batch is adjusted
            toward it.
        max_iter: Iteration cap for the parametric strategy.
        n_jobs: Worker threads for per-feature loops.  ``None`` defers
            to :func:`~ebcombat.get_n_jobs`.
        random_state: Seed for the inverse-gamma draws used by
            *prior_plots*.
        logger: Destination for progress messages.  Defaults to this
            module's logger.

    Returns:
        A :class:`~ebcombat.CombatResult`.  ``result.data`` has the
        type, shape and missing-value positions of *dat*.

    Raises:
        CombatConfigError: For more than one batch variable, a
            reference batch that is not a batch level (or not a single
            label), mismatched dimensions, or a confounded design.
            Raised before any fitting.
        TypeError: If *dat* is not a numeric matrix.
    """
    log = logger if logger is not None else _logger

    if mean_only:
        log.info("Using the 'mean only' version of ComBat")

    values = _as_float_matrix(dat, name="dat")
    n_jobs = get_n_jobs(n_jobs)
    strategy = resolve_strategy("parametric" if parametric else "nonparametric")

    ctx = AdjustmentContext(dat=values, n_jobs=n_jobs, strategy=strategy.name)

    # ---- Design ----------------------------------------------------
    info = build_design(batch, values.shape[1], mod=mod, ref_batch=ref_batch)
    ctx.design_info = info
    log.info("Found %d batches", info.n_batch)

    if info.mean_only_forced and not mean_only:
        log.info("Note: one batch has only one sample, setting mean_only=True")
    mean_only = mean_only or info.mean_only_forced
    ctx.mean_only = mean_only

    log.info("Adjusting for %d covariate(s) or covariate level(s)", info.n_covariates)

    n_missing = int(np.isnan(values).sum())
    ctx.n_missing = n_missing
    if n_missing:
        log.info("Found %d missing data values", n_missing)

    if info.ref_index is not None:
        log.info("Using batch %r as the reference batch", info.ref_batch)

    # ---- Standardization -------------------------------------------
    log.info("Standardizing data across features")
    std = standardize(values, info, n_jobs=n_jobs)
    ctx.standardization = std

    # ---- Location / scale and priors -------------------------------
    log.info("Fitting L/S model and finding priors")
    gamma_hat, delta_hat = fit_location_scale(
        std.s_data, info, mean_only=mean_only, n_jobs=n_jobs
    )
    ctx.gamma_hat = gamma_hat
    ctx.delta_hat = delta_hat

    priors = estimate_priors(gamma_hat, delta_hat)
    ctx.priors = priors

    diagnostics = None
    if prior_plots and parametric and mean_only:
        log.info("Skipping prior diagnostics: scale priors are undefined in mean-only mode")
    elif prior_plots and parametric:
        diagnostics = prior_density_diagnostics(
            gamma_hat[0],
            delta_hat[0],
            *priors.for_batch(0),
            batch=info.batch_levels[0],
            random_state=random_state,
        )

    # ---- Empirical-Bayes shrinkage ---------------------------------
    log.info("Finding %s adjustments", strategy.name)
    for i, idx in enumerate(info.batch_indices):
        result = strategy.shrink(
            std.s_data[:, idx],
            gamma_hat[i],
            delta_hat[i],
            *priors.for_batch(i),
            mean_only=mean_only,
            max_iter=max_iter,
            n_jobs=n_jobs,
        )
        if not result.converged:
            log.warning(
                "Shrinkage for batch %r stopped after %d iterations without converging",
                info.batch_levels[i],
                result.n_iter,
            )
        ctx.shrinkage.append(result)

    gamma_star = np.vstack([r.gamma_star for r in ctx.shrinkage])
    delta_star = np.vstack([r.delta_star for r in ctx.shrinkage])
    ctx.gamma_star = gamma_star
    ctx.delta_star = delta_star

    # ---- Adjustment ------------------------------------------------
    log.info("Adjusting the data")
    bayesdata = _adjust(
        std.s_data, std.stand_mean, std.var_pooled, gamma_star, delta_star, info
    )
    if info.ref_index is not None:
        ref = info.batch_indices[info.ref_index]
        bayesdata[:, ref] = values[:, ref]

    return CombatResult(
        data=_wrap_like(bayesdata, dat),
        batch_levels=info.batch_levels,
        n_batches=info.n_batches.tolist(),
        ref_batch=info.ref_batch,
        n_covariates=info.n_covariates,
        n_missing=n_missing,
        parametric=parametric,
        mean_only=mean_only,
        mean_only_forced=info.mean_only_forced,
        gamma_hat=gamma_hat,
        delta_hat=delta_hat,
        gamma_star=gamma_star,
        delta_star=delta_star,
        gamma_bar=priors.gamma_bar,
        t2=priors.t2,
        a_prior=priors.a_prior,
        b_prior=priors.b_prior,
        var_pooled=std.var_pooled,
        converged=[r.converged for r in ctx.shrinkage],
        n_iterations=[r.n_iter for r in ctx.shrinkage],
        prior_diagnostics=diagnostics,
        context=ctx,
    )


def combat(
    dat: Any,
    batch: Any,
    mod: Any = None,
    *,
    parametric: bool = True,
    prior_plots: bool = False,
    mean_only: bool = False,
    ref_batch: Any = None,
    max_iter: int = 1000,
    n_jobs: int | None = None,
    random_state: int | None = None,
    logger: logging.Logger | None = None,
) -> np.ndarray | pd.DataFrame:
    """Adjust *dat* for batch effects.

    Thin wrapper around :func:`combat_fit` that returns only the
    adjusted matrix.  See :func:`combat_fit` for the arguments.

    Returns:
        Adjusted data with the type, shape and missing-value positions
        of *dat*.

    Example:
        >>> import numpy as np
        >>> from ebcombat import combat
        >>> rng = np.random.default_rng(0)
        >>> dat = rng.standard_normal((50, 12))
        >>> dat[:, 6:] += 3.0
        >>> adjusted = combat(dat, [1] * 6 + [2] * 6)
        >>> adjusted.shape
        (50, 12)
    """
    return combat_fit(
        dat,
        batch,
        mod,
        parametric=parametric,
        prior_plots=prior_plots,
        mean_only=mean_only,
        ref_batch=ref_batch,
        max_iter=max_iter,
        n_jobs=n_jobs,
        random_state=random_state,
        logger=logger,
    ).data
