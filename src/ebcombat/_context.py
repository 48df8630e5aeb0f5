"""Computation context — mutable accumulator for pipeline artifacts.

An :class:`AdjustmentContext` travels through the ComBat pipeline,
collecting intermediate artifacts at their natural computation points.
Downstream consumers (display, diagnostics, re-analysis) read from the
context instead of re-computing.

The context is **not** part of the public serialisation API: it carries
NumPy arrays that are large and of little interest once the adjusted
data exist.  :meth:`~_results.CombatResult.to_dict` skips it
automatically.

Lifecycle::

    ┌──────────────────────────────────────────────────┐
    │  combat_fit()                                    │
    │  ├─ ctx = AdjustmentContext()                    │
    │  ├─ ctx.design_info = build_design(…)            │
    │  ├─ ctx.standardization = standardize(…)         │
    │  ├─ ctx.gamma_hat, ctx.delta_hat = fit_loc…(…)   │
    │  ├─ ctx.priors = estimate_priors(…)              │
    │  ├─ ctx.shrinkage[i] = strategy.shrink(…)        │
    │  ├─ ctx.gamma_star, ctx.delta_star = stack(…)    │
    │  └─ return CombatResult(…, context=ctx)          │
    └──────────────────────────────────────────────────┘

A fresh context is created per call; nothing persists across calls.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import numpy as np

if TYPE_CHECKING:
    from ._strategies import ShrinkageResult
    from .design import DesignInfo
    from .priors import Priors
    from .standardize import Standardization


@dataclass
class AdjustmentContext:
    """Mutable accumulator for computation artifacts.

    Every field defaults to ``None`` (or an empty container) so the
    context can be created empty at the start of the pipeline and
    populated incrementally.  A ``None`` field means that stage has
    not run yet.
    """

    # ---- Inputs --------------------------------------------------
    dat: np.ndarray | None = None
    """Input data ``(n_features, n_samples)`` as floats."""

    n_missing: int = 0
    """Number of missing entries in ``dat``."""

    # ---- Design --------------------------------------------------
    design_info: DesignInfo | None = None
    """Validated design (batch indicators + covariates)."""

    mean_only: bool = False
    """Effective mean-only flag after any forcing."""

    # ---- Standardization -----------------------------------------
    standardization: Standardization | None = None
    """B_hat, grand mean, pooled variance, standardized data."""

    # ---- Location / scale ----------------------------------------
    gamma_hat: np.ndarray | None = None
    """Raw location estimates ``(n_batch, n_features)``."""

    delta_hat: np.ndarray | None = None
    """Raw scale estimates ``(n_batch, n_features)``."""

    priors: Priors | None = None
    """Per-batch hyper-parameters."""

    # ---- Shrinkage -----------------------------------------------
    strategy: str | None = None
    """``"parametric"`` or ``"nonparametric"``."""

    shrinkage: list[ShrinkageResult] = field(default_factory=list)
    """One result per batch, in batch-level order."""

    gamma_star: np.ndarray | None = None
    """Shrunk location estimates ``(n_batch, n_features)``."""

    delta_star: np.ndarray | None = None
    """Shrunk scale estimates ``(n_batch, n_features)``."""

    n_jobs: int = 1
    """Resolved worker count."""


__all__ = ["AdjustmentContext"]
