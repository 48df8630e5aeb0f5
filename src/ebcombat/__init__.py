"""ebcombat — Empirical-Bayes batch-effect adjustment (ComBat).

Removes additive and multiplicative batch effects from a
features × samples matrix while preserving covariate-modelled signal,
with parametric (iterative) or non-parametric (kernel) shrinkage,
mean-only and reference-batch variants, and per-feature handling of
missing values.

Public API:
    .. autosummary::
        combat
        combat_fit
        build_design
        estimate_priors
        f_pvalue
        batch_effect_pvalues
        prior_density_diagnostics
        print_adjustment_table
        get_n_jobs
        set_n_jobs
        CombatConfigError
        CombatResult
        AdjustmentContext
        DesignInfo
        Priors
        PriorDiagnostics
"""

from ._config import get_n_jobs, set_n_jobs
from ._context import AdjustmentContext
from ._results import CombatResult
from .core import combat, combat_fit
from .design import CombatConfigError, DesignInfo, build_design
from .diagnostics import (
    PriorDiagnostics,
    batch_effect_pvalues,
    f_pvalue,
    prior_density_diagnostics,
)
from .display import print_adjustment_table
from .priors import Priors, estimate_priors

__all__ = [
    "combat",
    "combat_fit",
    "build_design",
    "estimate_priors",
    "f_pvalue",
    "batch_effect_pvalues",
    "prior_density_diagnostics",
    "print_adjustment_table",
    "get_n_jobs",
    "set_n_jobs",
    "CombatConfigError",
    "CombatResult",
    "AdjustmentContext",
    "DesignInfo",
    "Priors",
    "PriorDiagnostics",
]

__version__ = "0.1.0"
