"""Design-matrix construction and validation.

ComBat models every feature as

    Y_gj = α_g + X_j β_g + γ_ig + δ_ig ε_gj

where *i* indexes the batch of sample *j*.  The design matrix used to
estimate α_g + X_j β_g and the additive batch effects γ_ig jointly is
built from one indicator column per batch level (no intercept; the
indicators span it) followed by the caller's covariates.

A covariate column that is all ones is the intercept again and is
dropped, so ``mod=None`` and an intercept-only ``mod`` give the same
design.  Batch indicators are never dropped: with a single batch the
indicator *is* the intercept.

Validation happens here, before any numeric fitting:

* exactly one batch grouping variable;
* batch / covariate row counts match the sample count;
* the reference batch (when given) is a scalar naming a realized
  batch level;
* the design has full column rank.  Rank deficiency is classified by
  comparing the rank with and without the batch columns, so the error
  message tells the caller *which* columns to drop.

Any batch with a single sample cannot support a variance estimate;
:attr:`DesignInfo.mean_only_forced` records that so the pipeline can
switch to mean-only adjustment.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import numpy as np
import pandas as pd

from ._compat import _as_float_matrix, _ensure_pandas_df, _is_dataframe_like


class CombatConfigError(ValueError):
    """Raised when the inputs describe an unusable ComBat configuration.

    Covers multiple batch groupings, mismatched dimensions, an invalid
    reference batch and confounded designs.  Always raised before any
    model is fitted.
    """


@dataclass(frozen=True)
class DesignInfo:
    """Validated design for one ComBat run.

    Attributes:
        design: Full design matrix ``(n_samples, n_batch + n_covariates)``;
            batch indicator columns first.
        column_names: Names of the design columns.
        batch_levels: Sorted distinct batch labels; row *i* of every
            per-batch array refers to ``batch_levels[i]``.
        batch_codes: Integer batch index per sample ``(n_samples,)``.
        batch_indices: Sample indices belonging to each batch.
        n_batches: Sample count per batch.
        ref_index: Position of the reference batch in ``batch_levels``,
            or ``None``.
        mean_only_forced: ``True`` when some batch has one sample.
    """

    design: np.ndarray
    column_names: list[str]
    batch_levels: list[Any]
    batch_codes: np.ndarray
    batch_indices: list[np.ndarray] = field(repr=False)
    n_batches: np.ndarray
    ref_index: int | None = None
    mean_only_forced: bool = False

    @property
    def n_batch(self) -> int:
        """Number of batch levels."""
        return len(self.batch_levels)

    @property
    def n_array(self) -> int:
        """Total number of samples."""
        return int(self.n_batches.sum())

    @property
    def n_covariates(self) -> int:
        """Covariate columns kept after dropping intercepts."""
        return self.design.shape[1] - self.n_batch

    @property
    def batch_design(self) -> np.ndarray:
        """Batch indicator block ``(n_samples, n_batch)``."""
        return self.design[:, : self.n_batch]

    @property
    def ref_batch(self) -> Any:
        """Reference batch label, or ``None``."""
        if self.ref_index is None:
            return None
        return self.batch_levels[self.ref_index]


# ------------------------------------------------------------------ #
# Batch labels
# ------------------------------------------------------------------ #


def _batch_categorical(batch: Any, n_samples: int) -> pd.Categorical:
    """Coerce *batch* to a categorical with sorted, used levels."""
    if _is_dataframe_like(batch):
        frame = _ensure_pandas_df(batch, name="batch")
        if frame.shape[1] != 1:
            raise CombatConfigError(
                "Only one batch variable is supported; got "
                f"{frame.shape[1]} batch columns."
            )
        batch = frame.iloc[:, 0]
    elif not isinstance(batch, (pd.Series, pd.Categorical, pd.Index)):
        arr = np.asarray(batch, dtype=object)
        if arr.ndim > 1:
            if arr.ndim == 2 and 1 in arr.shape:
                arr = arr.ravel()
            else:
                raise CombatConfigError(
                    "Only one batch variable is supported; got a batch "
                    f"array of shape {arr.shape}."
                )
        batch = arr

    if isinstance(batch, pd.Categorical):
        cat = batch.remove_unused_categories()
    else:
        cat = pd.Categorical(np.asarray(batch))

    if len(cat) != n_samples:
        raise CombatConfigError(
            f"'batch' has {len(cat)} labels but the data has {n_samples} samples."
        )
    if (np.asarray(cat.codes) < 0).any():
        raise CombatConfigError("'batch' must not contain missing labels.")
    if len(cat.categories) == 0:
        raise CombatConfigError("'batch' must contain at least one label.")
    return cat


def _resolve_ref_index(ref_batch: Any, levels: list[Any]) -> int | None:
    """Validate *ref_batch* and return its position in *levels*."""
    if ref_batch is None:
        return None
    if isinstance(ref_batch, (bool, np.bool_)) or np.ndim(ref_batch) != 0 or isinstance(
        ref_batch, (dict, set, frozenset)
    ):
        raise CombatConfigError(
            "'ref_batch' must be a single batch label, got "
            f"{type(ref_batch).__name__}."
        )
    for i, level in enumerate(levels):
        if level == ref_batch:
            return i
    raise CombatConfigError(
        f"Reference batch {ref_batch!r} is not one of the batch levels: "
        f"{levels!r}."
    )


# ------------------------------------------------------------------ #
# Covariates
# ------------------------------------------------------------------ #


def _covariate_block(mod: Any, n_samples: int) -> tuple[np.ndarray, list[str]]:
    """Return covariates ``(n_samples, k)`` with intercept columns removed."""
    if mod is None:
        return np.empty((n_samples, 0)), []

    if _is_dataframe_like(mod):
        frame = _ensure_pandas_df(mod, name="mod")
        names = [str(c) for c in frame.columns]
        values = _as_float_matrix(frame, name="mod")
    else:
        values = np.asarray(mod)
        if values.ndim == 1:
            values = values[:, np.newaxis]
        values = _as_float_matrix(values, name="mod")
        names = [f"covariate{j + 1}" for j in range(values.shape[1])]

    if values.shape[0] != n_samples:
        raise CombatConfigError(
            f"'mod' has {values.shape[0]} rows but the data has {n_samples} samples."
        )
    if np.isnan(values).any():
        raise CombatConfigError("'mod' must not contain missing values.")

    keep = ~np.all(values == 1, axis=0)
    return values[:, keep], [n for n, k in zip(names, keep) if k]


def _check_confounding(design: np.ndarray, n_batch: int) -> None:
    """Raise :class:`CombatConfigError` if *design* is rank deficient."""
    n_cols = design.shape[1]
    if np.linalg.matrix_rank(design) >= n_cols:
        return

    if n_cols == n_batch + 1:
        raise CombatConfigError(
            "The covariate is confounded with batch! Remove the covariate "
            "and rerun ComBat."
        )
    if n_cols > n_batch + 1:
        covariates = design[:, n_batch:]
        if np.linalg.matrix_rank(covariates) < covariates.shape[1]:
            raise CombatConfigError(
                "The covariates are confounded! Please remove one or more of "
                "the covariates so the design is not confounded."
            )
        raise CombatConfigError(
            "At least one covariate is confounded with batch! Please remove "
            "confounded covariates and rerun ComBat."
        )
    # Indicator columns of non-empty batches are always independent.
    raise CombatConfigError("The batch design is rank deficient.")


def build_design(
    batch: Any,
    n_samples: int,
    mod: Any = None,
    ref_batch: Any = None,
) -> DesignInfo:
    """Build and validate the ComBat design matrix.

    Args:
        batch: One batch label per sample.  A 1-D array-like,
            ``pd.Series``/``pd.Categorical``, or single-column
            DataFrame.
        n_samples: Number of samples (columns of the data matrix).
        mod: Optional covariate matrix ``(n_samples, k)``.  Must not
            encode batch.  All-ones columns are dropped.
        ref_batch: Optional batch label to keep unchanged.

    Returns:
        A frozen :class:`DesignInfo`.

    Raises:
        CombatConfigError: For multiple batch variables, mismatched
            sizes, an invalid reference batch, or a confounded design.
    """
    cat = _batch_categorical(batch, n_samples)
    levels = list(cat.categories)
    codes = np.asarray(cat.codes, dtype=np.intp)
    n_batch = len(levels)

    ref_index = _resolve_ref_index(ref_batch, levels)

    batch_design = np.zeros((n_samples, n_batch))
    batch_design[np.arange(n_samples), codes] = 1.0
    batch_indices = [np.flatnonzero(codes == i) for i in range(n_batch)]
    n_batches = np.array([len(idx) for idx in batch_indices], dtype=int)

    covariates, cov_names = _covariate_block(mod, n_samples)
    design = np.hstack([batch_design, covariates])
    column_names = [f"batch{level}" for level in levels] + cov_names

    _check_confounding(design, n_batch)

    return DesignInfo(
        design=design,
        column_names=column_names,
        batch_levels=levels,
        batch_codes=codes,
        batch_indices=batch_indices,
        n_batches=n_batches,
        ref_index=ref_index,
        mean_only_forced=bool(np.any(n_batches == 1)),
    )


__all__ = ["CombatConfigError", "DesignInfo", "build_design"]
