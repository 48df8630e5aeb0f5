"""Typed result objects for ComBat adjustments.

Frozen dataclasses that provide:

* **Attribute access** — ``result.gamma_star``, ``result.data``, etc.
* **Dict-like access** — ``result["gamma_star"]``, ``result.get("key")``,
  ``"key" in result`` for consumers that prefer bracket syntax.
* **Serialisation** — ``.to_dict()`` returns a plain ``dict[str, Any]``
  with all NumPy and pandas types converted to native Python.

:class:`CombatResult` is frozen (immutable after construction) to
communicate that it is a snapshot of a completed adjustment.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import TYPE_CHECKING, Any, ClassVar

import numpy as np
import pandas as pd

if TYPE_CHECKING:
    from ._context import AdjustmentContext
    from .diagnostics import PriorDiagnostics

# ------------------------------------------------------------------ #
# Serialisation helper
# ------------------------------------------------------------------ #


def _numpy_to_python(obj: Any) -> Any:
    """Recursively convert NumPy/pandas values to Python-native types.

    Handles nested dicts, lists, DataFrames, np.ndarray, np.integer,
    and np.floating so that :meth:`to_dict` returns a fully
    JSON-serialisable structure.  NaN stays a ``float('nan')``.
    """
    if isinstance(obj, pd.DataFrame):
        return obj.to_numpy().tolist()
    if isinstance(obj, np.ndarray):
        return obj.tolist()
    if isinstance(obj, np.bool_):
        return bool(obj)
    if isinstance(obj, np.integer):
        return int(obj)
    if isinstance(obj, np.floating):
        return float(obj)
    if isinstance(obj, np.generic):
        return obj.item()
    if isinstance(obj, dict):
        return {k: _numpy_to_python(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        converted = [_numpy_to_python(item) for item in obj]
        return type(obj)(converted)
    return obj


# ------------------------------------------------------------------ #
# Dict-compatibility mixin
# ------------------------------------------------------------------ #


class _DictAccessMixin:
    """Dict-like access convenience for result dataclasses.

    Supports three access patterns:

    1. ``result["key"]``     — raises ``KeyError`` on miss
    2. ``result.get(key, d)`` — returns *d* on miss (default ``None``)
    3. ``"key" in result``   — membership test

    Subclasses may override ``_SERIALIZERS`` to register custom
    conversion functions for non-primitive fields.  Serializers compose
    with :func:`_numpy_to_python`.
    """

    _SERIALIZERS: ClassVar[dict[str, Any]] = {}

    # Fields to exclude from to_dict() serialisation.
    _EXCLUDE_FROM_DICT: ClassVar[frozenset[str]] = frozenset({"context"})

    def __getitem__(self, key: str) -> Any:
        """Attribute lookup via bracket syntax."""
        try:
            return getattr(self, key)
        except AttributeError:
            raise KeyError(key) from None

    def get(self, key: str, default: Any = None) -> Any:
        """Attribute lookup with a fallback default."""
        return getattr(self, key, default)

    def __contains__(self, key: object) -> bool:
        """Membership test: ``"key" in result``."""
        if not isinstance(key, str):
            return False
        return hasattr(self, key)

    def to_dict(self) -> dict[str, Any]:
        """Convert to a plain dictionary.

        Applies per-field serializers from ``_SERIALIZERS``, then runs
        :func:`_numpy_to_python` on every value so the returned dict
        is fully JSON-serialisable.
        """
        result: dict[str, Any] = {}
        for f in fields(self):  # type: ignore[arg-type]
            if f.name in self._EXCLUDE_FROM_DICT:
                continue
            val = getattr(self, f.name)
            if f.name in self._SERIALIZERS:
                val = self._SERIALIZERS[f.name](val)
            result[f.name] = _numpy_to_python(val)
        return result


# ------------------------------------------------------------------ #
# CombatResult
# ------------------------------------------------------------------ #


@dataclass(frozen=True)
class CombatResult(_DictAccessMixin):
    """Result of one ComBat adjustment.

    Returned by :func:`~ebcombat.combat_fit`.  All per-batch arrays
    have one row per entry of :attr:`batch_levels`.
    """

    _SERIALIZERS: ClassVar[dict[str, Any]] = {
        "prior_diagnostics": lambda d: None if d is None else d.to_dict(),
    }

    # ---- Adjusted data ---------------------------------------------
    data: np.ndarray | pd.DataFrame
    """Batch-adjusted data, same type and shape as the input."""

    # ---- Batch bookkeeping -----------------------------------------
    batch_levels: list[Any]
    """Sorted distinct batch labels."""

    n_batches: list[int]
    """Sample count per batch."""

    ref_batch: Any
    """Reference batch label, or ``None``."""

    n_covariates: int
    """Covariate columns used after dropping intercepts."""

    n_missing: int
    """Number of missing entries in the input."""

    # ---- Mode ------------------------------------------------------
    parametric: bool
    """Whether the parametric strategy was used."""

    mean_only: bool
    """Effective mean-only flag (``True`` if forced)."""

    mean_only_forced: bool
    """``True`` when a single-sample batch forced mean-only mode."""

    # ---- Estimates -------------------------------------------------
    gamma_hat: np.ndarray
    """Raw location estimates ``(n_batch, n_features)``."""

    delta_hat: np.ndarray
    """Raw scale estimates ``(n_batch, n_features)``."""

    gamma_star: np.ndarray
    """Shrunk location estimates ``(n_batch, n_features)``."""

    delta_star: np.ndarray
    """Shrunk scale estimates ``(n_batch, n_features)``."""

    gamma_bar: np.ndarray
    """Prior location mean per batch."""

    t2: np.ndarray
    """Prior location variance per batch."""

    a_prior: np.ndarray
    """Inverse-gamma shape per batch."""

    b_prior: np.ndarray
    """Inverse-gamma rate per batch."""

    var_pooled: np.ndarray
    """Pooled residual variance per feature."""

    # ---- Convergence -----------------------------------------------
    converged: list[bool]
    """Per-batch convergence flag of the shrinkage step."""

    n_iterations: list[int]
    """Per-batch iteration count of the shrinkage step."""

    # ---- Side channel ----------------------------------------------
    prior_diagnostics: PriorDiagnostics | None = None
    """Prior-fit density data for the first batch, when requested."""

    # ---- Computation context (not serialised) ----------------------
    context: AdjustmentContext | None = field(default=None, repr=False, compare=False)
    """Pipeline computation context.  Carries every intermediate
    (design, standardized data, per-batch shrinkage results).
    Excluded from ``to_dict()`` serialisation."""

    @property
    def all_converged(self) -> bool:
        """``True`` when every batch's shrinkage converged."""
        return all(self.converged)


__all__ = ["CombatResult"]
