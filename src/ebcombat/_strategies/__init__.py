"""Shrinkage strategy registry and protocol.

Each strategy turns one batch's raw location/scale estimates into
empirical-Bayes posterior estimates (γ*, δ*), borrowing strength
across features.  Two interchangeable strategies exist:

* ``"parametric"`` — normal / inverse-gamma priors, posterior means
  found by alternating closed-form updates until convergence.
* ``"nonparametric"`` — no prior family; each feature's estimate is a
  likelihood-weighted average of the *other* features' raw estimates.

:func:`~ebcombat.core.combat_fit` resolves the strategy once and
calls :meth:`ShrinkageStrategy.shrink` for every batch.

Adding a new strategy
~~~~~~~~~~~~~~~~~~~~~
1. Create a module under ``_strategies/`` with a class that satisfies
   the :class:`ShrinkageStrategy` protocol.
2. Register it in :func:`_ensure_registry`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, runtime_checkable

import numpy as np

# ------------------------------------------------------------------ #
# Result & protocol
# ------------------------------------------------------------------ #


@dataclass(frozen=True)
class ShrinkageResult:
    """Posterior estimates for one batch.

    Attributes:
        gamma_star: Shrunk location per feature ``(n_features,)``.
        delta_star: Shrunk scale per feature ``(n_features,)``; ones in
            mean-only mode.
        n_iter: Iterations performed (``0`` for closed-form paths).
        converged: ``False`` only when an iterative strategy hit its
            iteration cap.
    """

    gamma_star: np.ndarray
    delta_star: np.ndarray
    n_iter: int = 0
    converged: bool = True


@runtime_checkable
class ShrinkageStrategy(Protocol):
    """Interface that every shrinkage strategy must satisfy."""

    name: str

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
        """Shrink one batch's raw estimates.

        Args:
            s_data: Standardized data restricted to the batch's
                samples ``(n_features, n_b)``.
            gamma_hat: Raw location estimates ``(n_features,)``.
            delta_hat: Raw scale estimates ``(n_features,)``.
            gamma_bar: Prior mean of the locations.
            t2: Prior variance of the locations.
            a_prior: Inverse-gamma shape of the scales.
            b_prior: Inverse-gamma rate of the scales.
            mean_only: Shrink locations only; scales fixed at 1.
            max_iter: Iteration cap for iterative strategies.
            n_jobs: Worker threads for per-feature loops.

        Returns:
            A :class:`ShrinkageResult`.
        """
        ...


# ------------------------------------------------------------------ #
# Registry
# ------------------------------------------------------------------ #

_STRATEGY_REGISTRY: dict[str, type[ShrinkageStrategy]] = {}


def _ensure_registry() -> None:
    """Populate the registry on first access."""
    if _STRATEGY_REGISTRY:
        return

    from .nonparametric import NonParametricStrategy
    from .parametric import ParametricStrategy

    _STRATEGY_REGISTRY.update(
        {
            "parametric": ParametricStrategy,
            "nonparametric": NonParametricStrategy,
        }
    )


def resolve_strategy(name: str) -> ShrinkageStrategy:
    """Return a strategy instance for *name*.

    Args:
        name: ``"parametric"`` or ``"nonparametric"``.

    Raises:
        ValueError: If *name* is not recognised.
    """
    _ensure_registry()
    cls = _STRATEGY_REGISTRY.get(name)
    if cls is None:
        valid = ", ".join(sorted(_STRATEGY_REGISTRY))
        raise ValueError(f"Invalid shrinkage strategy '{name}'. Choose from: {valid}.")
    return cls()


__all__ = [
    "ShrinkageResult",
    "ShrinkageStrategy",
    "resolve_strategy",
]
