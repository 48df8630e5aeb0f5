"""Worker-count configuration for the ebcombat package.

Controls how many joblib threads the per-feature loops use (NA-aware
least squares for features with missing values, and the kernel
weighting of the non-parametric shrinkage strategy).

Resolution order (first match wins):
    1. An explicit ``n_jobs=`` argument to :func:`~ebcombat.combat`.
    2. Programmatic override via :func:`set_n_jobs`.
    3. The ``EBCOMBAT_N_JOBS`` environment variable.
    4. The default of ``1`` (sequential).

``-1`` means "all cores", following the joblib convention.

Examples:
    Use four threads from the shell::

        export EBCOMBAT_N_JOBS=4

    Programmatically::

        import ebcombat
        ebcombat.set_n_jobs(4)

    Restore the default resolution order::

        ebcombat.set_n_jobs(None)
"""

from __future__ import annotations

import os

_ENV_VAR = "EBCOMBAT_N_JOBS"
_DEFAULT_N_JOBS = 1

# Sentinel indicating "no programmatic override has been set".
_n_jobs_override: int | None = None


def _validate_n_jobs(value: object, *, source: str) -> int:
    """Return *value* as an ``int`` or raise ``ValueError``."""
    if isinstance(value, bool):
        raise ValueError(f"{source} must be a non-zero integer, got {value!r}.")
    try:
        n_jobs = int(value)  # type: ignore[call-overload]
    except (TypeError, ValueError):
        raise ValueError(
            f"{source} must be a non-zero integer, got {value!r}."
        ) from None
    if n_jobs == 0:
        raise ValueError(f"{source} must be a non-zero integer, got 0.")
    return n_jobs


def get_n_jobs(n_jobs: int | None = None) -> int:
    """Return the worker count to use for the current call.

    Args:
        n_jobs: Explicit per-call value.  ``None`` defers to the
            override, the environment, then the default.

    Returns:
        A non-zero integer (``-1`` = all cores).

    Raises:
        ValueError: If any source holds something other than a
            non-zero integer.
    """
    if n_jobs is not None:
        return _validate_n_jobs(n_jobs, source="n_jobs")

    if _n_jobs_override is not None:
        return _n_jobs_override

    env = os.environ.get(_ENV_VAR, "").strip()
    if env:
        return _validate_n_jobs(env, source=_ENV_VAR)

    return _DEFAULT_N_JOBS


def set_n_jobs(n_jobs: int | None) -> None:
    """Override the default worker count.

    Args:
        n_jobs: A non-zero integer, or ``None`` to restore the default
            resolution order.

    Raises:
        ValueError: If *n_jobs* is zero or not an integer.
    """
    global _n_jobs_override
    if n_jobs is None:
        _n_jobs_override = None
        return
    _n_jobs_override = _validate_n_jobs(n_jobs, source="n_jobs")
