"""Input compatibility layer for optional Polars support.

The public API accepts NumPy arrays and pandas objects.  This module
adds transparent support for Polars DataFrames: when a user passes a
``polars.DataFrame`` (or ``polars.LazyFrame``) it is converted to
``pandas.DataFrame`` at the boundary so that internal code (which
operates on NumPy arrays) remains unchanged.

Polars is **not** a required dependency.  If it is not installed, the
converter simply passes pandas and NumPy objects through untouched.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, TypeAlias

import numpy as np
import pandas as pd

if TYPE_CHECKING:
    import polars as pl

    DataFrameLike: TypeAlias = pd.DataFrame | pl.DataFrame | pl.LazyFrame
else:
    DataFrameLike: TypeAlias = pd.DataFrame

# Runtime detection; Polars is optional.
try:
    import polars as pl

    _HAS_POLARS = True
except ImportError:
    _HAS_POLARS = False


def _ensure_pandas_df(obj: DataFrameLike, *, name: str = "input") -> pd.DataFrame:
    """Convert *obj* to a :class:`pandas.DataFrame` if necessary.

    Accepted types:
        * ``pandas.DataFrame`` — returned as-is.
        * ``polars.DataFrame`` — converted via ``.to_pandas()``.
        * ``polars.LazyFrame`` — collected then converted.

    Args:
        obj: A pandas or Polars DataFrame (or LazyFrame).
        name: Label used in error messages (e.g. ``"dat"``).

    Returns:
        A pandas ``DataFrame``.

    Raises:
        TypeError: If *obj* is not a recognised DataFrame type.
    """
    if isinstance(obj, pd.DataFrame):
        return obj

    if _HAS_POLARS:
        if isinstance(obj, pl.LazyFrame):
            return obj.collect().to_pandas()
        if isinstance(obj, pl.DataFrame):
            return obj.to_pandas()

    raise TypeError(
        f"'{name}' must be a pandas DataFrame"
        + (" or Polars DataFrame/LazyFrame" if _HAS_POLARS else "")
        + f", got {type(obj).__name__}."
    )


def _is_dataframe_like(obj: object) -> bool:
    """Return ``True`` for pandas and (when installed) Polars frames."""
    if isinstance(obj, pd.DataFrame):
        return True
    return _HAS_POLARS and isinstance(obj, (pl.DataFrame, pl.LazyFrame))


def _as_float_matrix(obj: object, *, name: str = "input") -> np.ndarray:
    """Return *obj* as a 2-D ``float`` array.

    DataFrames (pandas or Polars) go through :func:`_ensure_pandas_df`;
    anything else must be convertible by :func:`numpy.asarray`.

    Raises:
        TypeError: If the values are not numeric.
        ValueError: If the result is not two-dimensional.
    """
    if _is_dataframe_like(obj):
        values = _ensure_pandas_df(obj, name=name).to_numpy()  # type: ignore[arg-type]
    elif isinstance(obj, (np.ndarray, list, tuple)):
        values = np.asarray(obj)
    else:
        raise TypeError(
            f"'{name}' must be a NumPy array or DataFrame, got {type(obj).__name__}."
        )

    try:
        values = values.astype(float)
    except (TypeError, ValueError):
        raise TypeError(f"'{name}' must contain only numeric values.") from None

    if values.ndim != 2:
        raise ValueError(
            f"'{name}' must be two-dimensional, got {values.ndim} dimension(s)."
        )
    return values
