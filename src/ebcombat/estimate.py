"""Raw location/scale batch-effect estimates on standardized data."""

from __future__ import annotations

import warnings

import numpy as np

from ._lstsq import na_lstsq
from .design import DesignInfo


def fit_location_scale(
    s_data: np.ndarray,
    info: DesignInfo,
    mean_only: bool = False,
    n_jobs: int = 1,
) -> tuple[np.ndarray, np.ndarray]:
    """Estimate per-batch additive and multiplicative batch effects.

    ``gamma_hat`` regresses the standardized data on the batch
    indicators alone (covariates were already removed during
    standardization), which for complete rows is simply the per-batch
    mean.  ``delta_hat`` is the per-batch sample variance (ddof=1)
    ignoring missing values, or all ones in mean-only mode.

    Args:
        s_data: Standardized data ``(n_features, n_samples)``.
        info: Validated design.
        mean_only: Skip scale estimation.
        n_jobs: Worker threads for features with missing values.

    Returns:
        ``(gamma_hat, delta_hat)``, each ``(n_batch, n_features)``.
    """
    gamma_hat = na_lstsq(info.batch_design, s_data, n_jobs=n_jobs)

    n_features = s_data.shape[0]
    if mean_only:
        return gamma_hat, np.ones((info.n_batch, n_features))

    delta_hat = np.empty((info.n_batch, n_features))
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", RuntimeWarning)
        for i, idx in enumerate(info.batch_indices):
            delta_hat[i] = np.nanvar(s_data[:, idx], axis=1, ddof=1)
    return gamma_hat, delta_hat
