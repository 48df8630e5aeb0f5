"""Formatted ASCII table display for ComBat results.

The summary mirrors the statsmodels summary style: a top panel with
the run configuration (data size, batches, covariates, mode) and a
bottom panel with one row per batch showing its size, the fitted
hyper-priors, and whether shrinkage converged.

Looking at the priors side by side is the quickest way to spot a
batch that behaves differently from the rest: a large ``gamma_bar``
means a strong additive shift, a large ``t2`` means the shift varies
a lot across features, and a small inverse-gamma shape ``a_prior``
means heavy-tailed scale effects.
"""

from __future__ import annotations

import math
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ._results import CombatResult


def _truncate(name: str, max_len: int) -> str:
    """Truncate *name* to *max_len*, appending ``'...'`` if needed."""
    if len(name) <= max_len:
        return name
    return name[: max_len - 3] + "..."


def _fmt_val(val: object, digits: int = 4) -> str:
    """Format a value for display.

    Converts non-finite floats and ``None`` to ``'N/A'``; other floats
    use *digits* significant digits.
    """
    if val is None:
        return "N/A"
    if isinstance(val, float):
        if not math.isfinite(val):
            return "N/A"
        return f"{val:.{digits}g}"
    return str(val)


def print_adjustment_table(
    result: CombatResult,
    title: str = "ComBat Batch Adjustment",
) -> None:
    """Print a summary of a ComBat adjustment.

    Args:
        result: Value returned by :func:`~ebcombat.combat_fit`.
        title: Heading printed above the table.
    """
    width = 80
    n_features, n_samples = result.data.shape

    print("=" * width)
    print(f"{title:^{width}}")
    print("=" * width)

    mode = "parametric" if result.parametric else "non-parametric"
    mean_only = "yes (forced)" if result.mean_only_forced else (
        "yes" if result.mean_only else "no"
    )
    ref = "N/A" if result.ref_batch is None else str(result.ref_batch)
    rows = [
        ("Features:", str(n_features), "Batches:", str(len(result.batch_levels))),
        ("Samples:", str(n_samples), "Covariates:", str(result.n_covariates)),
        ("Shrinkage:", mode, "Missing values:", str(result.n_missing)),
        ("Mean only:", mean_only, "Reference batch:", _truncate(ref, 14)),
    ]
    for ll, lv, rl, rv in rows:
        left = f"{ll:<16}{lv:<24}"
        right = f"{rl:>24} {rv:>15}"
        print(f"{left}{right}")

    print("-" * width)
    header = (
        f"{'Batch':<14}{'N':>6}{'gamma_bar':>12}{'t2':>12}"
        f"{'a_prior':>12}{'b_prior':>12}{'Converged':>12}"
    )
    print(header)
    print("-" * width)
    for i, level in enumerate(result.batch_levels):
        converged = "yes" if result.converged[i] else f"no ({result.n_iterations[i]})"
        print(
            f"{_truncate(str(level), 13):<14}"
            f"{result.n_batches[i]:>6}"
            f"{_fmt_val(float(result.gamma_bar[i])):>12}"
            f"{_fmt_val(float(result.t2[i])):>12}"
            f"{_fmt_val(float(result.a_prior[i])):>12}"
            f"{_fmt_val(float(result.b_prior[i])):>12}"
            f"{converged:>12}"
        )
    print("=" * width)

    notes = []
    if result.mean_only_forced:
        notes.append(
            "A batch has a single sample; only additive effects were adjusted."
        )
    if not result.all_converged:
        notes.append(
            "Shrinkage hit its iteration cap for at least one batch; "
            "consider raising max_iter."
        )
    for note in notes:
        print(f"Note: {note}")
