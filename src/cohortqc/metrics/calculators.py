"""Metric calculators: pure functions producing one derived column.

Each calculator returns a ``pandas.Series`` indexed by the table's cell ids
and never touches the table itself; attaching the column is the caller's job
(``CellTable.add_column``). Identical inputs always give identical output.

Degenerate denominators are handled by an explicit policy argument:

- ``"sentinel"`` (default): the cell gets ``NaN``. Threshold policies always
  tag non-finite values as discard, so such cells are removed and audited.
- ``"raise"``: the calculator raises ``EmptyMatrix`` / ``DomainError``.
"""

import logging

import numpy as np
import pandas as pd

from cohortqc.contracts.failure import DomainError, EmptyMatrix
from cohortqc.core.cell_table import CellTable
from cohortqc.core.count_matrix import CountMatrix
from cohortqc.metrics.predicates import FeaturePredicate

__all__ = [
    'SENTINEL',
    'fraction_of_subset',
    'log_ratio_complexity',
    'score_difference',
    'total_counts',
    'detected_features',
]

logger = logging.getLogger(__name__)

SENTINEL = np.nan

_POLICIES = ("sentinel", "raise")


def _check_policy(policy: str) -> None:
    if policy not in _POLICIES:
        raise ValueError(f"Unknown degenerate-value policy '{policy}', expected one of {_POLICIES}")


def fraction_of_subset(table: CellTable, matrix: CountMatrix, predicate: FeaturePredicate,
                       on_empty: str = "sentinel") -> pd.Series:
    """Percentage of each cell's counts that fall on features matching ``predicate``.

    ``sum(counts[matching]) / sum(counts[all]) * 100`` per cell. Rows of the
    matrix are matched to the table by cell id, so a table that was already
    filtered still lines up with the original matrix.

    Parameters
    ----------
    table : CellTable
        Cohort whose cells the result is aligned to.
    matrix : CountMatrix
        Raw counts for (at least) every cell of the table.
    predicate : callable
        Feature-name predicate, e.g. ``prefix_predicate("MT-")``.
    on_empty : {"sentinel", "raise"}
        What to do for cells with zero total counts.

    Returns
    -------
    pd.Series
        Values in [0, 100] for non-negative counts; NaN for empty cells
        under the sentinel policy.

    Raises
    ------
    EmptyMatrix
        If a cell has zero total counts and ``on_empty == "raise"``.
    ShapeMismatch
        If a table cell is absent from the matrix.
    """
    _check_policy(on_empty)
    rows = matrix.row_positions(table.cell_ids)
    mask = matrix.feature_mask(predicate)

    totals = matrix.total_counts()[rows]
    subset = matrix.subset_counts(mask)[rows]

    empty = totals <= 0
    if empty.any():
        if on_empty == "raise":
            first = table.cell_ids[np.flatnonzero(empty)[0]]
            raise EmptyMatrix(
                f"{int(empty.sum())} cells of '{table.cohort}' have zero total counts (first: {first})"
            )
        logger.debug("%s: %d empty cells set to NaN", table.cohort, int(empty.sum()))

    with np.errstate(divide="ignore", invalid="ignore"):
        values = np.where(empty, SENTINEL, subset / np.where(empty, 1.0, totals) * 100.0)

    logger.debug("%s: %d/%d features matched, mean=%.3f",
                 table.cohort, int(mask.sum()), mask.size, np.nanmean(values) if (~empty).any() else np.nan)
    return pd.Series(values, index=table.cell_ids.copy(), dtype=np.float64)


def log_ratio_complexity(table: CellTable, feature_column: str = "n_features",
                         total_column: str = "total_counts",
                         on_degenerate: str = "sentinel") -> pd.Series:
    """Library complexity ``log10(n_features) / log10(total_counts)`` per cell.

    ``total_counts <= 1`` makes the denominator zero or negative and is
    treated as degenerate. So is ``n_features <= 0`` (log10 undefined).

    Raises
    ------
    DomainError
        For degenerate cells when ``on_degenerate == "raise"``.
    MissingColumn
        If either input column is absent.
    """
    _check_policy(on_degenerate)
    features = table.column(feature_column).to_numpy(dtype=np.float64)
    totals = table.column(total_column).to_numpy(dtype=np.float64)

    degenerate = (totals <= 1) | (features <= 0) | ~np.isfinite(totals) | ~np.isfinite(features)
    if degenerate.any() and on_degenerate == "raise":
        raise DomainError(
            f"{int(degenerate.sum())} cells of '{table.cohort}' have "
            f"{total_column} <= 1 or {feature_column} <= 0"
        )

    safe_totals = np.where(degenerate, 10.0, totals)
    safe_features = np.where(degenerate, 1.0, features)
    values = np.where(degenerate, SENTINEL, np.log10(safe_features) / np.log10(safe_totals))
    return pd.Series(values, index=table.cell_ids.copy(), dtype=np.float64)


def score_difference(table: CellTable, minuend: str, subtrahend: str) -> pd.Series:
    """Elementwise ``table[minuend] - table[subtrahend]``.

    Used for the cell-cycle difference score (S score minus G2M score).
    """
    a = pd.to_numeric(table.column(minuend), errors="raise").to_numpy(dtype=np.float64)
    b = pd.to_numeric(table.column(subtrahend), errors="raise").to_numpy(dtype=np.float64)
    return pd.Series(a - b, index=table.cell_ids.copy(), dtype=np.float64)


def total_counts(table: CellTable, matrix: CountMatrix) -> pd.Series:
    rows = matrix.row_positions(table.cell_ids)
    return pd.Series(matrix.total_counts()[rows], index=table.cell_ids.copy(), dtype=np.float64)


def detected_features(table: CellTable, matrix: CountMatrix) -> pd.Series:
    rows = matrix.row_positions(table.cell_ids)
    return pd.Series(matrix.detected_features()[rows], index=table.cell_ids.copy(), dtype=np.int64)
