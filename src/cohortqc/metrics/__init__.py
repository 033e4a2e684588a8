"""Metric calculators and feature predicates.

compute_metric() dispatches a declarative metric spec to the matching
pure calculator.
"""

from typing import Optional

import pandas as pd

from cohortqc.contracts.base import require
from cohortqc.contracts.failure import ContractViolation
from cohortqc.core.cell_table import CellTable
from cohortqc.core.count_matrix import CountMatrix
from cohortqc.metrics.calculators import (
    SENTINEL,
    detected_features,
    fraction_of_subset,
    log_ratio_complexity,
    score_difference,
    total_counts,
)
from cohortqc.metrics.predicates import any_of, prefix_predicate, set_predicate

__all__ = [
    'SENTINEL',
    'compute_metric',
    'fraction_of_subset',
    'log_ratio_complexity',
    'score_difference',
    'total_counts',
    'detected_features',
    'prefix_predicate',
    'set_predicate',
    'any_of',
]


def compute_metric(spec, table: CellTable, matrix: Optional[CountMatrix] = None) -> pd.Series:
    """Compute the column described by ``spec`` for ``table``.

    Parameters
    ----------
    spec : MetricSpec
        One of the metric specs from ``cohortqc.schemas.stages``.
    table : CellTable
        Current state of the cohort.
    matrix : CountMatrix, optional
        Raw counts; required by count-matrix metrics only.

    Returns
    -------
    pd.Series
        Metric values indexed by cell id. For ``kind="column"`` this is the
        existing column itself.
    """
    if spec.kind == "fraction_of_subset":
        require(matrix is not None,
                f"Metric '{spec.name}' needs a count matrix for cohort '{table.cohort}'")
        predicates = []
        if spec.prefixes:
            predicates.append(prefix_predicate(*spec.prefixes, case_sensitive=spec.case_sensitive))
        if spec.features:
            predicates.append(set_predicate(spec.features))
        return fraction_of_subset(table, matrix, any_of(*predicates), on_empty=spec.on_empty)

    if spec.kind == "log_ratio_complexity":
        return log_ratio_complexity(table, spec.feature_column, spec.total_column,
                                    on_degenerate=spec.on_degenerate)

    if spec.kind == "score_difference":
        return score_difference(table, spec.minuend, spec.subtrahend)

    if spec.kind == "column":
        return table.column(spec.name)

    raise ContractViolation(f"Unknown metric kind: {spec.kind}")
