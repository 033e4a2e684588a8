"""Cell table stage contracts.

Enforces that a metric stage produced a column that is present, aligned
with the table and numeric, and that a tag column holds only normalized tags.
"""

import numpy as np
import pandas as pd

from cohortqc.contracts.base import require
from cohortqc.contracts.failure import MissingColumn, ShapeMismatch


def assert_metric_column(table, name: str) -> None:
    """Enforce metric stage contract.

    Called right after a metric column was attached to the table.

    Parameters
    ----------
    table : CellTable
        Table returned by ``add_column``.

    name : str
        Metric column name.

    Raises
    ------
    ContractViolation
        If the column is missing, misaligned or not numeric.
    """
    require(
        table.has_column(name),
        f"Metric contract violated: '{name}' not found in '{table.cohort}'",
        MissingColumn,
    )
    column = table.column(name)
    require(
        len(column) == table.row_count(),
        f"Metric contract violated: '{name}' has {len(column)} values, expected {table.row_count()}",
        ShapeMismatch,
    )
    require(
        pd.api.types.is_numeric_dtype(column.dtype),
        f"Metric contract violated: '{name}' dtype is {column.dtype}, expected numeric"
    )
    values = column.to_numpy(dtype=np.float64)
    require(
        not np.isinf(values).any(),
        f"Metric contract violated: '{name}' contains infinite values"
    )


def assert_tag_column(table, name: str, allowed) -> None:
    """Enforce that tag column ``name`` only holds values from ``allowed``."""
    require(
        table.has_column(name),
        f"Tag contract violated: '{name}' not found in '{table.cohort}'",
        MissingColumn,
    )
    seen = set(pd.unique(table.column(name)))
    unexpected = seen - set(allowed)
    require(
        not unexpected,
        f"Tag contract violated: '{name}' has unexpected labels {sorted(map(str, unexpected))}"
    )
