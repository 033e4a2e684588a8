"""Cell Table: immutable per-cohort table of per-cell metrics and tags.

One row per cell, one column per metric or tag. Every operation that would
change the table returns a new CellTable; the receiver is never mutated, so
cohorts cannot alias each other's state through a shared object.
"""

import logging
from typing import Any, Hashable, List, Mapping, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from cohortqc.contracts.base import require
from cohortqc.contracts.failure import (
    ContractViolation,
    DuplicateColumn,
    MissingColumn,
    ShapeMismatch,
)

__all__ = ['CellTable', 'KEEP', 'DISCARD']

logger = logging.getLogger(__name__)

# Normalized tag values at the filter boundary
KEEP = "keep"
DISCARD = "discard"


class CellTable:
    """In-memory tabular representation of one cohort.

    The table is backed by a ``pandas.DataFrame`` indexed by cell id. The
    frame is private; ``column()`` and ``to_frame()`` hand out copies.

    Parameters
    ----------
    cohort : str
        Cohort name (e.g. "control", "depleted").
    cell_ids : sequence
        Ordered, unique cell identifiers.
    columns : mapping, optional
        Initial columns, each index-aligned with ``cell_ids``.

    Raises
    ------
    ContractViolation
        If cell ids are not unique.
    ShapeMismatch
        If any initial column has the wrong length.

    Examples
    --------
    >>> table = CellTable("control", ["c1", "c2"], {"total_counts": [1200, 800]})
    >>> table = table.add_column("pct_mito", [3.2, 18.5])
    >>> kept, removed = table.filter_by_tag("mito_tag", "keep")
    """

    def __init__(self, cohort: str, cell_ids: Sequence[Hashable],
                 columns: Optional[Mapping[str, Sequence[Any]]] = None):
        index = pd.Index(list(cell_ids), name="cell_id")
        require(index.is_unique, f"Cell table '{cohort}': duplicate cell ids")

        frame = pd.DataFrame(index=index)
        for name, values in (columns or {}).items():
            frame[name] = _coerce_values(name, values, index)

        self._cohort = str(cohort)
        self._frame = frame

    @classmethod
    def _wrap(cls, cohort: str, frame: pd.DataFrame) -> "CellTable":
        """Build without re-validating; ``frame`` must be owned by the caller."""
        table = cls.__new__(cls)
        table._cohort = cohort
        table._frame = frame
        return table

    @classmethod
    def from_frame(cls, cohort: str, frame: pd.DataFrame) -> "CellTable":
        """Build a table from a DataFrame whose index holds the cell ids."""
        require(frame.index.is_unique, f"Cell table '{cohort}': duplicate cell ids")
        copied = frame.copy()
        copied.index.name = "cell_id"
        return cls._wrap(str(cohort), copied)

    @classmethod
    def from_count_matrix(cls, cohort: str, matrix) -> "CellTable":
        """Seed a table with ``total_counts`` and ``n_features`` from raw counts."""
        return cls(
            cohort,
            matrix.cell_ids,
            {
                "total_counts": matrix.total_counts(),
                "n_features": matrix.detected_features(),
            },
        )

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    @property
    def cohort(self) -> str:
        return self._cohort

    @property
    def cell_ids(self) -> pd.Index:
        return self._frame.index

    @property
    def column_names(self) -> List[str]:
        return list(self._frame.columns)

    def row_count(self) -> int:
        return self._frame.shape[0]

    def __len__(self) -> int:
        return self._frame.shape[0]

    def has_column(self, name: str) -> bool:
        return name in self._frame.columns

    def column(self, name: str) -> pd.Series:
        """Copy of column ``name`` indexed by cell id."""
        self._require_column(name)
        return self._frame[name].copy()

    def to_frame(self) -> pd.DataFrame:
        return self._frame.copy()

    # ------------------------------------------------------------------
    # Transformations (always return a new table)
    # ------------------------------------------------------------------

    def add_column(self, name: str, values: Sequence[Any]) -> "CellTable":
        """Return a new table with column ``name`` added.

        Raises
        ------
        DuplicateColumn
            If ``name`` already exists. Use ``replace_column`` to overwrite.
        ShapeMismatch
            If ``len(values)`` differs from the current cell count.
        """
        require(
            name not in self._frame.columns,
            f"Cell table '{self._cohort}': column '{name}' already exists",
            DuplicateColumn,
        )
        coerced = _coerce_values(name, values, self._frame.index)
        frame = self._frame.copy()
        frame[name] = coerced
        return CellTable._wrap(self._cohort, frame)

    def replace_column(self, name: str, values: Sequence[Any]) -> "CellTable":
        """Return a new table with existing column ``name`` overwritten."""
        self._require_column(name)
        coerced = _coerce_values(name, values, self._frame.index)
        frame = self._frame.copy()
        frame[name] = coerced
        return CellTable._wrap(self._cohort, frame)

    def filter_by_tag(self, tag_column: str, keep_value: Any) -> Tuple["CellTable", List[Hashable]]:
        """Keep rows whose ``tag_column`` equals ``keep_value``.

        Relative row order and all other columns are preserved.

        Returns
        -------
        tuple
            (new_table, removed_ids) where removed_ids lists the dropped cell
            ids in their original order.
        """
        self._require_column(tag_column)
        keep = (self._frame[tag_column] == keep_value).to_numpy()
        removed = self._frame.index[~keep].tolist()
        frame = self._frame.loc[keep].copy()
        return CellTable._wrap(self._cohort, frame), removed

    def _require_column(self, name: str) -> None:
        require(
            name in self._frame.columns,
            f"Cell table '{self._cohort}': missing column '{name}'",
            MissingColumn,
        )

    def __eq__(self, other):
        if not isinstance(other, CellTable):
            return NotImplemented
        return (
            self._cohort == other._cohort
            and self._frame.index.equals(other._frame.index)
            and self._frame.equals(other._frame)
        )

    __hash__ = None

    def __repr__(self):
        return (f"CellTable(cohort={self._cohort!r}, cells={self.row_count()}, "
                f"columns={self.column_names})")


def _coerce_values(name: str, values: Sequence[Any], index: pd.Index) -> np.ndarray:
    """Turn ``values`` into an array positionally aligned with ``index``.

    A Series is aligned by label when its index holds the same cell ids,
    otherwise values are taken positionally.
    """
    if isinstance(values, pd.Series):
        if values.index.equals(index):
            values = values.to_numpy()
        elif len(values) == len(index) and values.index.is_unique and set(values.index) == set(index):
            values = values.reindex(index).to_numpy()
        else:
            values = values.to_numpy()

    array = np.asarray(values)
    if array.ndim != 1:
        raise ContractViolation(f"Column '{name}' must be one-dimensional, got {array.ndim} dims")
    require(
        array.shape[0] == len(index),
        f"Column '{name}' has {array.shape[0]} values, expected {len(index)}",
        ShapeMismatch,
    )
    return array
