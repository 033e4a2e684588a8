"""Immutable raw count matrix for one cohort.

The matrix is produced by an external loader (10x reader, AnnData, ...) and
handed to the pipeline in memory. Orientation is cells x features, matching
AnnData. Storage is always CSR so per-cell sums are cheap.
"""

import logging
from typing import Callable, Sequence

import numpy as np
import pandas as pd
from scipy import sparse

from cohortqc.contracts.base import require
from cohortqc.contracts.failure import ContractViolation, ShapeMismatch

__all__ = ['CountMatrix']

logger = logging.getLogger(__name__)


class CountMatrix:
    """Per-cell, per-feature raw counts addressable by feature name.

    Parameters
    ----------
    counts : array-like or scipy.sparse matrix
        Shape (n_cells, n_features). Copied on construction; the instance
        never exposes a writable view.
    cell_ids : sequence
        Unique cell identifiers, one per row.
    feature_names : sequence of str
        Feature (gene) names, one per column.
    """

    def __init__(self, counts, cell_ids: Sequence, feature_names: Sequence[str]):
        matrix = sparse.csr_matrix(counts, dtype=np.float64, copy=True)
        ids = pd.Index(list(cell_ids), name="cell_id")
        features = pd.Index([str(f) for f in feature_names], name="feature")

        require(
            matrix.shape == (len(ids), len(features)),
            f"Count matrix shape {matrix.shape} does not match "
            f"{len(ids)} cells x {len(features)} features",
            ShapeMismatch,
        )
        require(ids.is_unique, "Count matrix contract violated: duplicate cell ids")
        _check_non_negative(matrix)

        matrix.data.setflags(write=False)
        self._matrix = matrix
        self._cell_ids = ids
        self._features = features

    @classmethod
    def from_frame(cls, frame: pd.DataFrame) -> "CountMatrix":
        """Build from a cells x features DataFrame (index = cell ids)."""
        return cls(frame.to_numpy(), frame.index, frame.columns)

    @property
    def shape(self) -> tuple:
        return self._matrix.shape

    @property
    def cell_ids(self) -> pd.Index:
        return self._cell_ids

    @property
    def feature_names(self) -> pd.Index:
        return self._features

    def feature_mask(self, predicate: Callable[[str], bool]) -> np.ndarray:
        """Boolean mask over features selected by ``predicate``."""
        return np.fromiter((bool(predicate(f)) for f in self._features),
                           dtype=bool, count=len(self._features))

    def total_counts(self) -> np.ndarray:
        """Sum of counts over all features, per cell."""
        return np.asarray(self._matrix.sum(axis=1)).ravel()

    def detected_features(self) -> np.ndarray:
        """Number of features with a non-zero count, per cell."""
        return np.diff(self._matrix.indptr) - self._explicit_zeros_per_row()

    def subset_counts(self, mask: np.ndarray) -> np.ndarray:
        """Sum of counts over the features selected by ``mask``, per cell."""
        mask = np.asarray(mask, dtype=bool)
        require(
            mask.shape == (self._matrix.shape[1],),
            f"Feature mask has length {mask.shape}, expected {self._matrix.shape[1]}",
            ShapeMismatch,
        )
        if not mask.any():
            return np.zeros(self._matrix.shape[0], dtype=np.float64)
        return np.asarray(self._matrix[:, mask].sum(axis=1)).ravel()

    def row_positions(self, cell_ids: Sequence) -> np.ndarray:
        """Row positions of ``cell_ids`` in this matrix.

        Raises
        ------
        ShapeMismatch
            If any requested cell is not present in the matrix.
        """
        positions = self._cell_ids.get_indexer(pd.Index(list(cell_ids)))
        missing = int((positions < 0).sum())
        require(
            missing == 0,
            f"{missing} cells of the table are absent from the count matrix",
            ShapeMismatch,
        )
        return positions

    def _explicit_zeros_per_row(self) -> np.ndarray:
        zeros = (self._matrix.data == 0).astype(np.int64)
        if not zeros.any():
            return np.zeros(self._matrix.shape[0], dtype=np.int64)
        # cumulative sum over stored entries, differenced at row boundaries
        cumulative = np.concatenate([[0], np.cumsum(zeros)])
        return cumulative[self._matrix.indptr[1:]] - cumulative[self._matrix.indptr[:-1]]

    def __repr__(self):
        return f"CountMatrix(cells={self.shape[0]}, features={self.shape[1]}, nnz={self._matrix.nnz})"


def _check_non_negative(matrix: sparse.csr_matrix) -> None:
    if matrix.nnz and matrix.data.min() < 0:
        raise ContractViolation("Count matrix contract violated: negative counts")
