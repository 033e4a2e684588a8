"""Tests for CountMatrix."""

import numpy as np
import pandas as pd
import pytest
from scipy import sparse

from cohortqc.contracts import ContractViolation, ShapeMismatch
from cohortqc.core import CountMatrix
from cohortqc.metrics import prefix_predicate

pytestmark = pytest.mark.unit


def test_shape_and_names(count_matrix):
    assert count_matrix.shape == (4, 5)
    assert list(count_matrix.feature_names)[:2] == ["MT-CO1", "MT-ND1"]
    assert list(count_matrix.cell_ids) == ["c1", "c2", "c3", "c4"]


def test_totals_and_detected(count_matrix):
    assert count_matrix.total_counts().tolist() == [100.0, 100.0, 100.0, 0.0]
    assert count_matrix.detected_features().tolist() == [4, 2, 3, 0]


def test_subset_counts(count_matrix):
    mask = count_matrix.feature_mask(prefix_predicate("MT-"))
    assert mask.tolist() == [True, True, False, False, False]
    assert count_matrix.subset_counts(mask).tolist() == [10.0, 0.0, 50.0, 0.0]


def test_empty_mask_gives_zeros(count_matrix):
    mask = np.zeros(5, dtype=bool)
    assert count_matrix.subset_counts(mask).tolist() == [0.0] * 4


def test_mask_length_checked(count_matrix):
    with pytest.raises(ShapeMismatch):
        count_matrix.subset_counts(np.ones(3, dtype=bool))


def test_accepts_sparse_input():
    dense = np.array([[1, 0, 2], [0, 0, 3]])
    matrix = CountMatrix(sparse.csc_matrix(dense), ["a", "b"], ["g1", "g2", "g3"])
    assert matrix.total_counts().tolist() == [3.0, 3.0]
    assert matrix.detected_features().tolist() == [2, 1]


def test_explicit_zeros_not_detected():
    data = np.array([1.0, 0.0, 2.0])
    indices = np.array([0, 1, 2])
    indptr = np.array([0, 3, 3])
    matrix = CountMatrix(sparse.csr_matrix((data, indices, indptr), shape=(2, 3)),
                         ["a", "b"], ["g1", "g2", "g3"])
    assert matrix.detected_features().tolist() == [2, 0]


def test_from_frame():
    frame = pd.DataFrame([[1, 2], [3, 4]], index=["a", "b"], columns=["MT-1", "G"])
    matrix = CountMatrix.from_frame(frame)
    assert matrix.total_counts().tolist() == [3.0, 7.0]


def test_shape_mismatch_rejected():
    with pytest.raises(ShapeMismatch):
        CountMatrix(np.ones((2, 2)), ["a", "b", "c"], ["g1", "g2"])


def test_negative_counts_rejected():
    with pytest.raises(ContractViolation, match="negative"):
        CountMatrix(np.array([[1, -1]]), ["a"], ["g1", "g2"])


def test_missing_cells(count_matrix):
    with pytest.raises(ShapeMismatch, match="absent"):
        count_matrix.row_positions(["c1", "zz"])


def test_input_copied():
    dense = np.array([[1.0, 2.0]])
    matrix = CountMatrix(dense, ["a"], ["g1", "g2"])
    dense[0, 0] = 100.0
    assert matrix.total_counts().tolist() == [3.0]
