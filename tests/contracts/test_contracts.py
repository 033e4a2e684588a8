"""Tests for pipeline contract enforcement."""

import numpy as np
import pandas as pd
import pytest

from cohortqc.contracts import (
    ContractViolation,
    DuplicateColumn,
    EmptyMatrix,
    MissingColumn,
    ModelFitFailure,
    ParameterDrift,
    ShapeMismatch,
    StageAborted,
    assert_filter_conserves,
    assert_metric_column,
    assert_tag_column,
    assert_threshold_result,
    require,
)
from cohortqc.contracts.invariants import PIPELINE_INVARIANTS, STAGE_REQUIREMENTS
from cohortqc.core import CellTable
from cohortqc.thresholds import ThresholdPolicyResult

pytestmark = pytest.mark.unit


def test_require_passes_silently():
    require(True, "never raised")


def test_require_raises_given_type():
    with pytest.raises(ShapeMismatch, match="bad shape"):
        require(False, "bad shape", ShapeMismatch)


def test_taxonomy():
    for error in (ShapeMismatch, DuplicateColumn, MissingColumn, ParameterDrift):
        assert issubclass(error, ContractViolation)
    assert issubclass(EmptyMatrix, ValueError)
    assert not issubclass(ModelFitFailure, ContractViolation)


def test_stage_aborted_carries_context():
    err = StageAborted("depleted", "mito", "boom", audit_log="log")
    assert err.cohort == "depleted"
    assert err.stage == "mito"
    assert err.audit_log == "log"
    assert "depleted" in str(err) and "mito" in str(err)


class TestMetricContract:

    def test_valid(self, small_table):
        assert_metric_column(small_table, "total_counts")

    def test_missing(self, small_table):
        with pytest.raises(MissingColumn):
            assert_metric_column(small_table, "pct_mito")

    def test_non_numeric(self, small_table):
        with pytest.raises(ContractViolation, match="numeric"):
            assert_metric_column(small_table, "tag")

    def test_infinite(self):
        table = CellTable("control", ["a", "b"], {"m": [1.0, np.inf]})
        with pytest.raises(ContractViolation, match="infinite"):
            assert_metric_column(table, "m")

    def test_nan_allowed(self):
        table = CellTable("control", ["a", "b"], {"m": [1.0, np.nan]})
        assert_metric_column(table, "m")


def test_tag_contract(small_table):
    assert_tag_column(small_table, "tag", {"keep", "discard"})
    with pytest.raises(ContractViolation, match="unexpected labels"):
        assert_tag_column(small_table, "tag", {"keep"})


class TestThresholdContract:

    def _result(self, tags, cutoff=1.0):
        return ThresholdPolicyResult(tags=tags, cutoff=cutoff, fallback_used=False, policy="fixed")

    def test_valid(self, small_table):
        tags = pd.Series(["keep"] * 5, index=small_table.cell_ids)
        assert_threshold_result(self._result(tags), small_table)

    def test_misaligned(self, small_table):
        tags = pd.Series(["keep"] * 4, index=small_table.cell_ids[:4])
        with pytest.raises(ShapeMismatch):
            assert_threshold_result(self._result(tags), small_table)

    def test_foreign_tag(self, small_table):
        tags = pd.Series(["keep", "keep", "maybe", "keep", "keep"], index=small_table.cell_ids)
        with pytest.raises(ContractViolation, match="unexpected tag values"):
            assert_threshold_result(self._result(tags), small_table)

    def test_non_finite_cutoff(self, small_table):
        tags = pd.Series(["keep"] * 5, index=small_table.cell_ids)
        with pytest.raises(ContractViolation, match="finite"):
            assert_threshold_result(self._result(tags, cutoff=float("nan")), small_table)

    def test_nan_cutoff_when_everything_discarded(self, small_table):
        tags = pd.Series(["discard"] * 5, index=small_table.cell_ids)
        assert_threshold_result(self._result(tags, cutoff=float("nan")), small_table)

    def test_integer_cutoff_rejected(self, small_table):
        tags = pd.Series(["keep"] * 5, index=small_table.cell_ids)
        with pytest.raises(ContractViolation, match="not a float"):
            assert_threshold_result(self._result(tags, cutoff=1), small_table)


class TestFilterContract:

    def test_conserved(self, small_table):
        after, removed = small_table.filter_by_tag("tag", "keep")
        assert_filter_conserves(small_table, after, removed)

    def test_lost_cell(self, small_table):
        after, removed = small_table.filter_by_tag("tag", "keep")
        with pytest.raises(ContractViolation, match="removed"):
            assert_filter_conserves(small_table, after, removed[:1])

    def test_removed_still_present(self, small_table):
        after, _ = small_table.filter_by_tag("tag", "keep")
        with pytest.raises(ContractViolation, match="still present"):
            assert_filter_conserves(small_table, after, ["c1", "c2"])


def test_invariants_documented():
    assert set(PIPELINE_INVARIANTS) == set(STAGE_REQUIREMENTS)
    assert all(PIPELINE_INVARIANTS.values())
