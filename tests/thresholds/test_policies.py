"""Tests for fixed, percentile and model-with-fallback threshold policies."""

import threading

import numpy as np
import pandas as pd
import pytest

from cohortqc.core import CellTable, DISCARD, KEEP
from cohortqc.schemas import FixedCutoffSpec, ModelWithFallbackSpec, PercentileCutoffSpec
from cohortqc.thresholds import (
    FixedCutoffPolicy,
    ModelWithFallbackPolicy,
    PercentileCutoffPolicy,
    build_policy,
    percentile_cutoff,
)

pytestmark = pytest.mark.unit


def _kept(result):
    return int((result.tags == KEEP).sum())


class TestFixedCutoff:

    def test_upper(self):
        table = CellTable("control", ["a", "b", "c"], {"m": [1.0, 5.0, 10.0]})
        result = FixedCutoffPolicy(5.0).derive_cutoff_and_tag(table, "m")
        assert result.tags.tolist() == [KEEP, KEEP, DISCARD]
        assert result.cutoff == 5.0
        assert result.fallback_used is False
        assert result.policy == "fixed"
        assert result.n_discard == 1

    def test_lower(self):
        table = CellTable("control", ["a", "b", "c"], {"m": [100, 200, 300]})
        result = FixedCutoffPolicy(200, direction="lower").derive_cutoff_and_tag(table, "m")
        assert result.tags.tolist() == [DISCARD, KEEP, KEEP]

    def test_nan_always_discarded(self):
        table = CellTable("control", ["a", "b"], {"m": [np.nan, 1.0]})
        for direction in ("upper", "lower"):
            result = FixedCutoffPolicy(5.0, direction).derive_cutoff_and_tag(table, "m")
            assert result.tags["a"] == DISCARD

    def test_tags_indexed_by_cell_id(self):
        table = CellTable("control", ["x", "y"], {"m": [1.0, 2.0]})
        result = FixedCutoffPolicy(1.5).derive_cutoff_and_tag(table, "m")
        assert result.tags.index.equals(table.cell_ids)

    def test_bad_direction(self):
        with pytest.raises(ValueError):
            FixedCutoffPolicy(1.0, direction="sideways")


class TestPercentileCutoff:

    def test_thousand_cells_95th(self, uniform_table):
        result = PercentileCutoffPolicy(0.95).derive_cutoff_and_tag(uniform_table, "m")
        assert result.cutoff == pytest.approx(950.05)
        assert 949 <= _kept(result) <= 951
        assert result.policy == "percentile"
        assert not result.fallback_used

    def test_linear_interpolation(self):
        assert percentile_cutoff(np.array([1.0, 2.0, 3.0, 4.0]), 0.5) == pytest.approx(2.5)
        assert percentile_cutoff(np.array([1.0, 2.0, 3.0, 4.0]), 1.0) == 4.0

    def test_ignores_nan(self):
        values = np.array([np.nan, 1.0, 2.0, 3.0])
        assert percentile_cutoff(values, 1.0) == 3.0

    def test_no_finite_values(self):
        with pytest.raises(ValueError, match="no finite values"):
            percentile_cutoff(np.array([np.nan, np.nan]), 0.5)

    def test_all_nan_cohort_discarded(self):
        table = CellTable("depleted", ["a", "b", "c"], {"m": [np.nan] * 3})
        result = PercentileCutoffPolicy(0.95).derive_cutoff_and_tag(table, "m")
        assert result.tags.tolist() == [DISCARD] * 3
        assert np.isnan(result.cutoff)
        assert result.details["reason"] == "no finite values"

    def test_empty_cohort(self):
        table = CellTable("depleted", [], {"m": []})
        result = PercentileCutoffPolicy(0.95).derive_cutoff_and_tag(table, "m")
        assert len(result.tags) == 0
        assert result.tags.index.equals(table.cell_ids)
        assert np.isnan(result.cutoff)

    @pytest.mark.parametrize("p", [0.0, -0.1, 1.5])
    def test_invalid_percentile(self, p):
        with pytest.raises(ValueError):
            PercentileCutoffPolicy(p)

    def test_per_cohort_not_pooled(self, make_table):
        low = make_table("control", mean=5.0)
        high = make_table("depleted", mean=50.0)
        policy = PercentileCutoffPolicy(0.9)
        cut_low = policy.derive_cutoff_and_tag(low, "m").cutoff
        cut_high = policy.derive_cutoff_and_tag(high, "m").cutoff
        assert cut_low < 10 < 40 < cut_high

    def test_idempotent(self, uniform_table):
        policy = PercentileCutoffPolicy(0.95)
        first = policy.derive_cutoff_and_tag(uniform_table, "m")
        second = policy.derive_cutoff_and_tag(uniform_table, "m")
        assert first.cutoff == second.cutoff
        pd.testing.assert_series_equal(first.tags, second.tags)

    def test_lower_direction(self, uniform_table):
        result = PercentileCutoffPolicy(0.05, direction="lower").derive_cutoff_and_tag(uniform_table, "m")
        assert 949 <= _kept(result) <= 951


SINGLE_PEAKED = {
    "normal": lambda rng: rng.normal(5.0, 1.0, 1000),
    "lognormal": lambda rng: rng.lognormal(1.0, 0.5, 1000),
    "gamma": lambda rng: rng.gamma(2.0, 2.0, 1000),
    "exponential": lambda rng: rng.exponential(3.0, 1000),
}


class TestModelWithFallback:

    @pytest.mark.parametrize("shape", sorted(SINGLE_PEAKED))
    def test_single_peak_falls_back_to_percentile(self, shape):
        values = SINGLE_PEAKED[shape](np.random.default_rng(0))
        table = CellTable("control", [f"c{i}" for i in range(values.size)], {"m": values})
        model = ModelWithFallbackPolicy(fallback_percentile=0.95).derive_cutoff_and_tag(table, "m")
        direct = PercentileCutoffPolicy(0.95).derive_cutoff_and_tag(table, "m")

        assert model.fallback_used is True
        assert model.cutoff == direct.cutoff
        pd.testing.assert_series_equal(model.tags, direct.tags)
        assert model.n_discard == 50
        assert "fallback_reason" in model.details

    def test_all_nan_falls_back_and_discards(self):
        table = CellTable("depleted", ["a", "b", "c"], {"m": [np.nan] * 3})
        result = ModelWithFallbackPolicy().derive_cutoff_and_tag(table, "m")
        assert result.fallback_used
        assert np.isnan(result.cutoff)
        assert (result.tags == DISCARD).all()

    def test_too_few_cells_falls_back(self, make_table):
        table = make_table(n=20, seed=1)
        result = ModelWithFallbackPolicy(min_cells=50).derive_cutoff_and_tag(table, "m")
        assert result.fallback_used
        assert "too few cells" in result.details["fallback_reason"]

    def test_constant_values_fall_back(self):
        table = CellTable("control", [f"c{i}" for i in range(100)], {"m": np.full(100, 3.0)})
        result = ModelWithFallbackPolicy().derive_cutoff_and_tag(table, "m")
        assert result.fallback_used
        assert result.cutoff == 3.0
        assert (result.tags == KEEP).all()

    def test_bimodal_fit_discards_compromised(self):
        rng = np.random.default_rng(11)
        healthy = rng.normal(4.0, 1.0, 900)
        compromised = rng.normal(35.0, 3.0, 100)
        values = np.concatenate([healthy, compromised])
        table = CellTable("control", [f"c{i}" for i in range(1000)], {"pct_mito": values})

        result = ModelWithFallbackPolicy().derive_cutoff_and_tag(table, "pct_mito")

        assert result.fallback_used is False
        assert result.policy == "model_with_fallback"
        assert 95 <= result.n_discard <= 105
        assert healthy.max() <= result.cutoff < compromised.min()
        assert result.details["compromised_mean"] > result.details["healthy_mean"]

    def test_monotone_tags(self):
        rng = np.random.default_rng(5)
        values = np.concatenate([rng.normal(3.0, 1.0, 800), rng.normal(25.0, 4.0, 200)])
        table = CellTable("control", [f"c{i}" for i in range(1000)], {"m": values})
        result = ModelWithFallbackPolicy().derive_cutoff_and_tag(table, "m")
        kept = values[(result.tags == KEEP).to_numpy()]
        dropped = values[(result.tags == DISCARD).to_numpy()]
        assert kept.max() <= result.cutoff
        assert dropped.size == 0 or dropped.min() > result.cutoff

    def test_nan_discarded_and_excluded_from_fit(self):
        rng = np.random.default_rng(2)
        values = np.concatenate([rng.normal(5.0, 1.0, 500), [np.nan] * 10])
        table = CellTable("control", [f"c{i}" for i in range(510)], {"m": values})
        result = ModelWithFallbackPolicy().derive_cutoff_and_tag(table, "m")
        assert np.isfinite(result.cutoff)
        assert (result.tags.iloc[500:] == DISCARD).all()

    def test_timeout_falls_back(self, make_table, monkeypatch):
        import cohortqc.thresholds.mixture as mixture

        released = threading.Event()

        class SlowWorker(mixture._FitWorker):
            def run(self):
                released.wait(5)

        monkeypatch.setattr(mixture, "_FitWorker", SlowWorker)
        table = make_table(n=200, seed=4)
        result = ModelWithFallbackPolicy(fit_timeout_sec=0.05).derive_cutoff_and_tag(table, "m")
        assert result.fallback_used
        assert "did not finish" in result.details["fallback_reason"]
        released.set()


class TestBuildPolicy:

    def test_fixed(self):
        policy = build_policy(FixedCutoffSpec(cutoff=200, direction="lower"))
        assert isinstance(policy, FixedCutoffPolicy)
        assert policy.cutoff == 200.0
        assert policy.direction == "lower"

    def test_percentile(self):
        policy = build_policy(PercentileCutoffSpec(percentile=0.99))
        assert isinstance(policy, PercentileCutoffPolicy)
        assert policy.describe() == "percentile(0.99,upper)"

    def test_model(self):
        policy = build_policy(ModelWithFallbackSpec(fallback_percentile=0.9, posterior_cutoff=0.8))
        assert isinstance(policy, ModelWithFallbackPolicy)
        assert policy.fallback_percentile == 0.9
        assert policy.posterior_cutoff == 0.8

    def test_model_separation_passed_through(self):
        policy = build_policy(ModelWithFallbackSpec(min_separation=3.5))
        assert policy.min_separation == 3.5
