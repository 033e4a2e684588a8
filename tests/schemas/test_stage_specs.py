"""Tests for frozen stage definitions."""

import pytest
from pydantic import TypeAdapter, ValidationError

from cohortqc.schemas import (
    ColumnMetric,
    FixedCutoffSpec,
    FractionOfSubsetMetric,
    ModelWithFallbackSpec,
    PercentileCutoffSpec,
    QCStageSpec,
    TagFilterStageSpec,
)
from cohortqc.schemas.stages import StageSpec

pytestmark = pytest.mark.unit


def test_specs_are_frozen():
    spec = PercentileCutoffSpec(percentile=0.95)
    with pytest.raises(ValidationError):
        spec.percentile = 0.5


def test_percentile_bounds():
    PercentileCutoffSpec(percentile=1.0)
    for bad in (0.0, -0.5, 1.01):
        with pytest.raises(ValidationError):
            PercentileCutoffSpec(percentile=bad)


def test_fixed_cutoff_coerced():
    assert FixedCutoffSpec(cutoff=200).cutoff == 200.0


def test_fraction_needs_selection():
    with pytest.raises(ValidationError, match="prefixes or features"):
        FractionOfSubsetMetric(name="pct_mito")


def test_model_defaults():
    spec = ModelWithFallbackSpec()
    assert spec.fallback_percentile == 0.95
    assert spec.posterior_cutoff == 0.75
    assert spec.min_cells == 50


def test_resolved_tag_column():
    spec = QCStageSpec(name="mito", metric=ColumnMetric(name="pct_mito"))
    assert spec.resolved_tag_column == "mito_tag"
    assert spec.model_copy(update={"tag_column": "dead"}).resolved_tag_column == "dead"


def test_label_map_targets():
    with pytest.raises(ValidationError, match="'keep' or 'discard'"):
        TagFilterStageSpec(name="doublets", tag_column="doublet_class",
                           label_map={"singlet": "keep", "doublet": "drop"})


def test_discriminated_union_from_dicts():
    adapter = TypeAdapter(StageSpec)
    qc = adapter.validate_python({
        "kind": "qc",
        "name": "ribo",
        "metric": {"kind": "fraction_of_subset", "name": "pct_ribo", "prefixes": ["RPS", "RPL"]},
        "threshold": {"kind": "percentile", "percentile": 0.99},
    })
    assert isinstance(qc, QCStageSpec)
    assert isinstance(qc.metric, FractionOfSubsetMetric)
    assert qc.metric.prefixes == ("RPS", "RPL")
    assert isinstance(qc.threshold, PercentileCutoffSpec)

    tag = adapter.validate_python({"kind": "tag_filter", "name": "d", "tag_column": "t"})
    assert isinstance(tag, TagFilterStageSpec)


def test_unknown_kind_rejected():
    with pytest.raises(ValidationError):
        TypeAdapter(StageSpec).validate_python({"kind": "magic", "name": "x"})


def test_extra_fields_forbidden():
    with pytest.raises(ValidationError):
        ColumnMetric(name="m", unit="%")


def test_round_trip_through_dump():
    spec = QCStageSpec(
        name="mito",
        metric=FractionOfSubsetMetric(name="pct_mito", prefixes=("MT-",)),
        threshold=ModelWithFallbackSpec(fallback_percentile=0.9),
    )
    assert QCStageSpec.model_validate(spec.model_dump()) == spec
