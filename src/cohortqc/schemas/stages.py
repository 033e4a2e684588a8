"""Declarative, frozen stage definitions.

A run is described by an ordered list of stage specs. The same list is
applied to every cohort, and because specs are frozen pydantic models the
parameters cannot drift between cohorts.

Metric and threshold specs are discriminated unions keyed by ``kind`` so a
stage list round-trips through plain dicts (user config files, JSON).
"""

from typing import Annotated, Literal, Optional, Union

from pydantic import ConfigDict, Field, field_validator, model_validator

from cohortqc.schemas.base import QCBaseModel


class FrozenSpec(QCBaseModel):
    """Immutable spec base."""

    model_config = ConfigDict(
        extra='forbid',
        use_enum_values=True,
        str_strip_whitespace=True,
        frozen=True,
    )


# =============================================================================
# Metric specs
# =============================================================================

class FractionOfSubsetMetric(FrozenSpec):
    """Percentage of counts on a feature subset (mitochondrial, ribosomal, ...)."""
    kind: Literal["fraction_of_subset"] = "fraction_of_subset"
    name: str
    prefixes: tuple[str, ...] = ()
    features: tuple[str, ...] = ()
    case_sensitive: bool = True
    on_empty: Literal["sentinel", "raise"] = "sentinel"

    @model_validator(mode="after")
    def require_selection(self):
        if not self.prefixes and not self.features:
            raise ValueError(f"Metric '{self.name}': give prefixes or features")
        return self


class LogRatioComplexityMetric(FrozenSpec):
    """``log10(n_features) / log10(total_counts)``."""
    kind: Literal["log_ratio_complexity"] = "log_ratio_complexity"
    name: str = "log10_features_per_count"
    feature_column: str = "n_features"
    total_column: str = "total_counts"
    on_degenerate: Literal["sentinel", "raise"] = "sentinel"


class ScoreDifferenceMetric(FrozenSpec):
    """``minuend - subtrahend`` of two numeric columns."""
    kind: Literal["score_difference"] = "score_difference"
    name: str = "cc_difference"
    minuend: str = "S_score"
    subtrahend: str = "G2M_score"


class ColumnMetric(FrozenSpec):
    """Use an existing numeric column as the metric (no computation)."""
    kind: Literal["column"] = "column"
    name: str


MetricSpec = Annotated[
    Union[FractionOfSubsetMetric, LogRatioComplexityMetric, ScoreDifferenceMetric, ColumnMetric],
    Field(discriminator="kind"),
]


# =============================================================================
# Threshold specs
# =============================================================================

class FixedCutoffSpec(FrozenSpec):
    """Keep if ``metric <= cutoff`` (``direction="lower"``: ``metric >= cutoff``)."""
    kind: Literal["fixed"] = "fixed"
    cutoff: float
    direction: Literal["upper", "lower"] = "upper"

    @field_validator("cutoff", mode="before")
    @classmethod
    def coerce_cutoff_to_float(cls, v):
        """Allow int or float for cutoff."""
        return float(v)


class PercentileCutoffSpec(FrozenSpec):
    """Cutoff at the given percentile (0 < p <= 1) of the cohort's own distribution."""
    kind: Literal["percentile"] = "percentile"
    percentile: float = Field(..., gt=0.0, le=1.0)
    direction: Literal["upper", "lower"] = "upper"


class ModelWithFallbackSpec(FrozenSpec):
    """Two-component mixture model, falling back to a percentile cutoff."""
    kind: Literal["model"] = "model"
    fallback_percentile: float = Field(0.95, gt=0.0, le=1.0)
    posterior_cutoff: float = Field(0.75, gt=0.0, lt=1.0)
    min_component_weight: float = Field(0.02, ge=0.0, lt=0.5)
    min_separation: float = Field(2.0, gt=0)
    min_cells: int = Field(50, ge=2)
    max_iter: int = Field(200, ge=1)
    tol: float = Field(1e-3, gt=0)
    random_state: int = 0
    fit_timeout_sec: float = Field(30.0, gt=0)


ThresholdSpec = Annotated[
    Union[FixedCutoffSpec, PercentileCutoffSpec, ModelWithFallbackSpec],
    Field(discriminator="kind"),
]


# =============================================================================
# Stage specs
# =============================================================================

class QCStageSpec(FrozenSpec):
    """Compute a metric, threshold it, tag and filter.

    Without a threshold the stage only annotates: the metric column is added
    and no cell is removed (e.g. the cell-cycle difference score).
    """
    kind: Literal["qc"] = "qc"
    name: str
    metric: MetricSpec
    threshold: Optional[ThresholdSpec] = None
    tag_column: Optional[str] = None

    @property
    def resolved_tag_column(self) -> str:
        return self.tag_column or f"{self.name}_tag"


class TagFilterStageSpec(FrozenSpec):
    """Filter on an existing tag column, e.g. an external doublet call."""
    kind: Literal["tag_filter"] = "tag_filter"
    name: str
    tag_column: str
    keep_value: str = "keep"
    label_map: Optional[dict[str, str]] = None

    @field_validator("label_map")
    @classmethod
    def check_label_map_targets(cls, v):
        """Mapped labels must be normalized tag values."""
        if v is not None:
            bad = sorted(set(v.values()) - {"keep", "discard"})
            if bad:
                raise ValueError(f"label_map values must be 'keep' or 'discard', got {bad}")
        return v


StageSpec = Annotated[
    Union[QCStageSpec, TagFilterStageSpec],
    Field(discriminator="kind"),
]
