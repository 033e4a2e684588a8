"""InternalConfig: Authoritative runtime configuration.

This is the ONLY config schema that runtime code sees. It is fully validated,
normalized, and contains NO optional fields that processing code depends on
without an explicit None meaning.

All .get() calls, fallback defaults, and validation logic are FORBIDDEN in
runtime code - everything is explicit here.
"""

from typing import Literal, Optional

from pydantic import ConfigDict, Field

from cohortqc.schemas.base import QCBaseModel
from cohortqc.schemas.stages import StageSpec


# =============================================================================
# Nested Configuration Models (Runtime)
# =============================================================================

class InternalMixtureConfig(QCBaseModel):
    """Runtime mixture model settings."""
    posterior_cutoff: float
    min_component_weight: float
    min_separation: float
    min_cells: int
    max_iter: int
    tol: float
    random_state: int
    fit_timeout_sec: float


class InternalMitoConfig(QCBaseModel):
    """Runtime mitochondrial filter settings."""
    column: str
    prefixes: tuple[str, ...]
    case_sensitive: bool
    fallback_percentile: float = Field(gt=0, le=1.0)


class InternalRiboConfig(QCBaseModel):
    """Runtime ribosomal filter settings."""
    enabled: bool
    column: str
    prefixes: tuple[str, ...]
    case_sensitive: bool
    percentile: float = Field(gt=0, le=1.0)


class InternalFeatureFilterConfig(QCBaseModel):
    """Runtime feature and complexity filter settings."""
    feature_column: str
    total_column: str
    min_features: Optional[int]  # None disables the filter
    complexity_column: str
    min_complexity: Optional[float]  # None = annotate only


class InternalDoubletConfig(QCBaseModel):
    """Runtime doublet settings."""
    enabled: bool
    tag_column: str
    label_map: dict[str, str]
    cluster_column: str
    expected_rate: float
    n_top_features: int
    n_dims: int


class InternalCellCycleConfig(QCBaseModel):
    """Runtime cell-cycle settings."""
    enabled: bool
    s_column: str
    g2m_column: str
    column: str


class InternalRuntimeConfig(QCBaseModel):
    """Runtime execution settings."""
    max_workers: int = Field(ge=1, le=32)


class InternalOutputConfig(QCBaseModel):
    """Runtime output configuration."""
    write_tables: bool
    float_format: Optional[str]


class InternalLoggingConfig(QCBaseModel):
    """Runtime logging configuration."""
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


# =============================================================================
# Main InternalConfig
# =============================================================================

class InternalConfig(QCBaseModel):
    """Authoritative runtime configuration.

    This is the ONLY configuration schema that processing code sees.
    It is fully validated, immutable, and contains explicit values for
    all parameters.

    Usage
    -----
    Runtime modules receive InternalConfig and access fields directly:

        stages = build_reference_stages(config)
        percentile = config.ribo.percentile  # NOT .get()

    Rules
    -----
    - NO .get() calls
    - NO fallback defaults
    - NO type checking
    - NO validation

    All of that happens during config resolution, not in runtime code.
    """

    base_dir: str
    cohorts: dict[str, str]
    stages: Optional[tuple[StageSpec, ...]]
    mixture: InternalMixtureConfig
    mito: InternalMitoConfig
    ribo: InternalRiboConfig
    features: InternalFeatureFilterConfig
    doublets: InternalDoubletConfig
    cell_cycle: InternalCellCycleConfig
    runtime: InternalRuntimeConfig
    output: InternalOutputConfig
    logging: InternalLoggingConfig
    run_id: Optional[str] = None

    model_config = ConfigDict(
        extra='forbid',
        validate_assignment=True,
        use_enum_values=True,
        str_strip_whitespace=True,
        frozen=True,  # Immutable after construction
    )
