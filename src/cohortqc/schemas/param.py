"""ParamConfig: Expert defaults for the cohort QC pipeline.

This module defines the complete default configuration. ALL pipeline
parameters must have defaults here. No runtime code should define fallback
values - this is the single source of truth for defaults.

Runtime code NEVER reads from ParamConfig directly - it only receives InternalConfig.
"""

from typing import Literal, Optional

from pydantic import Field, field_validator

from cohortqc.schemas.base import QCBaseModel
from cohortqc.schemas.stages import StageSpec


# =============================================================================
# Nested Configuration Models
# =============================================================================

class MixtureConfig(QCBaseModel):
    """Two-component mixture model used for the dead-cell (mitochondrial) filter."""
    posterior_cutoff: float = Field(0.75, gt=0, lt=1.0, description="Posterior of compromised component to discard")
    min_component_weight: float = Field(0.02, ge=0, lt=0.5)
    min_separation: float = Field(2.0, gt=0, description="Minimum Ashman's D between the two components")
    min_cells: int = Field(50, ge=2, description="Fewer finite values than this never fit")
    max_iter: int = Field(200, ge=1)
    tol: float = Field(1e-3, gt=0)
    random_state: int = 0
    fit_timeout_sec: float = Field(30.0, gt=0, description="Abandon the fit after this many seconds")


class MitoConfig(QCBaseModel):
    """Mitochondrial content filter."""
    column: str = "pct_mito"
    prefixes: tuple[str, ...] = ("MT-",)
    case_sensitive: bool = True
    fallback_percentile: float = Field(0.95, gt=0, le=1.0)


class RiboConfig(QCBaseModel):
    """Ribosomal content filter."""
    enabled: bool = True
    column: str = "pct_ribo"
    prefixes: tuple[str, ...] = ("RPS", "RPL")
    case_sensitive: bool = True
    percentile: float = Field(0.99, gt=0, le=1.0)


class FeatureFilterConfig(QCBaseModel):
    """Minimum detected features and library complexity."""
    feature_column: str = "n_features"
    total_column: str = "total_counts"
    min_features: Optional[int] = Field(200, ge=0)
    complexity_column: str = "log10_features_per_count"
    min_complexity: Optional[float] = Field(None, ge=0)

    @field_validator("min_complexity", mode="before")
    @classmethod
    def coerce_min_complexity_to_float(cls, v):
        """Allow int or float for min_complexity."""
        return float(v) if v is not None else v


class DoubletConfig(QCBaseModel):
    """External doublet classification consumed as a tag column."""
    enabled: bool = True
    tag_column: str = "doublet_class"
    label_map: dict[str, str] = Field(
        default_factory=lambda: {"singlet": "keep", "doublet": "discard"}
    )
    cluster_column: str = "cluster"
    expected_rate: float = Field(0.075, gt=0, lt=1.0)
    n_top_features: int = Field(2000, ge=1)
    n_dims: int = Field(30, ge=1)


class CellCycleConfig(QCBaseModel):
    """Cell-cycle difference score (S - G2M) added as a metric column."""
    enabled: bool = True
    s_column: str = "S_score"
    g2m_column: str = "G2M_score"
    column: str = "cc_difference"


class RuntimeConfig(QCBaseModel):
    """Execution settings."""
    max_workers: int = Field(1, ge=1, le=32, description="Cohorts processed in parallel")


class OutputConfig(QCBaseModel):
    """Output file configuration."""
    write_tables: bool = True
    float_format: Optional[str] = None


class LoggingConfig(QCBaseModel):
    """Logging configuration."""
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"


# =============================================================================
# Main ParamConfig
# =============================================================================

class ParamConfig(QCBaseModel):
    """Complete expert configuration with all defaults.

    This is the single source of truth for all pipeline parameters.
    Every tunable parameter MUST have a default here.

    Usage
    -----
    This config is NOT used directly by runtime code. It serves as the
    base layer in config resolution:

        internal_cfg = resolve_config(param_cfg, user_cfg, cli_cfg)

    Runtime code only sees InternalConfig.
    """

    base_dir: str = "./cohortqc_output"
    cohorts: dict[str, str] = Field(default_factory=dict, description="Cohort name -> cell table path")
    stages: Optional[list[StageSpec]] = Field(None, description="Explicit stage list; None = reference workflow")
    mixture: MixtureConfig = Field(default_factory=MixtureConfig)
    mito: MitoConfig = Field(default_factory=MitoConfig)
    ribo: RiboConfig = Field(default_factory=RiboConfig)
    features: FeatureFilterConfig = Field(default_factory=FeatureFilterConfig)
    doublets: DoubletConfig = Field(default_factory=DoubletConfig)
    cell_cycle: CellCycleConfig = Field(default_factory=CellCycleConfig)
    runtime: RuntimeConfig = Field(default_factory=RuntimeConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
