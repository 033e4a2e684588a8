"""UserConfig: Forgiving, minimal user-facing configuration.

This schema accepts user inputs in a variety of formats, with aliases
for common naming patterns (e.g., MITO_PREFIXES → mito_prefixes).

UserConfig is intentionally minimal - users only specify what they want
to override from the expert defaults. Validation is lenient to accept
both uppercase and lowercase keys, integers where floats are expected, a
single string where a tuple of prefixes is expected, etc.
"""

from typing import Any, Literal, Optional

from pydantic import Field, field_validator

from cohortqc.schemas.base import QCBaseModel
from cohortqc.schemas.stages import StageSpec


def _as_prefix_tuple(v):
    if isinstance(v, str):
        return (v,)
    return v


class UserMitoConfig(QCBaseModel):
    """User-facing mitochondrial filter config."""
    column: Optional[str] = None
    prefixes: Optional[tuple[str, ...]] = None
    case_sensitive: Optional[bool] = None
    fallback_percentile: Optional[float] = None

    @field_validator("prefixes", mode="before")
    @classmethod
    def coerce_prefixes(cls, v):
        """Accept a single prefix string."""
        return _as_prefix_tuple(v)


class UserRiboConfig(QCBaseModel):
    """User-facing ribosomal filter config."""
    enabled: Optional[bool] = None
    column: Optional[str] = None
    prefixes: Optional[tuple[str, ...]] = None
    case_sensitive: Optional[bool] = None
    percentile: Optional[float] = None

    @field_validator("prefixes", mode="before")
    @classmethod
    def coerce_prefixes(cls, v):
        """Accept a single prefix string."""
        return _as_prefix_tuple(v)


class UserMixtureConfig(QCBaseModel):
    """User-facing mixture model config."""
    posterior_cutoff: Optional[float] = None
    min_component_weight: Optional[float] = None
    min_separation: Optional[float] = None
    min_cells: Optional[int] = None
    max_iter: Optional[int] = None
    tol: Optional[float] = None
    random_state: Optional[int] = None
    fit_timeout_sec: Optional[float] = None


class UserFeatureFilterConfig(QCBaseModel):
    """User-facing feature filter config."""
    feature_column: Optional[str] = None
    total_column: Optional[str] = None
    min_features: Optional[int] = None
    complexity_column: Optional[str] = None
    min_complexity: Optional[float] = None


class UserDoubletConfig(QCBaseModel):
    """User-facing doublet config."""
    enabled: Optional[bool] = None
    tag_column: Optional[str] = None
    label_map: Optional[dict[str, str]] = None
    cluster_column: Optional[str] = None
    expected_rate: Optional[float] = None
    n_top_features: Optional[int] = None
    n_dims: Optional[int] = None


class UserCellCycleConfig(QCBaseModel):
    """User-facing cell-cycle config."""
    enabled: Optional[bool] = None
    s_column: Optional[str] = None
    g2m_column: Optional[str] = None
    column: Optional[str] = None


class UserConfig(QCBaseModel):
    """User-facing configuration schema.

    Minimal, forgiving, and uses common aliases. Users only specify
    what they want to override from ParamConfig defaults.

    This config is converted to internal overrides during resolution.

    Usage
    -----
        user_cfg = UserConfig(
            BASE_DIR="/data/qc",
            COHORTS={"control": "control.csv", "depleted": "depleted.csv"},
            FALLBACK_PERCENTILE=0.99,
        )

        internal = resolve_config(param_cfg, user_cfg, cli_cfg)
    """

    # Top-level operational settings
    base_dir: Optional[str] = Field(None, alias="BASE_DIR")
    cohorts: Optional[dict[str, str]] = Field(None, alias="COHORTS")
    stages: Optional[list[StageSpec]] = Field(None, alias="STAGES")
    max_workers: Optional[int] = Field(None, alias="MAX_WORKERS")
    log_level: Optional[Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]] = Field(None, alias="LOG_LEVEL")

    # Mitochondrial / model settings (flat aliases)
    mito_prefixes: Optional[tuple[str, ...]] = Field(None, alias="MITO_PREFIXES")
    fallback_percentile: Optional[float] = Field(None, alias="FALLBACK_PERCENTILE")
    posterior_cutoff: Optional[float] = Field(None, alias="POSTERIOR_CUTOFF")
    fit_timeout_sec: Optional[float] = Field(None, alias="FIT_TIMEOUT_SEC")
    min_separation: Optional[float] = Field(None, alias="MIN_SEPARATION")

    # Ribosomal settings (flat aliases)
    ribo_prefixes: Optional[tuple[str, ...]] = Field(None, alias="RIBO_PREFIXES")
    ribo_percentile: Optional[float] = Field(None, alias="RIBO_PERCENTILE")

    # Feature settings (flat aliases)
    min_features: Optional[int] = Field(None, alias="MIN_FEATURES")
    min_complexity: Optional[float] = Field(None, alias="MIN_COMPLEXITY")

    # Doublet settings (flat aliases)
    doublet_rate: Optional[float] = Field(None, alias="DOUBLET_RATE")
    doublet_column: Optional[str] = Field(None, alias="DOUBLET_COLUMN")

    # Nested overrides (advanced users)
    mito: Optional[UserMitoConfig] = None
    ribo: Optional[UserRiboConfig] = None
    mixture: Optional[UserMixtureConfig] = None
    features: Optional[UserFeatureFilterConfig] = None
    doublets: Optional[UserDoubletConfig] = None
    cell_cycle: Optional[UserCellCycleConfig] = None

    model_config = QCBaseModel.model_config.copy()
    # Allow forgiving input dictionaries (ignore unknown legacy keys)
    model_config.update({"populate_by_name": True, "extra": "ignore"})

    @field_validator("mito_prefixes", "ribo_prefixes", mode="before")
    @classmethod
    def coerce_prefixes(cls, v):
        """Accept a single prefix string."""
        return _as_prefix_tuple(v)

    @field_validator("fallback_percentile", "ribo_percentile", "posterior_cutoff",
                     "fit_timeout_sec", "min_separation", "min_complexity", "doublet_rate",
                     mode="before")
    @classmethod
    def coerce_numeric_fields(cls, v):
        """Accept int or float for numeric fields."""
        if v is not None:
            return float(v)
        return v

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v):
        """Normalize log level names to uppercase."""
        if isinstance(v, str):
            return v.upper().strip()
        return v

    def to_internal_overrides(self) -> dict:
        """Convert user config to internal config structure.

        Flat aliases are applied first, then explicit nested sections, so a
        nested value wins over its flat alias.

        Returns
        -------
        dict
            Nested dictionary matching InternalConfig structure
        """
        overrides: dict[str, Any] = {}

        if self.base_dir is not None:
            overrides["base_dir"] = str(self.base_dir)
        if self.cohorts is not None:
            overrides["cohorts"] = dict(self.cohorts)
        if self.stages is not None:
            overrides["stages"] = [s.model_dump() for s in self.stages]
        if self.max_workers is not None:
            overrides["runtime"] = {"max_workers": self.max_workers}
        if self.log_level is not None:
            overrides["logging"] = {"level": self.log_level}

        # Mito section
        mito = {}
        if self.mito_prefixes is not None:
            mito["prefixes"] = self.mito_prefixes
        if self.fallback_percentile is not None:
            mito["fallback_percentile"] = self.fallback_percentile
        if self.mito is not None:
            mito.update(self.mito.model_dump(exclude_none=True))
        if mito:
            overrides["mito"] = mito

        # Mixture section
        mixture = {}
        if self.posterior_cutoff is not None:
            mixture["posterior_cutoff"] = self.posterior_cutoff
        if self.fit_timeout_sec is not None:
            mixture["fit_timeout_sec"] = self.fit_timeout_sec
        if self.min_separation is not None:
            mixture["min_separation"] = self.min_separation
        if self.mixture is not None:
            mixture.update(self.mixture.model_dump(exclude_none=True))
        if mixture:
            overrides["mixture"] = mixture

        # Ribo section
        ribo = {}
        if self.ribo_prefixes is not None:
            ribo["prefixes"] = self.ribo_prefixes
        if self.ribo_percentile is not None:
            ribo["percentile"] = self.ribo_percentile
        if self.ribo is not None:
            ribo.update(self.ribo.model_dump(exclude_none=True))
        if ribo:
            overrides["ribo"] = ribo

        # Features section
        features = {}
        if self.min_features is not None:
            features["min_features"] = self.min_features
        if self.min_complexity is not None:
            features["min_complexity"] = self.min_complexity
        if self.features is not None:
            features.update(self.features.model_dump(exclude_none=True))
        if features:
            overrides["features"] = features

        # Doublets section
        doublets = {}
        if self.doublet_rate is not None:
            doublets["expected_rate"] = self.doublet_rate
        if self.doublet_column is not None:
            doublets["tag_column"] = self.doublet_column
        if self.doublets is not None:
            doublets.update(self.doublets.model_dump(exclude_none=True))
        if doublets:
            overrides["doublets"] = doublets

        if self.cell_cycle is not None:
            cell_cycle = self.cell_cycle.model_dump(exclude_none=True)
            if cell_cycle:
                overrides["cell_cycle"] = cell_cycle

        return overrides
