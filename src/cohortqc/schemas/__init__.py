"""Pydantic configuration schemas for the cohort QC pipeline.

This module provides strictly typed configuration models. All configuration
validation, coercion, and normalization happens at schema validation time
via Pydantic.

Exports
-------
resolve_config : function
    Single entrypoint for configuration resolution
InternalConfig : class
    Fully validated, authoritative runtime configuration
ParamConfig : class
    Expert defaults (complete)
UserConfig : class
    User-facing configuration (forgiving, minimal)
CLIConfig : class
    Command-line operational overrides
"""

from cohortqc.schemas.resolve import resolve_config
from cohortqc.schemas.internal import InternalConfig
from cohortqc.schemas.param import ParamConfig
from cohortqc.schemas.user import UserConfig
from cohortqc.schemas.cli import CLIConfig
from cohortqc.schemas.stages import (
    FractionOfSubsetMetric,
    LogRatioComplexityMetric,
    ScoreDifferenceMetric,
    ColumnMetric,
    FixedCutoffSpec,
    PercentileCutoffSpec,
    ModelWithFallbackSpec,
    QCStageSpec,
    TagFilterStageSpec,
)

__all__ = [
    'resolve_config',
    'InternalConfig',
    'ParamConfig',
    'UserConfig',
    'CLIConfig',
    'FractionOfSubsetMetric',
    'LogRatioComplexityMetric',
    'ScoreDifferenceMetric',
    'ColumnMetric',
    'FixedCutoffSpec',
    'PercentileCutoffSpec',
    'ModelWithFallbackSpec',
    'QCStageSpec',
    'TagFilterStageSpec',
]
