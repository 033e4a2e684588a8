"""Pipeline contracts: fail-fast enforcement of stage invariants.

This package enforces semantic guarantees between pipeline stages.
Contracts fail immediately and loudly when pipeline stages don't produce
their promised invariants.

Key principle:
- Pydantic validates config correctness
- Contracts validate pipeline correctness
- Policies handle science edge cases (sentinels, model fallback)
"""

from cohortqc.contracts.failure import (
    ContractViolation,
    FailurePolicy,
    ShapeMismatch,
    DuplicateColumn,
    MissingColumn,
    ParameterDrift,
    EmptyMatrix,
    DomainError,
    ModelFitFailure,
    StageAborted,
)
from cohortqc.contracts.base import require
from cohortqc.contracts.table import assert_metric_column, assert_tag_column
from cohortqc.contracts.threshold import assert_threshold_result
from cohortqc.contracts.filtering import assert_filter_conserves

__all__ = [
    "ContractViolation",
    "FailurePolicy",
    "ShapeMismatch",
    "DuplicateColumn",
    "MissingColumn",
    "ParameterDrift",
    "EmptyMatrix",
    "DomainError",
    "ModelFitFailure",
    "StageAborted",
    "require",
    "assert_metric_column",
    "assert_tag_column",
    "assert_threshold_result",
    "assert_filter_conserves",
]
