"""Centralized failure taxonomy for the QC pipeline.

Contracts fail fast, loud, and once. Structural violations (bad column
references, shape drift) all derive from ContractViolation so callers can
handle pipeline bugs uniformly. Degenerate science inputs and model fit
failures have their own types because they are handled differently.
"""

from enum import Enum


class FailurePolicy(str, Enum):
    """Failure policy for stage errors.

    FAIL_FAST (default): Abort the whole run on the first stage error.

    Future options for extensibility:
    - SKIP_COHORT: Mark cohort failed, continue with the others
    """
    FAIL_FAST = "fail_fast"


class ContractViolation(RuntimeError):
    """Raised when a pipeline contract is violated.

    This indicates a misconfigured pipeline or a bug, not a transient data
    issue. A stage did not receive or produce the invariants it promised.

    Key distinction:
    - ValueError: User/config error (handled by Pydantic) or degenerate data
    - ContractViolation: Pipeline bug (programmer error)
    - ModelFitFailure: Expected, recovered locally by fallback
    """
    pass


class ShapeMismatch(ContractViolation):
    """Column length does not match the current cell count."""
    pass


class DuplicateColumn(ContractViolation):
    """Column already exists; overwriting must be explicit."""
    pass


class MissingColumn(ContractViolation):
    """Referenced column does not exist in the cell table."""
    pass


class ParameterDrift(ContractViolation):
    """Stage parameters changed between cohorts of the same run."""
    pass


class EmptyMatrix(ValueError):
    """A cell has zero total counts, so a fraction is undefined."""
    pass


class DomainError(ValueError):
    """A per-cell value is outside the domain of the metric (e.g. log10 <= 0)."""
    pass


class ModelFitFailure(RuntimeError):
    """Mixture model did not produce a usable fit.

    Never surfaced as a pipeline failure: the model-with-fallback policy
    catches it and switches to the percentile cutoff.
    """
    pass


class StageAborted(RuntimeError):
    """A stage failed on a cohort and the run was aborted.

    Carries the cohort and stage names plus the audit log accumulated up to
    the failure, so partial history is still retrievable by the caller. The
    underlying error is chained as ``__cause__``.
    """

    def __init__(self, cohort: str, stage: str, message: str, audit_log=None):
        super().__init__(f"Stage '{stage}' aborted on cohort '{cohort}': {message}")
        self.cohort = cohort
        self.stage = stage
        self.audit_log = audit_log
