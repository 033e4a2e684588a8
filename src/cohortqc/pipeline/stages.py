"""Runtime pipeline stages.

A stage turns one cohort's CellTable into the next one and reports what it
did as an AuditEntry. Three kinds exist:

- QCStage: compute a metric, threshold it, tag and filter
- TagFilterStage: filter on a tag column that already exists
- AnnotateStage: add columns produced by an external collaborator

Stages hold no per-cohort state; the same stage objects are applied to every
cohort of a run. Each stage exposes a ``fingerprint()`` of its parameters so
the orchestrator can detect drift between cohorts.
"""

import hashlib
import json
import logging
import math
from abc import ABC, abstractmethod
from typing import Any, Callable, Mapping, Optional, Sequence, Tuple

from cohortqc.contracts import assert_metric_column, assert_threshold_result
from cohortqc.core.cell_table import CellTable, KEEP
from cohortqc.core.count_matrix import CountMatrix
from cohortqc.metrics import compute_metric
from cohortqc.pipeline.audit import AuditEntry
from cohortqc.pipeline.filter_stage import FilterStage
from cohortqc.schemas.stages import QCStageSpec, TagFilterStageSpec
from cohortqc.thresholds import build_policy

__all__ = ['Stage', 'QCStage', 'TagFilterStage', 'AnnotateStage', 'build_stage']

logger = logging.getLogger(__name__)

Annotator = Callable[[str, CellTable], Mapping[str, Sequence[Any]]]


def _digest(payload: dict) -> str:
    encoded = json.dumps(payload, sort_keys=True, default=str).encode("utf-8")
    return hashlib.sha256(encoded).hexdigest()


class Stage(ABC):
    """One step of the per-cohort pipeline."""

    name: str

    @abstractmethod
    def apply(self, table: CellTable,
              matrix: Optional[CountMatrix] = None) -> Tuple[CellTable, AuditEntry]:
        """Apply the stage to ``table`` and return the new table plus its audit entry."""

    @abstractmethod
    def fingerprint(self) -> str:
        """Stable digest of every parameter that influences the stage's output."""


class QCStage(Stage):
    """Metric -> threshold -> tag -> filter.

    Without a threshold the stage only annotates: the metric column is added
    and every cell is kept. A ``column`` metric reuses an existing column
    instead of computing a new one.

    Parameters
    ----------
    spec : QCStageSpec
        Frozen stage description.
    """

    def __init__(self, spec: QCStageSpec):
        self.spec = spec
        self.name = spec.name
        self.policy = build_policy(spec.threshold) if spec.threshold is not None else None

    @property
    def metric_name(self) -> str:
        return self.spec.metric.name

    def apply(self, table, matrix=None):
        metric = self.spec.metric
        before = table.row_count()

        if metric.kind != "column":
            values = compute_metric(metric, table, matrix)
            table = table.add_column(metric.name, values)
        assert_metric_column(table, metric.name)

        if self.policy is None:
            logger.info("%s/%s: added metric '%s' (no threshold)", table.cohort, self.name, metric.name)
            entry = AuditEntry(
                cohort=table.cohort,
                stage=self.name,
                metric=metric.name,
                policy=None,
                cutoff=None,
                fallback_used=False,
                before_count=before,
                after_count=before,
                removed_ids=(),
            )
            return table, entry

        result = self.policy.derive_cutoff_and_tag(table, metric.name)
        assert_threshold_result(result, table)

        tag_column = self.spec.resolved_tag_column
        tagged = table.add_column(tag_column, result.tags)
        outcome = FilterStage.apply(tagged, tag_column, KEEP)

        logger.info("%s/%s: %s cutoff=%.4g%s, kept %d / %d",
                    table.cohort, self.name, result.policy, result.cutoff,
                    " (fallback)" if result.fallback_used else "",
                    outcome.after_count, outcome.before_count)

        entry = AuditEntry(
            cohort=table.cohort,
            stage=self.name,
            metric=metric.name,
            policy=result.policy,
            cutoff=result.cutoff if math.isfinite(result.cutoff) else None,
            fallback_used=result.fallback_used,
            before_count=outcome.before_count,
            after_count=outcome.after_count,
            removed_ids=outcome.removed_ids,
        )
        return outcome.table, entry

    def fingerprint(self):
        return _digest({"type": "qc", "spec": self.spec.model_dump(mode="json")})

    def __repr__(self):
        policy = self.policy.describe() if self.policy is not None else "none"
        return f"QCStage(name={self.name!r}, metric={self.metric_name!r}, policy={policy})"


class TagFilterStage(Stage):
    """Filter on an existing tag column, e.g. an external doublet call."""

    def __init__(self, spec: TagFilterStageSpec):
        self.spec = spec
        self.name = spec.name

    def apply(self, table, matrix=None):
        outcome = FilterStage.apply(
            table,
            self.spec.tag_column,
            self.spec.keep_value,
            label_map=self.spec.label_map,
        )
        logger.info("%s/%s: tag '%s' kept %d / %d", table.cohort, self.name,
                    self.spec.tag_column, outcome.after_count, outcome.before_count)
        entry = AuditEntry(
            cohort=table.cohort,
            stage=self.name,
            metric=None,
            policy="tag",
            cutoff=None,
            fallback_used=False,
            before_count=outcome.before_count,
            after_count=outcome.after_count,
            removed_ids=outcome.removed_ids,
        )
        return outcome.table, entry

    def fingerprint(self):
        return _digest({"type": "tag_filter", "spec": self.spec.model_dump(mode="json")})

    def __repr__(self):
        return f"TagFilterStage(name={self.name!r}, tag_column={self.spec.tag_column!r})"


class AnnotateStage(Stage):
    """Add the columns returned by ``annotator(cohort, table)``.

    Columns are attached with ``add_column`` semantics, so an annotator can
    never overwrite an existing column silently. No cell is removed.
    """

    def __init__(self, name: str, annotator: Annotator, params: Optional[Mapping[str, Any]] = None):
        self.name = name
        self.annotator = annotator
        self.params = dict(params or {})

    def apply(self, table, matrix=None):
        columns = self.annotator(table.cohort, table, **self.params)
        for column_name, values in columns.items():
            table = table.add_column(column_name, values)
        logger.info("%s/%s: added %s", table.cohort, self.name, sorted(columns))
        entry = AuditEntry(
            cohort=table.cohort,
            stage=self.name,
            metric=None,
            policy=None,
            cutoff=None,
            fallback_used=False,
            before_count=table.row_count(),
            after_count=table.row_count(),
            removed_ids=(),
        )
        return table, entry

    def fingerprint(self):
        target = getattr(self.annotator, "__qualname__", type(self.annotator).__qualname__)
        return _digest({"type": "annotate", "name": self.name, "annotator": target,
                        "params": self.params})

    def __repr__(self):
        return f"AnnotateStage(name={self.name!r})"


def build_stage(spec) -> Stage:
    """Turn a stage spec into a runtime stage; stage objects pass through."""
    if isinstance(spec, Stage):
        return spec
    if isinstance(spec, QCStageSpec):
        return QCStage(spec)
    if isinstance(spec, TagFilterStageSpec):
        return TagFilterStage(spec)
    raise TypeError(f"Cannot build a stage from {type(spec).__name__}")
