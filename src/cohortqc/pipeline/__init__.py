"""Pipeline modules.

- orchestrator: Runs the stage list over every cohort
- stages: QC, tag filter and annotate stages
- filter_stage: Tag-driven row removal
- audit: Append-only audit log
- worker: Cohort worker thread
- reference: Reference single-cell QC workflow
"""

from cohortqc.pipeline.audit import AuditEntry, AuditLog
from cohortqc.pipeline.filter_stage import FilterOutcome, FilterStage
from cohortqc.pipeline.stages import AnnotateStage, QCStage, Stage, TagFilterStage, build_stage
from cohortqc.pipeline.worker import CohortWorker
from cohortqc.pipeline.orchestrator import CohortPipelineOrchestrator, PipelineResult
from cohortqc.pipeline.reference import build_reference_stages, stages_from_config

__all__ = [
    "AuditEntry",
    "AuditLog",
    "FilterOutcome",
    "FilterStage",
    "Stage",
    "QCStage",
    "TagFilterStage",
    "AnnotateStage",
    "build_stage",
    "CohortWorker",
    "CohortPipelineOrchestrator",
    "PipelineResult",
    "build_reference_stages",
    "stages_from_config",
]
