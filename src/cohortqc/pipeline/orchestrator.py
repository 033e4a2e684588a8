"""Cohort pipeline orchestration.

Runs one ordered, frozen stage list over every cohort of a run, sequentially
or on cohort worker threads, and collects the audit log.
"""

import logging
import queue
import threading
import time
from dataclasses import dataclass
from typing import Dict, Mapping, Optional, Sequence

import pandas as pd

from cohortqc.contracts import ContractViolation, FailurePolicy, ParameterDrift, StageAborted, require
from cohortqc.core.cell_table import CellTable
from cohortqc.core.count_matrix import CountMatrix
from cohortqc.pipeline.audit import AuditLog
from cohortqc.pipeline.stages import build_stage
from cohortqc.pipeline.worker import CohortWorker

__all__ = ['CohortPipelineOrchestrator', 'PipelineResult']

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PipelineResult:
    """Final table of every cohort plus the audit log of the run."""
    tables: Dict[str, CellTable]
    audit_log: AuditLog

    def summary(self) -> Dict[str, dict]:
        return self.audit_log.summary()


class CohortPipelineOrchestrator:
    """Applies the same stage list to every cohort.

    **Consistency:**

    Every cohort sees exactly the same stage objects. The stage list is
    fingerprinted when a run starts and the fingerprint is re-checked before
    each cohort; a mismatch raises ParameterDrift. Percentile and model
    cutoffs are still derived per cohort, from that cohort's own values.

    **Failure:**

    Fail fast. The first stage error on any cohort raises StageAborted with
    the cohort and stage names; cohorts not yet started are skipped. The
    audit log accumulated so far is attached to the exception and stays
    available on ``orchestrator.audit_log``.

    **Concurrency:**

    ``max_workers=1`` (default) processes cohorts one after another in input
    order. With more workers each cohort is owned by one CohortWorker thread;
    the audit log is the only shared object and it locks per cohort.

    Example usage::

        stages = build_reference_stages(config)
        orch = CohortPipelineOrchestrator(stages, max_workers=2)
        result = orch.run({"control": control_table, "depleted": depleted_table},
                          matrices={"control": control_counts, "depleted": depleted_counts})
        result.audit_log.to_frame()
    """

    def __init__(self, stages: Sequence, max_workers: int = 1,
                 failure_policy: FailurePolicy = FailurePolicy.FAIL_FAST):
        """Build runtime stages and validate the stage list.

        Parameters
        ----------
        stages : sequence
            Stage specs (QCStageSpec, TagFilterStageSpec) or Stage objects,
            in execution order. Stage names must be unique.
        max_workers : int
            Number of cohorts processed concurrently.
        failure_policy : FailurePolicy
            Only FAIL_FAST is supported.
        """
        if max_workers < 1:
            raise ValueError(f"max_workers must be >= 1, got {max_workers}")
        if failure_policy != FailurePolicy.FAIL_FAST:
            raise ValueError(f"Unsupported failure policy: {failure_policy}")

        self._stages = tuple(build_stage(s) for s in stages)
        names = [s.name for s in self._stages]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        require(not duplicates, f"Duplicate stage names: {duplicates}")

        self.max_workers = max_workers
        self.failure_policy = failure_policy
        self._audit_log = AuditLog()
        self._fingerprint: Optional[tuple] = None

    @property
    def stages(self) -> tuple:
        return self._stages

    @property
    def audit_log(self) -> AuditLog:
        """Audit log of the most recent run (partial if it was aborted)."""
        return self._audit_log

    def fingerprint(self) -> tuple:
        return tuple((s.name, s.fingerprint()) for s in self._stages)

    def _check_drift(self, cohort: str) -> None:
        current = self.fingerprint()
        if current != self._fingerprint:
            changed = [name for (name, fp), (_, ref) in zip(current, self._fingerprint) if fp != ref]
            raise ParameterDrift(
                f"Stage parameters changed before cohort '{cohort}': {changed or 'stage list'}"
            )

    def run(self, tables: Mapping[str, CellTable],
            matrices: Optional[Mapping[str, CountMatrix]] = None) -> PipelineResult:
        """Run every stage on every cohort.

        Parameters
        ----------
        tables : mapping
            Cohort name -> CellTable (a DataFrame indexed by cell id is
            accepted and wrapped).
        matrices : mapping, optional
            Cohort name -> CountMatrix, needed by count-based metrics.

        Returns
        -------
        PipelineResult

        Raises
        ------
        StageAborted
            On the first stage failure; ``__cause__`` holds the original error.
        ParameterDrift
            If the stage list changed during the run.
        """
        matrices = dict(matrices or {})
        inputs = {name: self._as_table(name, table) for name, table in tables.items()}

        self._audit_log = AuditLog()
        self._fingerprint = self.fingerprint()
        start = time.time()

        logger.info("=" * 60)
        logger.info("Cohort QC run: %d cohort(s), %d stage(s), %d worker(s)",
                    len(inputs), len(self._stages), self.max_workers)
        logger.info("Stages: %s", ", ".join(s.name for s in self._stages))
        logger.info("=" * 60)

        def run_one(name: str) -> CellTable:
            return self._run_cohort(inputs[name], matrices.get(name))

        if self.max_workers == 1 or len(inputs) <= 1:
            results = {name: run_one(name) for name in inputs}
        else:
            results = self._run_parallel(list(inputs), run_one)

        # keep input order regardless of worker completion order
        final = {name: results[name] for name in inputs}
        logger.info("Run complete in %.2fs", time.time() - start)
        for cohort, info in self._audit_log.summary().items():
            logger.info("  %s: %d -> %d cells", cohort, info["start_count"], info["final_count"])
        return PipelineResult(tables=final, audit_log=self._audit_log)

    def _run_parallel(self, cohorts: list, run_one) -> Dict[str, CellTable]:
        work = queue.Queue()
        for name in cohorts:
            work.put(name)

        results: Dict[str, CellTable] = {}
        results_lock = threading.Lock()
        abort_event = threading.Event()
        workers = [
            CohortWorker(work, run_one, results, results_lock, abort_event,
                         name=f"CohortWorker-{i}")
            for i in range(min(self.max_workers, len(cohorts)))
        ]
        for worker in workers:
            worker.start()
        for worker in workers:
            worker.join()

        errors = [w.error for w in workers if w.error is not None]
        if errors:
            raise errors[0]
        return results

    def _run_cohort(self, table: CellTable, matrix: Optional[CountMatrix]) -> CellTable:
        cohort = table.cohort
        self._check_drift(cohort)
        logger.info("Cohort '%s': %d cells", cohort, table.row_count())

        for stage in self._stages:
            try:
                table, entry = stage.apply(table, matrix)
            except Exception as e:
                logger.critical("Stage '%s' failed on cohort '%s': %s", stage.name, cohort, e)
                raise StageAborted(cohort, stage.name, str(e), audit_log=self._audit_log) from e
            self._audit_log.append(entry)

        return table

    @staticmethod
    def _as_table(name: str, table) -> CellTable:
        if isinstance(table, pd.DataFrame):
            return CellTable.from_frame(name, table)
        if not isinstance(table, CellTable):
            raise TypeError(f"Cohort '{name}': expected CellTable or DataFrame, got {type(table).__name__}")
        if table.cohort != name:
            raise ContractViolation(f"Cohort key '{name}' does not match table cohort '{table.cohort}'")
        return table
