"""`cohortqc` - Cohort-consistent quality control for single-cell RNA-seq.

Subpackages:
- core: Cell table and count matrix
- metrics: Per-cell QC metric calculators
- thresholds: Fixed, percentile and mixture-model cutoff policies
- pipeline: Stages, orchestrator, audit log
- schemas: Layered configuration
- contracts: Stage invariants and error taxonomy
"""

__version__ = "0.1.0"
