"""Command-line interface modules for cohort QC execution.

This package contains core execution logic, making scripts/ optional and deletable.
"""

from cohortqc.cli.run_qc import run_qc_pipeline

__all__ = ['run_qc_pipeline']
