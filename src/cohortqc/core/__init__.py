"""Core data containers for the cohort QC pipeline.

- CellTable: immutable per-cohort table of metrics and tags
- CountMatrix: immutable raw counts handed over by an external loader
"""

from cohortqc.core.cell_table import CellTable, KEEP, DISCARD
from cohortqc.core.count_matrix import CountMatrix

__all__ = ['CellTable', 'CountMatrix', 'KEEP', 'DISCARD']
