"""Interfaces to collaborators outside the QC core.

Count-matrix parsing, clustering, doublet classification and cell-cycle
scoring are provided by other tools. The pipeline only consumes them
through these protocols; ``as_annotator`` adapts a collaborator into an
``annotator(cohort, table) -> {column: values}`` callable for AnnotateStage.
"""

import logging
from typing import Mapping, Optional, Protocol, Sequence, runtime_checkable

from cohortqc.core.cell_table import CellTable
from cohortqc.core.count_matrix import CountMatrix

__all__ = [
    'CountMatrixLoader',
    'ClusteringService',
    'DoubletClassifier',
    'CellCycleScorer',
    'as_annotator',
    'load_matrices',
    'seed_tables',
]

logger = logging.getLogger(__name__)


@runtime_checkable
class CountMatrixLoader(Protocol):
    def load(self, cohort: str) -> CountMatrix:
        ...


@runtime_checkable
class ClusteringService(Protocol):
    def cluster(self, cohort: str, table: CellTable) -> Mapping[str, Sequence]:
        ...


@runtime_checkable
class DoubletClassifier(Protocol):
    def classify(self, cohort: str, table: CellTable, cluster_column: str, *,
                 doublet_rate: float, n_top_features: int, n_dims: int) -> Sequence[str]:
        """One "singlet"/"doublet" label per current cell, in table order."""
        ...


@runtime_checkable
class CellCycleScorer(Protocol):
    def score(self, cohort: str, table: CellTable) -> Mapping[str, Sequence[float]]:
        """Score columns per cell, e.g. ``S_score`` and ``G2M_score``."""
        ...


def as_annotator(collaborator, *, tag_column: str = "doublet_class",
                 cluster_column: str = "cluster", doublets=None):
    """Wrap a collaborator as an annotate-stage callable.

    Parameters
    ----------
    collaborator : DoubletClassifier, CellCycleScorer or ClusteringService
    tag_column : str
        Column receiving doublet labels.
    cluster_column : str
        Column holding cluster assignments, passed to the doublet classifier.
    doublets : InternalDoubletConfig, optional
        Supplies ``tag_column``, ``cluster_column`` and the classifier
        parameters. Without it the classifier defaults are used
        (rate 0.075, 2000 features, 30 dims).

    Returns
    -------
    callable
        ``annotator(cohort, table) -> {column: values}``

    Examples
    --------
    >>> stages = build_reference_stages(
    ...     config,
    ...     doublet_annotator=as_annotator(classifier, doublets=config.doublets),
    ...     cell_cycle_annotator=as_annotator(scorer),
    ... )
    """
    if isinstance(collaborator, DoubletClassifier):
        params = {"doublet_rate": 0.075, "n_top_features": 2000, "n_dims": 30}
        if doublets is not None:
            tag_column = doublets.tag_column
            cluster_column = doublets.cluster_column
            params = {
                "doublet_rate": doublets.expected_rate,
                "n_top_features": doublets.n_top_features,
                "n_dims": doublets.n_dims,
            }

        def annotate_doublets(cohort: str, table: CellTable):
            labels = collaborator.classify(cohort, table, cluster_column, **params)
            logger.debug("%s: doublet classifier returned %d labels", cohort, len(labels))
            return {tag_column: list(labels)}

        return annotate_doublets

    if isinstance(collaborator, CellCycleScorer):
        def annotate_cell_cycle(cohort: str, table: CellTable):
            return dict(collaborator.score(cohort, table))

        return annotate_cell_cycle

    if isinstance(collaborator, ClusteringService):
        def annotate_clusters(cohort: str, table: CellTable):
            return dict(collaborator.cluster(cohort, table))

        return annotate_clusters

    raise TypeError(f"{type(collaborator).__name__} does not implement a known collaborator protocol")


def load_matrices(loader: CountMatrixLoader, cohorts: Sequence[str]) -> dict:
    """Load one count matrix per cohort through ``loader``."""
    return {name: loader.load(name) for name in cohorts}


def seed_tables(matrices: Mapping[str, CountMatrix],
                tables: Optional[Mapping[str, CellTable]] = None) -> dict:
    """Cell tables seeded from counts, unless a table is already given."""
    tables = dict(tables or {})
    for name, matrix in matrices.items():
        if name not in tables:
            tables[name] = CellTable.from_count_matrix(name, matrix)
    return tables
