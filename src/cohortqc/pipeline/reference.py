"""Reference single-cell QC workflow.

Builds the stage list used for control vs. depleted cohort comparisons from
an InternalConfig:

1. mito        - % mitochondrial counts, mixture model with percentile fallback
2. ribo        - % ribosomal counts, percentile cutoff
3. complexity  - log10(features) / log10(counts), annotation or lower cutoff
4. min_features - detected features, fixed lower cutoff
5. doublets    - external singlet/doublet call, tag filter
6. cell_cycle  - S - G2M score difference, annotation only

Disabled sections are left out. External collaborators (doublet classifier,
cell-cycle scorer) are inserted as annotate stages right before the stage
that consumes their columns.
"""

import logging
from typing import Callable, List, Optional

from cohortqc.pipeline.stages import AnnotateStage
from cohortqc.schemas.internal import InternalConfig
from cohortqc.schemas.stages import (
    ColumnMetric,
    FixedCutoffSpec,
    FractionOfSubsetMetric,
    LogRatioComplexityMetric,
    ModelWithFallbackSpec,
    PercentileCutoffSpec,
    QCStageSpec,
    ScoreDifferenceMetric,
    TagFilterStageSpec,
)

__all__ = ['build_reference_stages', 'stages_from_config']

logger = logging.getLogger(__name__)


def build_reference_stages(config: InternalConfig, from_counts: bool = True,
                           doublet_annotator: Optional[Callable] = None,
                           cell_cycle_annotator: Optional[Callable] = None) -> List:
    """Reference stage list for ``config``.

    Parameters
    ----------
    config : InternalConfig
        Resolved configuration.
    from_counts : bool
        If True the mitochondrial and ribosomal percentages are computed from
        each cohort's count matrix. If False they are read from existing
        table columns (``config.mito.column`` / ``config.ribo.column``).
    doublet_annotator, cell_cycle_annotator : callable, optional
        ``annotator(cohort, table) -> {column: values}``, typically from
        ``cohortqc.external.as_annotator``. Without them the tag and score
        columns must already be present in the input tables.

    Returns
    -------
    list
        Stage specs and AnnotateStage objects in execution order.
    """
    stages: List = []

    mito = config.mito
    if from_counts:
        mito_metric = FractionOfSubsetMetric(name=mito.column, prefixes=mito.prefixes,
                                             case_sensitive=mito.case_sensitive)
    else:
        mito_metric = ColumnMetric(name=mito.column)
    stages.append(QCStageSpec(
        name="mito",
        metric=mito_metric,
        threshold=ModelWithFallbackSpec(
            fallback_percentile=mito.fallback_percentile,
            **config.mixture.model_dump(),
        ),
    ))

    ribo = config.ribo
    if ribo.enabled:
        if from_counts:
            ribo_metric = FractionOfSubsetMetric(name=ribo.column, prefixes=ribo.prefixes,
                                                 case_sensitive=ribo.case_sensitive)
        else:
            ribo_metric = ColumnMetric(name=ribo.column)
        stages.append(QCStageSpec(
            name="ribo",
            metric=ribo_metric,
            threshold=PercentileCutoffSpec(percentile=ribo.percentile),
        ))

    features = config.features
    complexity_threshold = None
    if features.min_complexity is not None:
        complexity_threshold = FixedCutoffSpec(cutoff=features.min_complexity, direction="lower")
    stages.append(QCStageSpec(
        name="complexity",
        metric=LogRatioComplexityMetric(
            name=features.complexity_column,
            feature_column=features.feature_column,
            total_column=features.total_column,
        ),
        threshold=complexity_threshold,
    ))

    if features.min_features is not None:
        stages.append(QCStageSpec(
            name="min_features",
            metric=ColumnMetric(name=features.feature_column),
            threshold=FixedCutoffSpec(cutoff=features.min_features, direction="lower"),
        ))

    doublets = config.doublets
    if doublets.enabled:
        if doublet_annotator is not None:
            stages.append(AnnotateStage("doublet_calls", doublet_annotator))
        stages.append(TagFilterStageSpec(
            name="doublets",
            tag_column=doublets.tag_column,
            label_map=doublets.label_map,
        ))

    cell_cycle = config.cell_cycle
    if cell_cycle.enabled:
        if cell_cycle_annotator is not None:
            stages.append(AnnotateStage("cell_cycle_scores", cell_cycle_annotator))
        stages.append(QCStageSpec(
            name="cell_cycle",
            metric=ScoreDifferenceMetric(
                name=cell_cycle.column,
                minuend=cell_cycle.s_column,
                subtrahend=cell_cycle.g2m_column,
            ),
        ))

    logger.debug("Reference workflow: %s",
                 [getattr(s, "name", None) for s in stages])
    return stages


def stages_from_config(config: InternalConfig, from_counts: bool = True, **annotators) -> List:
    """Explicit ``config.stages`` if given, else the reference workflow."""
    if config.stages is not None:
        return list(config.stages)
    return build_reference_stages(config, from_counts=from_counts, **annotators)
