"""Formal pipeline invariants.

This file documents what each stage MUST produce. This is architecture, not code.
Use this file as a reviewer anchor and system reference.
"""

PIPELINE_INVARIANTS = {
    "cell_table": [
        "Cell ids are unique within a cohort",
        "Every column has exactly one value per current cell",
        "Transformations return a new table; the input is never mutated",
    ],

    "metric": [
        "Metric column exists and is aligned with the table",
        "Metric column is numeric; degenerate cells are NaN, never +/-inf",
        "Identical inputs give identical output regardless of cohort order",
    ],

    "threshold": [
        "Every current cell is tagged 'keep' or 'discard'",
        "Cutoff is a finite float, also when derived (percentile, model)",
        "Without any finite metric value every cell is discarded and the cutoff is NaN",
        "Non-finite metric values are tagged 'discard'",
        "Percentile cutoffs use only the current cohort's values",
        "Model fit failure is recovered by the percentile fallback, fallback_used=True",
    ],

    "filter": [
        "Input table is never mutated",
        "kept + removed == before",
        "Relative order of kept cells is preserved",
    ],

    "audit": [
        "One entry per (cohort, stage), appended in stage order",
        "Entries are immutable once appended",
        "Same inputs + same stage list => equal logs",
    ],
}

# Which stages are optional vs required
STAGE_REQUIREMENTS = {
    "cell_table": "REQUIRED",
    "metric": "OPTIONAL",     # tag-filter stages reuse an existing column
    "threshold": "OPTIONAL",  # metric-only stages annotate without filtering
    "filter": "REQUIRED",     # every stage is audited as a filter (maybe removing 0)
    "audit": "REQUIRED",
}
