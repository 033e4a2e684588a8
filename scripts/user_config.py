"""Cohort QC User Configuration.

This is the user-facing configuration file. Modify settings here to customize
the pipeline behavior. Expert defaults are in cohortqc/schemas/param.py

Usage:
    python scripts/run_qc_pipeline.py scripts/user_config.py
    python scripts/run_qc_pipeline.py scripts/user_config.py --cohort control=control.csv
"""

CONFIG = {
    # ========================================================================
    # INPUTS & OUTPUT
    # ========================================================================
    "BASE_DIR": "./cohortqc_output",  # All outputs go here
    "COHORTS": {                       # Cohort name -> cell table CSV
        "control": "data/control_cells.csv",
        "depleted": "data/depleted_cells.csv",
    },

    # ========================================================================
    # MITOCHONDRIAL FILTER (mixture model, percentile fallback)
    # ========================================================================
    "MITO_PREFIXES": ("MT-",),    # "mt-" for mouse
    "FALLBACK_PERCENTILE": 0.95,  # Used when the mixture fit is rejected
    "POSTERIOR_CUTOFF": 0.75,     # Discard if P(compromised) >= this
    "MIN_SEPARATION": 2.0,        # Ashman's D required to accept two populations

    # ========================================================================
    # RIBOSOMAL FILTER
    # ========================================================================
    "RIBO_PERCENTILE": 0.99,

    # ========================================================================
    # FEATURE FILTERS
    # ========================================================================
    "MIN_FEATURES": 200,          # Minimum detected genes per cell
    "MIN_COMPLEXITY": None,       # log10(genes)/log10(UMIs); None = annotate only

    # ========================================================================
    # DOUBLETS (external classifier output)
    # ========================================================================
    "DOUBLET_COLUMN": "doublet_class",  # singlet/doublet labels

    # ========================================================================
    # RUNTIME
    # ========================================================================
    "MAX_WORKERS": 1,
    "LOG_LEVEL": "INFO",
}
