"""Root-level pytest fixtures for the cohortqc test suite.

Provides shared configuration fixtures following the Pydantic-based
architecture, plus synthetic cohorts. All tests must use these fixtures
instead of creating raw dict configs.
"""

import shutil
import tempfile
from pathlib import Path

import numpy as np
import pytest

from cohortqc.core import CellTable, CountMatrix
from cohortqc.schemas import ParamConfig, UserConfig, resolve_config


# =============================================================================
# Configuration Fixtures (Pydantic-based)
# =============================================================================

@pytest.fixture
def param_config():
    """Expert configuration with all defaults."""
    return ParamConfig()


@pytest.fixture
def internal_config(param_config):
    """Fully validated runtime configuration (no overrides)."""
    return resolve_config(param_config, None, None)


@pytest.fixture
def make_config(param_config):
    """Factory fixture for creating custom test configs.

    Returns a callable that accepts UserConfig-compatible kwargs.

    Examples
    --------
    >>> def test_custom_ribo(make_config):
    ...     config = make_config(RIBO_PERCENTILE=0.9)
    ...     assert config.ribo.percentile == 0.9
    """
    def _make(**user_overrides):
        if user_overrides:
            return resolve_config(param_config, UserConfig(**user_overrides), None)
        return resolve_config(param_config, None, None)

    return _make


# =============================================================================
# Directory Fixtures
# =============================================================================

@pytest.fixture
def temp_dir():
    """Temporary directory that is cleaned up after test."""
    d = tempfile.mkdtemp()
    yield Path(d)
    shutil.rmtree(d, ignore_errors=True)


# =============================================================================
# Synthetic Cohorts
# =============================================================================

def cell_ids(n, prefix="cell"):
    return [f"{prefix}_{i:04d}" for i in range(n)]


@pytest.fixture
def small_table():
    """Five cells with counts, features and a tag column."""
    return CellTable(
        "control",
        ["c1", "c2", "c3", "c4", "c5"],
        {
            "total_counts": [1000, 2000, 500, 1, 0],
            "n_features": [300, 800, 150, 1, 0],
            "tag": ["keep", "discard", "keep", "discard", "keep"],
        },
    )


@pytest.fixture
def uniform_table():
    """1000 cells whose metric 'm' takes the values 1..1000 (shuffled)."""
    rng = np.random.default_rng(7)
    values = rng.permutation(np.arange(1, 1001, dtype=float))
    return CellTable("control", cell_ids(1000), {"m": values})


@pytest.fixture
def make_table():
    """Factory: cohort table with a normal metric column 'm'."""
    def _make(cohort="control", n=1000, mean=5.0, sd=1.0, seed=0, **extra_columns):
        rng = np.random.default_rng(seed)
        columns = {"m": rng.normal(mean, sd, n)}
        columns.update(extra_columns)
        return CellTable(cohort, cell_ids(n, prefix=cohort), columns)

    return _make


@pytest.fixture
def count_matrix():
    """Four cells x five genes; cell c4 has no counts at all."""
    counts = np.array([
        [10, 0, 5, 5, 80],    # 10% MT-
        [0, 0, 0, 50, 50],    # 0% MT-
        [40, 10, 0, 0, 50],   # 50% MT-
        [0, 0, 0, 0, 0],      # empty
    ])
    return CountMatrix(counts, ["c1", "c2", "c3", "c4"],
                       ["MT-CO1", "MT-ND1", "RPS3", "RPL10", "ACTB"])


@pytest.fixture
def make_cohort_counts():
    """Factory: synthetic cohort counts with a damaged (high-MT) subpopulation.

    Healthy cells draw ~3% of counts from mitochondrial genes, damaged
    cells ~40%. Returns (CountMatrix, CellTable seeded from it).
    """
    def _make(cohort="control", n_healthy=450, n_damaged=50, seed=0):
        rng = np.random.default_rng(seed)
        genes = ["MT-CO1", "MT-ND1", "MT-ATP6", "RPS3", "RPL10"] + [f"GENE{i}" for i in range(45)]
        n = n_healthy + n_damaged
        mt_share = np.concatenate([
            rng.normal(0.03, 0.01, n_healthy).clip(0.001, None),
            rng.normal(0.40, 0.05, n_damaged).clip(0.2, 0.8),
        ])
        totals = rng.integers(2000, 6000, n)
        counts = np.zeros((n, len(genes)), dtype=np.int64)
        for i in range(n):
            mt_total = int(totals[i] * mt_share[i])
            counts[i, :3] = rng.multinomial(mt_total, [1 / 3] * 3)
            counts[i, 3:] = rng.multinomial(totals[i] - mt_total, [1 / 47] * 47)
        ids = cell_ids(n, prefix=cohort)
        matrix = CountMatrix(counts, ids, genes)
        return matrix, CellTable.from_count_matrix(cohort, matrix)

    return _make
