"""Core cohort QC execution logic.

This module contains the actual pipeline runner, separated from argument parsing.
Scripts are thin wrappers; this is the real implementation.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

import pandas as pd

from cohortqc.contracts import StageAborted
from cohortqc.core.cell_table import CellTable
from cohortqc.pipeline.orchestrator import CohortPipelineOrchestrator, PipelineResult
from cohortqc.pipeline.reference import stages_from_config
from cohortqc.schemas.initialization import init_runtime_config
from cohortqc.schemas.internal import InternalConfig
from cohortqc.setup_directories import get_audit_path, get_log_path, get_table_path

logger = logging.getLogger(__name__)


def setup_logging(level: str, log_path: Path) -> None:
    """Configure root logger with file and console handlers."""
    log_level = getattr(logging, level.upper(), logging.INFO)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    formatter = logging.Formatter(
        fmt='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    # Clear existing handlers and add new ones
    root = logging.getLogger()
    root.setLevel(log_level)
    for handler in root.handlers[:]:
        root.removeHandler(handler)

    fh = logging.FileHandler(log_path)
    fh.setLevel(log_level)
    fh.setFormatter(formatter)
    root.addHandler(fh)

    ch = logging.StreamHandler()
    ch.setLevel(log_level)
    ch.setFormatter(formatter)
    root.addHandler(ch)

    logger.info("Logging: level=%s, file=%s", level, log_path)


def load_cohort_tables(config: InternalConfig) -> Dict[str, CellTable]:
    """Read one CSV per cohort; the first column holds cell ids."""
    if not config.cohorts:
        raise ValueError("No cohorts configured (COHORTS in user config or --cohort name=path)")

    tables = {}
    for name, path in config.cohorts.items():
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Cohort '{name}': table not found: {path}")
        frame = pd.read_csv(path, index_col=0)
        tables[name] = CellTable.from_frame(name, frame)
        logger.info("Loaded cohort '%s': %d cells, %d columns from %s",
                    name, len(frame), frame.shape[1], path)
    return tables


def write_outputs(result_tables: Dict[str, CellTable], audit_log, config: InternalConfig,
                  output_dirs: Dict[str, Path]) -> Path:
    """Write filtered tables (if enabled) and the audit log; return the audit path."""
    if config.output.write_tables:
        for name, table in result_tables.items():
            path = get_table_path(output_dirs, name, config.run_id)
            table.to_frame().to_csv(path, float_format=config.output.float_format)
            logger.info("Filtered table written: %s", path)
    return audit_log.to_json(get_audit_path(output_dirs, config.run_id))


def run_qc_pipeline(
    user_config_path: str,
    cohort_tables: Optional[Dict[str, str]] = None,
    cli_args: Optional[Dict[str, Any]] = None,
    rerun: bool = False,
    verbose: bool = False
) -> PipelineResult:
    """Execute the cohort QC pipeline over per-cohort cell metric tables.

    This is the core pipeline execution function. It:
    1. Loads and resolves configuration (Param < User < CLI)
    2. Sets up output directories and persists the runtime config
    3. Reads one cell table per cohort (CSV, first column = cell id)
    4. Runs the configured stages (or the reference workflow) on every cohort
    5. Writes filtered tables and the audit log

    Metrics are read from existing table columns; count-matrix metrics need
    the library API (``CohortPipelineOrchestrator.run(..., matrices=...)``).

    Parameters
    ----------
    user_config_path : str
        Path to user config file (Python file with CONFIG dict).

    cohort_tables : dict, optional
        Cohort name -> CSV path, merged over the configured cohorts.

    cli_args : dict, optional
        CLI argument overrides. Keys: base_dir, max_workers, log_level.

    rerun : bool, optional
        If True, delete the output directory before running.

    verbose : bool, optional
        If True, enable DEBUG logging and log the full resolved config.

    Returns
    -------
    PipelineResult

    Raises
    ------
    StageAborted
        If any stage fails; the partial audit log is still written.

    Examples
    --------
    ::

        run_qc_pipeline(
            "scripts/user_config.py",
            cohort_tables={"control": "control.csv", "depleted": "depleted.csv"},
        )
    """
    cli_args = dict(cli_args or {})
    if verbose and cli_args.get("log_level") is None:
        cli_args["log_level"] = "DEBUG"
    if cohort_tables:
        cli_args["cohorts"] = dict(cohort_tables)

    config, output_dirs = init_runtime_config(user_config_path, cli_args, rerun=rerun)
    setup_logging(config.logging.level, get_log_path(output_dirs, config.run_id))

    logger.info("=" * 60)
    logger.info("Cohort QC Pipeline (run %s)", config.run_id)
    logger.info("Config:  %s", user_config_path)
    logger.info("Cohorts: %s", ", ".join(config.cohorts))
    logger.info("Output:  %s", output_dirs["base"])
    logger.info("=" * 60)
    if verbose:
        logger.debug("Full Internal Configuration:\n%s",
                     json.dumps(config.model_dump(mode="json"), indent=2))

    tables = load_cohort_tables(config)
    stages = stages_from_config(config, from_counts=False)
    orchestrator = CohortPipelineOrchestrator(stages, max_workers=config.runtime.max_workers)

    try:
        result = orchestrator.run(tables)
    except StageAborted as e:
        path = e.audit_log.to_json(get_audit_path(output_dirs, config.run_id))
        logger.error("Run aborted; partial audit log written to %s", path)
        raise

    write_outputs(result.tables, result.audit_log, config, output_dirs)
    return result
