"""
Directory setup for cohort QC runs.

One output root per run configuration:
- tables: filtered cell tables, one CSV per cohort
- audit: audit log JSON and resolved runtime config
- logs: run logs
"""

from datetime import datetime, timezone
from pathlib import Path


def setup_output_directories(base_output_dir):
    """
    Set up organized output directory structure.

    Parameters
    ----------
    base_output_dir : str or Path
        Base output directory.

    Returns
    -------
    dict
        Dictionary with paths: 'base', 'tables', 'audit', 'logs'
    """
    base_output_dir = Path(base_output_dir).expanduser().resolve()

    directories = {
        "base": base_output_dir,
        "tables": base_output_dir / "tables",
        "audit": base_output_dir / "audit",
        "logs": base_output_dir / "logs",
    }

    for path in directories.values():
        path.mkdir(parents=True, exist_ok=True)

    return directories


def get_table_path(output_dirs, cohort, run_id=None):
    """
    Get filtered cell table path.

    Returns
    -------
    Path
        tables/{cohort}_filtered.csv, or tables/{run_id}/{cohort}_filtered.csv
    """
    table_dir = Path(output_dirs["tables"])
    if run_id:
        table_dir = table_dir / run_id
    table_dir.mkdir(parents=True, exist_ok=True)
    return table_dir / f"{cohort}_filtered.csv"


def get_audit_path(output_dirs, run_id):
    """Audit log path: audit/audit_{run_id}.json"""
    audit_dir = Path(output_dirs["audit"])
    audit_dir.mkdir(parents=True, exist_ok=True)
    return audit_dir / f"audit_{run_id}.json"


def get_log_path(output_dirs, run_id=None):
    """
    Get log file path.

    Returns
    -------
    Path
        logs/cohortqc_{run_id}.log (a UTC timestamp when run_id is None)
    """
    log_dir = Path(output_dirs["logs"])
    log_dir.mkdir(parents=True, exist_ok=True)

    if run_id is None:
        run_id = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
    return log_dir / f"cohortqc_{run_id}.log"
