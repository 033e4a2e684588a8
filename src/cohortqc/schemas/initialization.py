"""Complete runtime initialization for a cohort QC run.

This module handles ALL initialization responsibilities:
- Configuration resolution (CLI > User > Param)
- Output directory setup
- Cleanup handling (--rerun)
- Configuration persistence with run ID
"""

import importlib.util
import json
import logging
import shutil
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from cohortqc.schemas.cli import CLIConfig
from cohortqc.schemas.internal import InternalConfig
from cohortqc.schemas.param import ParamConfig
from cohortqc.schemas.resolve import resolve_config
from cohortqc.schemas.user import UserConfig
from cohortqc.setup_directories import setup_output_directories

logger = logging.getLogger(__name__)


def load_user_config_dict(config_path) -> dict:
    """Load user config dict from Python file.

    Returns the raw dict before Pydantic validation.

    Raises
    ------
    FileNotFoundError
        If config file does not exist.
    ValueError
        If no CONFIG dict found in file.
    """
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Config not found: {path}")

    spec = importlib.util.spec_from_file_location("config_module", path)
    if spec is None or spec.loader is None:
        raise ImportError(f"Could not load config module from {path}")

    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)

    # Find CONFIG dict
    for name in dir(module):
        if name.startswith('CONFIG'):
            obj = getattr(module, name)
            if isinstance(obj, dict):
                return obj

    raise ValueError(f"No CONFIG dict found in {path}")


def generate_run_id() -> str:
    """UTC timestamp plus a short random suffix, e.g. ``20260118T101500_3fa2c1``."""
    stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S")
    return f"{stamp}_{uuid.uuid4().hex[:6]}"


def _handle_rerun_cleanup(base_dir: str, rerun: bool) -> None:
    """Handle --rerun directory cleanup if requested."""
    if not rerun:
        return

    base_dir_path = Path(base_dir)
    if base_dir_path.exists():
        logger.info("Cleaning output directory: %s", base_dir_path)
        shutil.rmtree(base_dir_path)


def persist_runtime_config(config: InternalConfig, output_dirs: Dict[str, Path]) -> Path:
    """Persist final runtime configuration next to the audit log.

    Saves the complete resolved configuration for reproducibility.
    """
    audit_dir = Path(output_dirs["audit"])
    audit_dir.mkdir(parents=True, exist_ok=True)
    config_file = audit_dir / f"runtime_config_{config.run_id}.json"

    config_dict = config.model_dump(mode="json")
    config_dict["created_at"] = datetime.now(timezone.utc).isoformat()

    with open(config_file, 'w') as f:
        json.dump(config_dict, f, indent=2, default=str)

    logger.info("Runtime config saved: %s", config_file)
    return config_file


def init_runtime_config(config_path, cli_args: Optional[Dict[str, Any]] = None,
                        rerun: bool = False) -> Tuple[InternalConfig, Dict[str, Path]]:
    """Complete runtime initialization - single entry point for a run.

    1. Configuration resolution (CLI > User > Param)
    2. Cleanup handling (--rerun)
    3. Output directory setup
    4. Configuration persistence with run ID

    Parameters
    ----------
    config_path : str or Path
        User config Python file with a CONFIG dict.
    cli_args : dict, optional
        CLIConfig fields; None values are ignored.
    rerun : bool
        Delete ``base_dir`` before creating directories.

    Returns
    -------
    tuple
        (InternalConfig with run_id set, output directory mapping)
    """
    param_cfg = ParamConfig()
    user_cfg = UserConfig.model_validate(load_user_config_dict(config_path))
    cli_cfg = CLIConfig.model_validate(
        {k: v for k, v in (cli_args or {}).items() if v is not None}
    )

    internal_config_dict = resolve_config(param_cfg, user_cfg, cli_cfg).model_dump()

    _handle_rerun_cleanup(internal_config_dict["base_dir"], rerun)
    output_dirs = setup_output_directories(internal_config_dict["base_dir"])

    internal_config_dict["run_id"] = generate_run_id()
    config = InternalConfig.model_validate(internal_config_dict)

    persist_runtime_config(config, output_dirs)
    return config, output_dirs


__all__ = [
    'init_runtime_config',
    'load_user_config_dict',
    'generate_run_id',
    'persist_runtime_config',
]
