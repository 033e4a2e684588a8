"""CLIConfig: Command-line operational overrides.

Minimal configuration for operational parameters that commonly change
between runs: output directory, cohort inputs, verbosity, parallelism.

This schema handles command-line arguments parsed by argparse.
"""

from typing import Literal, Optional

from pydantic import Field, field_validator

from cohortqc.schemas.base import QCBaseModel


class CLIConfig(QCBaseModel):
    """Command-line configuration overrides.

    Operational-only settings that override user and param configs.
    Highest priority in config resolution.

    Notes
    -----
    ``cohorts`` accepts ``name=path`` strings as given on the command line
    and is merged into (not substituted for) the user's cohort mapping.

    Usage
    -----
        cli_cfg = CLIConfig(
            base_dir="/scratch/qc_output",
            cohorts=["control=control.csv", "depleted=depleted.csv"],
            max_workers=2,
        )

        internal = resolve_config(param_cfg, user_cfg, cli_cfg)
    """

    base_dir: Optional[str] = None
    cohorts: Optional[dict[str, str]] = None
    max_workers: Optional[int] = Field(None, ge=1)
    log_level: Optional[Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]] = None

    @field_validator("cohorts", mode="before")
    @classmethod
    def parse_cohort_pairs(cls, v):
        """Accept a list of ``name=path`` strings."""
        if isinstance(v, (list, tuple)):
            parsed = {}
            for item in v:
                name, sep, path = str(item).partition("=")
                if not sep or not name.strip() or not path.strip():
                    raise ValueError(f"Cohort must be given as name=path, got '{item}'")
                parsed[name.strip()] = path.strip()
            return parsed
        return v

    def to_internal_overrides(self) -> dict:
        """Convert CLI config to internal config structure.

        Returns
        -------
        dict
            Nested dictionary matching InternalConfig structure
        """
        overrides = {}

        if self.base_dir is not None:
            overrides["base_dir"] = str(self.base_dir)

        if self.cohorts is not None:
            overrides["cohorts"] = dict(self.cohorts)

        if self.max_workers is not None:
            overrides["runtime"] = {"max_workers": self.max_workers}

        if self.log_level is not None:
            overrides["logging"] = {"level": self.log_level}

        return overrides
