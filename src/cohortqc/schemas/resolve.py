"""Resolve the layered run configuration into one InternalConfig.

Three layers, later ones winning:

- ``ParamConfig``: complete defaults
- ``UserConfig``: the user's config file
- ``CLIConfig``: command-line flags

Sections (``mito``, ``mixture``, ``runtime``, ...) merge field by field, so a
user setting ``RIBO_PERCENTILE`` keeps every other ribo default. Lists such as
``stages`` are replaced whole.

Cohorts merge by name: ``--cohort depleted=new.csv`` replaces the user's path
for ``depleted`` and keeps the user's other cohorts. A cohort cannot be removed
from a lower layer, only repointed.
"""

import logging
from typing import Optional, Union

from cohortqc.schemas.cli import CLIConfig
from cohortqc.schemas.internal import InternalConfig
from cohortqc.schemas.param import ParamConfig
from cohortqc.schemas.user import UserConfig

logger = logging.getLogger(__name__)


def deep_merge(base: dict, *overrides: dict) -> dict:
    """Copy of ``base`` with each override laid over it, left to right.

    Dicts present on both sides merge key by key; anything else replaces.
    """
    merged = dict(base)
    for layer in overrides:
        for key, value in layer.items():
            current = merged.get(key)
            if isinstance(current, dict) and isinstance(value, dict):
                merged[key] = deep_merge(current, value)
            else:
                merged[key] = value
    return merged


def merge_cohorts(*layers: Optional[dict]) -> dict:
    """Union of cohort mappings; a later layer repoints cohorts it names."""
    cohorts = {}
    for layer in layers:
        cohorts.update(layer or {})
    return cohorts


def _validated(model, cfg):
    if cfg is None:
        return model()
    if isinstance(cfg, model):
        return cfg
    return model.model_validate(cfg)


def resolve_config(
    param_cfg: Union[dict, ParamConfig],
    user_cfg: Optional[Union[dict, UserConfig]] = None,
    cli_cfg: Optional[Union[dict, CLIConfig]] = None,
) -> InternalConfig:
    """Merge param < user < CLI and freeze the result.

    Each layer may be given as its model or as a plain dict.

    Raises
    ------
    ValidationError
        If a layer, or the merged configuration, fails validation.
    """
    defaults = _validated(ParamConfig, param_cfg).model_dump()
    user = _validated(UserConfig, user_cfg).to_internal_overrides()
    cli = _validated(CLIConfig, cli_cfg).to_internal_overrides()

    merged = deep_merge(defaults, user, cli)
    merged["cohorts"] = merge_cohorts(defaults.get("cohorts"), user.get("cohorts"),
                                      cli.get("cohorts"))
    if cli.get("cohorts"):
        logger.debug("Cohorts from command line: %s", sorted(cli["cohorts"]))

    return InternalConfig.model_validate(merged)
