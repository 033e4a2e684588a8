"""Tests for config resolution: ParamConfig < UserConfig < CLIConfig -> InternalConfig."""

import pytest
from pydantic import ValidationError

from cohortqc.schemas import CLIConfig, InternalConfig, ParamConfig, UserConfig, resolve_config
from cohortqc.schemas.resolve import deep_merge, merge_cohorts

pytestmark = pytest.mark.unit


def test_defaults(internal_config):
    assert isinstance(internal_config, InternalConfig)
    assert internal_config.mito.prefixes == ("MT-",)
    assert internal_config.mito.fallback_percentile == 0.95
    assert internal_config.ribo.prefixes == ("RPS", "RPL")
    assert internal_config.ribo.percentile == 0.99
    assert internal_config.features.min_features == 200
    assert internal_config.features.min_complexity is None
    assert internal_config.doublets.label_map == {"singlet": "keep", "doublet": "discard"}
    assert internal_config.runtime.max_workers == 1
    assert internal_config.stages is None
    assert internal_config.run_id is None


def test_internal_config_is_frozen(internal_config):
    with pytest.raises(ValidationError):
        internal_config.base_dir = "/elsewhere"


def test_user_overrides_param(make_config):
    config = make_config(RIBO_PERCENTILE=0.9, MIN_FEATURES=300, FALLBACK_PERCENTILE=0.99)
    assert config.ribo.percentile == 0.9
    assert config.features.min_features == 300
    assert config.mito.fallback_percentile == 0.99
    # untouched values keep their defaults
    assert config.ribo.prefixes == ("RPS", "RPL")


def test_cli_overrides_user(param_config):
    user = UserConfig(BASE_DIR="/user/out", MAX_WORKERS=2, LOG_LEVEL="info")
    cli = CLIConfig(base_dir="/cli/out", max_workers=4)
    config = resolve_config(param_config, user, cli)
    assert config.base_dir == "/cli/out"
    assert config.runtime.max_workers == 4
    assert config.logging.level == "INFO"


def test_cli_cohorts_merged_with_user(param_config):
    user = UserConfig(COHORTS={"control": "a.csv", "depleted": "b.csv"})
    cli = CLIConfig(cohorts=["depleted=c.csv", "rescue=d.csv"])
    config = resolve_config(param_config, user, cli)
    assert config.cohorts == {"control": "a.csv", "depleted": "c.csv", "rescue": "d.csv"}


def test_cohorts_from_every_layer(param_config):
    param = param_config.model_copy(update={"cohorts": {"reference": "ref.csv"}})
    config = resolve_config(param, {"COHORTS": {"control": "a.csv"}},
                            {"cohorts": ["control=b.csv"]})
    assert config.cohorts == {"reference": "ref.csv", "control": "b.csv"}


def test_user_cohorts_kept_without_cli(param_config):
    config = resolve_config(param_config, UserConfig(COHORTS={"control": "a.csv"}), CLIConfig())
    assert config.cohorts == {"control": "a.csv"}


def test_merge_cohorts_skips_missing_layers():
    assert merge_cohorts(None, {"a": "1"}, {}, {"a": "2", "b": "3"}) == {"a": "2", "b": "3"}


def test_dict_inputs(param_config):
    config = resolve_config({}, {"MIN_COMPLEXITY": 1}, {"log_level": "WARNING"})
    assert config.features.min_complexity == 1.0
    assert config.logging.level == "WARNING"


def test_invalid_value_rejected(param_config):
    with pytest.raises(ValidationError):
        resolve_config(param_config, UserConfig(RIBO_PERCENTILE=1.5))


def test_max_workers_bounds(param_config):
    with pytest.raises(ValidationError):
        resolve_config(param_config, UserConfig(MAX_WORKERS=0))


def test_param_rejects_unknown_keys():
    with pytest.raises(ValidationError):
        ParamConfig(not_a_field=1)


def test_deep_merge():
    base = {"a": 1, "b": {"c": 2, "d": 3}}
    merged = deep_merge(base, {"b": {"d": 4, "e": 5}, "f": 6}, {"a": 0})
    assert merged == {"a": 0, "b": {"c": 2, "d": 4, "e": 5}, "f": 6}
    assert base == {"a": 1, "b": {"c": 2, "d": 3}}


def test_explicit_stage_list(param_config):
    user = UserConfig(STAGES=[
        {"kind": "qc", "name": "mito", "metric": {"kind": "column", "name": "pct_mito"},
         "threshold": {"kind": "fixed", "cutoff": 10}},
        {"kind": "tag_filter", "name": "doublets", "tag_column": "doublet_class"},
    ])
    config = resolve_config(param_config, user)
    assert [s.name for s in config.stages] == ["mito", "doublets"]
    assert config.stages[0].threshold.cutoff == 10.0
