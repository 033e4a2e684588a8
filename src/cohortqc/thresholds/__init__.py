"""Threshold policies.

- FixedCutoffPolicy: keep if metric <= a given cutoff
- PercentileCutoffPolicy: cutoff at a per-cohort percentile
- ModelWithFallbackPolicy: mixture model, percentile fallback
"""

from cohortqc.thresholds.policies import (
    ThresholdPolicyResult,
    ThresholdPolicy,
    FixedCutoffPolicy,
    PercentileCutoffPolicy,
    ModelWithFallbackPolicy,
    percentile_cutoff,
)
from cohortqc.thresholds.mixture import MixtureFit, fit_two_component_mixture

__all__ = [
    'ThresholdPolicyResult',
    'ThresholdPolicy',
    'FixedCutoffPolicy',
    'PercentileCutoffPolicy',
    'ModelWithFallbackPolicy',
    'percentile_cutoff',
    'MixtureFit',
    'fit_two_component_mixture',
    'build_policy',
]


def build_policy(spec) -> ThresholdPolicy:
    """Instantiate the policy described by a threshold spec."""
    if spec.kind == "fixed":
        return FixedCutoffPolicy(spec.cutoff, spec.direction)
    if spec.kind == "percentile":
        return PercentileCutoffPolicy(spec.percentile, spec.direction)
    if spec.kind == "model":
        return ModelWithFallbackPolicy(
            fallback_percentile=spec.fallback_percentile,
            posterior_cutoff=spec.posterior_cutoff,
            min_component_weight=spec.min_component_weight,
            min_separation=spec.min_separation,
            min_cells=spec.min_cells,
            max_iter=spec.max_iter,
            tol=spec.tol,
            random_state=spec.random_state,
            fit_timeout_sec=spec.fit_timeout_sec,
        )
    raise ValueError(f"Unknown threshold kind: {spec.kind}")
