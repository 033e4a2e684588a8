"""Threshold policies: turn a metric column into keep/discard tags.

Every policy implements ``derive_cutoff_and_tag(table, metric_column)`` and
returns a ThresholdPolicyResult exposing the tags AND the numeric cutoff that
produced them, so derived cutoffs (percentile, model) stay inspectable in the
audit log.

Shared rules:

- Non-finite metric values (NaN sentinels from the metric calculators) are
  always tagged discard and never take part in deriving a cutoff.
- Upper-direction policies keep ``metric <= cutoff``; lower-direction policies
  keep ``metric >= cutoff``.
- Cutoffs are computed per cohort, from that cohort's table only.
- A cohort without any finite value (no cells, or all sentinels) gets every
  cell tagged discard and a NaN cutoff; derived policies do not raise.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Mapping

import numpy as np
import pandas as pd

from cohortqc.contracts.failure import ModelFitFailure
from cohortqc.core.cell_table import CellTable, DISCARD, KEEP
from cohortqc.thresholds.mixture import fit_two_component_mixture

__all__ = [
    'ThresholdPolicyResult',
    'ThresholdPolicy',
    'FixedCutoffPolicy',
    'PercentileCutoffPolicy',
    'ModelWithFallbackPolicy',
    'percentile_cutoff',
]

logger = logging.getLogger(__name__)

_DIRECTIONS = ("upper", "lower")
NO_FINITE_VALUES = "no finite values"


@dataclass(frozen=True)
class ThresholdPolicyResult:
    """Outcome of one policy application.

    Attributes
    ----------
    tags : pd.Series
        "keep"/"discard" per cell, indexed by cell id.
    cutoff : float
        Numeric cutoff actually used (derived value for percentile/model).
        NaN when the cohort has no finite value and every cell is discarded.
    fallback_used : bool
        True when the model policy fell back to the percentile cutoff.
    policy : str
        Name of the policy that produced the result.
    details : mapping
        Extra diagnostics (mixture parameters, fallback reason, ...).
    """
    tags: pd.Series
    cutoff: float
    fallback_used: bool
    policy: str
    details: Mapping[str, Any] = field(default_factory=dict)

    @property
    def n_discard(self) -> int:
        return int((self.tags == DISCARD).sum())


def _metric_values(table: CellTable, metric_column: str) -> np.ndarray:
    return pd.to_numeric(table.column(metric_column), errors="raise").to_numpy(dtype=np.float64)


def _tags_from_mask(table: CellTable, keep: np.ndarray) -> pd.Series:
    return pd.Series(np.where(keep, KEEP, DISCARD), index=table.cell_ids.copy(), dtype=object)


def _keep_mask(values: np.ndarray, cutoff: float, direction: str) -> np.ndarray:
    finite = np.isfinite(values)
    with np.errstate(invalid="ignore"):
        if direction == "upper":
            return finite & (values <= cutoff)
        return finite & (values >= cutoff)


def percentile_cutoff(values: np.ndarray, percentile: float) -> float:
    """Cutoff at ``percentile`` (0 < p <= 1) of the finite ``values``.

    Uses linear interpolation between order statistics (numpy's default
    ``method="linear"``, type 7 in Hyndman & Fan), so the result is
    reproducible bit-for-bit for the same input distribution.

    Raises
    ------
    ValueError
        If there are no finite values or ``percentile`` is outside (0, 1].
    """
    if not 0.0 < percentile <= 1.0:
        raise ValueError(f"percentile must be in (0, 1], got {percentile}")
    finite = values[np.isfinite(values)]
    if finite.size == 0:
        raise ValueError("no finite values to derive a percentile cutoff from")
    return float(np.quantile(finite, percentile, method="linear"))


class ThresholdPolicy(ABC):
    """Strategy converting a metric column into keep/discard tags."""

    name = "policy"

    @abstractmethod
    def derive_cutoff_and_tag(self, table: CellTable, metric_column: str) -> ThresholdPolicyResult:
        """Derive the cutoff for ``table`` and tag every cell."""

    def describe(self) -> str:
        return self.name


class FixedCutoffPolicy(ThresholdPolicy):
    """Keep if ``metric <= cutoff`` (or ``>=`` for ``direction="lower"``)."""

    name = "fixed"

    def __init__(self, cutoff: float, direction: str = "upper"):
        if direction not in _DIRECTIONS:
            raise ValueError(f"Unknown direction '{direction}'")
        self.cutoff = float(cutoff)
        self.direction = direction

    def derive_cutoff_and_tag(self, table, metric_column):
        values = _metric_values(table, metric_column)
        keep = _keep_mask(values, self.cutoff, self.direction)
        return ThresholdPolicyResult(
            tags=_tags_from_mask(table, keep),
            cutoff=self.cutoff,
            fallback_used=False,
            policy=self.name,
            details={"direction": self.direction},
        )

    def describe(self):
        op = "<=" if self.direction == "upper" else ">="
        return f"fixed({op}{self.cutoff:g})"


class PercentileCutoffPolicy(ThresholdPolicy):
    """Cutoff at a percentile of the current cohort's own distribution.

    Never pooled across cohorts: two cohorts share the percentile parameter,
    not the cutoff value.
    """

    name = "percentile"

    def __init__(self, percentile: float, direction: str = "upper"):
        if not 0.0 < percentile <= 1.0:
            raise ValueError(f"percentile must be in (0, 1], got {percentile}")
        if direction not in _DIRECTIONS:
            raise ValueError(f"Unknown direction '{direction}'")
        self.percentile = float(percentile)
        self.direction = direction

    def derive_cutoff_and_tag(self, table, metric_column):
        values = _metric_values(table, metric_column)
        details = {"percentile": self.percentile, "direction": self.direction}
        if not np.isfinite(values).any():
            # empty cohort or every cell carries the sentinel: nothing to keep
            logger.warning("%s/%s: no finite values; every cell is discarded",
                           table.cohort, metric_column)
            details["reason"] = NO_FINITE_VALUES
            return ThresholdPolicyResult(
                tags=_tags_from_mask(table, np.zeros(values.shape, dtype=bool)),
                cutoff=float("nan"),
                fallback_used=False,
                policy=self.name,
                details=details,
            )
        cutoff = percentile_cutoff(values, self.percentile)
        keep = _keep_mask(values, cutoff, self.direction)
        return ThresholdPolicyResult(
            tags=_tags_from_mask(table, keep),
            cutoff=cutoff,
            fallback_used=False,
            policy=self.name,
            details=details,
        )

    def describe(self):
        return f"percentile({self.percentile:g},{self.direction})"


class ModelWithFallbackPolicy(ThresholdPolicy):
    """Mixture-model cutoff, falling back to a percentile cutoff.

    A two-component Gaussian mixture is fitted to the cohort's finite metric
    values. Cells above the healthy mean whose posterior probability of the
    compromised (higher-mean) component reaches ``posterior_cutoff`` are
    discarded. The tag is made monotone in the metric: everything at or above
    the lowest discarded value is discarded, so the reported cutoff (largest
    kept value) satisfies ``keep <=> metric <= cutoff``.

    When the fit fails for any reason (non-convergence, poor separation,
    too few cells, timeout) the policy returns exactly what
    ``PercentileCutoffPolicy(fallback_percentile)`` returns, with
    ``fallback_used=True`` and the reason in ``details``.
    """

    name = "model_with_fallback"

    def __init__(self, fallback_percentile: float = 0.95, posterior_cutoff: float = 0.75,
                 min_component_weight: float = 0.02, min_separation: float = 2.0,
                 min_cells: int = 50, max_iter: int = 200, tol: float = 1e-3,
                 random_state: int = 0, fit_timeout_sec: float = 30.0):
        if not 0.0 < posterior_cutoff < 1.0:
            raise ValueError(f"posterior_cutoff must be in (0, 1), got {posterior_cutoff}")
        self.fallback = PercentileCutoffPolicy(fallback_percentile)
        self.fallback_percentile = float(fallback_percentile)
        self.posterior_cutoff = float(posterior_cutoff)
        self.min_component_weight = min_component_weight
        self.min_separation = min_separation
        self.min_cells = min_cells
        self.max_iter = max_iter
        self.tol = tol
        self.random_state = random_state
        self.fit_timeout_sec = fit_timeout_sec

    def derive_cutoff_and_tag(self, table, metric_column):
        values = _metric_values(table, metric_column)
        finite = np.isfinite(values)

        try:
            fit = fit_two_component_mixture(
                values[finite],
                min_cells=self.min_cells,
                min_component_weight=self.min_component_weight,
                min_separation=self.min_separation,
                max_iter=self.max_iter,
                tol=self.tol,
                random_state=self.random_state,
                timeout=self.fit_timeout_sec,
            )
        except ModelFitFailure as e:
            logger.warning("%s/%s: mixture fit failed (%s); falling back to percentile %.3g",
                           table.cohort, metric_column, e, self.fallback_percentile)
            result = self.fallback.derive_cutoff_and_tag(table, metric_column)
            return ThresholdPolicyResult(
                tags=result.tags,
                cutoff=result.cutoff,
                fallback_used=True,
                policy=self.name,
                details={
                    "fallback_reason": str(e),
                    "fallback_percentile": self.fallback_percentile,
                },
            )

        finite_values = values[finite]
        posterior = fit.compromised_posterior(finite_values)
        flagged = (posterior >= self.posterior_cutoff) & (finite_values > fit.healthy_mean)

        if flagged.any():
            boundary = finite_values[flagged].min()
            kept_values = finite_values[finite_values < boundary]
            cutoff = float(kept_values.max())
        else:
            cutoff = float(finite_values.max())

        keep = _keep_mask(values, cutoff, "upper")
        details = fit.summary()
        details["posterior_cutoff"] = self.posterior_cutoff
        logger.debug("%s/%s: mixture cutoff %.4g (%d flagged by posterior)",
                     table.cohort, metric_column, cutoff, int(flagged.sum()))
        return ThresholdPolicyResult(
            tags=_tags_from_mask(table, keep),
            cutoff=cutoff,
            fallback_used=False,
            policy=self.name,
            details=details,
        )

    def describe(self):
        return f"model(posterior>={self.posterior_cutoff:g},fallback={self.fallback_percentile:g})"
