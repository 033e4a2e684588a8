"""Two-component 1-D Gaussian mixture fit with a timeout.

The fit separates a metric distribution into a healthy population (lower
mean) and a compromised population (higher mean). Any outcome that does not
give two well-separated components raises ModelFitFailure; the caller is
expected to fall back to a percentile cutoff.

Skewed single-peaked distributions (log-normal, gamma) are usually better
described by two Gaussians than one in BIC terms, so BIC alone does not prove
two populations. An accepted fit must also have separated components
(Ashman's D) and a fitted density that dips between the component means.
"""

import logging
import threading
import warnings
from dataclasses import dataclass
from typing import Optional

import numpy as np
from sklearn.exceptions import ConvergenceWarning
from sklearn.mixture import GaussianMixture

from cohortqc.contracts.failure import ModelFitFailure

__all__ = ['MixtureFit', 'fit_two_component_mixture', 'ashmans_d', 'density_dip']

logger = logging.getLogger(__name__)

# Set once at import, never per fit thread. Non-convergence is read from converged_.
warnings.filterwarnings("ignore", category=ConvergenceWarning, module=r"sklearn\.")

# Antimode must sit at least this fraction below the lower of the two peaks.
MIN_DENSITY_DIP = 0.1
_DIP_GRID_POINTS = 512


@dataclass(frozen=True)
class MixtureFit:
    """Accepted two-component fit."""
    model: GaussianMixture
    healthy_index: int
    compromised_index: int
    healthy_mean: float
    compromised_mean: float
    healthy_weight: float
    compromised_weight: float
    bic_one: float
    bic_two: float
    n_iter: int
    separation: float = float("nan")
    dip: float = float("nan")

    def compromised_posterior(self, values: np.ndarray) -> np.ndarray:
        """Posterior probability of the compromised component for each value."""
        proba = self.model.predict_proba(np.asarray(values, dtype=np.float64).reshape(-1, 1))
        return proba[:, self.compromised_index]

    def summary(self) -> dict:
        return {
            "healthy_mean": self.healthy_mean,
            "compromised_mean": self.compromised_mean,
            "healthy_weight": self.healthy_weight,
            "compromised_weight": self.compromised_weight,
            "bic_one": self.bic_one,
            "bic_two": self.bic_two,
            "ashmans_d": self.separation,
            "density_dip": self.dip,
            "n_iter": self.n_iter,
        }


def ashmans_d(mean_a: float, sd_a: float, mean_b: float, sd_b: float) -> float:
    """Ashman's D, ``|mu_a - mu_b| / sqrt((sd_a**2 + sd_b**2) / 2)``.

    D > 2 is the usual criterion for a clean separation of two Gaussians.
    """
    pooled = np.sqrt((sd_a ** 2 + sd_b ** 2) / 2.0)
    if pooled == 0:
        return float("inf")
    return float(abs(mean_a - mean_b) / pooled)


def density_dip(model: GaussianMixture, low: float, high: float) -> float:
    """Relative depth of the fitted density's antimode between ``low`` and ``high``.

    Returns ``1 - density(antimode) / min(left peak, right peak)``, or 0.0
    when the density has no interior minimum on the interval (unimodal).
    """
    grid = np.linspace(low, high, _DIP_GRID_POINTS).reshape(-1, 1)
    density = np.exp(model.score_samples(grid))
    trough = int(np.argmin(density))
    if trough == 0 or trough == len(density) - 1:
        return 0.0
    peak = min(density[:trough].max(), density[trough + 1:].max())
    if peak <= 0:
        return 0.0
    return float(max(0.0, 1.0 - density[trough] / peak))


class _FitWorker(threading.Thread):
    """Runs the mixture fit so the caller can bound it with join(timeout)."""

    def __init__(self, values: np.ndarray, max_iter: int, tol: float, random_state: int):
        super().__init__(daemon=True, name="MixtureFit")
        self.values = values
        self.max_iter = max_iter
        self.tol = tol
        self.random_state = random_state
        self.result = None
        self.error: Optional[BaseException] = None

    def run(self):
        try:
            X = self.values.reshape(-1, 1)
            two = GaussianMixture(
                n_components=2,
                max_iter=self.max_iter,
                tol=self.tol,
                random_state=self.random_state,
            ).fit(X)
            one = GaussianMixture(
                n_components=1,
                max_iter=self.max_iter,
                tol=self.tol,
                random_state=self.random_state,
            ).fit(X)
            self.result = (two, float(one.bic(X)), float(two.bic(X)))
        except Exception as e:
            self.error = e


def fit_two_component_mixture(values: np.ndarray, *, min_cells: int = 50,
                              min_component_weight: float = 0.02, min_separation: float = 2.0,
                              max_iter: int = 200, tol: float = 1e-3, random_state: int = 0,
                              timeout: float = 30.0) -> MixtureFit:
    """Fit and validate a two-component mixture over ``values``.

    The fit is accepted only if:

    - there are at least ``min_cells`` finite values with non-zero spread
    - EM converged within ``max_iter`` iterations and ``timeout`` seconds
    - both components weigh at least ``min_component_weight``
    - the two-component BIC is lower than the one-component BIC
    - Ashman's D of the two components is at least ``min_separation``
    - the fitted density dips by at least ``MIN_DENSITY_DIP`` between the
      component means

    Parameters
    ----------
    values : np.ndarray
        Finite metric values of one cohort.
    min_separation : float
        Minimum Ashman's D between the healthy and compromised components.

    Returns
    -------
    MixtureFit

    Raises
    ------
    ModelFitFailure
        On any of the rejection conditions above. The message names the reason.
    """
    values = np.asarray(values, dtype=np.float64)
    if values.size < min_cells:
        raise ModelFitFailure(f"too few cells to fit ({values.size} < {min_cells})")
    if not np.all(np.isfinite(values)):
        raise ModelFitFailure("non-finite values passed to mixture fit")
    if np.ptp(values) == 0:
        raise ModelFitFailure("degenerate distribution (zero spread)")

    worker = _FitWorker(values, max_iter, tol, random_state)
    worker.start()
    worker.join(timeout=timeout)
    if worker.is_alive():
        # cannot interrupt sklearn; the daemon thread is abandoned
        raise ModelFitFailure(f"fit did not finish within {timeout:.1f}s")
    if worker.error is not None:
        raise ModelFitFailure(f"fit raised {type(worker.error).__name__}: {worker.error}") from worker.error

    model, bic_one, bic_two = worker.result
    if not model.converged_:
        raise ModelFitFailure(f"EM did not converge within {max_iter} iterations")

    means = model.means_.ravel()
    weights = model.weights_.ravel()
    sds = np.sqrt(model.covariances_.reshape(len(means), -1)[:, 0])
    healthy, compromised = (int(i) for i in np.argsort(means))

    if weights.min() < min_component_weight:
        raise ModelFitFailure(
            f"component weight {weights.min():.4f} below minimum {min_component_weight}"
        )
    if not bic_two < bic_one:
        raise ModelFitFailure(
            f"insufficient separation (BIC two={bic_two:.1f} >= one={bic_one:.1f})"
        )

    separation = ashmans_d(means[healthy], sds[healthy], means[compromised], sds[compromised])
    if separation < min_separation:
        raise ModelFitFailure(
            f"insufficient separation (Ashman's D {separation:.2f} < {min_separation:g})"
        )
    dip = density_dip(model, means[healthy], means[compromised])
    if dip < MIN_DENSITY_DIP:
        raise ModelFitFailure(
            f"fitted density is unimodal (dip {dip:.3f} < {MIN_DENSITY_DIP:g})"
        )

    fit = MixtureFit(
        model=model,
        healthy_index=healthy,
        compromised_index=compromised,
        healthy_mean=float(means[healthy]),
        compromised_mean=float(means[compromised]),
        healthy_weight=float(weights[healthy]),
        compromised_weight=float(weights[compromised]),
        bic_one=bic_one,
        bic_two=bic_two,
        n_iter=int(model.n_iter_),
        separation=separation,
        dip=dip,
    )
    logger.debug("Mixture fit accepted: %s", fit.summary())
    return fit
