"""
GLM solution types.

Contains the terminal fit status, the parameter payload produced by
backends, and the user-facing solution wrapper.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Literal, TYPE_CHECKING
import numpy as np
from numpy.typing import ArrayLike, NDArray
from scipy import stats

from pyirls.core.result import Result
from pyirls.core.compute.linalg.qr import unscaled_covariance
from pyirls.core.validation import check_array, check_2d, check_finite
from pyirls.core.exceptions import DimensionError

if TYPE_CHECKING:
    from pyirls.glm.design import Design
    from pyirls.glm.families import Family


class FitStatus(Enum):
    """Terminal state of the IRLS driver."""
    CONVERGED = 'converged'
    DIVERGED = 'diverged'
    MAX_ITER_EXCEEDED = 'max_iter_exceeded'


@dataclass(frozen=True)
class GLMParams:
    """
    Parameter payload for a generalized linear model.

    This is the immutable data computed by backends. When the fit did
    not converge, the coefficients are those of the last valid iterate.
    """
    coefficients: NDArray[np.floating[Any]]
    fitted_values: NDArray[np.floating[Any]]
    linear_predictor: NDArray[np.floating[Any]]
    weights: NDArray[np.floating[Any]]
    prior_weights: NDArray[np.floating[Any]]
    residuals_working: NDArray[np.floating[Any]]
    residuals_deviance: NDArray[np.floating[Any]]
    residuals_pearson: NDArray[np.floating[Any]]
    residuals_response: NDArray[np.floating[Any]]
    deviance: float
    null_deviance: float
    log_likelihood: float
    aic: float
    dispersion: float
    rank: int
    df_residual: int
    df_null: int
    n_iter: int
    converged: bool
    status: FitStatus
    family_name: str
    link_name: str


@dataclass
class GLMSolution:
    """
    User-facing GLM results.

    Wraps the backend Result and provides accessors for coefficients,
    goodness of fit, residuals and Wald inference.
    """
    _result: Result[GLMParams]
    _design: 'Design'
    _family: 'Family'

    # Cached computations
    _standard_errors: NDArray[np.floating[Any]] | None = None

    # === Fit ===

    @property
    def coefficients(self) -> NDArray[np.floating[Any]]:
        return self._result.params.coefficients

    @property
    def fitted_values(self) -> NDArray[np.floating[Any]]:
        return self._result.params.fitted_values

    @property
    def linear_predictor(self) -> NDArray[np.floating[Any]]:
        return self._result.params.linear_predictor

    @property
    def weights(self) -> NDArray[np.floating[Any]]:
        """Working weights from the final IRLS iteration."""
        return self._result.params.weights

    @property
    def prior_weights(self) -> NDArray[np.floating[Any]]:
        return self._result.params.prior_weights

    @property
    def converged(self) -> bool:
        return self._result.params.converged

    @property
    def status(self) -> FitStatus:
        return self._result.params.status

    @property
    def n_iter(self) -> int:
        return self._result.params.n_iter

    @property
    def iterations(self) -> int:
        return self._result.params.n_iter

    # === Residuals ===

    @property
    def residuals_working(self) -> NDArray[np.floating[Any]]:
        return self._result.params.residuals_working

    @property
    def residuals_deviance(self) -> NDArray[np.floating[Any]]:
        return self._result.params.residuals_deviance

    @property
    def residuals_pearson(self) -> NDArray[np.floating[Any]]:
        return self._result.params.residuals_pearson

    @property
    def residuals_response(self) -> NDArray[np.floating[Any]]:
        return self._result.params.residuals_response

    # === Goodness of fit ===

    @property
    def deviance(self) -> float:
        return self._result.params.deviance

    @property
    def null_deviance(self) -> float:
        return self._result.params.null_deviance

    @property
    def log_likelihood(self) -> float:
        return self._result.params.log_likelihood

    @property
    def aic(self) -> float:
        return self._result.params.aic

    @property
    def bic(self) -> float:
        """BIC = AIC with log(n) per parameter instead of 2."""
        k = self.rank if self._family.dispersion_is_fixed else self.rank + 1
        return -2.0 * self.log_likelihood + np.log(self._design.n) * k

    @property
    def dispersion(self) -> float:
        return self._result.params.dispersion

    @property
    def rank(self) -> int:
        return self._result.params.rank

    @property
    def df_residual(self) -> int:
        return self._result.params.df_residual

    @property
    def df_null(self) -> int:
        return self._result.params.df_null

    # === Inference ===

    @property
    def standard_errors(self) -> NDArray[np.floating[Any]]:
        """
        Standard errors of coefficients.

        Computed as SE(β) = sqrt(φ · diag((X'WX)⁻¹)) from the QR of the
        final weighted design. NaN when no valid iterate exists.
        """
        if self._standard_errors is not None:
            return self._standard_errors

        qr_result = self._result.info.get('qr')
        p = len(self.coefficients)
        if qr_result is None or not np.all(np.isfinite(self.coefficients)):
            self._standard_errors = np.full(p, np.nan, dtype=np.float64)
            return self._standard_errors

        cov = unscaled_covariance(qr_result)
        self._standard_errors = np.sqrt(self.dispersion * np.diag(cov))
        return self._standard_errors

    @property
    def test_statistics(self) -> NDArray[np.floating[Any]]:
        """Wald statistics β / SE(β): z when φ is fixed, t otherwise."""
        with np.errstate(divide='ignore', invalid='ignore'):
            stat = self.coefficients / self.standard_errors
        return np.where(np.isfinite(stat), stat, np.nan)

    @property
    def p_values(self) -> NDArray[np.floating[Any]]:
        """Two-sided p-values for the Wald statistics."""
        stat = np.abs(self.test_statistics)
        if self._family.dispersion_is_fixed:
            return 2.0 * stats.norm.sf(stat)
        if self.df_residual <= 0:
            return np.full_like(stat, np.nan)
        return 2.0 * stats.t.sf(stat, self.df_residual)

    def predict(
        self,
        X: ArrayLike,
        type: Literal['response', 'link'] = 'response',
    ) -> NDArray[np.floating[Any]]:
        """
        Predict on new data.

        Args:
            X: New design matrix with the same columns as the fit
            type: 'link' for η = Xβ, 'response' for μ = g⁻¹(η)

        Returns:
            Predictions (n_new,)
        """
        X_new = check_array(X, 'X')
        if X_new.ndim == 1:
            X_new = X_new.reshape(-1, 1)
        check_2d(X_new, 'X')
        check_finite(X_new, 'X')
        if X_new.shape[1] != self._design.p:
            raise DimensionError(
                f"X: expected {self._design.p} columns, got {X_new.shape[1]}"
            )

        eta = X_new @ self.coefficients
        if type == 'link':
            return eta
        if type == 'response':
            return self._family.linkinv(eta)
        raise ValueError(f"type must be 'response' or 'link', got {type!r}")

    # === Metadata ===

    @property
    def family_name(self) -> str:
        return self._result.params.family_name

    @property
    def link_name(self) -> str:
        return self._result.params.link_name

    @property
    def info(self) -> dict[str, Any]:
        return self._result.info

    @property
    def timing(self) -> dict[str, float] | None:
        return self._result.timing

    @property
    def backend_name(self) -> str:
        return self._result.backend_name

    @property
    def warnings(self) -> tuple[str, ...]:
        return self._result.warnings

    def summary(self) -> str:
        """Generate R-style summary output."""
        stat_label = 'z value' if self._family.dispersion_is_fixed else 't value'
        lines = [
            "GLM Results",
            "=" * 60,
            f"Family: {self.family_name}    Link: {self.link_name}",
            f"Observations: {self._design.n}",
            f"Rank: {self.rank}",
            f"Status: {self.status.value} after {self.n_iter} iterations",
            "",
            "Coefficients:",
            "-" * 60,
            f"{'Index':<8} {'Estimate':>14} {'Std.Error':>12} {stat_label:>10} {'Pr(>|.|)':>10}",
            "-" * 60,
        ]

        for i, (coef, se, t, pv) in enumerate(zip(
            self.coefficients, self.standard_errors,
            self.test_statistics, self.p_values,
        )):
            se_str = f"{se:12.6f}" if not np.isnan(se) else "          NA"
            t_str = f"{t:10.3f}" if not np.isnan(t) else "        NA"
            p_str = f"{pv:10.4g}" if not np.isnan(pv) else "        NA"
            lines.append(f"  β[{i}]: {coef:14.6f} {se_str} {t_str} {p_str}")

        lines.extend([
            "-" * 60,
            f"Dispersion: {self.dispersion:.6g}",
            f"Null Deviance: {self.null_deviance:.4f} on {self.df_null} DF",
            f"Residual Deviance: {self.deviance:.4f} on {self.df_residual} DF",
            f"Log-likelihood: {self.log_likelihood:.4f}",
            f"AIC: {self.aic:.4f}",
            f"Backend: {self.backend_name}",
        ])
        if self.timing:
            lines.append(f"Time: {self.timing.get('total_seconds', 0):.4f}s")
        for w in self.warnings:
            lines.append(f"Warning: {w}")

        return "\n".join(lines)

    def __repr__(self) -> str:
        return (
            f"GLMSolution(family={self.family_name!r}, link={self.link_name!r}, "
            f"n={self._design.n}, p={self._design.p}, "
            f"deviance={self.deviance:.4f}, converged={self.converged})"
        )
