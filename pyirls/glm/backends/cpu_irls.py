"""
CPU backend for Generalized Linear Models via IRLS.

Implements Iteratively Reweighted Least Squares (Fisher scoring). Each
iteration solves a weighted least squares problem via pivoted QR on the
transformed system √W·X, √W·z.

Algorithm (the structure of R's glm.fit in src/library/stats/R/glm.R):
    Initialize: μ = family.mustart(y), η = g(μ)
    For iteration 1..max_iter:
        g'(μ) = family.dlink(μ)
        V(μ) = family.variance(μ)
        w = prior / (g'(μ)² V(μ))           # working weights
        z = η + (y - μ) g'(μ)                # working response
        Solve WLS: min_β || √w·z - √w·X·β ||²  via QR
        η_new = X @ β
        μ_new = g⁻¹(η_new)
        dev_new = family.deviance(y, μ_new)
        Diverged:  dev_new non-finite, or (after iteration 1)
                   dev_new - dev_old > divergence_factor · (|dev_old| + 0.1)
        Converged: |dev_new - dev_old| / (|dev_new| + 0.1) < tol

Terminal states are reported through FitStatus, never raised: on
divergence the result carries the last valid iterate.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any
import numpy as np
from numpy.typing import NDArray

from pyirls.core.result import Result
from pyirls.core.compute.timing import Timer
from pyirls.core.compute.linalg.qr import QRResult, wls_solve
from pyirls.core.exceptions import NumericalFaultError
from pyirls.glm.design import Design
from pyirls.glm.families import Family
from pyirls.glm.solution import FitStatus, GLMParams

DEFAULT_TOL = 1e-8
DEFAULT_MAX_ITER = 25
DEFAULT_DIVERGENCE_FACTOR = 1e3


@dataclass
class IRLSState:
    """Linear predictor state, mutated once per accepted iteration.

    coefficients, weights and qr are None until the first iteration
    has been accepted.
    """
    mu: NDArray[np.floating[Any]]
    eta: NDArray[np.floating[Any]]
    deviance: float
    coefficients: NDArray[np.floating[Any]] | None = None
    weights: NDArray[np.floating[Any]] | None = None
    qr: QRResult | None = None
    iteration: int = 0

    def accept(
        self,
        coefficients: NDArray[np.floating[Any]],
        eta: NDArray[np.floating[Any]],
        mu: NDArray[np.floating[Any]],
        deviance: float,
        weights: NDArray[np.floating[Any]],
        qr: QRResult,
        iteration: int,
    ) -> None:
        self.coefficients = coefficients
        self.eta = eta
        self.mu = mu
        self.deviance = deviance
        self.weights = weights
        self.qr = qr
        self.iteration = iteration


class CPUIRLSBackend:
    """CPU backend using IRLS with a pivoted QR inner solve.

    - Convergence criterion of R's glm.fit: |dev - dev_old| / (|dev| + 0.1) < tol
    - Same defaults: tol=1e-8, max_iter=25
    - Null deviance against the prior-weighted mean of y
    - Working weights are never clamped; a zero or non-finite weight
      raises NumericalFaultError
    """

    @property
    def name(self) -> str:
        return 'cpu_irls'

    def solve(
        self,
        design: Design,
        family: Family,
        tol: float = DEFAULT_TOL,
        max_iter: int = DEFAULT_MAX_ITER,
        divergence_factor: float = DEFAULT_DIVERGENCE_FACTOR,
    ) -> Result[GLMParams]:
        """Run IRLS to fit the GLM.

        Args:
            design: Design object with X and y
            family: GLM family specification
            tol: Convergence tolerance (relative deviance change)
            max_iter: Maximum IRLS iterations
            divergence_factor: Deviance increase, relative to |dev_old| + 0.1,
                treated as divergence

        Returns:
            Result[GLMParams] with coefficients, deviance, residuals, etc.

        Raises:
            InvalidArgumentError: If y lies outside the family's support
            NumericalFaultError: If dlink, variance or the working weights
                degenerate during an iteration
            RankDeficientError: If the weighted design is rank-deficient
        """
        timer = Timer()
        timer.start()

        X, y = design.X, design.y
        n, p = design.n, design.p

        family.check_length(n)
        prior = family.prior_weights(n)

        warnings_list: list[str] = []

        # ------------------------------------------------------------------
        # Initialize μ and η
        # ------------------------------------------------------------------
        with timer.section('initialize'):
            mu = np.asarray(family.mustart(y), dtype=np.float64)
            eta = np.asarray(family.link(mu), dtype=np.float64)
            dev_start, _ = family.deviance(y, mu)
            state = IRLSState(mu=mu, eta=eta, deviance=dev_start)

        # ------------------------------------------------------------------
        # IRLS loop
        # ------------------------------------------------------------------
        status = FitStatus.MAX_ITER_EXCEEDED
        change = float('nan')
        iteration = 0

        with timer.section('irls'):
            for iteration in range(1, max_iter + 1):
                w, z = self._working_quantities(y, state, prior, family, iteration)

                wls = wls_solve(X, z, w)

                eta_new = X @ wls.coefficients
                mu_new = np.asarray(family.linkinv(eta_new), dtype=np.float64)
                dev_new, _ = family.deviance(y, mu_new)

                if self._diverged(
                    dev_new, state.deviance, iteration, divergence_factor
                ) or not family.valid_mu(mu_new):
                    status = FitStatus.DIVERGED
                    change = float('inf')
                    break

                change = abs(dev_new - state.deviance) / (abs(dev_new) + 0.1)
                state.accept(
                    coefficients=wls.coefficients,
                    eta=eta_new,
                    mu=mu_new,
                    deviance=dev_new,
                    weights=w,
                    qr=wls.qr,
                    iteration=iteration,
                )

                if change < tol:
                    status = FitStatus.CONVERGED
                    break

        converged = status is FitStatus.CONVERGED
        if status is FitStatus.DIVERGED:
            warnings_list.append(
                f"IRLS diverged at iteration {iteration} "
                f"(deviance={dev_new:.6g}); returning iteration {state.iteration}"
            )
        elif status is FitStatus.MAX_ITER_EXCEEDED:
            warnings_list.append(
                f"IRLS did not converge in {max_iter} iterations "
                f"(deviance={state.deviance:.6f}, change={change:.3g})"
            )

        if state.coefficients is None:
            coefficients = np.full(p, np.nan, dtype=np.float64)
            weights = np.full(n, np.nan, dtype=np.float64)
        else:
            coefficients = state.coefficients
            weights = state.weights

        mu, eta = state.mu, state.eta

        # ------------------------------------------------------------------
        # Null deviance (intercept-only model: common mean = weighted mean)
        # ------------------------------------------------------------------
        with timer.section('null_deviance'):
            mu_global = family.weighted_mean(y)
            null_deviance = family.null_deviance(y, mu_global)

        # ------------------------------------------------------------------
        # Residuals, dispersion, likelihood
        # ------------------------------------------------------------------
        with timer.section('residuals'):
            deviance, resid_deviance = family.deviance(y, mu)

            resid_response = y - mu
            var_mu = np.asarray(family.variance(mu), dtype=np.float64)
            resid_pearson = resid_response * np.sqrt(prior / var_mu)
            resid_working = resid_response * np.asarray(family.dlink(mu), dtype=np.float64)

            df_residual = n - p
            if family.dispersion_is_fixed:
                dispersion = 1.0
            elif df_residual > 0:
                dispersion = float(np.sum(resid_pearson ** 2)) / df_residual
            else:
                dispersion = float('nan')

            log_likelihood = family.log_likelihood(y, mu)
            aic = family.aic(y, mu, p)

        timer.stop()

        params = GLMParams(
            coefficients=coefficients,
            fitted_values=mu,
            linear_predictor=eta,
            weights=weights,
            prior_weights=prior,
            residuals_working=resid_working,
            residuals_deviance=resid_deviance,
            residuals_pearson=resid_pearson,
            residuals_response=resid_response,
            deviance=deviance,
            null_deviance=null_deviance,
            log_likelihood=log_likelihood,
            aic=aic,
            dispersion=dispersion,
            rank=p,
            df_residual=df_residual,
            df_null=n - 1,
            n_iter=iteration,
            converged=converged,
            status=status,
            family_name=family.name,
            link_name=family.link_name,
        )

        return Result(
            params=params,
            info={
                'method': 'irls_qr',
                'status': status.value,
                'rank': p,
                'pivot': state.qr.pivot.tolist() if state.qr is not None else None,
                'qr': state.qr,
                'last_valid_iteration': state.iteration,
                'final_change': change,
                'tol': tol,
                'max_iter': max_iter,
            },
            timing=timer.result(),
            backend_name=self.name,
            warnings=tuple(warnings_list),
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _working_quantities(
        y: NDArray,
        state: IRLSState,
        prior: NDArray,
        family: Family,
        iteration: int,
    ) -> tuple[NDArray, NDArray]:
        """Working weights w and working response z at the current μ.

        Raises:
            NumericalFaultError: If g'(μ), V(μ) or w is zero, infinite or NaN
        """
        dlink = np.asarray(family.dlink(state.mu), dtype=np.float64)
        var_mu = np.asarray(family.variance(state.mu), dtype=np.float64)

        bad = ~np.isfinite(dlink) | (dlink == 0.0)
        if np.any(bad):
            raise NumericalFaultError(
                f"dlink(mu) is zero or non-finite for {int(np.sum(bad))} "
                f"observations at iteration {iteration}",
                quantity='dlink', iteration=iteration, n_bad=int(np.sum(bad)),
            )

        bad = ~np.isfinite(var_mu) | (var_mu <= 0.0)
        if np.any(bad):
            raise NumericalFaultError(
                f"variance(mu) is zero or non-finite for {int(np.sum(bad))} "
                f"observations at iteration {iteration}",
                quantity='variance', iteration=iteration, n_bad=int(np.sum(bad)),
            )

        with np.errstate(divide='ignore', invalid='ignore', over='ignore'):
            w = prior / (dlink * dlink * var_mu)

        bad = ~np.isfinite(w) | (w <= 0.0)
        if np.any(bad):
            raise NumericalFaultError(
                f"working weights are zero or non-finite for {int(np.sum(bad))} "
                f"observations at iteration {iteration} (zero prior weight or "
                f"trial count?)",
                quantity='weights', iteration=iteration, n_bad=int(np.sum(bad)),
            )

        z = state.eta + (y - state.mu) * dlink
        return w, z

    @staticmethod
    def _diverged(
        dev_new: float, dev_old: float, iteration: int, factor: float
    ) -> bool:
        if not np.isfinite(dev_new):
            return True
        # The starting deviance is near-saturated, so iteration 1 may rise freely
        return iteration > 1 and dev_new - dev_old > factor * (abs(dev_old) + 0.1)
