"""
Tests for the IRLS driver: convergence, terminal states and failures.
"""

import warnings

import numpy as np
import pytest

from pyirls import fit
from pyirls.core.exceptions import (
    ConvergenceError,
    DimensionError,
    InvalidArgumentError,
    NumericalFaultError,
    RankDeficientError,
    ValidationError,
)
from pyirls.core.protocols import Backend
from pyirls.glm import Design, FitStatus
from pyirls.glm.backends.cpu_irls import CPUIRLSBackend
from pyirls.glm.families import Binomial, Gaussian, Poisson


def newton_reference(X, y, weights, mean_fn, n_steps=50):
    """Plain Newton-Raphson on the canonical-link log-likelihood."""
    beta = np.zeros(X.shape[1])
    for _ in range(n_steps):
        mu, var = mean_fn(X @ beta)
        hessian = (X.T * (weights * var)) @ X
        score = X.T @ (weights * (y - mu))
        beta = beta + np.linalg.solve(hessian, score)
    return beta


def logistic_mean(eta):
    mu = 1.0 / (1.0 + np.exp(-eta))
    return mu, mu * (1.0 - mu)


def poisson_mean(eta):
    mu = np.exp(eta)
    return mu, mu


class ExplodingGaussian(Gaussian):
    """Gaussian family whose inverse link blows up on a chosen call."""

    def __init__(self, explode_on_call):
        super().__init__()
        self._calls = 0
        self._explode_on_call = explode_on_call

    def linkinv(self, eta):
        self._calls += 1
        if self._calls == self._explode_on_call:
            return np.full_like(np.asarray(eta, dtype=float), np.inf)
        return super().linkinv(eta)


class TestConvergence:

    def test_logistic_matches_newton(self, logistic_data):
        X, y, _ = logistic_data
        result = fit(X, y, family='binomial')
        expected = newton_reference(X, y, np.ones(len(y)), logistic_mean)
        assert result.converged
        assert result.status is FitStatus.CONVERGED
        assert result.n_iter <= 25
        np.testing.assert_allclose(result.coefficients, expected, atol=1e-6)

    def test_grouped_binomial_recovers_coefficients(self, grouped_binomial_data):
        X, y, trials, beta_true = grouped_binomial_data
        result = fit(X, y, family=Binomial(trials=trials))
        assert result.converged
        assert result.n_iter <= 25
        np.testing.assert_allclose(result.coefficients, beta_true, atol=0.1)

    def test_grouped_binomial_matches_newton(self, grouped_binomial_data):
        X, y, trials, _ = grouped_binomial_data
        result = fit(X, y, family=Binomial(trials=trials))
        expected = newton_reference(X, y, trials.astype(float), logistic_mean)
        np.testing.assert_allclose(result.coefficients, expected, atol=1e-6)

    def test_poisson_matches_newton(self, poisson_data):
        X, y, beta_true = poisson_data
        result = fit(X, y, family='poisson')
        expected = newton_reference(X, y, np.ones(len(y)), poisson_mean)
        assert result.converged
        np.testing.assert_allclose(result.coefficients, expected, atol=1e-6)
        np.testing.assert_allclose(result.coefficients, beta_true, atol=0.15)

    def test_gamma_converges(self, gamma_data):
        X, y, beta_true = gamma_data
        result = fit(X, y, family='gamma')
        assert result.converged
        assert result.link_name == 'inverse'
        assert np.all(result.fitted_values > 0)
        np.testing.assert_allclose(result.coefficients, beta_true, atol=0.2)
        assert result.dispersion == pytest.approx(0.2, abs=0.06)

    def test_gaussian_matches_least_squares(self, gaussian_data):
        X, y, _ = gaussian_data
        result = fit(X, y)
        expected, *_ = np.linalg.lstsq(X, y, rcond=None)
        assert result.converged
        np.testing.assert_allclose(result.coefficients, expected, rtol=1e-10)
        assert result.deviance == pytest.approx(np.sum((y - X @ expected) ** 2))

    @pytest.mark.parametrize("fixture_name,family", [
        ('logistic_data', 'binomial'),
        ('poisson_data', 'poisson'),
        ('gamma_data', 'gamma'),
        ('gaussian_data', 'gaussian'),
    ])
    def test_deviance_at_most_null_deviance(self, request, fixture_name, family):
        X, y, _ = request.getfixturevalue(fixture_name)
        result = fit(X, y, family=family)
        assert result.deviance <= result.null_deviance + 1e-8

    def test_probit_link(self, logistic_data):
        X, y, _ = logistic_data
        logit = fit(X, y, family='binomial')
        probit = fit(X, y, family=Binomial(link='probit'))
        assert probit.converged
        assert probit.link_name == 'probit'
        # Probit coefficients are roughly logit coefficients / 1.6
        np.testing.assert_allclose(
            probit.coefficients, logit.coefficients / 1.6, atol=0.15
        )

    def test_deterministic(self, logistic_data):
        X, y, _ = logistic_data
        first = fit(X, y, family='binomial')
        second = fit(X, y, family='binomial')
        np.testing.assert_array_equal(first.coefficients, second.coefficients)
        assert first.deviance == second.deviance

    def test_design_input(self, poisson_data):
        X, y, _ = poisson_data
        from_design = fit(Design.from_arrays(X, y), family='poisson')
        from_arrays = fit(X, y, family='poisson')
        np.testing.assert_array_equal(from_design.coefficients, from_arrays.coefficients)


class TestMaxIterExceeded:

    def test_warns_and_reports_status(self, logistic_data):
        X, y, _ = logistic_data
        with pytest.warns(RuntimeWarning, match="did not converge"):
            result = fit(X, y, family='binomial', max_iter=1)
        assert not result.converged
        assert result.status is FitStatus.MAX_ITER_EXCEEDED
        assert result.n_iter == 1
        assert np.all(np.isfinite(result.coefficients))
        assert any("did not converge" in w for w in result.warnings)

    def test_strict_raises(self, logistic_data):
        X, y, _ = logistic_data
        with pytest.raises(ConvergenceError) as exc_info:
            fit(X, y, family='binomial', max_iter=1, strict=True)
        assert exc_info.value.reason == 'max_iterations'
        assert exc_info.value.iterations == 1
        assert exc_info.value.threshold == 1e-8


class TestDivergence:

    def test_returns_last_valid_iterate(self, gaussian_data):
        X, y, _ = gaussian_data
        with pytest.warns(RuntimeWarning, match="IRLS diverged"):
            result = fit(X, y, family=ExplodingGaussian(explode_on_call=2))
        expected, *_ = np.linalg.lstsq(X, y, rcond=None)
        assert result.status is FitStatus.DIVERGED
        assert not result.converged
        assert result.n_iter == 2
        assert result.info['last_valid_iteration'] == 1
        np.testing.assert_allclose(result.coefficients, expected, rtol=1e-10)
        assert np.isfinite(result.deviance)

    def test_diverged_on_first_iteration(self, gaussian_data):
        X, y, _ = gaussian_data
        with pytest.warns(RuntimeWarning):
            result = fit(X, y, family=ExplodingGaussian(explode_on_call=1))
        assert result.status is FitStatus.DIVERGED
        assert np.all(np.isnan(result.coefficients))
        assert np.all(np.isnan(result.standard_errors))

    def test_strict_raises(self, gaussian_data):
        X, y, _ = gaussian_data
        with pytest.raises(ConvergenceError) as exc_info:
            fit(X, y, family=ExplodingGaussian(explode_on_call=2), strict=True)
        assert exc_info.value.reason == 'diverged'

    def test_divergence_rule(self):
        diverged = CPUIRLSBackend._diverged
        assert diverged(np.inf, 10.0, 1, 1e3)
        assert diverged(np.nan, 10.0, 3, 1e3)
        assert diverged(1e6, 10.0, 2, 1e3)
        assert not diverged(1e6, 10.0, 1, 1e3)
        assert not diverged(11.0, 10.0, 2, 1e3)


class TestFailures:

    def test_duplicated_column_raises(self, logistic_data):
        X, y, _ = logistic_data
        X_dup = np.column_stack([X, X[:, 1]])
        with pytest.raises(RankDeficientError):
            fit(X_dup, y, family='binomial')

    def test_zero_trial_count_raises(self, grouped_binomial_data):
        X, y, trials, _ = grouped_binomial_data
        trials = trials.copy()
        trials[3] = 0
        y = y.copy()
        y[3] = 0.0
        with pytest.raises(NumericalFaultError) as exc_info:
            fit(X, y, family=Binomial(trials=trials))
        assert exc_info.value.quantity == 'weights'
        assert exc_info.value.iteration == 1
        assert exc_info.value.n_bad == 1

    @pytest.mark.parametrize("family,bad_value", [
        ('binomial', 1.5),
        ('binomial', -1.0),
        ('poisson', -2.0),
        ('gamma', 0.0),
    ])
    def test_response_outside_support(self, poisson_data, family, bad_value):
        X, y, _ = poisson_data
        y = np.clip(y, 0.5, None) if family == 'gamma' else y.copy()
        if family == 'binomial':
            y = (y > np.median(y)).astype(float)
        y[0] = bad_value
        with pytest.raises(InvalidArgumentError):
            fit(X, y, family=family)

    def test_infinite_dlink_raises(self, gaussian_data):
        # Inverse link on a Gaussian response: μ starts at y, so y = 0 gives g'(0) = -inf
        X, y, _ = gaussian_data
        y = np.abs(y) + 1.0
        y[4] = 0.0
        with warnings.catch_warnings():
            warnings.simplefilter("error")
            with pytest.raises(NumericalFaultError) as exc_info:
                fit(X, y, family=Gaussian(link='inverse'))
        assert exc_info.value.quantity == 'dlink'
        assert exc_info.value.iteration == 1
        assert exc_info.value.n_bad == 1

    def test_trials_length_mismatch(self, grouped_binomial_data):
        X, y, trials, _ = grouped_binomial_data
        with pytest.raises(DimensionError):
            fit(X, y, family=Binomial(trials=trials[:-1]))

    def test_xy_length_mismatch(self, gaussian_data):
        X, y, _ = gaussian_data
        with pytest.raises(DimensionError):
            fit(X, y[:-1])

    def test_nan_in_X(self, gaussian_data):
        X, y, _ = gaussian_data
        X = X.copy()
        X[0, 1] = np.nan
        with pytest.raises(ValidationError, match="non-finite"):
            fit(X, y)


class TestArguments:

    @pytest.mark.parametrize("kwargs", [
        {'max_iter': 0},
        {'max_iter': 2.5},
        {'tol': 0.0},
        {'tol': -1e-8},
        {'divergence_factor': 0.0},
    ])
    def test_invalid_config(self, gaussian_data, kwargs):
        X, y, _ = gaussian_data
        with pytest.raises(ValidationError):
            fit(X, y, **kwargs)

    def test_missing_y(self, gaussian_data):
        X, _, _ = gaussian_data
        with pytest.raises(ValueError, match="y required"):
            fit(X)

    def test_design_with_y(self, gaussian_data):
        X, y, _ = gaussian_data
        with pytest.raises(ValueError, match="must be None"):
            fit(Design.from_arrays(X, y), y)

    def test_unknown_backend(self, gaussian_data):
        X, y, _ = gaussian_data
        with pytest.raises(ValueError, match="Unknown backend"):
            fit(X, y, backend='gpu')

    def test_converged_fit_does_not_warn(self, poisson_data):
        X, y, _ = poisson_data
        with warnings.catch_warnings():
            warnings.simplefilter("error")
            fit(X, y, family=Poisson())


class TestBackend:

    def test_satisfies_protocol(self):
        backend = CPUIRLSBackend()
        assert isinstance(backend, Backend)
        assert backend.name == 'cpu_irls'

    def test_solve_directly(self, poisson_data):
        X, y, _ = poisson_data
        result = CPUIRLSBackend().solve(Design.from_arrays(X, y), Poisson())
        assert result.backend_name == 'cpu_irls'
        assert result.params.converged
        assert result.info['method'] == 'irls_qr'
        assert result.info['status'] == 'converged'
        assert result.warnings == ()
        assert {'initialize', 'irls', 'null_deviance', 'residuals'} <= set(result.timing)
