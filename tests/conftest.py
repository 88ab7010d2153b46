"""
pytest configuration and shared fixtures.
"""

import pytest
import numpy as np


@pytest.fixture
def rng():
    """Seeded random number generator for reproducible tests."""
    return np.random.default_rng(42)


@pytest.fixture
def logistic_data(rng):
    """Binary logistic regression data from known coefficients."""
    n = 500
    X = np.column_stack([np.ones(n), rng.standard_normal((n, 2))])
    beta_true = np.array([0.5, -1.0, 1.5])
    prob = 1.0 / (1.0 + np.exp(-(X @ beta_true)))
    y = rng.binomial(1, prob).astype(np.float64)
    return X, y, beta_true


@pytest.fixture
def grouped_binomial_data(rng):
    """Binomial proportions with 50 trials per observation."""
    n = 400
    X = np.column_stack([np.ones(n), rng.standard_normal(n)])
    beta_true = np.array([-0.3, 0.8])
    prob = 1.0 / (1.0 + np.exp(-(X @ beta_true)))
    trials = np.full(n, 50)
    y = rng.binomial(trials, prob) / trials
    return X, y, trials, beta_true


@pytest.fixture
def poisson_data(rng):
    """Poisson counts with a log-linear mean."""
    n = 300
    X = np.column_stack([np.ones(n), rng.standard_normal(n)])
    beta_true = np.array([1.0, 0.5])
    y = rng.poisson(np.exp(X @ beta_true)).astype(np.float64)
    return X, y, beta_true


@pytest.fixture
def gamma_data(rng):
    """Gamma responses with an inverse-linear mean (shape 5)."""
    n = 400
    X = np.column_stack([np.ones(n), rng.uniform(0.0, 1.0, n)])
    beta_true = np.array([0.5, 0.4])
    mu = 1.0 / (X @ beta_true)
    shape = 5.0
    y = rng.gamma(shape, mu / shape)
    return X, y, beta_true


@pytest.fixture
def gaussian_data(rng):
    """Linear model data with intercept."""
    n = 100
    X = np.column_stack([np.ones(n), rng.standard_normal(n)])
    beta_true = np.array([1.0, 2.0])
    y = X @ beta_true + rng.standard_normal(n) * 0.5
    return X, y, beta_true
