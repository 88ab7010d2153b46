"""
GLM family and link function specifications.

Each Family defines:
- A variance function V(μ) relating variance to the mean
- A default (canonical) link function g(μ) mapping the mean to the linear predictor
- A starting-value rule mustart(y) for IRLS
- A deviance function returning the total and the signed deviance residuals
- A null deviance for the intercept-only model
- A log-likelihood function for AIC

Each Link defines:
- g(μ) → η  (link)
- g⁻¹(η) → μ  (inverse link)
- dμ/dη  (derivative of the inverse link)
- dη/dμ  (derivative of the link, used for IRLS working weights)

Family operations accept a scalar or an array. Scalars come back as
Python floats, arrays as float64 arrays of the same shape.

References:
    McCullagh, P., & Nelder, J. A. (1989). Generalized Linear Models (2nd ed.)
    R Core Team. stats::family, stats::make.link, src/library/stats/src/family.c
"""

from __future__ import annotations

import warnings
from abc import ABC, abstractmethod
from typing import Any
import numpy as np
from numpy.typing import ArrayLike, NDArray
from scipy import stats
from scipy.special import gammaln, xlogy

from pyirls.core.exceptions import DimensionError, InvalidArgumentError
from pyirls.core.validation import check_1d, check_array, check_nonnegative_integers

EPS = np.finfo(np.float64).eps


def _as_float(x: ArrayLike) -> NDArray[np.floating[Any]]:
    return np.asarray(x, dtype=np.float64)


def _like(result: NDArray, template: ArrayLike) -> float | NDArray:
    """Return a Python float for scalar input, the array otherwise."""
    if np.ndim(template) == 0:
        return float(result)
    return result


# =====================================================================
# Link functions
# =====================================================================

class Link(ABC):
    """Abstract link function g(μ) mapping mean to linear predictor."""

    @property
    @abstractmethod
    def name(self) -> str:
        ...

    @abstractmethod
    def link(self, mu: NDArray) -> NDArray:
        """g(μ) → η."""
        ...

    @abstractmethod
    def linkinv(self, eta: NDArray) -> NDArray:
        """g⁻¹(η) → μ."""
        ...

    @abstractmethod
    def mu_eta(self, eta: NDArray) -> NDArray:
        """dμ/dη = (g⁻¹)'(η)."""
        ...

    @abstractmethod
    def dlink(self, mu: NDArray) -> NDArray:
        """dη/dμ = g'(μ)."""
        ...

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}()"


class IdentityLink(Link):
    """Identity link: g(μ) = μ. Canonical for the Gaussian family."""

    @property
    def name(self) -> str:
        return 'identity'

    def link(self, mu: NDArray) -> NDArray:
        return mu.copy()

    def linkinv(self, eta: NDArray) -> NDArray:
        return eta.copy()

    def mu_eta(self, eta: NDArray) -> NDArray:
        return np.ones_like(eta)

    def dlink(self, mu: NDArray) -> NDArray:
        return np.ones_like(mu)


class LogitLink(Link):
    """Logit link: g(μ) = log(μ/(1-μ)). Canonical for the Binomial family.

    The inverse is held at ε / 1-ε outside |η| > 30, as R's family.c
    does, so fitted probabilities never reach exactly 0 or 1.
    """

    THRESH = 30.0

    @property
    def name(self) -> str:
        return 'logit'

    def link(self, mu: NDArray) -> NDArray:
        return np.log(mu / (1.0 - mu))

    def linkinv(self, eta: NDArray) -> NDArray:
        inside = np.clip(eta, -self.THRESH, self.THRESH)
        mu = 1.0 / (1.0 + np.exp(-inside))
        mu = np.where(eta < -self.THRESH, EPS, mu)
        return np.where(eta > self.THRESH, 1.0 - EPS, mu)

    def mu_eta(self, eta: NDArray) -> NDArray:
        inside = np.clip(eta, -self.THRESH, self.THRESH)
        opexp = 1.0 + np.exp(inside)
        d = np.exp(inside) / (opexp * opexp)
        return np.where(np.abs(eta) > self.THRESH, EPS, d)

    def dlink(self, mu: NDArray) -> NDArray:
        return 1.0 / (mu * (1.0 - mu))


class ProbitLink(Link):
    """Probit link: g(μ) = Φ⁻¹(μ). Alternative for the Binomial family."""

    # R: thresh <- -qnorm(.Machine$double.eps)
    THRESH = float(-stats.norm.ppf(EPS))

    @property
    def name(self) -> str:
        return 'probit'

    def link(self, mu: NDArray) -> NDArray:
        return stats.norm.ppf(mu)

    def linkinv(self, eta: NDArray) -> NDArray:
        return stats.norm.cdf(np.clip(eta, -self.THRESH, self.THRESH))

    def mu_eta(self, eta: NDArray) -> NDArray:
        return np.maximum(stats.norm.pdf(eta), EPS)

    def dlink(self, mu: NDArray) -> NDArray:
        return 1.0 / stats.norm.pdf(stats.norm.ppf(mu))


class LogLink(Link):
    """Log link: g(μ) = log(μ). Canonical for the Poisson family."""

    @property
    def name(self) -> str:
        return 'log'

    def link(self, mu: NDArray) -> NDArray:
        return np.log(mu)

    def linkinv(self, eta: NDArray) -> NDArray:
        with np.errstate(over='ignore'):
            return np.maximum(np.exp(eta), EPS)

    def mu_eta(self, eta: NDArray) -> NDArray:
        with np.errstate(over='ignore'):
            return np.maximum(np.exp(eta), EPS)

    def dlink(self, mu: NDArray) -> NDArray:
        return 1.0 / mu


class InverseLink(Link):
    """Inverse link: g(μ) = 1/μ. Canonical for the Gamma family."""

    @property
    def name(self) -> str:
        return 'inverse'

    def link(self, mu: NDArray) -> NDArray:
        with np.errstate(divide='ignore'):
            return 1.0 / mu

    def linkinv(self, eta: NDArray) -> NDArray:
        with np.errstate(divide='ignore'):
            return 1.0 / eta

    def mu_eta(self, eta: NDArray) -> NDArray:
        with np.errstate(divide='ignore'):
            return -1.0 / (eta ** 2)

    def dlink(self, mu: NDArray) -> NDArray:
        with np.errstate(divide='ignore'):
            return -1.0 / (mu ** 2)


# =====================================================================
# Link name → class mapping
# =====================================================================

_LINK_CLASSES: dict[str, type[Link]] = {
    'identity': IdentityLink,
    'logit': LogitLink,
    'probit': ProbitLink,
    'log': LogLink,
    'inverse': InverseLink,
}


def resolve_link(link: str | Link | None, default: Link) -> Link:
    """Resolve a link argument to a Link instance."""
    if link is None:
        return default
    if isinstance(link, Link):
        return link
    if isinstance(link, str):
        cls = _LINK_CLASSES.get(link.lower())
        if cls is None:
            valid = ', '.join(sorted(_LINK_CLASSES.keys()))
            raise ValueError(f"Unknown link: {link!r}. Valid links: {valid}")
        return cls()
    raise TypeError(f"link must be str or Link, got {type(link).__name__}")


# =====================================================================
# Family base class
# =====================================================================

class Family(ABC):
    """
    GLM family specification.

    Defines the relationship between the mean and variance of the
    response distribution, along with a link function. A family is
    immutable once constructed; fixed per-observation parameters (such
    as binomial trial counts) are captured at construction.
    """

    def __init__(self, link: str | Link | None = None):
        self._link = resolve_link(link, self._default_link())

    @property
    @abstractmethod
    def name(self) -> str:
        ...

    @abstractmethod
    def _default_link(self) -> Link:
        ...

    @property
    def link_function(self) -> Link:
        return self._link

    @property
    def link_name(self) -> str:
        return self._link.name

    # --- link delegation -------------------------------------------------

    def link(self, mu: ArrayLike) -> float | NDArray:
        """η = g(μ)."""
        return _like(self._link.link(_as_float(mu)), mu)

    def linkinv(self, eta: ArrayLike) -> float | NDArray:
        """μ = g⁻¹(η)."""
        return _like(self._link.linkinv(_as_float(eta)), eta)

    def mu_eta(self, eta: ArrayLike) -> float | NDArray:
        """dμ/dη evaluated at η."""
        return _like(self._link.mu_eta(_as_float(eta)), eta)

    def dlink(self, mu: ArrayLike) -> float | NDArray:
        """dη/dμ evaluated at μ."""
        return _like(self._link.dlink(_as_float(mu)), mu)

    # --- distribution ----------------------------------------------------

    def variance(self, mu: ArrayLike) -> float | NDArray:
        """Variance function V(μ)."""
        return _like(self._variance(_as_float(mu)), mu)

    @abstractmethod
    def _variance(self, mu: NDArray) -> NDArray:
        ...

    def mustart(self, y: ArrayLike) -> float | NDArray:
        """Starting values of μ for IRLS.

        Raises:
            InvalidArgumentError: If any y lies outside the family's support
        """
        y_arr = _as_float(y)
        invalid = ~self._in_support(y_arr)
        if np.any(invalid):
            first = float(np.ravel(y_arr)[np.ravel(invalid)][0])
            raise InvalidArgumentError(
                f"Invalid response for {self.name} family "
                f"(expected {self._support_description}): "
                f"{int(np.sum(invalid))} values, first {first!r}",
                family_name=self.name,
                n_invalid=int(np.sum(invalid)),
                first_invalid=first,
            )
        return _like(self._start(y_arr), y)

    @property
    @abstractmethod
    def _support_description(self) -> str:
        ...

    @abstractmethod
    def _in_support(self, y: NDArray) -> NDArray:
        """Boolean mask of responses inside the support."""
        ...

    @abstractmethod
    def _start(self, y: NDArray) -> NDArray:
        ...

    @abstractmethod
    def _unit_deviance(self, y: NDArray, mu: NDArray) -> NDArray:
        """Per-observation deviance for unit prior weight."""
        ...

    def deviance(
        self, y: ArrayLike, mu: ArrayLike
    ) -> tuple[float, NDArray[np.floating[Any]]]:
        """Total deviance and signed deviance residuals.

        d_i = w_i · unit_deviance(y_i, μ_i), r_i = sign(y_i - μ_i) · √d_i,
        total = Σ d_i = Σ r_i². w_i are the prior weights (trial counts
        for Binomial, 1 otherwise).
        """
        y_arr = np.atleast_1d(_as_float(y))
        mu_arr = np.atleast_1d(_as_float(mu))
        wt = self.prior_weights(y_arr.shape[0])

        # Rounding can leave -1e-17 where y == μ; the deviance is non-negative
        d = np.maximum(wt * self._unit_deviance(y_arr, mu_arr), 0.0)
        residuals = np.sign(y_arr - mu_arr) * np.sqrt(d)
        return float(np.sum(d)), residuals

    def null_deviance(self, y: ArrayLike, mu_global: float) -> float:
        """Deviance of the intercept-only model with common mean mu_global."""
        y_arr = np.atleast_1d(_as_float(y))
        total, _ = self.deviance(y_arr, np.full_like(y_arr, float(mu_global)))
        return total

    @abstractmethod
    def log_likelihood(self, y: ArrayLike, mu: ArrayLike) -> float:
        """Σ log f(y_i; μ_i) at the fitted means."""
        ...

    def valid_mu(self, mu: ArrayLike) -> bool:
        """Whether every μ is a valid mean for this family."""
        mu_arr = _as_float(mu)
        return bool(np.all(np.isfinite(mu_arr)))

    # --- prior weights ---------------------------------------------------

    def prior_weights(self, n_obs: int) -> NDArray[np.floating[Any]]:
        """Per-observation prior weights for a sample of size n_obs."""
        return np.ones(n_obs, dtype=np.float64)

    def check_length(self, n_obs: int) -> None:
        """Raise DimensionError if fixed parameters don't match n_obs."""
        return None

    def weighted_mean(self, y: ArrayLike) -> float:
        """Prior-weighted mean of y: the intercept-only MLE of μ."""
        y_arr = np.atleast_1d(_as_float(y))
        wt = self.prior_weights(y_arr.shape[0])
        total = float(np.sum(wt))
        if total <= 0:
            return float(np.mean(y_arr))
        return float(np.sum(wt * y_arr) / total)

    # --- model comparison ------------------------------------------------

    @property
    def dispersion_is_fixed(self) -> bool:
        """Whether the dispersion parameter is known a priori.

        True for Binomial (φ=1) and Poisson (φ=1).
        False for Gaussian and Gamma (φ estimated from data).
        """
        return False

    def aic(self, y: ArrayLike, mu: ArrayLike, rank: int) -> float:
        """AIC = -2·loglik + 2·k, k = rank (+1 when φ is estimated).

        Matches R's family$aic() + 2·rank, which counts the dispersion
        as a parameter for Gaussian and Gamma.
        """
        k = rank if self.dispersion_is_fixed else rank + 1
        return -2.0 * self.log_likelihood(y, mu) + 2.0 * k

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(link={self._link.name!r})"


# =====================================================================
# Concrete families
# =====================================================================

class Gaussian(Family):
    """Gaussian (Normal) family. Default link: identity.

    V(μ) = 1
    Deviance = Σ (y_i - μ_i)²  (= RSS)
    """

    @property
    def name(self) -> str:
        return 'gaussian'

    def _default_link(self) -> Link:
        return IdentityLink()

    def _variance(self, mu: NDArray) -> NDArray:
        return np.ones_like(mu)

    @property
    def _support_description(self) -> str:
        return 'finite y'

    def _in_support(self, y: NDArray) -> NDArray:
        return np.isfinite(y)

    def _start(self, y: NDArray) -> NDArray:
        return y.copy()

    def _unit_deviance(self, y: NDArray, mu: NDArray) -> NDArray:
        return (y - mu) ** 2

    def log_likelihood(self, y: ArrayLike, mu: ArrayLike) -> float:
        # Normal density at the MLE variance σ² = RSS/n; then RSS/σ² = n
        y_arr = np.atleast_1d(_as_float(y))
        mu_arr = np.atleast_1d(_as_float(mu))
        n = y_arr.shape[0]
        sigma_sq = float(np.sum((y_arr - mu_arr) ** 2)) / n
        with np.errstate(divide='ignore'):
            return float(-0.5 * n * (np.log(2.0 * np.pi * sigma_sq) + 1.0))


class Binomial(Family):
    """Binomial family. Default link: logit.

    Each y_i is the sample proportion of successes out of n_i trials, so
    E(y_i) = μ_i is independent of n_i.

    V(μ) = μ(1-μ)
    d_i = 2 n_i [y_i log(y_i/μ_i) + (1-y_i) log((1-y_i)/(1-μ_i))],
    with the y log y terms taken as 0 at y ∈ {0, 1}.

    Args:
        trials: Per-observation trial counts n_i (non-negative integers).
            None means every observation is a single Bernoulli trial.
        link: Link name or instance ('logit' by default, or 'probit').
    """

    def __init__(
        self,
        trials: ArrayLike | None = None,
        link: str | Link | None = None,
    ):
        super().__init__(link)
        if trials is None:
            self._trials = None
        else:
            arr = check_array(trials, 'trials').astype(np.float64)
            check_1d(arr, 'trials')
            check_nonnegative_integers(arr, 'trials')
            arr.setflags(write=False)
            self._trials = arr

    @property
    def name(self) -> str:
        return 'binomial'

    def _default_link(self) -> Link:
        return LogitLink()

    @property
    def trials(self) -> NDArray[np.floating[Any]] | None:
        return self._trials

    def _variance(self, mu: NDArray) -> NDArray:
        return mu * (1.0 - mu)

    @property
    def _support_description(self) -> str:
        return '0 <= y <= 1'

    def _in_support(self, y: NDArray) -> NDArray:
        return (y >= 0.0) & (y <= 1.0)

    def _start(self, y: NDArray) -> NDArray:
        # Nudge off the boundary so that link(μ) stays finite
        mu = np.where(y == 0.0, 0.1, y)
        return np.where(y == 1.0, 0.9, mu)

    def _unit_deviance(self, y: NDArray, mu: NDArray) -> NDArray:
        # np.where evaluates both branches; the y ∈ {0, 1} ones are discarded
        with np.errstate(divide='ignore', invalid='ignore'):
            term1 = np.where(y > 0.0, y * np.log(y / mu), 0.0)
            term2 = np.where(y < 1.0, (1.0 - y) * np.log((1.0 - y) / (1.0 - mu)), 0.0)
        return 2.0 * (term1 + term2)

    def log_likelihood(self, y: ArrayLike, mu: ArrayLike) -> float:
        # Σ log C(n_i, k_i) + k_i log μ_i + (n_i - k_i) log(1 - μ_i), k_i = n_i y_i
        y_arr = np.atleast_1d(_as_float(y))
        mu_arr = np.atleast_1d(_as_float(mu))
        n = self.prior_weights(y_arr.shape[0])
        successes = n * y_arr
        k = np.round(successes)
        # Same tolerance as R's binomial()$initialize
        fractional = np.abs(successes - k) > 1e-3
        if np.any(fractional):
            warnings.warn(
                f"binomial log-likelihood: {int(np.sum(fractional))} non-integer "
                f"success counts (first n*y = {successes[fractional][0]!r}) "
                f"were rounded; pass trials= when y holds proportions",
                RuntimeWarning,
                stacklevel=2,
            )
        log_choose = gammaln(n + 1.0) - gammaln(k + 1.0) - gammaln(n - k + 1.0)
        with np.errstate(divide='ignore'):
            ll = log_choose + xlogy(k, mu_arr) + xlogy(n - k, 1.0 - mu_arr)
        return float(np.sum(ll))

    def valid_mu(self, mu: ArrayLike) -> bool:
        mu_arr = _as_float(mu)
        return bool(np.all(np.isfinite(mu_arr) & (mu_arr > 0.0) & (mu_arr < 1.0)))

    def prior_weights(self, n_obs: int) -> NDArray[np.floating[Any]]:
        if self._trials is None:
            return np.ones(n_obs, dtype=np.float64)
        self.check_length(n_obs)
        return self._trials

    def check_length(self, n_obs: int) -> None:
        if self._trials is not None and self._trials.shape[0] != n_obs:
            raise DimensionError(
                f"Inconsistent lengths: trials={self._trials.shape[0]}, y={n_obs}"
            )

    @property
    def dispersion_is_fixed(self) -> bool:
        return True


class Poisson(Family):
    """Poisson family. Default link: log.

    V(μ) = μ
    d_i = 2 [y_i log(y_i/μ_i) - (y_i - μ_i)], with 0·log 0 = 0
    """

    @property
    def name(self) -> str:
        return 'poisson'

    def _default_link(self) -> Link:
        return LogLink()

    def _variance(self, mu: NDArray) -> NDArray:
        return mu.copy()

    @property
    def _support_description(self) -> str:
        return 'y >= 0'

    def _in_support(self, y: NDArray) -> NDArray:
        return y >= 0.0

    def _start(self, y: NDArray) -> NDArray:
        # R: y + 0.1, keeps log(μ) finite at y = 0
        return y + 0.1

    def _unit_deviance(self, y: NDArray, mu: NDArray) -> NDArray:
        with np.errstate(divide='ignore', invalid='ignore'):
            term = np.where(y > 0.0, y * np.log(y / mu), 0.0)
        return 2.0 * (term - (y - mu))

    def log_likelihood(self, y: ArrayLike, mu: ArrayLike) -> float:
        y_arr = np.atleast_1d(_as_float(y))
        mu_arr = np.atleast_1d(_as_float(mu))
        with np.errstate(divide='ignore'):
            ll = xlogy(y_arr, mu_arr) - mu_arr - gammaln(y_arr + 1.0)
        return float(np.sum(ll))

    def valid_mu(self, mu: ArrayLike) -> bool:
        mu_arr = _as_float(mu)
        return bool(np.all(np.isfinite(mu_arr) & (mu_arr > 0.0)))

    @property
    def dispersion_is_fixed(self) -> bool:
        return True


class Gamma(Family):
    """Gamma family. Default link: inverse.

    V(μ) = μ²
    d_i = -2 [log(y_i/μ_i) - (y_i - μ_i)/μ_i]
    """

    @property
    def name(self) -> str:
        return 'gamma'

    def _default_link(self) -> Link:
        return InverseLink()

    def _variance(self, mu: NDArray) -> NDArray:
        return mu ** 2

    @property
    def _support_description(self) -> str:
        return 'y > 0'

    def _in_support(self, y: NDArray) -> NDArray:
        return y > 0.0

    def _start(self, y: NDArray) -> NDArray:
        return y.copy()

    def _unit_deviance(self, y: NDArray, mu: NDArray) -> NDArray:
        with np.errstate(divide='ignore', invalid='ignore'):
            return -2.0 * (np.log(y / mu) - (y - mu) / mu)

    def log_likelihood(self, y: ArrayLike, mu: ArrayLike) -> float:
        # R's Gamma()$aic: shape 1/φ, scale μφ, with φ = deviance / n
        y_arr = np.atleast_1d(_as_float(y))
        mu_arr = np.atleast_1d(_as_float(mu))
        total, _ = self.deviance(y_arr, mu_arr)
        phi = total / y_arr.shape[0]
        if phi <= 0.0:
            return float('inf')
        return float(np.sum(
            stats.gamma.logpdf(y_arr, a=1.0 / phi, scale=mu_arr * phi)
        ))

    def valid_mu(self, mu: ArrayLike) -> bool:
        mu_arr = _as_float(mu)
        return bool(np.all(np.isfinite(mu_arr) & (mu_arr > 0.0)))


# =====================================================================
# Family name → class mapping + resolver
# =====================================================================

_FAMILY_CLASSES: dict[str, type[Family]] = {
    'gaussian': Gaussian,
    'normal': Gaussian,
    'binomial': Binomial,
    'poisson': Poisson,
    'gamma': Gamma,
}


def resolve_family(family: str | Family) -> Family:
    """Resolve a family argument to a Family instance.

    Args:
        family: Either a string name ('gaussian', 'binomial', 'poisson',
                'gamma') or a Family instance (passed through).

    Returns:
        Family instance.

    Raises:
        ValueError: If string name is not recognized.
        TypeError: If argument is neither string nor Family.
    """
    if isinstance(family, Family):
        return family
    if isinstance(family, str):
        cls = _FAMILY_CLASSES.get(family.lower())
        if cls is None:
            valid = ', '.join(
                sorted(k for k in _FAMILY_CLASSES.keys() if k != 'normal')
            )
            raise ValueError(
                f"Unknown family: {family!r}. Valid families: {valid}"
            )
        return cls()
    raise TypeError(f"family must be str or Family, got {type(family).__name__}")
