"""
Generalized linear models.

Public API:
    fit(X, y, family=..., ...) -> GLMSolution

The fit() function is the only entry point. It handles:
    - Input validation
    - Design construction
    - Family resolution
    - Backend selection
    - Result wrapping

Example:
    >>> from pyirls.glm import fit, Binomial
    >>> result = fit(X, y, family=Binomial(trials=n))
    >>> print(result.coefficients)
    >>> print(result.summary())
"""

from pyirls.glm.design import Design
from pyirls.glm.families import (
    Family,
    Gaussian,
    Binomial,
    Poisson,
    Gamma,
    Link,
    IdentityLink,
    LogitLink,
    ProbitLink,
    LogLink,
    InverseLink,
    resolve_family,
    resolve_link,
)
from pyirls.glm.solution import FitStatus, GLMParams, GLMSolution
from pyirls.glm.solvers import fit

__all__ = [
    "fit",
    "Design",
    "Family",
    "Gaussian",
    "Binomial",
    "Poisson",
    "Gamma",
    "Link",
    "IdentityLink",
    "LogitLink",
    "ProbitLink",
    "LogLink",
    "InverseLink",
    "resolve_family",
    "resolve_link",
    "FitStatus",
    "GLMParams",
    "GLMSolution",
]
