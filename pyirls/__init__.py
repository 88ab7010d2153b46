"""
pyirls: generalized linear models fitted by iteratively reweighted least squares.

Pluggable exponential-family distributions (Binomial, Gaussian, Poisson,
Gamma) with R-compatible numerics and a pivoted-QR weighted least squares
inner solve.

Submodules:
    glm: Families, links, the IRLS backend and the fit() entry point
    core: Exceptions, validation, result envelope, linear algebra kernels
"""

__version__ = "0.1.0"
__author__ = "Hai-Shuo"
__email__ = "contact@sgcx.org"

from pyirls import glm
from pyirls.glm import (
    fit,
    Design,
    Family,
    Gaussian,
    Binomial,
    Poisson,
    Gamma,
    FitStatus,
    GLMSolution,
)

__all__ = [
    "__version__",
    "glm",
    "fit",
    "Design",
    "Family",
    "Gaussian",
    "Binomial",
    "Poisson",
    "Gamma",
    "FitStatus",
    "GLMSolution",
]
