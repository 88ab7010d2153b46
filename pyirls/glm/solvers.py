"""
Solver dispatch for generalized linear models.

This module provides the fit() function (public API) and backend selection.
"""

from __future__ import annotations

import warnings
from typing import Literal
from numpy.typing import ArrayLike

from pyirls.core.exceptions import ConvergenceError, ValidationError
from pyirls.glm.design import Design
from pyirls.glm.families import Family, resolve_family
from pyirls.glm.solution import FitStatus, GLMSolution
from pyirls.glm.backends.cpu_irls import (
    CPUIRLSBackend,
    DEFAULT_DIVERGENCE_FACTOR,
    DEFAULT_MAX_ITER,
    DEFAULT_TOL,
)


# Type alias for backend selection
BackendChoice = Literal['auto', 'cpu', 'cpu_irls']


def fit(
    X_or_design: ArrayLike | Design,
    y: ArrayLike | None = None,
    *,
    family: str | Family = 'gaussian',
    max_iter: int = DEFAULT_MAX_ITER,
    tol: float = DEFAULT_TOL,
    divergence_factor: float = DEFAULT_DIVERGENCE_FACTOR,
    strict: bool = False,
    backend: BackendChoice = 'auto',
) -> GLMSolution:
    """
    Fit a generalized linear model by IRLS.

    This is the primary public API. All input validation, backend
    selection, and result wrapping happens here.

    Args:
        X_or_design: Design matrix (n x p) or a prebuilt Design. Include a
            column of ones for an intercept.
        y: Response vector (n,). Required when X is an array. For the
            binomial family, y holds proportions in [0, 1].
        family: Family name ('gaussian', 'binomial', 'poisson', 'gamma')
            or a Family instance, e.g. Binomial(trials=n).
        max_iter: Maximum IRLS iterations.
        tol: Convergence tolerance on the relative deviance change.
        divergence_factor: Deviance increase, relative to |dev_old| + 0.1,
            treated as divergence.
        strict: If True, raise ConvergenceError when IRLS diverges or hits
            max_iter. Otherwise a RuntimeWarning is emitted and the last
            valid iterate is returned with converged=False.
        backend: 'auto', 'cpu' or 'cpu_irls' (all the CPU IRLS backend).

    Returns:
        GLMSolution with coefficients, deviance, inference and summary methods

    Raises:
        ValidationError: If inputs are invalid
        DimensionError: If X, y (and trial counts) have inconsistent dimensions
        InvalidArgumentError: If y lies outside the family's support
        NumericalFaultError: If the working weights degenerate mid-fit
        RankDeficientError: If X is rank-deficient
        ConvergenceError: If strict=True and IRLS did not converge

    Example:
        >>> import numpy as np
        >>> from pyirls import fit, Binomial
        >>>
        >>> X = np.column_stack([np.ones(200), np.random.randn(200)])
        >>> y = (np.random.rand(200) < 0.5).astype(float)
        >>> result = fit(X, y, family=Binomial())
        >>> print(result.coefficients)
        >>> print(result.summary())
    """
    # === Input Validation ===
    # This is the boundary - validate here, trust everywhere else
    if isinstance(X_or_design, Design):
        if y is not None:
            raise ValueError("y must be None when a Design is passed")
        design = X_or_design
    else:
        if y is None:
            raise ValueError("y required when X is an array")
        design = Design.from_arrays(X_or_design, y)

    if not isinstance(max_iter, int) or max_iter < 1:
        raise ValidationError(f"max_iter: expected integer >= 1, got {max_iter!r}")
    if not tol > 0:
        raise ValidationError(f"tol: expected > 0, got {tol!r}")
    if not divergence_factor > 0:
        raise ValidationError(
            f"divergence_factor: expected > 0, got {divergence_factor!r}"
        )

    fam = resolve_family(family)
    fam.check_length(design.n)

    # === Select Backend ===
    backend_impl = _get_backend(backend)

    # === Solve ===
    result = backend_impl.solve(
        design, fam,
        tol=tol,
        max_iter=max_iter,
        divergence_factor=divergence_factor,
    )

    # === Report non-convergence ===
    params = result.params
    if not params.converged:
        reason = (
            'diverged' if params.status is FitStatus.DIVERGED else 'max_iterations'
        )
        message = "; ".join(result.warnings)
        if strict:
            raise ConvergenceError(
                message,
                iterations=params.n_iter,
                final_change=result.info.get('final_change'),
                reason=reason,
                threshold=tol,
            )
        warnings.warn(message, RuntimeWarning, stacklevel=2)

    # === Wrap and Return ===
    return GLMSolution(_result=result, _design=design, _family=fam)


def _get_backend(choice: BackendChoice) -> CPUIRLSBackend:
    """
    Select and instantiate the appropriate backend.

    Raises:
        ValueError: If unknown backend specified
    """
    if choice in ('auto', 'cpu', 'cpu_irls'):
        return CPUIRLSBackend()
    raise ValueError(f"Unknown backend: {choice!r}")
