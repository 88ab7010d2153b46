"""
GLM Design.

Design holds the design matrix X and the response y for one fit. It is
the validation boundary: inputs are checked here once, and backends
trust them afterwards.

Data ingestion (CSV files, dataframes) is the caller's business; a
Design only needs numeric arrays.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any
import numpy as np
from numpy.typing import ArrayLike, NDArray

from pyirls.core.validation import (
    check_array,
    check_finite,
    check_2d,
    check_1d,
    check_consistent_length,
    check_min_samples,
)


@dataclass(frozen=True)
class Design:
    """
    GLM design specification.

    Immutable after construction.

    Construction:
        Design.from_arrays(X, y)
    """
    _X: NDArray[np.floating[Any]]
    _y: NDArray[np.floating[Any]]
    _n: int
    _p: int

    @classmethod
    def from_arrays(cls, X: ArrayLike, y: ArrayLike) -> Design:
        """Build Design directly from arrays."""
        X_arr = check_array(X, 'X').astype(np.float64, copy=False)
        y_arr = check_array(y, 'y').astype(np.float64, copy=False)
        return cls._build(X_arr, y_arr)

    @classmethod
    def _build(cls, X: NDArray, y: NDArray) -> Design:
        """Internal builder with validation."""
        if X.ndim == 1:
            X = X.reshape(-1, 1)
        if y.ndim == 2 and y.shape[1] == 1:
            y = y.ravel()

        check_2d(X, 'X')
        check_1d(y, 'y')
        check_finite(X, 'X')
        check_finite(y, 'y')
        check_consistent_length(X, y, names=('X', 'y'))

        n, p = X.shape
        check_min_samples(X, max(p, 1), 'X')

        # Private copies: the design must not change under a caller's feet
        X = np.array(X, dtype=np.float64, copy=True)
        y = np.array(y, dtype=np.float64, copy=True)
        X.setflags(write=False)
        y.setflags(write=False)

        return cls(_X=X, _y=y, _n=n, _p=p)

    # === Properties ===

    @property
    def X(self) -> NDArray[np.floating[Any]]:
        """Design matrix (n x p)."""
        return self._X

    @property
    def y(self) -> NDArray[np.floating[Any]]:
        """Response vector (n,)."""
        return self._y

    @property
    def n(self) -> int:
        """Number of observations."""
        return self._n

    @property
    def p(self) -> int:
        """Number of coefficients."""
        return self._p
