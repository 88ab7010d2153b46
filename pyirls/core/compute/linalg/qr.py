"""
QR decomposition and least squares solvers.

Provides the pivoted QR factorisation (LAPACK via SciPy) used by the IRLS
backend for every weighted least squares re-solve. The normal equations
X'WX are never formed: the weighted problem is solved through QR of
sqrt(W)·X.
"""

from dataclasses import dataclass
from typing import Any
import numpy as np
from numpy.typing import NDArray
from scipy.linalg import qr, solve_triangular

from pyirls.core.exceptions import RankDeficientError, ValidationError

# Relative tolerance on |R_kk| / |R_00| for rank determination (R's lm.fit default)
RANK_TOL = 1e-7


@dataclass(frozen=True)
class QRResult:
    """
    Result of a column-pivoted QR decomposition X[:, pivot] = Q R.

    Attributes:
        Q: Orthonormal columns (n x k, k = min(n, p))
        R: Upper triangular matrix (k x p)
        pivot: Column permutation (0-indexed)
        rank: Numerical rank determined from the R diagonal
        tol: Relative tolerance used for the rank decision
    """
    Q: NDArray[np.floating[Any]]
    R: NDArray[np.floating[Any]]
    pivot: NDArray[np.intp]
    rank: int
    tol: float


@dataclass(frozen=True)
class WLSResult:
    """
    Solution of a weighted least squares problem.

    Attributes:
        coefficients: Minimiser of ||sqrt(W)(z - X beta)||² in original column order
        qr: Pivoted QR of sqrt(W)·X, kept for standard errors
    """
    coefficients: NDArray[np.floating[Any]]
    qr: QRResult


def qr_cpu(
    X: NDArray[np.floating[Any]],
    tol: float | None = None,
) -> QRResult:
    """
    Economy QR decomposition with column pivoting.

    Columns are pivoted by decreasing norm, so |diag(R)| is non-increasing
    and the rank is the count of diagonal entries above tol * |R_00|.

    Args:
        X: Matrix to decompose (n x p)
        tol: Relative rank tolerance, defaults to RANK_TOL

    Returns:
        QRResult with Q, R, pivot and numerical rank
    """
    if tol is None:
        tol = RANK_TOL

    Q, R, pivot = qr(X, mode='economic', pivoting=True)

    diag_R = np.abs(np.diag(R))
    if len(diag_R) > 0 and diag_R[0] > 0:
        rank = int(np.sum(diag_R > tol * diag_R[0]))
    else:
        rank = 0

    return QRResult(Q=Q, R=R, pivot=pivot, rank=rank, tol=tol)


def _back_substitute(qr_result: QRResult, y: NDArray[np.floating[Any]]) -> NDArray[np.floating[Any]]:
    """β = P R⁻¹ Q'y for a full-rank pivoted QR."""
    p = qr_result.R.shape[1]
    Qty = qr_result.Q.T @ y
    beta_pivoted = solve_triangular(qr_result.R[:p, :p], Qty[:p], lower=False)
    beta = np.empty(p, dtype=np.float64)
    beta[qr_result.pivot] = beta_pivoted
    return beta


def _raise_if_rank_deficient(qr_result: QRResult, p: int, matrix_name: str) -> None:
    if qr_result.rank < p:
        raise RankDeficientError(
            f"{matrix_name} is rank-deficient: rank={qr_result.rank}, expected={p}. "
            f"This indicates perfect multicollinearity (e.g. a duplicated column).",
            matrix_name=matrix_name,
            rank=qr_result.rank,
            expected_rank=p,
        )


def wls_solve(
    X: NDArray[np.floating[Any]],
    z: NDArray[np.floating[Any]],
    weights: NDArray[np.floating[Any]],
    tol: float | None = None,
) -> WLSResult:
    """
    Solve weighted least squares min_β ||√W (z - Xβ)||².

    Transforms to X̃ = √w·X, z̃ = √w·z and solves by pivoted QR of X̃.

    Args:
        X: Design matrix (n x p)
        z: Working response (n,)
        weights: Diagonal of W (n,), non-negative
        tol: Relative rank tolerance

    Returns:
        WLSResult with coefficients and the QR of the weighted design

    Raises:
        ValidationError: If any weight is negative
        RankDeficientError: If √W·X is numerically rank-deficient
    """
    if np.any(weights < 0):
        raise ValidationError(
            f"weights: {int(np.sum(weights < 0))} negative values, expected >= 0"
        )

    sqrt_w = np.sqrt(weights)
    X_tilde = X * sqrt_w[:, np.newaxis]
    z_tilde = z * sqrt_w

    p = X.shape[1]
    qr_result = qr_cpu(X_tilde, tol=tol)
    _raise_if_rank_deficient(qr_result, p, 'weighted design matrix')

    return WLSResult(coefficients=_back_substitute(qr_result, z_tilde), qr=qr_result)


def unscaled_covariance(qr_result: QRResult) -> NDArray[np.floating[Any]]:
    """
    (X̃'X̃)⁻¹ from a full-rank pivoted QR, in original column order.

    X̃'X̃ = P R'R P', so its inverse is P R⁻¹ R⁻ᵀ P'.

    Raises:
        RankDeficientError: If the decomposition is rank-deficient
    """
    p = qr_result.R.shape[1]
    _raise_if_rank_deficient(qr_result, p, 'X')

    R_inv = solve_triangular(qr_result.R[:p, :p], np.eye(p), lower=False)
    cov_pivoted = R_inv @ R_inv.T

    cov = np.empty((p, p), dtype=np.float64)
    idx = qr_result.pivot
    cov[np.ix_(idx, idx)] = cov_pivoted
    return cov
