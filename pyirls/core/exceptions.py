"""
Exception hierarchy for pyirls.

All exceptions inherit from PyIRLSError to allow catching any
library-specific error. Domain-specific exceptions should inherit from
the appropriate base class here.

Design principles:
    - Exceptions carry diagnostic information as attributes
    - Error messages are actionable with actual vs expected values
    - Never catch and re-raise with less information
"""


class PyIRLSError(Exception):
    """Base exception for all pyirls errors."""
    pass


class ValidationError(PyIRLSError):
    """
    Input validation failed.

    Raised when user-provided inputs fail validation checks.
    """
    pass


class DimensionError(ValidationError):
    """
    Array dimensions are incorrect or inconsistent.

    Raised when array shapes don't match expected dimensions or
    when multiple arrays have inconsistent shapes.
    """
    pass


class InvalidArgumentError(ValidationError):
    """
    A response value lies outside the support of the family.

    Raised by Family.mustart() before any IRLS iteration runs, e.g. a
    binomial proportion outside [0, 1] or a negative Poisson count.

    Attributes:
        family_name: Name of the family that rejected the value
        n_invalid: Number of offending observations
        first_invalid: The first offending value, if any
    """

    def __init__(
        self,
        message: str,
        family_name: str | None = None,
        n_invalid: int | None = None,
        first_invalid: float | None = None
    ):
        super().__init__(message)
        self.family_name = family_name
        self.n_invalid = n_invalid
        self.first_invalid = first_invalid


class NumericalError(PyIRLSError):
    """
    Numerical computation failed.

    Base class for errors arising from numerical issues during computation.
    """
    pass


class SingularMatrixError(NumericalError):
    """
    Matrix is singular or nearly singular.

    Raised when a matrix operation requires invertibility but the matrix
    is singular or numerically rank-deficient.

    Attributes:
        matrix_name: Name/description of the problematic matrix
        condition_number: Estimated condition number, if available
        rank: Numerical rank, if computed
        expected_rank: Expected rank (typically min(n, p))
    """

    def __init__(
        self,
        message: str,
        matrix_name: str | None = None,
        condition_number: float | None = None,
        rank: int | None = None,
        expected_rank: int | None = None
    ):
        super().__init__(message)
        self.matrix_name = matrix_name
        self.condition_number = condition_number
        self.rank = rank
        self.expected_rank = expected_rank


class RankDeficientError(SingularMatrixError):
    """
    The (weighted) design matrix does not have full column rank.

    Raised by the weighted least squares solve. A rank-deficient design
    has no unique coefficient vector, so no solution is returned.
    """
    pass


class NumericalFaultError(NumericalError):
    """
    A family operation produced zero, infinite or NaN values mid-fit.

    The starting-value rules keep dlink() and variance() finite and
    non-zero for valid inputs, so a fault means the data and the family
    disagree (for example a binomial trial count of 0). The working
    weights are never clamped.

    Attributes:
        quantity: Which quantity faulted ('dlink', 'variance', 'weights')
        iteration: IRLS iteration at which the fault was detected
        n_bad: Number of affected observations
    """

    def __init__(
        self,
        message: str,
        quantity: str | None = None,
        iteration: int | None = None,
        n_bad: int | None = None
    ):
        super().__init__(message)
        self.quantity = quantity
        self.iteration = iteration
        self.n_bad = n_bad


class ConvergenceError(PyIRLSError):
    """
    Iterative algorithm failed to converge.

    Raised when IRLS fails to meet its convergence criterion within the
    maximum number of iterations, or diverges, and the caller asked for
    strict behaviour.

    Attributes:
        iterations: Number of iterations completed
        final_change: Final parameter or objective change
        reason: Why convergence failed ('max_iterations' or 'diverged')
        threshold: The convergence threshold that was not met
    """

    def __init__(
        self,
        message: str,
        iterations: int,
        final_change: float | None = None,
        reason: str | None = None,
        threshold: float | None = None
    ):
        super().__init__(message)
        self.iterations = iterations
        self.final_change = final_change
        self.reason = reason
        self.threshold = threshold
