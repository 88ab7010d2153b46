"""
Core infrastructure for pyirls.

This module provides shared abstractions and utilities used by the
model subpackages.

Key components:
    protocols: Backend protocol
    result: Generic Result[P] envelope
    exceptions: Exception hierarchy
    validation: Input validators
    compute: Timing and linear algebra kernels
"""

from pyirls.core.protocols import Backend
from pyirls.core.result import Result
from pyirls.core.exceptions import (
    PyIRLSError,
    ValidationError,
    DimensionError,
    InvalidArgumentError,
    NumericalError,
    SingularMatrixError,
    RankDeficientError,
    NumericalFaultError,
    ConvergenceError,
)

__all__ = [
    # Protocols
    "Backend",
    # Result
    "Result",
    # Exceptions
    "PyIRLSError",
    "ValidationError",
    "DimensionError",
    "InvalidArgumentError",
    "NumericalError",
    "SingularMatrixError",
    "RankDeficientError",
    "NumericalFaultError",
    "ConvergenceError",
]
