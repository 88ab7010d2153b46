"""
Shared compute infrastructure for pyirls.

This module provides timing utilities and linear algebra kernels used by
the model backends.

IMPORTANT: This is NOT where model backends live. Those go in
glm/backends/. This module contains shared NUMERIC infrastructure.

Submodules:
    timing: Execution timing utilities
    linalg: Linear algebra kernels (pivoted QR, weighted least squares)
"""

from pyirls.core.compute.timing import Timer, timed

__all__ = [
    "Timer",
    "timed",
]
