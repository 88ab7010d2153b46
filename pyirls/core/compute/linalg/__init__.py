"""
Linear algebra kernels for pyirls.

All functions follow these conventions:
    - CPU functions use NumPy/SciPy (LAPACK under the hood)
    - Each operation returns a structured result dataclass
    - Errors are raised immediately with clear messages

Submodules:
    qr: Pivoted QR decomposition and weighted least squares solve
"""

from pyirls.core.compute.linalg.qr import (
    RANK_TOL,
    QRResult,
    WLSResult,
    qr_cpu,
    wls_solve,
    unscaled_covariance,
)

__all__ = [
    "RANK_TOL",
    "QRResult",
    "WLSResult",
    "qr_cpu",
    "wls_solve",
    "unscaled_covariance",
]
