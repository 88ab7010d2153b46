"""
GLM backends.

Available backends:
    CPUIRLSBackend: CPU IRLS with a pivoted QR weighted least squares solve
"""

from pyirls.glm.backends.cpu_irls import CPUIRLSBackend, IRLSState

__all__ = [
    "CPUIRLSBackend",
    "IRLSState",
]
