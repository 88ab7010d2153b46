"""
Tests for the Result[P] envelope.
"""

from dataclasses import FrozenInstanceError, dataclass

import pytest

from pyirls.core.result import Result


@dataclass(frozen=True)
class FakeParams:
    """Minimal payload for testing."""
    value: float


def _make(**kwargs):
    defaults = dict(
        params=FakeParams(value=1.0),
        info={},
        timing=None,
        backend_name="cpu",
    )
    defaults.update(kwargs)
    return Result(**defaults)


class TestResultConstruction:

    def test_basic_creation(self):
        result = _make(
            params=FakeParams(value=42.0),
            info={"method": "irls_qr"},
            timing={"total_seconds": 0.01},
            backend_name="cpu_irls",
        )
        assert result.params.value == 42.0
        assert result.info["method"] == "irls_qr"
        assert result.timing["total_seconds"] == 0.01
        assert result.backend_name == "cpu_irls"

    def test_warnings_default_empty(self):
        result = _make()
        assert result.warnings == ()
        assert isinstance(result.warnings, tuple)

    def test_has_warning(self):
        result = _make(warnings=("IRLS did not converge in 25 iterations",))
        assert result.has_warning("did not converge")
        assert not result.has_warning("diverged")


class TestImmutability:
    """Result is frozen: no attribute mutation allowed."""

    def test_cannot_set_params(self):
        result = _make()
        with pytest.raises(FrozenInstanceError):
            result.params = FakeParams(value=2.0)

    def test_cannot_set_warnings(self):
        result = _make()
        with pytest.raises(FrozenInstanceError):
            result.warnings = ("new warning",)
