"""
Tests for input validation utilities.
"""

import numpy as np
import pytest

from pyirls.core.exceptions import DimensionError, ValidationError
from pyirls.core.validation import (
    check_1d,
    check_2d,
    check_array,
    check_consistent_length,
    check_finite,
    check_min_samples,
    check_nonnegative_integers,
)


class TestCheckArray:
    """check_array converts to ndarray and rejects non-numeric data."""

    def test_list_to_float_array(self):
        result = check_array([1, 2, 3], "X")
        assert np.issubdtype(result.dtype, np.floating)
        np.testing.assert_array_equal(result, [1.0, 2.0, 3.0])

    def test_bool_to_float(self):
        result = check_array(np.array([True, False]), "y")
        np.testing.assert_array_equal(result, [1.0, 0.0])

    def test_rejects_strings(self):
        with pytest.raises(ValidationError, match="non-numeric"):
            check_array(["a", "b"], "y")

    def test_rejects_mixed_types(self):
        with pytest.raises(ValidationError, match="object dtype"):
            check_array([1, "a", None], "y")


class TestShapeChecks:

    def test_check_finite_reports_counts(self):
        with pytest.raises(ValidationError, match="1 NaN, 1 Inf"):
            check_finite(np.array([1.0, np.nan, np.inf]), "X")

    def test_check_1d_rejects_matrix(self):
        with pytest.raises(DimensionError, match="expected 1D"):
            check_1d(np.zeros((3, 2)), "y")

    def test_check_2d_rejects_vector(self):
        with pytest.raises(DimensionError, match="expected 2D"):
            check_2d(np.zeros(3), "X")

    def test_consistent_length(self):
        with pytest.raises(DimensionError, match="X=3, y=4"):
            check_consistent_length(np.zeros((3, 2)), np.zeros(4), names=("X", "y"))

    def test_consistent_length_name_mismatch(self):
        with pytest.raises(ValueError):
            check_consistent_length(np.zeros(3), names=("a", "b"))

    def test_min_samples(self):
        with pytest.raises(ValidationError, match="at least 3"):
            check_min_samples(np.zeros((2, 3)), 3, "X")


class TestCheckNonnegativeIntegers:

    def test_accepts_counts(self):
        check_nonnegative_integers(np.array([0.0, 1.0, 20.0]), "trials")

    def test_rejects_negative(self):
        with pytest.raises(ValidationError, match="negative"):
            check_nonnegative_integers(np.array([1.0, -1.0]), "trials")

    def test_rejects_fractional(self):
        with pytest.raises(ValidationError, match="non-integer"):
            check_nonnegative_integers(np.array([1.0, 2.5]), "trials")

    def test_rejects_nan(self):
        with pytest.raises(ValidationError, match="non-finite"):
            check_nonnegative_integers(np.array([1.0, np.nan]), "trials")
