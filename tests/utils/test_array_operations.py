"""Tests of the array utilities."""

from __future__ import annotations

import numpy as np
import pytest

import chemfield as cf
from chemfield.utils.array_operations import (
    as_index_array,
    safe_sum,
    submatrix,
)


def test_safe_sum():
    assert safe_sum([]) == 0
    assert safe_sum([1.0, 2.0, 3.0]) == 6.0
    x = cf.SensitivityArray(2.0, np.array([1.0]))
    s = safe_sum([x])
    assert s is x


@pytest.mark.parametrize("indices", [[2, 0, 1], [], np.array([3])])
def test_as_index_array_preserves_order(indices):
    arr = as_index_array(indices, 4)
    assert arr.dtype == np.int64
    assert arr.tolist() == list(indices)
    assert not arr.flags.writeable


@pytest.mark.parametrize("indices", [[0, 4], [-1], [1, 1]])
def test_as_index_array_invalid(indices):
    with pytest.raises(ValueError):
        as_index_array(indices, 4)


def test_submatrix_keeps_given_order():
    mat = np.arange(12).reshape(3, 4)
    sub = submatrix(mat, np.array([2, 0]), np.array([3, 1]))
    assert np.all(sub == np.array([[11, 9], [3, 1]]))
