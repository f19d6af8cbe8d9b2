"""Utility functions for index sets and array manipulations."""

from __future__ import annotations

from typing import Sequence, TypeVar, cast

import numpy as np

__all__ = [
    "safe_sum",
    "as_index_array",
    "submatrix",
]


_Addable = TypeVar("_Addable")
"""A type variable representing any type supporting the + overload."""


def safe_sum(x: Sequence[_Addable]) -> _Addable:
    """Safely sum the elements, without creating a first addition with 0.

    Important for sensitivity values to avoid the overhead of a zero Jacobian.

    Parameters:
        x: A sequence of any objects which support the ``+`` operation.

    Returns:
        The sum of ``x``, or 0 if ``x`` is empty.

    """
    if len(x) >= 1:
        sum_ = x[0]
        for i in range(1, len(x)):
            sum_ = sum_ + x[i]  # type: ignore[operator]
        return sum_
    else:
        return cast(_Addable, 0)


def as_index_array(indices: Sequence[int] | np.ndarray, size: int) -> np.ndarray:
    """Convert a sequence of indices into a read-only integer array.

    The order of the indices is preserved.

    Parameters:
        indices: Indices in ``range(size)``.
        size: Size of the indexed set.

    Raises:
        ValueError: If indices are out of range or appear more than once.

    Returns:
        A read-only ``int64`` array containing ``indices``.

    """
    arr = np.array(indices, dtype=np.int64).reshape(-1)
    if arr.size > 0 and (arr.min() < 0 or arr.max() >= size):
        raise ValueError(f"Indices {arr.tolist()} out of range [0, {size}).")
    if np.unique(arr).size != arr.size:
        raise ValueError(f"Indices {arr.tolist()} contain duplicates.")
    arr.flags.writeable = False
    return arr


def submatrix(mat: np.ndarray, rows: np.ndarray, cols: np.ndarray) -> np.ndarray:
    """Extract the submatrix of ``mat`` with given rows and columns, in the given
    order."""
    return np.asarray(mat)[np.ix_(rows, cols)]
