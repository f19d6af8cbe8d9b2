"""This private module contains central constants and compilation flags for the entire
package.

Changes here should be done with much care.

"""

from __future__ import annotations

__all__ = [
    "R_IDEAL_MOL",
    "P_REF",
    "T_REF",
]


NUMBA_CACHE: bool = True
"""Flag to instruct the numba compiler to cache (!and use cached!) functions.

Numba does not recognize changes in nested functions and hence does not trigger
re-compilation. Use with care.

"""

NUMBA_FAST_MATH: bool = False
"""Flag to instruct the numba compiler to use it's ``fastmath`` functions.

To be used with care, due to loss in precision and broken handling of ``nan``.

"""

R_IDEAL_MOL: float = 8.31446261815324
"""Universal gas constant in ``[J / K mol]``."""

T_REF: float = 298.15
"""The reference temperature of standard-state properties in ``[K]``."""

P_REF: float = 1e5
"""The reference pressure of standard-state properties in ``[Pa]``.

Ideal gases have unit activity at this pressure.

"""
