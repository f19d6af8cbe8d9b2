"""Utility functions for sensitivity values."""

from __future__ import annotations

from typing import Sequence

import numpy as np
import scipy.sparse as sps

from chemfield.ad.forward_mode import SensitivityArray, _is_zero

__all__ = ["concatenate"]


def concatenate(variables: Sequence[SensitivityArray]) -> SensitivityArray:
    """Stack scalar and vector sensitivity values into one vector value.

    Constants are expanded to zero rows using the number of independent variables of
    the other entries.

    """
    vals = [np.atleast_1d(var.val) for var in variables]
    vals_stacked = np.concatenate(vals)

    num_vars = max([var.num_vars for var in variables], default=0)
    if num_vars == 0:
        return SensitivityArray(vals_stacked)

    jacs = []
    for var, val in zip(variables, vals):
        if _is_zero(var.jac):
            jacs.append(np.zeros((val.shape[0], num_vars)))
        elif var.is_scalar:
            jacs.append(var.jac.reshape(1, -1))
        else:
            jacs.append(var.jac)

    if any(sps.issparse(j) for j in jacs):
        jacs_stacked = sps.vstack(jacs, format="csr")
    else:
        jacs_stacked = np.vstack(jacs)
    return SensitivityArray(vals_stacked, jacs_stacked)
