"""Elementary functions acting on sensitivity values.

Each function accepts either a :class:`~chemfield.ad.forward_mode.SensitivityArray`
or plain numbers and numpy arrays, in which case the respective numpy function is
applied.

"""

from __future__ import annotations

import numpy as np
import scipy.sparse as sps

import chemfield as cf
from chemfield.ad.forward_mode import SensitivityArray, _is_zero, _scale_rows

__all__ = ["exp", "log", "sqrt", "abs", "sign", "sum", "dot"]

module_sections = ["ad"]


@cf.time_logger(sections=module_sections)
def exp(var):
    if isinstance(var, SensitivityArray):
        val = np.exp(var.val)
        return SensitivityArray(val, _scale_rows(var.jac, val))
    else:
        return np.exp(var)


@cf.time_logger(sections=module_sections)
def log(var):
    if not isinstance(var, SensitivityArray):
        return np.log(var)

    val = np.log(var.val)
    der = _scale_rows(var.jac, 1.0 / np.asarray(var.val, dtype=float))
    return SensitivityArray(val, der)


@cf.time_logger(sections=module_sections)
def sqrt(var):
    if not isinstance(var, SensitivityArray):
        return np.sqrt(var)
    return var**0.5


@cf.time_logger(sections=module_sections)
def sign(var):
    if not isinstance(var, SensitivityArray):
        return np.sign(var)
    else:
        return np.sign(var.val)


@cf.time_logger(sections=module_sections)
def abs(var):
    """Absolute value. The derivative at zero is taken as zero."""
    if not isinstance(var, SensitivityArray):
        return np.abs(var)
    val = np.abs(var.val)
    jac = _scale_rows(var.jac, np.sign(var.val))
    return SensitivityArray(val, jac)


@cf.time_logger(sections=module_sections)
def sum(var):
    """Sum of the entries of a vector value, returned in scalar form."""
    if not isinstance(var, SensitivityArray):
        return np.sum(var)
    if var.is_scalar:
        return var.copy()
    val = float(np.sum(var.val))
    if _is_zero(var.jac):
        return SensitivityArray(val)
    jac = var.jac.sum(axis=0)
    if sps.issparse(jac) or isinstance(jac, np.matrix):
        jac = np.asarray(jac).ravel()
    return SensitivityArray(val, np.asarray(jac, dtype=float).ravel())


def dot(weights, var):
    """Weighted sum ``sum_i weights_i * var_i``, returned in scalar form."""
    return sum(var * np.asarray(weights, dtype=float))
