"""Forward-mode sensitivity values.

A :class:`SensitivityArray` carries a value together with the matrix of its partial
derivatives with respect to a fixed set of independent variables. Arithmetic operations
propagate the derivatives by the product, quotient, power and chain rules, such that any
expression built from sensitivity arrays carries its exact Jacobian.

Values are either scalars (scalar form) or 1D arrays (vector form). The Jacobian of a
scalar is a 1D array of length ``num_vars`` (a gradient), the Jacobian of a vector is a
2D array of shape ``(len(val), num_vars)``, either dense or a scipy sparse matrix.
Constants have a zero Jacobian, represented by the number ``0.0``.

"""

from __future__ import annotations

from typing import Any, Union

import numpy as np
import scipy.sparse as sps

from chemfield.utils.errors import DimensionMismatchError

__all__ = ["SensitivityArray", "init_sensitivity_arrays"]


def init_sensitivity_arrays(variables, sparse: bool = False) -> list[SensitivityArray]:
    """Create independent variables with identity Jacobians.

    The Jacobians of all variables are block structured, such that each variable is
    differentiated with respect to the concatenation of all variables.

    Parameters:
        variables: A list of values. Scalars result in scalar sensitivity arrays,
            1D arrays in vector sensitivity arrays.
        sparse: ``default=False``

            If True, the Jacobians of vector variables are stored as sparse matrices.

    Returns:
        A sensitivity array for each variable, in the order of ``variables``.

    """
    if not isinstance(variables, list):
        return init_sensitivity_arrays([variables], sparse)

    num_val = [np.size(v) for v in variables]
    num_vars = int(sum(num_val))
    ad_arrays = []
    offset = 0
    for i, val in enumerate(variables):
        n = num_val[i]
        if np.ndim(val) == 0:
            jac = np.zeros(num_vars)
            jac[offset] = 1.0
            ad_arrays.append(SensitivityArray(float(val), jac))
        elif sparse:
            blocks = [sps.csr_matrix((n, m)) for m in num_val]
            blocks[i] = sps.identity(n, format="csr")
            jac = sps.bmat([blocks], format="csr")
            ad_arrays.append(SensitivityArray(np.array(val, dtype=float), jac))
        else:
            jac = np.zeros((n, num_vars))
            jac[:, offset : offset + n] = np.eye(n)
            ad_arrays.append(SensitivityArray(np.array(val, dtype=float), jac))
        offset += n

    return ad_arrays


def _is_zero(jac) -> bool:
    """Check if a Jacobian is the zero-constant marker."""
    return not sps.issparse(jac) and np.ndim(jac) == 0 and jac == 0


def _scale_rows(jac, v):
    """Multiply row ``i`` of ``jac`` by ``v[i]``, or the whole Jacobian if ``v`` is a
    scalar.

    Scalar Jacobians (gradients) are broadcast to rows if ``v`` is a vector.

    """
    if _is_zero(jac):
        return 0.0
    v = np.asarray(v, dtype=float)
    if v.ndim == 0:
        return float(v) * jac
    if sps.issparse(jac):
        return sps.diags(v) @ jac
    if jac.ndim == 1:
        return np.outer(v, jac)
    return v[:, None] * jac


def _add_jacs(a, b):
    """Add two Jacobians, respecting the zero-constant marker and broadcasting
    gradients to rows."""
    if _is_zero(a):
        return b.copy() if hasattr(b, "copy") else b
    if _is_zero(b):
        return a.copy() if hasattr(a, "copy") else a
    if sps.issparse(a) and sps.issparse(b):
        return a + b
    if sps.issparse(a):
        a = a.toarray()
    if sps.issparse(b):
        b = b.toarray()
    return a + b


class SensitivityArray:
    """A value with the matrix of partial derivatives w.r.t. independent variables.

    Parameters:
        val: ``default=0.0``

            A scalar or a 1D array.
        jac: ``default=0.0``

            The Jacobian, with rows corresponding to entries in ``val``.
            A 1D gradient for scalar values. The number ``0`` marks a constant.

    Raises:
        DimensionMismatchError: If the shape of ``jac`` is inconsistent with ``val``.

    """

    # Let numpy defer to the reflected operators of this class.
    __array_ufunc__ = None

    def __init__(self, val: Union[float, np.ndarray] = 0.0, jac: Any = 0.0) -> None:
        if np.ndim(val) == 0:
            val = float(val)
            if not _is_zero(jac) and (sps.issparse(jac) or np.ndim(jac) != 1):
                raise DimensionMismatchError(
                    "Jacobian of a scalar sensitivity value must be a 1D gradient."
                )
        else:
            val = np.asarray(val, dtype=float)
            if val.ndim != 1:
                raise DimensionMismatchError("Values must be scalars or 1D arrays.")
            if not _is_zero(jac):
                if not sps.issparse(jac):
                    jac = np.asarray(jac, dtype=float)
                    if jac.ndim == 1:
                        # gradient of a scalar broadcast to all entries
                        jac = np.tile(jac, (val.shape[0], 1))
                if jac.ndim != 2 or jac.shape[0] != val.shape[0]:
                    raise DimensionMismatchError(
                        f"Jacobian of shape {jac.shape} does not match value of "
                        + f"length {val.shape[0]}."
                    )

        self.val: Union[float, np.ndarray] = val
        """Value of the sensitivity array."""
        self.jac: Any = jac
        """Jacobian of the value w.r.t. the independent variables."""

    def __repr__(self) -> str:
        return f"SensitivityArray(val={self.val!r}, jac={self.jac!r})"

    def __len__(self) -> int:
        if np.ndim(self.val) == 0:
            raise TypeError("Scalar sensitivity value has no length.")
        return self.val.shape[0]

    @property
    def is_scalar(self) -> bool:
        """True if the value is a scalar."""
        return np.ndim(self.val) == 0

    @property
    def num_vars(self) -> int:
        """Number of independent variables, or 0 for constants."""
        if _is_zero(self.jac):
            return 0
        return self.jac.shape[-1]

    def __getitem__(self, key) -> SensitivityArray:
        if self.is_scalar:
            raise TypeError("Scalar sensitivity value is not subscriptable.")
        val = self.val[key]
        if _is_zero(self.jac):
            return SensitivityArray(val)
        jac = self.jac[key]
        if np.ndim(val) == 0:
            if sps.issparse(jac):
                jac = np.asarray(jac.todense()).ravel()
            return SensitivityArray(val, np.asarray(jac).ravel())
        return SensitivityArray(val, jac)

    def __add__(self, other) -> SensitivityArray:
        b = _cast(other)
        return SensitivityArray(self.val + b.val, _add_jacs(self.jac, b.jac))

    def __radd__(self, other) -> SensitivityArray:
        return self.__add__(other)

    def __sub__(self, other) -> SensitivityArray:
        return self + (-_cast(other))

    def __rsub__(self, other) -> SensitivityArray:
        return -self.__sub__(other)

    def __mul__(self, other) -> SensitivityArray:
        if not isinstance(other, SensitivityArray):
            val = self.val * other
            jac = _scale_rows(self.jac, other)
        else:
            val = self.val * other.val
            jac = _add_jacs(
                _scale_rows(self.jac, other.val), _scale_rows(other.jac, self.val)
            )
        return SensitivityArray(val, jac)

    def __rmul__(self, other) -> SensitivityArray:
        return self.__mul__(other)

    def __pow__(self, other) -> SensitivityArray:
        if not isinstance(other, SensitivityArray):
            val = self.val**other
            jac = _scale_rows(self.jac, other * self.val ** (other - 1))
        else:
            val = self.val**other.val
            jac = _add_jacs(
                _scale_rows(self.jac, other.val * self.val ** (other.val - 1)),
                _scale_rows(other.jac, val * np.log(self.val)),
            )
        return SensitivityArray(val, jac)

    def __rpow__(self, other) -> SensitivityArray:
        val = other**self.val
        jac = _scale_rows(self.jac, val * np.log(other))
        return SensitivityArray(val, jac)

    def __truediv__(self, other) -> SensitivityArray:
        if not isinstance(other, SensitivityArray):
            return self * (1.0 / np.asarray(other, dtype=float))
        return self * other**-1

    def __rtruediv__(self, other) -> SensitivityArray:
        return other * self**-1

    def __neg__(self) -> SensitivityArray:
        return SensitivityArray(-self.val, 0.0 if _is_zero(self.jac) else -self.jac)

    def __rmatmul__(self, other) -> SensitivityArray:
        # other @ self, with other a (dense or sparse) matrix
        if self.is_scalar:
            raise DimensionMismatchError("Matrix product requires a vector value.")
        val = other @ self.val
        if _is_zero(self.jac):
            return SensitivityArray(val)
        jac = self.jac if self.jac.ndim == 2 else self.jac[None, :]
        return SensitivityArray(val, other @ jac)

    def copy(self) -> SensitivityArray:
        """Deep copy of value and Jacobian."""
        val = self.val if self.is_scalar else self.val.copy()
        jac = self.jac if _is_zero(self.jac) else self.jac.copy()
        return SensitivityArray(val, jac)

    def full_jac(self, num_vars: int | None = None) -> np.ndarray:
        """Return the Jacobian as a dense array.

        Parameters:
            num_vars: ``default=None``

                Number of independent variables. Required to expand the Jacobian of
                constants, otherwise ignored.

        """
        if _is_zero(self.jac):
            n = 0 if num_vars is None else num_vars
            if self.is_scalar:
                return np.zeros(n)
            return np.zeros((self.val.shape[0], n))
        if sps.issparse(self.jac):
            return self.jac.toarray()
        return np.asarray(self.jac)


def _cast(variables) -> SensitivityArray:
    """Wrap non-sensitivity values as constants."""
    if isinstance(variables, SensitivityArray):
        return variables
    if np.ndim(variables) == 0:
        return SensitivityArray(float(variables))
    return SensitivityArray(np.asarray(variables, dtype=float))
