"""Exceptions and warnings raised by ChemField.

Configuration errors are raised immediately when a model is built wrongly.
Numerical failures of a solver at a single point are raised as
:class:`ConvergenceError` and are caught and recorded by the field engine, such that a
failing point never aborts the evaluation of the other points.

"""

from __future__ import annotations

from typing import Optional

__all__ = [
    "ChemicalModellingError",
    "DimensionMismatchError",
    "ConvergenceError",
    "UndefinedQuotientWarning",
]


class ChemicalModellingError(ValueError):
    """Error raised when a chemical model is configured inconsistently.

    Examples are invalid partitions, unknown species or elements, reactions with
    mismatching numbers of species and stoichiometries, or modifications of a sealed
    inverse problem.

    """


class DimensionMismatchError(ValueError):
    """Error raised when the dimensions of vectors or matrices do not match the
    dimensions of the chemical system or partition they are used with."""


class ConvergenceError(RuntimeError):
    """Error raised when a numerical solver fails at a single point.

    Parameters:
        message: Description of the failure.
        num_iter: ``default=0``

            Number of iterations performed before the failure.
        residual_norm: ``default=nan``

            Norm of the residual at the last iterate.
        index: ``default=None``

            Index of the field point where the failure happened, if any.

    """

    def __init__(
        self,
        message: str,
        num_iter: int = 0,
        residual_norm: float = float("nan"),
        index: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.num_iter: int = int(num_iter)
        """Number of iterations performed."""
        self.residual_norm: float = float(residual_norm)
        """Residual norm at the last iterate."""
        self.index: Optional[int] = index
        """Field index of the failing point."""


class UndefinedQuotientWarning(RuntimeWarning):
    """Warning emitted when a reaction quotient is undefined.

    This happens when a species with negative stoichiometry has zero or negative
    activity. The affected value is returned as ``nan``.

    """
