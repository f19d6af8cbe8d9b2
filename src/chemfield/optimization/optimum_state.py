"""Data structures exchanged with minimizers: the optimization problem and the optimum
state of a solution."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable

import numpy as np

from chemfield.utils.errors import DimensionMismatchError

__all__ = ["OptimumState", "OptimumProblem"]


@dataclass
class OptimumState:
    """Solution of a minimization problem with linear equality constraints and lower
    bounds,

    .. math::

        \\min_x f(x) \\quad \\text{s.t.} \\quad A x = b, \\quad x \\geq l.

    At the optimum, the first-order conditions :math:`g - A^T y - z = 0` hold.

    """

    x: np.ndarray = field(default_factory=lambda: np.zeros(0))
    """Primal variables."""

    y: np.ndarray = field(default_factory=lambda: np.zeros(0))
    """Lagrange multipliers of the equality constraints."""

    z: np.ndarray = field(default_factory=lambda: np.zeros(0))
    """Lagrange multipliers of the bound constraints."""

    f: float = 0.0
    """Objective value."""

    g: np.ndarray = field(default_factory=lambda: np.zeros(0))
    """Objective gradient."""

    H: np.ndarray = field(default_factory=lambda: np.zeros((0, 0)))
    """Objective Hessian."""

    h: np.ndarray = field(default_factory=lambda: np.zeros(0))
    """Residual of the equality constraints, :math:`A x - b`."""

    A: np.ndarray = field(default_factory=lambda: np.zeros((0, 0)))
    """Jacobian of the equality constraints."""

    num_iter: int = 0
    """Number of iterations performed by the minimizer."""

    converged: bool = False
    """Flag indicating if the minimizer converged."""

    def validate(self) -> None:
        """Check the consistency of the dimensions.

        Raises:
            DimensionMismatchError: If any dimension is inconsistent.

        """
        n = self.x.shape[0]
        m = self.y.shape[0]
        shapes = {
            "z": (self.z.shape, (n,)),
            "g": (self.g.shape, (n,)),
            "H": (self.H.shape, (n, n)),
            "h": (self.h.shape, (m,)),
            "A": (self.A.shape, (m, n)),
        }
        for name, (actual, expected) in shapes.items():
            if actual != expected:
                raise DimensionMismatchError(
                    f"Optimum state: {name} has shape {actual}, expected {expected}."
                )

    @property
    def optimality_residual(self) -> np.ndarray:
        """Residual of the first-order optimality conditions."""
        return self.g - self.A.T @ self.y - self.z


@dataclass
class OptimumProblem:
    """A minimization problem with linear equality constraints and lower bounds."""

    objective: Callable[[np.ndarray], tuple[float, np.ndarray, np.ndarray]]
    """Callable returning the value, gradient and Hessian of the objective at ``x``."""

    A: np.ndarray
    """Matrix of the equality constraints ``A x = b``."""

    b: np.ndarray
    """Right-hand side of the equality constraints."""

    lower: np.ndarray
    """Lower bounds of the variables."""

    def __post_init__(self) -> None:
        self.A = np.atleast_2d(np.asarray(self.A, dtype=float))
        self.b = np.asarray(self.b, dtype=float).reshape(-1)
        self.lower = np.asarray(self.lower, dtype=float).reshape(-1)
        if self.A.shape[0] != self.b.shape[0]:
            raise DimensionMismatchError(
                f"Constraint matrix with {self.A.shape[0]} rows and right-hand side of "
                + f"size {self.b.shape[0]}."
            )
        if self.A.shape[1] != self.lower.shape[0]:
            raise DimensionMismatchError(
                f"Constraint matrix with {self.A.shape[1]} columns and bounds of size "
                + f"{self.lower.shape[0]}."
            )

    @property
    def num_variables(self) -> int:
        return self.A.shape[1]

    @property
    def num_constraints(self) -> int:
        return self.A.shape[0]
