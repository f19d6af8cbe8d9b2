"""Module containing the solver for inverse equilibrium problems.

The unknown titrant amounts are found by a damped Newton (Gauss-Newton for
non-square problems) iteration. In each iteration, the state is equilibrated at the
element amounts implied by the current titrant amounts and the residuals of the
constraints are evaluated together with their derivatives.

Each pair of mutually exclusive titrants is represented by a single signed variable
``s``, with titrant amounts ``max(s, 0)`` and ``max(-s, 0)``. Hence at most one titrant
of a pair has a positive amount.

"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np

import chemfield as cf
from chemfield.core.state import ChemicalState
from chemfield.utils.errors import ChemicalModellingError, ConvergenceError

from .inverse_problem import EquilibriumInverseProblem
from .solver import EquilibriumSolver

__all__ = ["InverseResult", "EquilibriumInverseSolver"]

logger = logging.getLogger(__name__)

module_sections = ["equilibrium"]


@dataclass
class InverseResult:
    """Result of the solution of an inverse equilibrium problem."""

    x: np.ndarray
    """Titrant amounts ``[mol]``, in the order of the titrants of the problem."""

    converged: bool
    """Flag indicating convergence."""

    num_iter: int
    """Number of Newton iterations."""

    residual_norm: float
    """Max-norm of the scaled residual at the solution."""


class EquilibriumInverseSolver:
    """Solver for inverse equilibrium problems.

    Parameters:
        problem: The inverse problem.
        solver: ``default=None``

            The equilibrium solver. Defaults to a solver for the system and partition of
            ``problem``.
        params: ``default=None``

            Parameters overriding :attr:`solver_params`.

    Raises:
        ChemicalModellingError: If a titrant is part of more than one mutually exclusive
            pair.

    """

    def __init__(
        self,
        problem: EquilibriumInverseProblem,
        solver: Optional[EquilibriumSolver] = None,
        params: Optional[dict] = None,
    ) -> None:
        self.problem = problem
        self.solver = (
            EquilibriumSolver(problem.system, problem.partition)
            if solver is None
            else solver
        )
        self.solver_params: dict = {
            "tolerance": 1e-8,
            "max_iterations": 50,
            "rho": 0.5,
            "kappa": 1e-4,
            "j_max": 20,
            "scale_floor": 1e-12,
        }
        """Parameters of the Newton iteration.

        - ``'tolerance'``: Tolerance for the max-norm of the scaled residuals. Each
          residual is scaled by the absolute value of its target, bounded from below by
          ``'scale_floor'``.
        - ``'max_iterations'``: Maximal number of iterations.
        - ``'rho'``, ``'kappa'``, ``'j_max'``: Parameters of the Armijo line search.

        """
        if params is not None:
            self.solver_params.update(params)

        titrants = problem.titrants
        self._pairs: list[tuple[int, int]] = []
        paired: set[int] = set()
        for t1, t2 in problem.mutually_exclusive_pairs:
            i1, i2 = titrants.index(t1), titrants.index(t2)
            if i1 in paired or i2 in paired:
                raise ChemicalModellingError(
                    "Titrants can be part of at most one mutually exclusive pair."
                )
            paired.update((i1, i2))
            self._pairs.append((i1, i2))
        self._single: list[int] = [t for t in range(len(titrants)) if t not in paired]

    @property
    def num_variables(self) -> int:
        """Number of unknowns, one per unpaired titrant and one per pair."""
        return len(self._single) + len(self._pairs)

    def titrant_amounts(self, u: Sequence[float]) -> tuple[np.ndarray, np.ndarray]:
        """Titrant amounts and their derivatives w.r.t. the unknowns ``u``.

        The unknowns are ordered with the unpaired titrants first, followed by one
        signed variable per mutually exclusive pair.

        Returns:
            The titrant amounts and the Jacobian of shape
            ``(num_titrants, num_variables)``.

        """
        u = np.asarray(u, dtype=float).reshape(-1)
        x = np.zeros(self.problem.num_titrants)
        dxdu = np.zeros((self.problem.num_titrants, self.num_variables))
        for j, t in enumerate(self._single):
            x[t] = u[j]
            dxdu[t, j] = 1.0
        offset = len(self._single)
        for j, (t1, t2) in enumerate(self._pairs):
            s = u[offset + j]
            if s >= 0.0:
                x[t1] = s
                dxdu[t1, offset + j] = 1.0
            else:
                x[t2] = -s
                dxdu[t2, offset + j] = -1.0
        return x, dxdu

    def _unknowns(self, x: np.ndarray) -> np.ndarray:
        u = np.zeros(self.num_variables)
        for j, t in enumerate(self._single):
            u[j] = x[t]
        offset = len(self._single)
        for j, (t1, t2) in enumerate(self._pairs):
            u[offset + j] = x[t1] - x[t2]
        return u

    def _evaluate(
        self, u: np.ndarray, state: ChemicalState, scale: np.ndarray
    ) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
        x, dxdu = self.titrant_amounts(u)
        be = self.problem.element_amounts(x)
        self.solver.solve(state, be=be)
        residual = self.problem.residual_equilibrium_constraints(x, state)
        return x, residual.val / scale, (residual.ddx @ dxdu) / scale[:, None]

    @cf.time_logger(sections=module_sections)
    def solve(
        self, state: ChemicalState, x0: Optional[Sequence[float]] = None
    ) -> InverseResult:
        """Solve the inverse problem, equilibrating ``state`` in place.

        Parameters:
            state: Chemical state providing temperature, pressure, the amounts of
                non-equilibrium species and the initial guess of the equilibrium
                calculations.
            x0: ``default=None``

                Initial guess of the titrant amounts. Zero by default.

        Raises:
            ConvergenceError: If the equilibrium calculations or the Newton iteration
                fail.

        """
        tol = float(self.solver_params["tolerance"])
        max_iter = int(self.solver_params["max_iterations"])
        rho = float(self.solver_params["rho"])
        kappa = float(self.solver_params["kappa"])
        j_max = int(self.solver_params["j_max"])
        floor = float(self.solver_params["scale_floor"])

        scale = np.array(
            [max(abs(c.value), floor) for c in self.problem.constraints], dtype=float
        )
        if x0 is None:
            x0 = np.zeros(self.problem.num_titrants)
        u = self._unknowns(np.asarray(x0, dtype=float))

        x, r, J = self._evaluate(u, state, scale)
        res = float(np.max(np.abs(r), initial=0.0))
        num_iter = 0
        while res > tol and num_iter < max_iter:
            num_iter += 1
            du = np.linalg.lstsq(J, -r, rcond=None)[0]
            if not np.all(np.isfinite(du)):
                raise ConvergenceError(
                    "Non-finite update in inverse problem.", num_iter, res
                )

            pot = np.sum(r * r) / 2.0
            backup = state.copy()
            for j in range(j_max + 1):
                alpha = rho**j
                trial = backup.copy()
                try:
                    x_j, r_j, J_j = self._evaluate(u + alpha * du, trial, scale)
                except ConvergenceError:
                    continue
                if np.sum(r_j * r_j) / 2.0 <= (1 - 2 * kappa * alpha) * pot:
                    break
            else:
                raise ConvergenceError(
                    "Line search failed in inverse problem.", num_iter, res
                )

            u = u + alpha * du
            x, r, J = x_j, r_j, J_j
            state.assign(trial)
            res = float(np.max(np.abs(r), initial=0.0))
            logger.debug(
                f"Inverse problem iteration {num_iter}: step {alpha:.3e}, "
                + f"residual {res:.3e}"
            )

        converged = res <= tol
        if not converged:
            raise ConvergenceError(
                f"Inverse problem did not converge in {num_iter} iterations.",
                num_iter,
                res,
            )
        logger.info(f"Inverse problem solved in {num_iter} iterations.")
        return InverseResult(
            x=x, converged=converged, num_iter=num_iter, residual_norm=res
        )

