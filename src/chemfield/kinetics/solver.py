"""Module containing the kinetic step solver.

A kinetic step advances the amounts of the kinetic species over a time interval
``[t, t + dt]``. The amounts of the equilibrium species are held at their values at
``t`` while the kinetic rates are integrated (operator splitting). The integrated
unknowns are the amounts of the kinetic species :math:`n_k` and the amounts of the
equilibrium elements :math:`b_e`,

.. math::

    \\frac{d n_k}{dt} = (S^T r)_k,\\quad \\frac{d b_e}{dt} = A_e (S^T r)_e,

where :math:`S` is the stoichiometric matrix and :math:`r` the vector of reaction
rates. At the end of the step, the equilibrium species are equilibrated at the new
element amounts.

"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional, Protocol

import numpy as np
from scipy.integrate import solve_ivp

import chemfield as cf
from chemfield.core.partition import Partition
from chemfield.core.reaction import ReactionSystem
from chemfield.core.state import ChemicalState
from chemfield.equilibrium.solver import EquilibriumSolver
from chemfield.utils.errors import ChemicalModellingError, ConvergenceError

__all__ = ["KineticsIntegrator", "ScipyIntegrator", "KineticResult", "KineticSolver"]

logger = logging.getLogger(__name__)

module_sections = ["kinetics"]


class KineticsIntegrator(Protocol):
    """Interface for integrators of the kinetic rate equations."""

    def integrate(
        self,
        rhs: Callable[[float, np.ndarray], np.ndarray],
        jac: Callable[[float, np.ndarray], np.ndarray],
        y0: np.ndarray,
        t: float,
        dt: float,
    ) -> tuple[np.ndarray, int]:
        """Integrate ``dy/dt = rhs(t, y)`` from ``t`` to ``t + dt``.

        Must raise :class:`~chemfield.utils.errors.ConvergenceError` on failure.

        Returns:
            The solution at ``t + dt`` and the number of time steps taken.

        """
        ...


class ScipyIntegrator:
    """Integrator using :func:`scipy.integrate.solve_ivp`.

    Parameters:
        params: ``default=None``

            Dictionary of parameters overriding :attr:`solver_params`.

    """

    def __init__(self, params: Optional[dict] = None) -> None:
        self.solver_params: dict = {
            "method": "Radau",
            "rtol": 1e-6,
            "atol": 1e-12,
        }
        """Parameters passed to :func:`~scipy.integrate.solve_ivp`. Implicit methods
        (``'Radau'``, ``'BDF'``, ``'LSODA'``) make use of the Jacobian."""
        if params is not None:
            self.solver_params.update(params)

    def integrate(
        self,
        rhs: Callable[[float, np.ndarray], np.ndarray],
        jac: Callable[[float, np.ndarray], np.ndarray],
        y0: np.ndarray,
        t: float,
        dt: float,
    ) -> tuple[np.ndarray, int]:
        method = self.solver_params["method"]
        kwargs = {}
        if method in ("Radau", "BDF", "LSODA"):
            kwargs["jac"] = jac
        solution = solve_ivp(
            rhs,
            (t, t + dt),
            y0,
            method=method,
            rtol=float(self.solver_params["rtol"]),
            atol=float(self.solver_params["atol"]),
            **kwargs,
        )
        num_steps = solution.t.size - 1
        if not solution.success:
            logger.warning(f"Integration of kinetic rates failed: {solution.message}")
            raise ConvergenceError(
                f"Integration of kinetic rates failed: {solution.message}", num_steps
            )
        return solution.y[:, -1], num_steps


@dataclass
class KineticResult:
    """Result of a kinetic step at a single point."""

    converged: bool
    """Flag indicating success of the integration and of the equilibration."""

    num_steps: int
    """Number of time steps of the integrator."""

    num_iter: int
    """Number of iterations of the equilibrium calculation at the end of the step."""


class KineticSolver:
    """Solver advancing a chemical state by kinetically controlled reactions.

    Parameters:
        reactions: The reaction system. All reactions require rate functions.
        partition: ``default=None``

            Partition of the system. Defaults to a partition with the species of all
            reactions which are not in fluid phases as kinetic species.
        integrator: ``default=None``

            The integrator. Defaults to :class:`ScipyIntegrator`.
        equilibrium_solver: ``default=None``

            Solver for the equilibration at the end of a step. Defaults to a solver for
            the partition.

    Raises:
        ChemicalModellingError: If a reaction has no rate, or if the equilibrium solver
            does not share the partition.

    """

    def __init__(
        self,
        reactions: ReactionSystem,
        partition: Optional[Partition] = None,
        integrator: Optional[KineticsIntegrator] = None,
        equilibrium_solver: Optional[EquilibriumSolver] = None,
    ) -> None:
        for reaction in reactions.reactions:
            if not reaction.has_rate:
                raise ChemicalModellingError(
                    f"Reaction '{reaction.name}' has no rate function."
                )
        self.reactions = reactions
        system = reactions.system

        if partition is None:
            if equilibrium_solver is not None:
                partition = equilibrium_solver.partition
            else:
                partition = Partition.from_kinetic_species(
                    system, _default_kinetic_species(reactions)
                )
        self.integrator: KineticsIntegrator = (
            ScipyIntegrator() if integrator is None else integrator
        )
        """The integrator of the rate equations."""
        if equilibrium_solver is None:
            equilibrium_solver = EquilibriumSolver(system, partition)
        elif equilibrium_solver.partition is not partition:
            raise ChemicalModellingError(
                "Equilibrium solver and kinetic solver must share the partition."
            )
        self.equilibrium_solver: EquilibriumSolver = equilibrium_solver
        """The solver equilibrating the state at the end of each step."""
        self._set_partition(partition)

    @property
    def partition(self) -> Partition:
        return self._partition

    def set_partition(self, partition: Partition) -> None:
        """Replace the partition of the kinetic and the equilibrium solver."""
        self.equilibrium_solver.set_partition(partition)
        self._set_partition(partition)

    def _set_partition(self, partition: Partition) -> None:
        self._partition = partition
        self._ie = partition.indices_equilibrium_species
        self._ik = partition.indices_kinetic_species
        self._Ae = partition.equilibrium_formula_matrix()
        # Stoichiometric matrix transposed, species x reactions
        self._St = self.reactions.stoichiometric_matrix.T

    def _split(self, state: ChemicalState, T: float, P: float):
        """Right-hand side and Jacobian of the rate equations with the equilibrium
        species frozen at their amounts in ``state``."""
        n_frozen = state.n.copy()
        ie, ik = self._ie, self._ik
        Nk = ik.size
        St, Ae = self._St, self._Ae

        def amounts(y: np.ndarray) -> np.ndarray:
            n = n_frozen.copy()
            n[ik] = np.maximum(y[:Nk], 0.0)
            return n

        def rhs(t: float, y: np.ndarray) -> np.ndarray:
            with np.errstate(divide="ignore", invalid="ignore"):
                r = self.reactions.rates(T, P, amounts(y))
            dn = St @ r.val
            return np.concatenate([dn[ik], Ae @ dn[ie]])

        def jac(t: float, y: np.ndarray) -> np.ndarray:
            with np.errstate(divide="ignore", invalid="ignore"):
                r = self.reactions.rates(T, P, amounts(y))
            dndn = St @ r.full_jac(n_frozen.size)
            J = np.zeros((y.size, y.size))
            J[:Nk, :Nk] = dndn[np.ix_(ik, ik)]
            J[Nk:, :Nk] = Ae @ dndn[np.ix_(ie, ik)]
            return J

        return rhs, jac

    @cf.time_logger(sections=module_sections)
    def step(self, state: ChemicalState, t: float, dt: float) -> KineticResult:
        """Advance ``state`` in place from ``t`` to ``t + dt``.

        On failure, ``state`` is not modified.

        Parameters:
            state: The chemical state, equilibrated w.r.t. the partition.
            t: Start time ``[s]``.
            dt: Time step size ``[s]``.

        Raises:
            ValueError: If ``dt`` is negative.
            ConvergenceError: If the integration or the equilibration fail.

        """
        if dt < 0.0:
            raise ValueError("Time step size must be non-negative.")
        T, P = state.T, state.P
        ie, ik = self._ie, self._ik
        y0 = np.concatenate([state.n[ik], self._Ae @ state.n[ie]])

        if dt == 0.0 or self.reactions.num_reactions == 0:
            y, num_steps = y0, 0
        else:
            rhs, jac = self._split(state, T, P)
            try:
                y, num_steps = self.integrator.integrate(rhs, jac, y0, t, dt)
            except (np.linalg.LinAlgError, ArithmeticError) as err:
                raise ConvergenceError(
                    f"Integration of kinetic rates failed: {err}"
                ) from err
            if not np.all(np.isfinite(y)):
                raise ConvergenceError("Non-finite amounts after kinetic step.")

        trial = state.copy()
        n = trial.n.copy()
        n[ik] = np.maximum(y[: ik.size], 0.0)
        trial.set_species_amounts(n)
        result = self.equilibrium_solver.solve(trial, be=y[ik.size :])
        state.assign(trial)

        logger.debug(
            f"Kinetic step from t={t} with dt={dt}: {num_steps} integrator steps."
        )
        return KineticResult(
            converged=result.converged, num_steps=num_steps, num_iter=result.num_iter
        )


def _default_kinetic_species(reactions: ReactionSystem) -> list[int]:
    system = reactions.system
    solid = set()
    for k in system.indices_solid_phases():
        solid.update(system.indices_species_in_phase(int(k)).tolist())
    kinetic = set()
    for reaction in reactions.reactions:
        kinetic.update(int(i) for i in reaction.indices if int(i) in solid)
    return sorted(kinetic)
