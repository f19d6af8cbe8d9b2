"""Module containing the equilibrium solver, computing the composition of a chemical
system at chemical equilibrium by Gibbs energy minimization.

At fixed temperature ``T``, pressure ``P`` and amounts of kinetic and inert species, the
amounts of the equilibrium species :math:`n_e` minimize

.. math::

    \\frac{G}{RT} = \\sum_i n_i \\left(\\frac{\\mu^0_i}{RT} + \\ln a_i\\right)
    \\quad\\text{s.t.}\\quad A_e n_e = b_e,\\quad n_e \\geq 0,

where :math:`A_e` is the formula matrix projected onto the equilibrium elements and
species, and :math:`b_e` are the amounts of equilibrium elements in the equilibrium
species. If equilibrium species are charged, their total charge is conserved in
addition.

The sensitivities of the equilibrium amounts w.r.t. ``T``, ``P``, :math:`b_e` and the
amounts of kinetic species are computed by implicit differentiation of the first-order
optimality conditions.

"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

import numpy as np

import chemfield as cf
from chemfield._core import R_IDEAL_MOL
from chemfield.ad.forward_mode import SensitivityArray, init_sensitivity_arrays
from chemfield.core.partition import Partition
from chemfield.core.state import ChemicalState, EquilibriumSensitivity
from chemfield.core.system import ChemicalSystem
from chemfield.optimization.minimizer import (
    InteriorPointMinimizer,
    Minimizer,
    independent_rows,
)
from chemfield.optimization.optimum_state import OptimumProblem, OptimumState
from chemfield.utils.errors import (
    ChemicalModellingError,
    ConvergenceError,
    DimensionMismatchError,
)

__all__ = ["EquilibriumResult", "EquilibriumSolver", "equilibrate"]

logger = logging.getLogger(__name__)

module_sections = ["equilibrium"]

VANISHING_AMOUNT: float = 1e-200
"""Amount of species ``[mol]`` at which the activity terms of species with vanishing
amounts are evaluated."""


@dataclass
class EquilibriumResult:
    """Result of an equilibrium calculation at a single point."""

    converged: bool = False
    """Flag indicating convergence of the minimizer."""

    num_iter: int = 0
    """Number of iterations of the minimizer."""

    optimum: OptimumState = field(default_factory=OptimumState)
    """The optimum state returned by the minimizer."""


class EquilibriumSolver:
    """Solver for the chemical equilibrium of the equilibrium species of a partition.

    Parameters:
        system: The chemical system.
        partition: ``default=None``

            Partition of the system. By default all species are equilibrium species.
        minimizer: ``default=None``

            A minimizer. Defaults to :class:`InteriorPointMinimizer` with ``params``.
        params: ``default=None``

            Parameters passed to the default minimizer, e.g. ``'tolerance'`` and
            ``'max_iterations'``.

    """

    def __init__(
        self,
        system: ChemicalSystem,
        partition: Optional[Partition] = None,
        minimizer: Optional[Minimizer] = None,
        params: Optional[dict] = None,
    ) -> None:
        self._system = system
        self._partition: Partition
        self.minimizer: Minimizer = (
            InteriorPointMinimizer(params) if minimizer is None else minimizer
        )
        """The minimizer solving the Gibbs energy minimization problem."""
        self.set_partition(Partition(system) if partition is None else partition)

    @property
    def system(self) -> ChemicalSystem:
        return self._system

    @property
    def partition(self) -> Partition:
        return self._partition

    def set_partition(self, partition: Partition) -> None:
        """Replace the partition of the solver.

        Raises:
            ChemicalModellingError: If the partition belongs to another system.

        """
        if partition.system is not self._system:
            raise ChemicalModellingError(
                "Partition belongs to another chemical system."
            )
        self._partition = partition
        self._ie = partition.indices_equilibrium_species
        self._ik = partition.indices_kinetic_species
        self._Ae = partition.equilibrium_formula_matrix()

        # Conservation of charge, if not implied by the element balance
        z = self._system.charges[self._ie]
        self._with_charge = False
        if np.any(z != 0.0):
            A_ext = np.vstack([self._Ae, z])
            rank = independent_rows(A_ext).size
            self._with_charge = rank > independent_rows(self._Ae).size
        self._A = np.vstack([self._Ae, z]) if self._with_charge else self._Ae

    def _properties(
        self, T: float, P: float, n: np.ndarray
    ) -> tuple[np.ndarray, SensitivityArray]:
        """Normalized chemical potentials of all species with derivatives w.r.t.
        ``[T, P, n_e, n_k]``."""
        N = self._system.num_species
        Ne, Nk = self._ie.size, self._ik.size
        num_vars = 2 + Ne + Nk
        T_ad, P_ad, _ = init_sensitivity_arrays([float(T), float(P), np.zeros(Ne + Nk)])
        jac = np.zeros((N, num_vars))
        jac[self._ie, 2 + np.arange(Ne)] = 1.0
        jac[self._ik, 2 + Ne + np.arange(Nk)] = 1.0
        n_ad = SensitivityArray(n, jac)

        with np.errstate(divide="ignore", invalid="ignore"):
            mu0 = self._system.standard_gibbs_energies(T_ad, P_ad)
            ln_a = self._system.ln_activities(T_ad, P_ad, n_ad)
            mu = mu0 / (R_IDEAL_MOL * T_ad) + ln_a
        return n, mu

    def _problem(
        self,
        state: ChemicalState,
        T: float,
        P: float,
        b: np.ndarray,
        active: np.ndarray,
    ) -> OptimumProblem:
        n_fixed = state.n.copy()
        ie = self._ie
        n_fixed[ie] = 0.0
        cols = 2 + active

        def objective(x: np.ndarray) -> tuple[float, np.ndarray, np.ndarray]:
            n = n_fixed.copy()
            n[ie[active]] = x
            _, mu = self._properties(T, P, n)
            with np.errstate(invalid="ignore"):
                f = float(np.sum(np.where(n > 0.0, n * mu.val, 0.0)))
            jac = mu.full_jac()
            return f, mu.val[ie[active]], jac[ie[active]][:, cols]

        return OptimumProblem(objective, self._A[:, active], b, np.zeros(active.size))

    @cf.time_logger(sections=module_sections)
    def solve(
        self,
        state: ChemicalState,
        T: Optional[float] = None,
        P: Optional[float] = None,
        be: Optional[np.ndarray] = None,
    ) -> EquilibriumResult:
        """Equilibrate ``state`` in place.

        The current amounts of the equilibrium species serve as initial guess.
        On failure, ``state`` is not modified.

        Equilibrium species containing an element with zero amount are fixed at zero
        and excluded from the minimization. Their sensitivities w.r.t. that element
        amount are the one-sided limits for a vanishing positive amount.

        Parameters:
            state: The chemical state.
            T: ``default=None``

                Temperature ``[K]``. Defaults to the temperature of ``state``.
            P: ``default=None``

                Pressure ``[Pa]``. Defaults to the pressure of ``state``.
            be: ``default=None``

                Amounts of the equilibrium elements ``[mol]``, in the order of the
                partition. Default to the amounts in the equilibrium species of
                ``state``.

        Raises:
            DimensionMismatchError: If ``be`` has the wrong size.
            ConvergenceError: If the element amounts cannot be attained by the
                equilibrium species, or if the minimizer or the computation of the
                sensitivities fail.

        Returns:
            The result of the minimization.

        """
        if state.system is not self._system:
            raise ChemicalModellingError("State belongs to another chemical system.")
        T = state.T if T is None else float(T)
        P = state.P if P is None else float(P)
        ne0 = state.n[self._ie]
        if be is None:
            be = self._Ae @ ne0
        be = np.asarray(be, dtype=float).reshape(-1)
        if be.size != self._Ae.shape[0]:
            raise DimensionMismatchError(
                f"Element amounts of size {be.size} given, "
                + f"expected {self._Ae.shape[0]}."
            )

        if self._ie.size == 0:
            # nothing to equilibrate
            N, Nk = self._system.num_species, self._ik.size
            dndnk = np.zeros((N, Nk))
            dndnk[self._ik, np.arange(Nk)] = 1.0
            state.set_temperature(T)
            state.set_pressure(P)
            state.sensitivity = EquilibriumSensitivity(
                np.zeros(N), np.zeros(N), np.zeros((N, 0)), dndnk
            )
            return EquilibriumResult(converged=True)

        b = be
        if self._with_charge:
            b = np.concatenate([be, [self._system.charges[self._ie] @ ne0]])

        zero = be == 0.0
        active = np.flatnonzero(~np.any(self._Ae[zero] != 0.0, axis=0))
        unattainable = np.all(self._A[:, active] == 0.0, axis=1) & (b != 0.0)
        if np.any(unattainable):
            raise ConvergenceError(
                "Element amounts cannot be attained by the equilibrium species.",
                0,
                float(np.max(np.abs(b[unattainable]))),
            )

        problem = self._problem(state, T, P, b, active)
        y0 = state.y if state.y.size == b.size else None
        z0 = state.z[active] if state.z.size == self._ie.size else None
        try:
            if active.size == 0:
                optimum = OptimumState(
                    y=np.zeros(b.size), h=-b, A=problem.A, converged=True
                )
            else:
                optimum = self.minimizer.solve(problem, ne0[active], y0, z0)

            n = state.n.copy()
            n[self._ie] = 0.0
            n[self._ie[active]] = optimum.x
            z = np.zeros(self._ie.size)
            z[active] = optimum.z
            sensitivity = self._sensitivity(T, P, n, optimum.y, z, zero)
        except (np.linalg.LinAlgError, ArithmeticError) as err:
            raise ConvergenceError(f"Equilibrium calculation failed: {err}") from err

        state.set_temperature(T)
        state.set_pressure(P)
        state.set_species_amounts(n)
        state.y = optimum.y
        state.z = z
        state.sensitivity = sensitivity

        logger.debug(
            f"Equilibrium at T={T}, P={P} found in {optimum.num_iter} iterations."
        )
        return EquilibriumResult(
            converged=optimum.converged, num_iter=optimum.num_iter, optimum=optimum
        )

    def _vanishing_amounts(
        self, T: float, P: float, n: np.ndarray, y: np.ndarray, zero: np.ndarray
    ) -> np.ndarray:
        """Derivatives of the amounts of the equilibrium species w.r.t. the amounts of
        the elements in ``zero``, for amounts tending to zero from above.

        To first order, an amount :math:`\\varepsilon` of element ``j`` is taken up by
        the species containing no other element of ``zero`` and the least atoms of
        ``j``. Their ratios follow from the optimality conditions
        :math:`\\ln n_i = (A^T y)_i - (\\mu_i - \\ln n_i)`, with the activity terms
        evaluated at a vanishing amount.

        """
        ie = self._ie
        Ne, Ee = ie.size, self._Ae.shape[0]
        d = np.zeros((Ne, Ee))
        Az = self._Ae[zero]
        blocked = np.any(Az != 0.0, axis=0)
        if not np.any(blocked):
            return d

        n_small = n.copy()
        n_small[ie[blocked]] = VANISHING_AMOUNT
        _, mu = self._properties(T, P, n_small)
        ln_w = self._A.T @ y - (mu.val[ie] - np.log(VANISHING_AMOUNT))

        single = np.count_nonzero(Az, axis=0) == 1
        for row, j in enumerate(np.flatnonzero(zero)):
            candidates = blocked & single & (Az[row] > 0.0)
            if not np.any(candidates):
                continue
            m = np.min(Az[row, candidates])
            lead = np.flatnonzero(candidates & (Az[row] == m))
            w = np.exp(ln_w[lead] - np.max(ln_w[lead]))
            d[lead, j] = w / (m * np.sum(w))
        return d

    def _sensitivity(
        self,
        T: float,
        P: float,
        n: np.ndarray,
        y: np.ndarray,
        z: np.ndarray,
        zero: np.ndarray,
    ) -> EquilibriumSensitivity:
        """Implicit differentiation of the optimality conditions of the species not at
        their bounds."""
        N = self._system.num_species
        ie, ik = self._ie, self._ik
        Ne, Nk = ie.size, self._ik.size
        Ee = self._Ae.shape[0]

        _, mu = self._properties(T, P, n)
        jac = mu.full_jac()[ie]
        # rows of elements with zero amount are excluded together with their species
        keep = np.flatnonzero(np.concatenate([~zero, [True]])[: self._A.shape[0]])
        A_kept = self._A[keep]
        m = keep.size

        blocked = np.any(self._Ae[zero] != 0.0, axis=0)
        free = np.flatnonzero(~blocked & (z <= n[ie]))
        nf = free.size
        H = jac[:, 2 : 2 + Ne]

        M = np.zeros((nf + m, nf + m))
        M[:nf, :nf] = H[np.ix_(free, free)]
        M[:nf, nf:] = -A_kept[:, free].T
        M[nf:, :nf] = A_kept[:, free]

        # columns: T, P, be, nk
        rhs = np.zeros((nf + m, 2 + Ee + Nk))
        rhs[:nf, 0] = -jac[free, 0]
        rhs[:nf, 1] = -jac[free, 1]
        kept_elements = keep[keep < Ee]
        rhs[nf + np.arange(kept_elements.size), 2 + kept_elements] = 1.0
        rhs[:nf, 2 + Ee :] = -jac[free][:, 2 + Ne :]

        d_blocked = self._vanishing_amounts(T, P, n, y, zero)
        if np.any(d_blocked):
            rhs[:nf, 2 : 2 + Ee] -= H[free][:, blocked] @ d_blocked[blocked]
            rhs[nf:, 2 : 2 + Ee] -= A_kept[:, blocked] @ d_blocked[blocked]

        sol = np.linalg.lstsq(M, rhs, rcond=None)[0]
        dne = np.zeros((Ne, 2 + Ee + Nk))
        dne[free] = sol[:nf]
        dne[:, 2 : 2 + Ee] += d_blocked
        if not np.all(np.isfinite(dne)):
            raise FloatingPointError("Non-finite equilibrium sensitivities.")

        dn = np.zeros((N, 2 + Ee + Nk))
        dn[ie] = dne
        dn[ik, 2 + Ee + np.arange(Nk)] = 1.0

        return EquilibriumSensitivity(
            dndT=dn[:, 0],
            dndP=dn[:, 1],
            dndb=dn[:, 2 : 2 + Ee],
            dndnk=dn[:, 2 + Ee :],
        )


def equilibrate(
    state: ChemicalState,
    partition: Optional[Partition] = None,
    params: Optional[dict] = None,
) -> EquilibriumResult:
    """Equilibrate ``state`` at its temperature, pressure and element amounts.

    See :class:`EquilibriumSolver`.

    """
    solver = EquilibriumSolver(state.system, partition, params=params)
    return solver.solve(state)
