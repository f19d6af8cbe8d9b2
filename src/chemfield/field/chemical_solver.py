"""Module containing the chemical solver, which performs equilibrium and kinetic
calculations at each point of a field.

The points of a field are independent. Each point holds its own chemical state, which
serves as the initial guess of the next calculation at that point. Calculations are
dispatched per point, either sequentially or to a pool of worker threads.

A failure at a point does not abort the calculation at the other points. The state of
the failing point is left unchanged, and the failure is recorded in the returned
:class:`FieldResults`.

Example solver section of chemfield.cfg:

    [solver]
    # 'parallel' or 'linear'
    mode: parallel
    num_workers: 4
    tolerance: 1e-10
    max_iterations: 200

"""

from __future__ import annotations

import logging
import os
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Optional, Sequence, Union

import numpy as np

import chemfield as cf
from chemfield.ad import functions as af
from chemfield.ad.forward_mode import SensitivityArray
from chemfield.core.partition import Partition
from chemfield.core.reaction import ReactionSystem
from chemfield.core.state import ChemicalState
from chemfield.core.system import ChemicalSystem
from chemfield.equilibrium.solver import EquilibriumSolver
from chemfield.kinetics.solver import KineticsIntegrator, KineticSolver
from chemfield.optimization.minimizer import Minimizer
from chemfield.utils.array_operations import as_index_array
from chemfield.utils.errors import (
    ChemicalModellingError,
    ConvergenceError,
    DimensionMismatchError,
)

from .chemical_field import ChemicalField

__all__ = ["PointFailure", "FieldResults", "ChemicalSolver"]

logger = logging.getLogger(__name__)

module_sections = ["field"]


@dataclass
class PointFailure:
    """Diagnostics of a failed calculation at a field point."""

    index: int
    """Index of the field point."""

    message: str
    """Description of the failure."""

    num_iter: int
    """Number of iterations performed before the failure."""

    residual_norm: float
    """Residual norm at the last iterate."""


@dataclass
class FieldResults:
    """Statistics of a calculation over all field points.

    Exit codes per point are 0 for success, 1 if the maximal number of iterations was
    reached, and 2 for other failures.

    """

    exitcode: np.ndarray
    """Exit code per point, ``shape=(size,)``."""

    num_iter: np.ndarray
    """Number of iterations per point, ``shape=(size,)``."""

    failures: list[PointFailure] = field(default_factory=list)
    """Diagnostics of the failing points, ordered by index."""

    @property
    def converged(self) -> bool:
        """True if the calculation succeeded at all points."""
        return len(self.failures) == 0


def _default_params() -> dict:
    """Solver parameters, with defaults overridden by the ``solver`` section of
    chemfield.cfg."""
    config = cf.config.get("solver", {})
    params: dict = {
        "mode": config.get("mode", "parallel").strip().lower(),
        "num_workers": int(config.get("num_workers", os.cpu_count() or 1)),
    }
    if "tolerance" in config:
        params["tolerance"] = float(config["tolerance"])
    if "max_iterations" in config:
        params["max_iterations"] = int(config["max_iterations"])
    return params


class ChemicalSolver:
    """Solver for the chemical states at the points of a field.

    Parameters:
        system: The chemical system, or a reaction system if kinetic calculations are
            to be performed.
        size: Number of field points.
        params: ``default=None``

            Parameters overriding :attr:`solver_params`. Entries other than ``'mode'``
            and ``'num_workers'`` are passed to the default minimizer.
        minimizer: ``default=None``

            Minimizer of the equilibrium calculations.
        integrator: ``default=None``

            Integrator of the kinetic rates.

    Raises:
        ValueError: If ``size`` is not positive.

    """

    def __init__(
        self,
        system: Union[ChemicalSystem, ReactionSystem],
        size: int,
        params: Optional[dict] = None,
        minimizer: Optional[Minimizer] = None,
        integrator: Optional[KineticsIntegrator] = None,
    ) -> None:
        if int(size) <= 0:
            raise ValueError("The size of the field must be positive.")

        self._reactions: Optional[ReactionSystem] = None
        if isinstance(system, ReactionSystem):
            self._reactions = system
            system = system.system
        self._system: ChemicalSystem = system
        self._size = int(size)

        self.solver_params: dict = _default_params()
        """Parameters of the chemical solver.

        - ``'mode'``: ``'parallel'`` to dispatch the points to a thread pool, or
          ``'linear'`` to process them sequentially.
        - ``'num_workers'``: Number of worker threads. Defaults to the number of cores.

        Other entries, like ``'tolerance'`` and ``'max_iterations'``, are passed to the
        default minimizer.

        """
        if params is not None:
            self.solver_params.update(params)
        if self.solver_params["mode"] not in ("parallel", "linear"):
            raise ValueError(f"Unknown mode '{self.solver_params['mode']}'.")

        minimizer_params = {
            k: v
            for k, v in self.solver_params.items()
            if k not in ("mode", "num_workers")
        }
        self._partition = Partition(system)
        self._equilibrium_solver = EquilibriumSolver(
            system, self._partition, minimizer, params=minimizer_params
        )
        self._integrator = integrator
        self._kinetic_solver: Optional[KineticSolver] = None

        self._states: list[ChemicalState] = [
            ChemicalState(system) for _ in range(self._size)
        ]

        self.last_equilibrate_stats: Optional[FieldResults] = None
        """Statistics of the last call to :meth:`equilibrate`."""

        self.last_react_stats: Optional[FieldResults] = None
        """Statistics of the last call to :meth:`react`."""

    def __repr__(self) -> str:
        return (
            f"ChemicalSolver of size {self._size} with {self._system.num_species} "
            + f"species in {self._system.num_phases} phases."
        )

    @property
    def system(self) -> ChemicalSystem:
        return self._system

    @property
    def size(self) -> int:
        """Number of field points."""
        return self._size

    @property
    def partition(self) -> Partition:
        return self._partition

    def set_partition(self, partition: Partition) -> None:
        """Replace the partition used at all points.

        Raises:
            ChemicalModellingError: If the partition belongs to another system.

        """
        self._equilibrium_solver.set_partition(partition)
        self._partition = partition
        if self._kinetic_solver is not None:
            self._kinetic_solver.set_partition(partition)

    # ------ States

    def set_state(
        self, state: ChemicalState, indices: Optional[Sequence[int]] = None
    ) -> None:
        """Set the state at field points to copies of ``state``.

        Parameters:
            state: The chemical state.
            indices: ``default=None``

                Indices of the field points. All points by default. Other points are
                left unchanged.

        Raises:
            ChemicalModellingError: If ``state`` belongs to another system.
            DimensionMismatchError: If an index is out of range or repeated.

        """
        if state.system is not self._system:
            raise ChemicalModellingError("State belongs to another chemical system.")
        if indices is None:
            idx = np.arange(self._size)
        else:
            try:
                idx = as_index_array(indices, self._size)
            except ValueError as err:
                raise DimensionMismatchError(str(err)) from err
        for i in idx:
            self._states[i] = state.copy()

    def state(self, index: int) -> ChemicalState:
        """The chemical state at field point ``index``."""
        if not 0 <= index < self._size:
            raise DimensionMismatchError(
                f"Field index {index} out of range [0, {self._size})."
            )
        return self._states[index]

    @property
    def states(self) -> tuple[ChemicalState, ...]:
        """Chemical states of all field points."""
        return tuple(self._states)

    # ------ Field-wide calculations

    def _field_values(self, values, name: str) -> np.ndarray:
        try:
            return np.broadcast_to(np.asarray(values, dtype=float), (self._size,))
        except ValueError as err:
            raise DimensionMismatchError(
                f"Values of {name} of shape {np.shape(values)} do not fit a field of "
                + f"size {self._size}."
            ) from err

    def _max_iterations(self, minimizer) -> Optional[int]:
        params = getattr(minimizer, "solver_params", None)
        if params is None or "max_iterations" not in params:
            return None
        return int(params["max_iterations"])

    def _dispatch(
        self, task: Callable[[int], int], max_iterations: Optional[int]
    ) -> FieldResults:
        """Run ``task`` at all points, collecting iteration counts and failures."""

        def run(i: int):
            try:
                return task(i), None
            except ConvergenceError as err:
                err.index = i
                return err.num_iter, err

        if self.solver_params["mode"] == "parallel" and self._size > 1:
            num_workers = int(self.solver_params["num_workers"])
            num_workers = max(1, min(num_workers, self._size))
            with ThreadPoolExecutor(max_workers=num_workers) as executor:
                outcomes = list(executor.map(run, range(self._size)))
        else:
            outcomes = [run(i) for i in range(self._size)]

        exitcode = np.zeros(self._size, dtype=int)
        num_iter = np.zeros(self._size, dtype=int)
        failures: list[PointFailure] = []
        for i, (iterations, err) in enumerate(outcomes):
            num_iter[i] = iterations
            if err is None:
                continue
            if max_iterations is not None and err.num_iter >= max_iterations:
                exitcode[i] = 1
            else:
                exitcode[i] = 2
            failures.append(
                PointFailure(
                    index=i,
                    message=str(err),
                    num_iter=err.num_iter,
                    residual_norm=err.residual_norm,
                )
            )
            logger.warning(f"Calculation failed at field point {i}: {err}")
        return FieldResults(exitcode=exitcode, num_iter=num_iter, failures=failures)

    @cf.time_logger(sections=module_sections)
    def equilibrate(self, T, P, be) -> FieldResults:
        """Equilibrate the states at all field points.

        The current state of each point is the initial guess. Failing points keep their
        previous state.

        Parameters:
            T: Temperatures ``[K]``, a scalar or one value per point.
            P: Pressures ``[Pa]``, a scalar or one value per point.
            be: Amounts of equilibrium elements ``[mol]``, of shape
                ``(size, num_equilibrium_elements)`` or flattened row by row.

        Raises:
            DimensionMismatchError: If the arguments do not fit the field size or the
                partition.

        Returns:
            Exit codes, iteration counts and failures per point.

        """
        T = self._field_values(T, "temperature")
        P = self._field_values(P, "pressure")
        Ee = self._partition.num_equilibrium_elements
        be = np.asarray(be, dtype=float)
        if be.ndim == 1 and be.size == self._size * Ee:
            be = be.reshape(self._size, Ee)
        if be.shape != (self._size, Ee):
            raise DimensionMismatchError(
                f"Element amounts of shape {be.shape} given, "
                + f"expected {(self._size, Ee)}."
            )

        solver = self._equilibrium_solver

        def task(i: int) -> int:
            trial = self._states[i].copy()
            result = solver.solve(trial, T[i], P[i], be[i])
            self._states[i].assign(trial)
            return result.num_iter

        results = self._dispatch(task, self._max_iterations(solver.minimizer))
        self.last_equilibrate_stats = results
        logger.info(
            f"Equilibrated {self._size - len(results.failures)} of {self._size} "
            + "field points."
        )
        return results

    def _get_kinetic_solver(self) -> KineticSolver:
        if self._reactions is None:
            raise ChemicalModellingError(
                "Kinetic calculations require a reaction system."
            )
        if self._kinetic_solver is None:
            self._kinetic_solver = KineticSolver(
                self._reactions,
                self._partition,
                integrator=self._integrator,
                equilibrium_solver=self._equilibrium_solver,
            )
        return self._kinetic_solver

    @cf.time_logger(sections=module_sections)
    def react(self, t: float, dt: float) -> FieldResults:
        """Advance the kinetic species at all field points from ``t`` to ``t + dt``.

        The states are required to be equilibrated. Failing points keep their previous
        state.

        Raises:
            ChemicalModellingError: If the solver was not built with a reaction system,
                or if a reaction has no rate function.

        Returns:
            Exit codes, iteration counts of the final equilibration and failures per
            point.

        """
        kinetic_solver = self._get_kinetic_solver()

        def task(i: int) -> int:
            trial = self._states[i].copy()
            result = kinetic_solver.step(trial, t, dt)
            self._states[i].assign(trial)
            return result.num_iter

        results = self._dispatch(
            task, self._max_iterations(self._equilibrium_solver.minimizer)
        )
        self.last_react_stats = results
        logger.info(
            f"Reacted {self._size - len(results.failures)} of {self._size} field "
            + f"points from t={t} with dt={dt}."
        )
        return results

    # ------ Derived fields

    def _index_phase(self, phase: Union[int, str], fluid: bool) -> int:
        """Index in the system of a phase given by name, or by index among the fluid
        phases."""
        fluid_phases = self._system.indices_fluid_phases()
        if isinstance(phase, str):
            k = self._system.index_phase(phase)
            if fluid and k not in fluid_phases:
                raise ChemicalModellingError(f"Phase '{phase}' is not a fluid phase.")
            return k
        if not 0 <= phase < fluid_phases.size:
            raise DimensionMismatchError(
                f"Fluid phase index {phase} out of range [0, {fluid_phases.size})."
            )
        return int(fluid_phases[phase])

    def _variables(self, i: int, with_diff: bool):
        """Temperature, pressure and species amounts at point ``i``, with derivatives
        w.r.t. ``[T, P, b_e, n_k]`` if ``with_diff``."""
        state = self._states[i]
        if not with_diff:
            return (
                SensitivityArray(state.T),
                SensitivityArray(state.P),
                SensitivityArray(state.n.copy()),
            )

        N = self._system.num_species
        Ee = self._partition.num_equilibrium_elements
        Nk = self._partition.num_kinetic_species
        s = state.sensitivity
        if s is None:
            raise ChemicalModellingError(
                f"State at field point {i} has no sensitivities. Equilibrate first."
            )
        if s.dndb.shape != (N, Ee) or s.dndnk.shape != (N, Nk):
            raise DimensionMismatchError(
                f"Sensitivities at field point {i} do not match the partition."
            )
        num_vars = 2 + Ee + Nk
        dT = np.zeros(num_vars)
        dT[0] = 1.0
        dP = np.zeros(num_vars)
        dP[1] = 1.0
        dn = np.hstack([s.dndT[:, None], s.dndP[:, None], s.dndb, s.dndnk])
        return (
            SensitivityArray(state.T, dT),
            SensitivityArray(state.P, dP),
            SensitivityArray(state.n.copy(), dn),
        )

    def _evaluate(
        self,
        func: Callable[..., SensitivityArray],
        with_diff: bool,
    ) -> ChemicalField:
        """Evaluate a scalar property at all points.

        Values are computed by the same operations with and without derivatives.

        """
        Ee = self._partition.num_equilibrium_elements
        Nk = self._partition.num_kinetic_species
        result = ChemicalField.zeros(self._size, Ee, Nk, with_diff=with_diff)
        for i in range(self._size):
            T, P, n = self._variables(i, with_diff)
            with np.errstate(divide="ignore", invalid="ignore"):
                value = func(T, P, n)
            result.val[i] = value.val
            if with_diff:
                jac = value.full_jac(2 + Ee + Nk)
                result.ddt[i] = jac[0]
                result.ddp[i] = jac[1]
                result.ddbe[i] = jac[2 : 2 + Ee]
                result.ddnk[i] = jac[2 + Ee :]
        return result

    def _porosity(self, T, P, n):
        volumes = self._system.phase_volumes(T, P, n)
        fluid = af.sum(volumes[self._system.indices_fluid_phases()])
        solid = af.sum(volumes[self._system.indices_solid_phases()])
        return fluid / (fluid + solid)

    def _saturation(self, phase: int):
        def func(T, P, n):
            volumes = self._system.phase_volumes(T, P, n)
            fluid = af.sum(volumes[self._system.indices_fluid_phases()])
            return volumes[phase] / fluid

        return func

    def _density(self, phase: int):
        def func(T, P, n):
            mass = self._system.phase_masses(n)[phase]
            volume = self._system.phase_volumes(T, P, n)[phase]
            return mass / volume

        return func

    @cf.time_logger(sections=module_sections)
    def porosity(self) -> ChemicalField:
        """Volume of the fluid phases over the total volume, per point."""
        return self._evaluate(self._porosity, with_diff=False)

    @cf.time_logger(sections=module_sections)
    def porosity_with_diff(self) -> ChemicalField:
        """:meth:`porosity` with derivatives.

        Raises:
            ChemicalModellingError: If a state has not been equilibrated.

        """
        return self._evaluate(self._porosity, with_diff=True)

    @cf.time_logger(sections=module_sections)
    def saturation(self, phase: Union[int, str]) -> ChemicalField:
        """Volume of a fluid phase over the volume of all fluid phases, per point.

        Parameters:
            phase: Name of the phase, or index among the fluid phases.

        """
        return self._evaluate(
            self._saturation(self._index_phase(phase, fluid=True)), with_diff=False
        )

    @cf.time_logger(sections=module_sections)
    def saturation_with_diff(self, phase: Union[int, str]) -> ChemicalField:
        """:meth:`saturation` with derivatives."""
        return self._evaluate(
            self._saturation(self._index_phase(phase, fluid=True)), with_diff=True
        )

    @cf.time_logger(sections=module_sections)
    def density(self, phase: Union[int, str]) -> ChemicalField:
        """Mass density ``[kg / m^3]`` of a phase, per point.

        Parameters:
            phase: Name of the phase, or index among the fluid phases.

        """
        return self._evaluate(
            self._density(self._index_phase(phase, fluid=False)), with_diff=False
        )

    @cf.time_logger(sections=module_sections)
    def density_with_diff(self, phase: Union[int, str]) -> ChemicalField:
        """:meth:`density` with derivatives."""
        return self._evaluate(
            self._density(self._index_phase(phase, fluid=False)), with_diff=True
        )
