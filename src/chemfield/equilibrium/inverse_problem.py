"""Module containing the definition of inverse equilibrium problems.

In an inverse equilibrium problem, some properties of the equilibrium state are
prescribed (species activities or amounts, phase amounts or volumes), and the amounts
of titrants added to an initial composition are unknown. The amounts of equilibrium
elements for titrant amounts ``x`` are

.. math::

    b_e(x) = b_0 + C x,

with :math:`C` the formula matrix of the titrants. The residuals of the constraints at
an equilibrium state are ``measured - target``.

The problem is built in a first stage, and sealed on the first evaluation of residuals.
Afterwards, any modification raises an error.

"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Sequence, Union

import numpy as np

from chemfield.ad.forward_mode import SensitivityArray, init_sensitivity_arrays
from chemfield.core.partition import Partition
from chemfield.core.phase import Phase
from chemfield.core.species import ChemicalsDatabase, Species
from chemfield.core.state import ChemicalState
from chemfield.core.system import ChemicalSystem
from chemfield.thermo.interfaces import CompoundDatabase
from chemfield.utils.errors import ChemicalModellingError, DimensionMismatchError

__all__ = [
    "ConstraintType",
    "EquilibriumConstraint",
    "ResidualEquilibriumConstraints",
    "EquilibriumInverseProblem",
]

logger = logging.getLogger(__name__)


class ConstraintType(Enum):
    """Types of constraints of an inverse equilibrium problem."""

    species_activity = "activity"
    species_amount = "amount"
    phase_amount = "phase_amount"
    phase_volume = "phase_volume"


@dataclass(frozen=True)
class EquilibriumConstraint:
    """A prescribed value of a property of the equilibrium state."""

    constraint_type: ConstraintType
    """Type of the constraint."""

    index: int
    """Index of the species or phase in the chemical system."""

    value: float
    """Target value."""

    name: str = ""
    """Name of the species or phase."""


@dataclass
class ResidualEquilibriumConstraints:
    """Residuals of the constraints of an inverse equilibrium problem and their
    derivatives."""

    val: np.ndarray = field(default_factory=lambda: np.zeros(0))
    """Residuals ``measured - target``, ``shape=(num_constraints,)``."""

    ddx: np.ndarray = field(default_factory=lambda: np.zeros((0, 0)))
    """Derivatives w.r.t. the titrant amounts,
    ``shape=(num_constraints, num_titrants)``."""

    ddn: np.ndarray = field(default_factory=lambda: np.zeros((0, 0)))
    """Derivatives w.r.t. the species amounts, ``shape=(num_constraints,
    num_species)``."""


class EquilibriumInverseProblem:
    """Definition of an inverse equilibrium problem.

    Parameters:
        system: The chemical system.
        partition: ``default=None``

            Partition of the system. By default all species are equilibrium species.
        database: ``default=None``

            Compound database to resolve titrant names which are not species of the
            system. Defaults to :class:`~chemfield.core.species.ChemicalsDatabase`.

    """

    def __init__(
        self,
        system: ChemicalSystem,
        partition: Optional[Partition] = None,
        database: Optional[CompoundDatabase] = None,
    ) -> None:
        self._system = system
        self._partition = Partition(system) if partition is None else partition
        if self._partition.system is not system:
            raise ChemicalModellingError(
                "Partition belongs to another chemical system."
            )
        self._database = database

        self._constraints: list[EquilibriumConstraint] = []
        self._titrants: dict[str, dict[str, float]] = {}
        self._exclusive: list[frozenset[str]] = []
        self._b0: Optional[np.ndarray] = None
        self._sealed: bool = False

        ie = self._partition.indices_equilibrium_elements
        self._elements = [system.elements[j] for j in ie]

    @property
    def system(self) -> ChemicalSystem:
        return self._system

    @property
    def partition(self) -> Partition:
        return self._partition

    @property
    def is_sealed(self) -> bool:
        """True once the problem is used for the evaluation of residuals."""
        return self._sealed

    def seal(self) -> None:
        """Finish the definition of the problem. Further modifications raise an
        error."""
        self._sealed = True

    def _check_not_sealed(self) -> None:
        if self._sealed:
            raise ChemicalModellingError(
                "Inverse problem cannot be modified after residuals were evaluated."
            )

    def _index_phase(self, phase: Union[int, str]) -> int:
        if isinstance(phase, str):
            return self._system.index_phase(phase)
        if not 0 <= phase < self._system.num_phases:
            raise ChemicalModellingError(f"Phase index {phase} out of range.")
        return int(phase)

    def _index_species(self, species: Union[int, str]) -> int:
        if isinstance(species, str):
            return self._system.index_species(species)
        if not 0 <= species < self._system.num_species:
            raise ChemicalModellingError(f"Species index {species} out of range.")
        return int(species)

    def _add_constraint(
        self, constraint_type: ConstraintType, index: int, value: float, name: str
    ) -> None:
        self._check_not_sealed()
        self._constraints.append(
            EquilibriumConstraint(constraint_type, index, float(value), name)
        )

    def add_species_activity_constraint(
        self, species: Union[int, str], value: float
    ) -> None:
        """Prescribe the activity of a species at equilibrium."""
        i = self._index_species(species)
        name = self._system.species[i].name
        self._add_constraint(ConstraintType.species_activity, i, value, name)

    def add_species_amount_constraint(
        self, species: Union[int, str], value: float
    ) -> None:
        """Prescribe the amount ``[mol]`` of a species at equilibrium."""
        i = self._index_species(species)
        name = self._system.species[i].name
        self._add_constraint(ConstraintType.species_amount, i, value, name)

    def add_phase_amount_constraint(self, phase: Union[int, str], value: float) -> None:
        """Prescribe the total amount ``[mol]`` of species in a phase at
        equilibrium."""
        k = self._index_phase(phase)
        name = self._system.phases[k].name
        self._add_constraint(ConstraintType.phase_amount, k, value, name)

    def add_phase_volume_constraint(self, phase: Union[int, str], value: float) -> None:
        """Prescribe the volume ``[m^3]`` of a phase at equilibrium."""
        k = self._index_phase(phase)
        name = self._system.phases[k].name
        self._add_constraint(ConstraintType.phase_volume, k, value, name)

    def set_initial_element_amounts(self, b0: Sequence[float]) -> None:
        """Set the amounts ``[mol]`` of the equilibrium elements before the addition
        of titrants.

        Raises:
            DimensionMismatchError: If ``b0`` does not match the number of equilibrium
                elements.

        """
        self._check_not_sealed()
        b0 = np.array(b0, dtype=float).reshape(-1)
        if b0.size != len(self._elements):
            raise DimensionMismatchError(
                f"Initial element amounts of size {b0.size}, expected "
                + f"{len(self._elements)}."
            )
        self._b0 = b0

    def initial_element_amounts(self) -> np.ndarray:
        """Amounts of equilibrium elements before the addition of titrants.

        Raises:
            ChemicalModellingError: If they were not set.

        """
        if self._b0 is None:
            raise ChemicalModellingError("Initial element amounts not set.")
        return self._b0.copy()

    def add_titrant(
        self,
        titrant: Union[str, Species],
        formula: Optional[dict[str, float]] = None,
    ) -> None:
        """Register a titrant.

        Parameters:
            titrant: Name of the titrant or a species. Without ``formula``, names are
                resolved in the chemical system first, then in the compound database.
            formula: ``default=None``

                Elemental formula of the titrant.

        Raises:
            ChemicalModellingError: If the titrant exists already, its name cannot be
                resolved, or its formula contains elements which are not equilibrium
                elements.

        """
        self._check_not_sealed()
        if isinstance(titrant, Species):
            name = titrant.name
            if formula is None:
                formula = dict(titrant.formula)
        else:
            name = titrant
            if formula is None:
                if self._system.contains_species(name):
                    species = self._system.species[self._system.index_species(name)]
                    formula = dict(species.formula)
                else:
                    if self._database is None:
                        self._database = ChemicalsDatabase()
                    formula = self._database.formula(name)

        if name in self._titrants:
            raise ChemicalModellingError(f"Titrant '{name}' already registered.")
        unknown = [e for e in formula if e not in self._elements]
        if unknown:
            raise ChemicalModellingError(
                f"Titrant '{name}' contains elements {unknown} which are not "
                + "equilibrium elements."
            )
        self._titrants[name] = {e: float(v) for e, v in formula.items()}
        logger.debug(f"Registered titrant '{name}' with formula {formula}.")

    def add_titrants(self, phase: Union[int, str, Phase]) -> None:
        """Register every species of a phase as individual titrant."""
        if isinstance(phase, Phase):
            phase = phase.name
        k = self._index_phase(phase)
        for species in self._system.phases[k].species:
            self.add_titrant(species)

    def set_as_mutually_exclusive(self, titrant1: str, titrant2: str) -> None:
        """Mark two titrants as mutually exclusive: at most one of them can have a
        positive amount.

        Raises:
            ChemicalModellingError: If a titrant is not registered or both are the same.

        """
        self._check_not_sealed()
        for t in (titrant1, titrant2):
            if t not in self._titrants:
                raise ChemicalModellingError(f"Unknown titrant '{t}'.")
        if titrant1 == titrant2:
            raise ChemicalModellingError("Titrant cannot exclude itself.")
        pair = frozenset((titrant1, titrant2))
        if pair not in self._exclusive:
            self._exclusive.append(pair)

    def empty(self) -> bool:
        """True if the problem has neither constraints nor titrants."""
        return len(self._constraints) == 0 and len(self._titrants) == 0

    @property
    def num_constraints(self) -> int:
        return len(self._constraints)

    @property
    def num_titrants(self) -> int:
        return len(self._titrants)

    @property
    def constraints(self) -> list[EquilibriumConstraint]:
        return list(self._constraints)

    @property
    def titrants(self) -> list[str]:
        """Names of the titrants, in order of registration."""
        return list(self._titrants.keys())

    @property
    def mutually_exclusive_pairs(self) -> list[tuple[str, str]]:
        """Pairs of mutually exclusive titrants, in order of registration."""
        order = self.titrants
        return [
            tuple(sorted(pair, key=order.index))  # type: ignore[misc]
            for pair in self._exclusive
        ]

    @property
    def elements(self) -> list[str]:
        """Symbols of the equilibrium elements, the rows of
        :meth:`formula_matrix_titrants`."""
        return list(self._elements)

    def titrant_formula(self, name: str) -> dict[str, float]:
        try:
            return dict(self._titrants[name])
        except KeyError as err:
            raise ChemicalModellingError(f"Unknown titrant '{name}'.") from err

    def formula_matrix_titrants(self) -> np.ndarray:
        """Matrix of shape ``(num_equilibrium_elements, num_titrants)`` with the number
        of atoms of each element in each titrant."""
        C = np.zeros((len(self._elements), len(self._titrants)))
        for t, formula in enumerate(self._titrants.values()):
            for element, count in formula.items():
                C[self._elements.index(element), t] = count
        return C

    def element_amounts(self, x: Sequence[float]) -> np.ndarray:
        """Amounts of equilibrium elements after the addition of titrant amounts
        ``x``."""
        x = self._check_titrant_amounts(x)
        return self.initial_element_amounts() + self.formula_matrix_titrants() @ x

    def _check_titrant_amounts(self, x: Sequence[float]) -> np.ndarray:
        x = np.asarray(x, dtype=float).reshape(-1)
        if x.size != self.num_titrants:
            raise DimensionMismatchError(
                f"Titrant amounts of size {x.size}, expected {self.num_titrants}."
            )
        return x

    def _measure(
        self, constraint: EquilibriumConstraint, state: ChemicalState
    ) -> SensitivityArray:
        """Value of the constrained property with gradient w.r.t. species amounts."""
        (n,) = init_sensitivity_arrays([state.n.copy()])
        kind = constraint.constraint_type
        if kind == ConstraintType.species_activity:
            return self._system.activities(state.T, state.P, n)[constraint.index]
        elif kind == ConstraintType.species_amount:
            return n[constraint.index]
        elif kind == ConstraintType.phase_amount:
            return self._system.phase_amounts(n)[constraint.index]
        else:
            volumes = self._system.phase_volumes(state.T, state.P, n)
            return volumes[constraint.index]

    def residual_equilibrium_constraints(
        self, x: Sequence[float], state: ChemicalState
    ) -> ResidualEquilibriumConstraints:
        """Residuals of the constraints at an equilibrium state.

        The first call seals the problem.

        Parameters:
            x: Titrant amounts ``[mol]`` for which ``state`` was equilibrated.
            state: Equilibrium state, carrying the sensitivities of the last
                equilibrium calculation.

        Raises:
            ChemicalModellingError: If the initial element amounts are not set, or if
                ``state`` has no equilibrium sensitivities.
            DimensionMismatchError: If ``x`` has the wrong size.

        """
        self.initial_element_amounts()
        x = self._check_titrant_amounts(x)
        if state.sensitivity is None:
            raise ChemicalModellingError("State carries no equilibrium sensitivities.")
        self.seal()

        N = self._system.num_species
        m = self.num_constraints
        val = np.zeros(m)
        ddn = np.zeros((m, N))
        with np.errstate(divide="ignore", invalid="ignore"):
            for c, constraint in enumerate(self._constraints):
                measured = self._measure(constraint, state)
                val[c] = measured.val - constraint.value
                ddn[c] = measured.full_jac(N)

        ddx = ddn @ state.sensitivity.dndb @ self.formula_matrix_titrants()
        return ResidualEquilibriumConstraints(val=val, ddx=ddx, ddn=ddn)
