"""Module containing the data structures describing the state of a chemical system at a
single point: temperature, pressure, species amounts, and, after an equilibrium
calculation, the dual variables and the sensitivities of the equilibrium composition.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Optional, Sequence, Union

import numpy as np

from chemfield._core import P_REF, T_REF
from chemfield.utils.errors import ChemicalModellingError, DimensionMismatchError

from .system import ChemicalSystem

__all__ = ["EquilibriumSensitivity", "ChemicalState"]


@dataclass
class EquilibriumSensitivity:
    """Derivatives of the species amounts at equilibrium with respect to the inputs of
    the equilibrium problem.

    Derivatives are stored with rows corresponding to all species of the system.
    Rows of kinetic and inert species contain zeros, except for :attr:`dndnk` which is
    the identity on the kinetic species.

    """

    dndT: np.ndarray = field(default_factory=lambda: np.zeros(0))
    """Derivatives w.r.t. temperature, ``shape=(num_species,)``."""

    dndP: np.ndarray = field(default_factory=lambda: np.zeros(0))
    """Derivatives w.r.t. pressure, ``shape=(num_species,)``."""

    dndb: np.ndarray = field(default_factory=lambda: np.zeros((0, 0)))
    """Derivatives w.r.t. the amounts of equilibrium elements,
    ``shape=(num_species, num_equilibrium_elements)``."""

    dndnk: np.ndarray = field(default_factory=lambda: np.zeros((0, 0)))
    """Derivatives w.r.t. the amounts of kinetic species,
    ``shape=(num_species, num_kinetic_species)``."""


class ChemicalState:
    """State of a chemical system at a single point.

    Parameters:
        system: The chemical system.
        T: ``default=T_REF``

            Temperature in ``[K]``.
        P: ``default=P_REF``

            Pressure in ``[Pa]``.
        n: ``default=None``

            Amounts of all species in ``[mol]``. Defaults to zero.

    """

    def __init__(
        self,
        system: ChemicalSystem,
        T: float = T_REF,
        P: float = P_REF,
        n: Optional[Sequence[float]] = None,
    ) -> None:
        self.system: ChemicalSystem = system
        """The chemical system of this state."""

        self.T: float = float(T)
        """Temperature in ``[K]``."""

        self.P: float = float(P)
        """Pressure in ``[Pa]``."""

        self._n: np.ndarray = np.zeros(system.num_species)
        if n is not None:
            self.set_species_amounts(n)

        self.y: np.ndarray = np.zeros(0)
        """Lagrange multipliers of the element balance at the last equilibrium."""

        self.z: np.ndarray = np.zeros(0)
        """Lagrange multipliers of the bounds of the equilibrium species at the last
        equilibrium."""

        self.sensitivity: Optional[EquilibriumSensitivity] = None
        """Sensitivities of the last equilibrium calculation, if any."""

    def __repr__(self) -> str:
        return f"ChemicalState(T={self.T}, P={self.P}, n={self._n.tolist()})"

    @property
    def n(self) -> np.ndarray:
        """Amounts of all species in ``[mol]``."""
        return self._n

    def set_species_amounts(self, n: Union[Sequence[float], np.ndarray]) -> None:
        """Set the amounts of all species.

        Raises:
            DimensionMismatchError: If ``n`` is not of size ``num_species``.
            ChemicalModellingError: If any amount is negative.

        """
        n = np.array(n, dtype=float).reshape(-1)
        if n.size != self.system.num_species:
            raise DimensionMismatchError(
                f"Species amounts of size {n.size} given, "
                + f"expected {self.system.num_species}."
            )
        if np.any(n < 0.0):
            raise ChemicalModellingError("Species amounts must be non-negative.")
        self._n = n

    def set_species_amount(self, species: Union[int, str], amount: float) -> None:
        """Set the amount ``[mol]`` of a single species, given by index or name."""
        if isinstance(species, str):
            species = self.system.index_species(species)
        if amount < 0.0:
            raise ChemicalModellingError("Species amounts must be non-negative.")
        self._n[species] = float(amount)

    def species_amount(self, species: Union[int, str]) -> float:
        """Amount ``[mol]`` of a single species, given by index or name."""
        if isinstance(species, str):
            species = self.system.index_species(species)
        return float(self._n[species])

    def set_temperature(self, T: float) -> None:
        self.T = float(T)

    def set_pressure(self, P: float) -> None:
        self.P = float(P)

    def element_amounts(self) -> np.ndarray:
        """Amounts ``[mol]`` of all elements."""
        return self.system.element_amounts(self._n)

    def phase_amounts(self) -> np.ndarray:
        return self.system.phase_amounts(self._n)

    def phase_volumes(self) -> np.ndarray:
        return self.system.phase_volumes(self.T, self.P, self._n)

    def phase_amount(self, phase: Union[int, str]) -> float:
        if isinstance(phase, str):
            phase = self.system.index_phase(phase)
        return float(self.phase_amounts()[phase])

    def phase_volume(self, phase: Union[int, str]) -> float:
        if isinstance(phase, str):
            phase = self.system.index_phase(phase)
        return float(self.phase_volumes()[phase])

    def ln_activities(self) -> np.ndarray:
        return self.system.ln_activities(self.T, self.P, self._n)

    def activities(self) -> np.ndarray:
        return np.exp(self.ln_activities())

    def activity(self, species: Union[int, str]) -> float:
        if isinstance(species, str):
            species = self.system.index_species(species)
        return float(self.activities()[species])

    def copy(self) -> ChemicalState:
        """Deep copy of the state. The chemical system is shared."""
        other = ChemicalState(self.system, self.T, self.P, self._n)
        other.y = self.y.copy()
        other.z = self.z.copy()
        other.sensitivity = copy.deepcopy(self.sensitivity)
        return other

    def assign(self, other: ChemicalState) -> None:
        """Overwrite this state with the values of ``other``."""
        if other.system is not self.system:
            raise ChemicalModellingError("States belong to different chemical systems.")
        self.T = other.T
        self.P = other.P
        self._n = other._n.copy()
        self.y = other.y.copy()
        self.z = other.z.copy()
        self.sensitivity = copy.deepcopy(other.sensitivity)
