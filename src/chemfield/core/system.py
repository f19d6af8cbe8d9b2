"""Module containing the chemical system, the static description of species, elements
and phases on which all calculations operate.

Species are ordered phase by phase. Elements are ordered by their first appearance in
the formulas of the species, unless given explicitly.

Thermodynamic properties are evaluated by the standard-state models of the species and
the activity models of the phases. All property methods accept plain numbers or
:class:`~chemfield.ad.forward_mode.SensitivityArray` instances for ``T``, ``P`` and
``n``, and return values of the respective kind.

"""

from __future__ import annotations

import logging
from typing import Any, Optional, Sequence

import numpy as np

import chemfield as cf
from chemfield._core import R_IDEAL_MOL
from chemfield.ad import functions as af
from chemfield.ad.forward_mode import SensitivityArray
from chemfield.ad.utils import concatenate
from chemfield.utils.errors import ChemicalModellingError, DimensionMismatchError

from .phase import Phase
from .species import Species

__all__ = ["ChemicalSystem"]

logger = logging.getLogger(__name__)

module_sections = ["thermo"]


def _stack(values: list) -> Any:
    """Stack scalar or vector values, sensitivity values if any is one."""
    if any(isinstance(v, SensitivityArray) for v in values):
        return concatenate(
            [
                v if isinstance(v, SensitivityArray) else SensitivityArray(v)
                for v in values
            ]
        )
    return np.concatenate([np.atleast_1d(np.asarray(v, dtype=float)) for v in values])


class ChemicalSystem:
    """A chemical system composed of phases.

    Parameters:
        phases: Phases of the system. Species names must be unique across phases.
        elements: ``default=None``

            Explicit order of the elements. Must contain every element appearing in a
            species formula. If not given, elements are ordered by first appearance.

    Raises:
        ChemicalModellingError: If the system contains no phase, duplicate species or
            phase names, or if ``elements`` misses an element.

    """

    def __init__(
        self, phases: Sequence[Phase], elements: Optional[Sequence[str]] = None
    ) -> None:
        if len(phases) == 0:
            raise ChemicalModellingError("Chemical system requires at least one phase.")

        self._phases: tuple[Phase, ...] = tuple(phases)
        species: list[Species] = []
        self._phase_slices: list[slice] = []
        for phase in self._phases:
            start = len(species)
            species.extend(phase.species)
            self._phase_slices.append(slice(start, len(species)))
        self._species: tuple[Species, ...] = tuple(species)

        names = [s.name for s in self._species]
        if len(set(names)) != len(names):
            raise ChemicalModellingError(f"Duplicate species names in {names}.")
        phase_names = [p.name for p in self._phases]
        if len(set(phase_names)) != len(phase_names):
            raise ChemicalModellingError(f"Duplicate phase names in {phase_names}.")

        found: list[str] = []
        for s in self._species:
            for element in s.formula:
                if element not in found:
                    found.append(element)
        if elements is None:
            elements = found
        else:
            missing = set(found).difference(elements)
            if missing:
                raise ChemicalModellingError(
                    f"Elements {sorted(missing)} missing in element list."
                )
        self._elements: tuple[str, ...] = tuple(elements)

        self._species_index = {name: i for i, name in enumerate(names)}
        self._element_index = {e: j for j, e in enumerate(self._elements)}
        self._phase_index = {name: k for k, name in enumerate(phase_names)}

        A = np.zeros((len(self._elements), len(self._species)))
        for i, s in enumerate(self._species):
            for element, count in s.formula.items():
                A[self._element_index[element], i] = count
        A.flags.writeable = False
        self._formula_matrix = A

        logger.debug(
            f"Created chemical system with {self.num_species} species, "
            + f"{self.num_elements} elements and {self.num_phases} phases."
        )

    def __repr__(self) -> str:
        return (
            f"ChemicalSystem(species={self.species_names}, "
            + f"elements={list(self._elements)}, "
            + f"phases={[p.name for p in self._phases]})"
        )

    @property
    def species(self) -> tuple[Species, ...]:
        """Species of the system, ordered phase by phase."""
        return self._species

    @property
    def phases(self) -> tuple[Phase, ...]:
        return self._phases

    @property
    def elements(self) -> tuple[str, ...]:
        """Element symbols of the system."""
        return self._elements

    @property
    def species_names(self) -> list[str]:
        return [s.name for s in self._species]

    @property
    def num_species(self) -> int:
        return len(self._species)

    @property
    def num_elements(self) -> int:
        return len(self._elements)

    @property
    def num_phases(self) -> int:
        return len(self._phases)

    @property
    def formula_matrix(self) -> np.ndarray:
        """Read-only ``(num_elements, num_species)`` array with the number of atoms of
        element ``j`` in species ``i`` at position ``[j, i]``."""
        return self._formula_matrix

    @property
    def charges(self) -> np.ndarray:
        return np.array([s.charge for s in self._species])

    @property
    def molar_masses(self) -> np.ndarray:
        """Molar masses of species in ``[kg / mol]``."""
        return np.array([s.molar_mass for s in self._species])

    def contains_species(self, name: str) -> bool:
        return name in self._species_index

    def index_species(self, name: str) -> int:
        """Index of a species.

        Raises:
            ChemicalModellingError: If the species is not in the system.

        """
        try:
            return self._species_index[name]
        except KeyError as err:
            raise ChemicalModellingError(f"Unknown species '{name}'.") from err

    def index_element(self, symbol: str) -> int:
        """Index of an element.

        Raises:
            ChemicalModellingError: If the element is not in the system.

        """
        try:
            return self._element_index[symbol]
        except KeyError as err:
            raise ChemicalModellingError(f"Unknown element '{symbol}'.") from err

    def index_phase(self, name: str) -> int:
        """Index of a phase.

        Raises:
            ChemicalModellingError: If the phase is not in the system.

        """
        try:
            return self._phase_index[name]
        except KeyError as err:
            raise ChemicalModellingError(f"Unknown phase '{name}'.") from err

    def indices_species_in_phase(self, phase: int) -> np.ndarray:
        """Indices of the species in phase with index ``phase``."""
        sl = self._phase_slices[phase]
        return np.arange(sl.start, sl.stop)

    def index_phase_with_species(self, species: int) -> int:
        """Index of the phase containing the species with index ``species``."""
        for k, sl in enumerate(self._phase_slices):
            if sl.start <= species < sl.stop:
                return k
        raise DimensionMismatchError(f"Species index {species} out of range.")

    def indices_fluid_phases(self) -> np.ndarray:
        return np.array(
            [k for k, p in enumerate(self._phases) if p.is_fluid], dtype=int
        )

    def indices_solid_phases(self) -> np.ndarray:
        return np.array(
            [k for k, p in enumerate(self._phases) if not p.is_fluid], dtype=int
        )

    def _standard_state(self, species: Species):
        if species.standard_state is None:
            raise ChemicalModellingError(
                f"Species '{species.name}' has no standard-state model."
            )
        return species.standard_state

    def _check_amounts(self, n: Any) -> None:
        size = len(n) if isinstance(n, SensitivityArray) else np.size(n)
        if size != self.num_species:
            raise DimensionMismatchError(
                f"Species amounts of size {size} given, expected {self.num_species}."
            )

    def element_amounts(self, n: Any) -> Any:
        """Amounts of elements ``[mol]`` contained in species amounts ``n``."""
        self._check_amounts(n)
        return self._formula_matrix @ n

    def charge(self, n: Any) -> Any:
        """Total electric charge of species amounts ``n``."""
        self._check_amounts(n)
        if isinstance(n, SensitivityArray):
            return af.dot(self.charges, n)
        return float(np.dot(self.charges, n))

    @cf.time_logger(sections=module_sections)
    def standard_gibbs_energies(self, T: Any, P: Any) -> Any:
        """Standard chemical potentials ``[J / mol]`` of all species."""
        return _stack(
            [self._standard_state(s).gibbs_energy(T, P) for s in self._species]
        )

    @cf.time_logger(sections=module_sections)
    def standard_volumes(self, T: Any, P: Any) -> Any:
        """Standard molar volumes ``[m^3 / mol]`` of all species."""
        return _stack([self._standard_state(s).volume(T, P) for s in self._species])

    @cf.time_logger(sections=module_sections)
    def ln_activities(self, T: Any, P: Any, n: Any) -> Any:
        """Natural logarithm of the activities of all species."""
        self._check_amounts(n)
        return _stack(
            [
                phase.activity_model.ln_activities(T, P, n[sl])
                for phase, sl in zip(self._phases, self._phase_slices)
            ]
        )

    def activities(self, T: Any, P: Any, n: Any) -> Any:
        """Activities of all species."""
        return af.exp(self.ln_activities(T, P, n))

    def chemical_potentials(self, T: Any, P: Any, n: Any) -> Any:
        """Chemical potentials ``[J / mol]`` of all species."""
        mu0 = self.standard_gibbs_energies(T, P)
        return mu0 + R_IDEAL_MOL * T * self.ln_activities(T, P, n)

    def molar_volumes(self, T: Any, P: Any) -> Any:
        """Partial molar volumes ``[m^3 / mol]`` of all species in their phases."""
        v0 = self.standard_volumes(T, P)
        return _stack(
            [
                phase.activity_model.molar_volumes(T, P, v0[sl])
                for phase, sl in zip(self._phases, self._phase_slices)
            ]
        )

    def phase_amounts(self, n: Any) -> Any:
        """Total amounts ``[mol]`` of species per phase."""
        self._check_amounts(n)
        return _stack([af.sum(n[sl]) for sl in self._phase_slices])

    def phase_volumes(self, T: Any, P: Any, n: Any) -> Any:
        """Volumes ``[m^3]`` of all phases."""
        self._check_amounts(n)
        v = self.molar_volumes(T, P)
        return _stack([af.sum(n[sl] * v[sl]) for sl in self._phase_slices])

    def phase_masses(self, n: Any) -> Any:
        """Masses ``[kg]`` of all phases."""
        self._check_amounts(n)
        m = self.molar_masses
        return _stack([af.sum(n[sl] * m[sl]) for sl in self._phase_slices])
