"""Phases as collections of species sharing an activity model."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Sequence

from chemfield.thermo.activity import IdealGas, IdealSolution
from chemfield.thermo.interfaces import ActivityModel
from chemfield.utils.errors import ChemicalModellingError

from .species import Species

__all__ = ["PhaseType", "Phase"]


class PhaseType(Enum):
    """Enum object for characterizing the physical state of a phase.

    - ``liquid``: liquid-like state (value 0)
    - ``gas``: gas-like state (value 1)
    - ``solid``: solid state, e.g. a mineral (value 2)

    Liquid and gas phases are fluid phases and fill the pore space.

    """

    liquid = 0
    gas = 1
    solid = 2


@dataclass
class Phase:
    """A phase containing a non-empty sequence of species."""

    name: str
    """Name of the phase, unique inside a chemical system."""

    species: Sequence[Species]
    """Species in this phase."""

    phase_type: PhaseType = PhaseType.liquid
    """Physical state of the phase."""

    activity_model: Optional[ActivityModel] = field(default=None, repr=False)
    """Model for activities and molar volumes. Defaults to the ideal gas for gas
    phases and to the ideal solution otherwise."""

    def __post_init__(self) -> None:
        self.species = tuple(self.species)
        if len(self.species) == 0:
            raise ChemicalModellingError(f"Phase '{self.name}' contains no species.")
        if self.activity_model is None:
            if self.phase_type == PhaseType.gas:
                self.activity_model = IdealGas()
            else:
                self.activity_model = IdealSolution()

    @property
    def num_species(self) -> int:
        """Number of species in this phase."""
        return len(self.species)

    @property
    def is_fluid(self) -> bool:
        """True for liquid and gas phases."""
        return self.phase_type != PhaseType.solid

    @property
    def species_names(self) -> list[str]:
        """Names of the species in this phase, in order."""
        return [s.name for s in self.species]

    @classmethod
    def mineral(cls, species: Species) -> Phase:
        """A pure solid phase named after its single species."""
        return cls(species.name, [species], PhaseType.solid)
