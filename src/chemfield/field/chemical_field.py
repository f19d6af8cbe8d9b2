"""Module containing the container of a scalar property over a field of points,
together with its sensitivities."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import numpy as np

from chemfield.utils.errors import DimensionMismatchError

__all__ = ["ChemicalField"]


@dataclass
class ChemicalField:
    """A scalar property at each point of a field, e.g. porosity or a phase density,
    and its derivatives.

    Row ``i`` of each array belongs to field point ``i``. Derivatives are w.r.t. the
    independent variables of the chemical solver at each point: temperature, pressure,
    amounts of equilibrium elements and amounts of kinetic species.

    """

    val: np.ndarray
    """Values, ``shape=(size,)``."""

    ddt: Optional[np.ndarray] = None
    """Derivatives w.r.t. temperature, ``shape=(size,)``."""

    ddp: Optional[np.ndarray] = None
    """Derivatives w.r.t. pressure, ``shape=(size,)``."""

    ddbe: Optional[np.ndarray] = None
    """Derivatives w.r.t. the amounts of equilibrium elements,
    ``shape=(size, num_equilibrium_elements)``."""

    ddnk: Optional[np.ndarray] = None
    """Derivatives w.r.t. the amounts of kinetic species,
    ``shape=(size, num_kinetic_species)``."""

    def __post_init__(self) -> None:
        self.val = np.asarray(self.val, dtype=float)
        size = self.val.shape[0]
        for name in ["ddt", "ddp", "ddbe", "ddnk"]:
            value = getattr(self, name)
            if value is None:
                continue
            value = np.asarray(value, dtype=float)
            if value.shape[0] != size:
                raise DimensionMismatchError(
                    f"Field '{name}' has {value.shape[0]} rows, expected {size}."
                )
            setattr(self, name, value)

    @classmethod
    def zeros(
        cls, size: int, num_elements: int, num_kinetic: int, with_diff: bool = True
    ) -> ChemicalField:
        """A field of zero values, with zero derivatives if ``with_diff``."""
        if not with_diff:
            return cls(np.zeros(size))
        return cls(
            val=np.zeros(size),
            ddt=np.zeros(size),
            ddp=np.zeros(size),
            ddbe=np.zeros((size, num_elements)),
            ddnk=np.zeros((size, num_kinetic)),
        )

    @property
    def size(self) -> int:
        """Number of field points."""
        return self.val.shape[0]

    @property
    def has_diff(self) -> bool:
        """True if the derivatives are populated."""
        return self.ddt is not None
