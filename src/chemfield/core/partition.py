"""Module containing the partition of a chemical system into equilibrium, kinetic and
inert species, and the projections of vectors and matrices onto these subsets.

Every species belongs to exactly one subset. Elements are assigned to subsets by the
species they appear in, with precedence equilibrium > kinetic > inert: an element
present in any equilibrium species is an equilibrium element, an element present in a
kinetic but no equilibrium species is a kinetic element, and so on.

All projections preserve the order of the stored index sets, which is the order given
at construction and not necessarily sorted.

"""

from __future__ import annotations

from enum import IntEnum
from typing import Optional, Sequence, Union

import numpy as np

from chemfield.utils.array_operations import as_index_array
from chemfield.utils.errors import ChemicalModellingError, DimensionMismatchError

from .system import ChemicalSystem

__all__ = ["PartitionSubset", "Partition"]


class PartitionSubset(IntEnum):
    """Enum object for the subsets of a partition.

    The values define the precedence in the assignment of elements to subsets
    (lower value, higher precedence).

    """

    equilibrium = 0
    kinetic = 1
    inert = 2


_IndexInput = Optional[Sequence[Union[int, str]]]


class Partition:
    """Static classification of the species and elements of a chemical system.

    If only some subsets are given, the remaining species are equilibrium species.
    If no subset is given, all species are equilibrium species.

    Parameters:
        system: The chemical system.
        equilibrium: ``default=None``

            Indices or names of equilibrium species.
        kinetic: ``default=None``

            Indices or names of kinetic species.
        inert: ``default=None``

            Indices or names of inert species.

    Raises:
        ChemicalModellingError: If the subsets overlap, contain duplicates or invalid
            indices, or do not cover all species of the system.

    """

    def __init__(
        self,
        system: ChemicalSystem,
        equilibrium: _IndexInput = None,
        kinetic: _IndexInput = None,
        inert: _IndexInput = None,
    ) -> None:
        self._system = system
        N = system.num_species

        kinetic_idx = self._to_indices(kinetic)
        inert_idx = self._to_indices(inert)
        if equilibrium is None:
            taken = set(kinetic_idx) | set(inert_idx)
            equilibrium_idx = [i for i in range(N) if i not in taken]
        else:
            equilibrium_idx = self._to_indices(equilibrium)

        species_sets: list[np.ndarray] = []
        for name, idx in zip(
            ["equilibrium", "kinetic", "inert"],
            [equilibrium_idx, kinetic_idx, inert_idx],
        ):
            try:
                species_sets.append(as_index_array(idx, N))
            except ValueError as err:
                raise ChemicalModellingError(
                    f"Invalid {name} species indices: {err}"
                ) from err

        all_idx = np.concatenate(species_sets)
        if np.unique(all_idx).size != all_idx.size:
            raise ChemicalModellingError("Partition subsets are not disjoint.")
        if all_idx.size != N:
            missing = sorted(set(range(N)).difference(all_idx.tolist()))
            raise ChemicalModellingError(
                f"Partition does not cover species {missing} of the system."
            )

        self._species: tuple[np.ndarray, ...] = tuple(species_sets)

        # elements by precedence, in order of the system
        A = system.formula_matrix
        owner = np.full(system.num_elements, -1, dtype=int)
        for subset in PartitionSubset:
            idx = self._species[subset]
            if idx.size == 0:
                continue
            present = np.any(A[:, idx] != 0, axis=1)
            owner[(owner < 0) & present] = int(subset)
        self._element_owner = owner
        self._elements: tuple[np.ndarray, ...] = tuple(
            as_index_array(np.flatnonzero(owner == int(subset)), system.num_elements)
            for subset in PartitionSubset
        )

        classes = np.empty(N, dtype=int)
        for subset in PartitionSubset:
            classes[self._species[subset]] = int(subset)
        self._classes = classes

    def _to_indices(self, items: _IndexInput) -> list[int]:
        if items is None:
            return []
        return [
            self._system.index_species(i) if isinstance(i, str) else int(i)
            for i in items
        ]

    @classmethod
    def from_kinetic_species(
        cls, system: ChemicalSystem, kinetic: Sequence[Union[int, str]]
    ) -> Partition:
        """Partition with given kinetic species and all others in equilibrium."""
        return cls(system, kinetic=kinetic)

    @classmethod
    def from_inert_species(
        cls, system: ChemicalSystem, inert: Sequence[Union[int, str]]
    ) -> Partition:
        """Partition with given inert species and all others in equilibrium."""
        return cls(system, inert=inert)

    def __repr__(self) -> str:
        return (
            f"Partition(equilibrium={self._species[0].tolist()}, "
            + f"kinetic={self._species[1].tolist()}, "
            + f"inert={self._species[2].tolist()})"
        )

    @property
    def system(self) -> ChemicalSystem:
        return self._system

    def classify(self, species: Union[int, str]) -> PartitionSubset:
        """Subset containing a species given by index or name."""
        if isinstance(species, str):
            species = self._system.index_species(species)
        if not 0 <= species < self._system.num_species:
            raise DimensionMismatchError(f"Species index {species} out of range.")
        return PartitionSubset(self._classes[species])

    def classify_element(self, element: Union[int, str]) -> Optional[PartitionSubset]:
        """Subset of an element, or None if it appears in no species."""
        if isinstance(element, str):
            element = self._system.index_element(element)
        owner = self._element_owner[element]
        return None if owner < 0 else PartitionSubset(owner)

    def indices_species(self, subset: PartitionSubset) -> np.ndarray:
        """Read-only array of the species indices in ``subset``, in stored order."""
        return self._species[subset]

    def indices_elements(self, subset: PartitionSubset) -> np.ndarray:
        """Read-only array of the element indices in ``subset``, in system order."""
        return self._elements[subset]

    def num_species(self, subset: PartitionSubset) -> int:
        return self._species[subset].size

    def num_elements(self, subset: PartitionSubset) -> int:
        return self._elements[subset].size

    @property
    def indices_equilibrium_species(self) -> np.ndarray:
        return self._species[PartitionSubset.equilibrium]

    @property
    def indices_kinetic_species(self) -> np.ndarray:
        return self._species[PartitionSubset.kinetic]

    @property
    def indices_inert_species(self) -> np.ndarray:
        return self._species[PartitionSubset.inert]

    @property
    def indices_equilibrium_elements(self) -> np.ndarray:
        return self._elements[PartitionSubset.equilibrium]

    @property
    def indices_kinetic_elements(self) -> np.ndarray:
        return self._elements[PartitionSubset.kinetic]

    @property
    def indices_inert_elements(self) -> np.ndarray:
        return self._elements[PartitionSubset.inert]

    @property
    def num_equilibrium_species(self) -> int:
        return self.indices_equilibrium_species.size

    @property
    def num_kinetic_species(self) -> int:
        return self.indices_kinetic_species.size

    @property
    def num_inert_species(self) -> int:
        return self.indices_inert_species.size

    @property
    def num_equilibrium_elements(self) -> int:
        return self.indices_equilibrium_elements.size

    @property
    def num_kinetic_elements(self) -> int:
        return self.indices_kinetic_elements.size

    @property
    def num_inert_elements(self) -> int:
        return self.indices_inert_elements.size

    def indices_phases_with_species(self, subset: PartitionSubset) -> np.ndarray:
        """Indices of phases containing at least one species of ``subset``."""
        phases = {
            self._system.index_phase_with_species(int(i))
            for i in self._species[subset]
        }
        return np.array(sorted(phases), dtype=int)

    # Projections

    def _check_dim(self, size: int, expected: int, what: str) -> None:
        if size != expected:
            raise DimensionMismatchError(
                f"Dimension {size} of {what} does not match the chemical system "
                + f"({expected})."
            )

    def rows(self, vec: np.ndarray, subset: PartitionSubset) -> np.ndarray:
        """Entries (rows) of a species vector or matrix belonging to ``subset``.

        Raises:
            DimensionMismatchError: If the leading dimension is not the number of
                species.

        """
        vec = np.asarray(vec)
        if vec.ndim == 0:
            raise DimensionMismatchError("Row projection requires an array.")
        self._check_dim(vec.shape[0], self._system.num_species, "rows")
        return vec[self._species[subset]]

    def cols(self, mat: np.ndarray, subset: PartitionSubset) -> np.ndarray:
        """Columns of a matrix belonging to species in ``subset``."""
        mat = np.asarray(mat)
        if mat.ndim != 2:
            raise DimensionMismatchError("Column projection requires a 2D array.")
        self._check_dim(mat.shape[1], self._system.num_species, "columns")
        return mat[:, self._species[subset]]

    def rows_cols(self, mat: np.ndarray, subset: PartitionSubset) -> np.ndarray:
        """Square submatrix of a species-by-species matrix for ``subset``."""
        mat = np.asarray(mat)
        if mat.ndim != 2:
            raise DimensionMismatchError("Row-column projection requires a 2D array.")
        self._check_dim(mat.shape[0], self._system.num_species, "rows")
        self._check_dim(mat.shape[1], self._system.num_species, "columns")
        idx = self._species[subset]
        return mat[np.ix_(idx, idx)]

    def formula_matrix(
        self,
        mat: Optional[np.ndarray] = None,
        subset: PartitionSubset = PartitionSubset.equilibrium,
    ) -> np.ndarray:
        """Submatrix of an elements-by-species matrix, with rows of the elements and
        columns of the species in ``subset``.

        Parameters:
            mat: ``default=None``

                Matrix of shape ``(num_elements, num_species)``. Defaults to the formula
                matrix of the system.
            subset: ``default=PartitionSubset.equilibrium``

                The subset.

        """
        if mat is None:
            mat = self._system.formula_matrix
        mat = np.asarray(mat)
        if mat.ndim != 2:
            raise DimensionMismatchError("Formula matrix projection requires 2D array.")
        self._check_dim(mat.shape[0], self._system.num_elements, "element rows")
        self._check_dim(mat.shape[1], self._system.num_species, "species columns")
        return mat[np.ix_(self._elements[subset], self._species[subset])]

    def equilibrium_rows(self, vec: np.ndarray) -> np.ndarray:
        return self.rows(vec, PartitionSubset.equilibrium)

    def kinetic_rows(self, vec: np.ndarray) -> np.ndarray:
        return self.rows(vec, PartitionSubset.kinetic)

    def inert_rows(self, vec: np.ndarray) -> np.ndarray:
        return self.rows(vec, PartitionSubset.inert)

    def equilibrium_cols(self, mat: np.ndarray) -> np.ndarray:
        return self.cols(mat, PartitionSubset.equilibrium)

    def kinetic_cols(self, mat: np.ndarray) -> np.ndarray:
        return self.cols(mat, PartitionSubset.kinetic)

    def inert_cols(self, mat: np.ndarray) -> np.ndarray:
        return self.cols(mat, PartitionSubset.inert)

    def equilibrium_rows_cols(self, mat: np.ndarray) -> np.ndarray:
        return self.rows_cols(mat, PartitionSubset.equilibrium)

    def kinetic_rows_cols(self, mat: np.ndarray) -> np.ndarray:
        return self.rows_cols(mat, PartitionSubset.kinetic)

    def inert_rows_cols(self, mat: np.ndarray) -> np.ndarray:
        return self.rows_cols(mat, PartitionSubset.inert)

    def equilibrium_formula_matrix(
        self, mat: Optional[np.ndarray] = None
    ) -> np.ndarray:
        return self.formula_matrix(mat, PartitionSubset.equilibrium)

    def kinetic_formula_matrix(self, mat: Optional[np.ndarray] = None) -> np.ndarray:
        return self.formula_matrix(mat, PartitionSubset.kinetic)

    def inert_formula_matrix(self, mat: Optional[np.ndarray] = None) -> np.ndarray:
        return self.formula_matrix(mat, PartitionSubset.inert)
