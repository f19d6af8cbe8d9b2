"""Tests of the partition of a chemical system into equilibrium, kinetic and inert
species, and of the projections of vectors and matrices onto the subsets."""

from __future__ import annotations

import numpy as np
import pytest

import chemfield as cf
from chemfield import PartitionSubset


@pytest.fixture
def system() -> cf.ChemicalSystem:
    """Aqueous phase with H2O and Ca++, gas phase with CO2(g), calcite mineral.

    Elements in order of appearance: H, O, Ca, C.

    """
    aqueous = cf.Phase(
        "aqueous", [cf.Species.from_formula("H2O"), cf.Species.from_formula("Ca++")]
    )
    gas = cf.Phase(
        "gas", [cf.Species.from_formula("CO2", name="CO2(g)")], cf.PhaseType.gas
    )
    calcite = cf.Phase.mineral(cf.Species.from_formula("CaCO3", name="Calcite"))
    return cf.ChemicalSystem([aqueous, gas, calcite])


def test_default_partition_is_equilibrium(system):
    partition = cf.Partition(system)
    assert partition.indices_equilibrium_species.tolist() == [0, 1, 2, 3]
    assert partition.num_kinetic_species == 0
    assert partition.num_inert_species == 0
    assert partition.indices_equilibrium_elements.tolist() == [0, 1, 2, 3]


def test_subsets_are_disjoint_and_complete(system):
    partition = cf.Partition(system, kinetic=["Calcite"], inert=["CO2(g)"])
    sets = [partition.indices_species(subset) for subset in PartitionSubset]
    all_idx = np.concatenate(sets)
    assert sorted(all_idx.tolist()) == list(range(system.num_species))
    assert partition.classify("Calcite") == PartitionSubset.kinetic
    assert partition.classify(2) == PartitionSubset.inert
    assert partition.classify("H2O") == PartitionSubset.equilibrium


def test_element_precedence(system):
    """Elements belong to the highest ranking subset containing them."""
    partition = cf.Partition(system, kinetic=["Calcite"], inert=["CO2(g)"])
    # H, O, Ca are in equilibrium species, C only in the kinetic calcite
    assert partition.indices_equilibrium_elements.tolist() == [0, 1, 2]
    assert partition.indices_kinetic_elements.tolist() == [3]
    assert partition.num_inert_elements == 0
    assert partition.classify_element("C") == PartitionSubset.kinetic

    partition = cf.Partition(system, inert=["Calcite", "CO2(g)"])
    assert partition.indices_inert_elements.tolist() == [3]


def test_order_of_subsets_is_preserved(system):
    partition = cf.Partition(system, equilibrium=[3, 0], kinetic=[2, 1])
    assert partition.indices_equilibrium_species.tolist() == [3, 0]
    vec = np.array([10.0, 11.0, 12.0, 13.0])
    assert partition.equilibrium_rows(vec).tolist() == [13.0, 10.0]
    assert partition.kinetic_rows(vec).tolist() == [12.0, 11.0]


@pytest.mark.parametrize(
    "kwargs",
    [
        {"equilibrium": [0, 1], "kinetic": [1, 2, 3]},  # overlap
        {"equilibrium": [0, 1], "kinetic": [2]},  # incomplete
        {"kinetic": [0, 0]},  # duplicates
        {"kinetic": [7]},  # out of range
    ],
)
def test_invalid_partitions(system, kwargs):
    with pytest.raises(cf.ChemicalModellingError):
        cf.Partition(system, **kwargs)


def test_unknown_species_name(system):
    with pytest.raises(cf.ChemicalModellingError):
        cf.Partition.from_kinetic_species(system, ["Dolomite"])


def test_projections(system):
    partition = cf.Partition.from_kinetic_species(system, ["Calcite"])
    N = system.num_species
    mat = np.arange(N * N, dtype=float).reshape(N, N)

    assert np.all(partition.equilibrium_cols(mat) == mat[:, :3])
    assert np.all(partition.kinetic_cols(mat) == mat[:, 3:])
    assert np.all(partition.equilibrium_rows_cols(mat) == mat[:3, :3])
    assert np.all(partition.kinetic_rows_cols(mat) == mat[3:, 3:])
    assert partition.inert_rows(np.ones(N)).size == 0

    A = system.formula_matrix
    Ae = partition.equilibrium_formula_matrix()
    # all elements are in equilibrium species
    assert np.all(Ae == A[:, :3])
    assert partition.kinetic_formula_matrix().shape == (0, 1)


def test_projections_commute_with_linear_operators(system):
    partition = cf.Partition(system, equilibrium=[2, 0, 3], kinetic=[1])
    rng = np.random.default_rng(42)
    M = rng.random((5, system.num_species))
    v = rng.random(system.num_species)
    lhs = partition.equilibrium_cols(M) @ partition.equilibrium_rows(v)
    rhs = M[:, [2, 0, 3]] @ v[[2, 0, 3]]
    assert np.allclose(lhs, rhs)


@pytest.mark.parametrize(
    "method, arg",
    [
        ("equilibrium_rows", np.ones(3)),
        ("equilibrium_cols", np.ones((2, 5))),
        ("equilibrium_rows_cols", np.ones((4, 3))),
        ("equilibrium_formula_matrix", np.ones((3, 4))),
    ],
)
def test_projection_dimension_mismatch(system, method, arg):
    partition = cf.Partition(system)
    with pytest.raises(cf.DimensionMismatchError):
        getattr(partition, method)(arg)


def test_phases_with_species(system):
    partition = cf.Partition(system, kinetic=["Calcite"], inert=["CO2(g)"])
    assert partition.indices_phases_with_species(
        PartitionSubset.equilibrium
    ).tolist() == [0]
    assert partition.indices_phases_with_species(
        PartitionSubset.kinetic
    ).tolist() == [2]
