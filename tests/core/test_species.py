"""Tests of species, formula parsing and the compound database."""

from __future__ import annotations

import pytest

import chemfield as cf


@pytest.mark.parametrize(
    "formula, atoms, charge",
    [
        ("H2O", {"H": 2.0, "O": 1.0}, 0.0),
        ("Ca++", {"Ca": 1.0}, 2.0),
        ("Ca+2", {"Ca": 1.0}, 2.0),
        ("CO3--", {"C": 1.0, "O": 3.0}, -2.0),
        ("CO3-2", {"C": 1.0, "O": 3.0}, -2.0),
        ("Cl-", {"Cl": 1.0}, -1.0),
        ("HCO3-", {"H": 1.0, "C": 1.0, "O": 3.0}, -1.0),
        ("Ca(OH)2", {"Ca": 1.0, "O": 2.0, "H": 2.0}, 0.0),
    ],
)
def test_parse_formula(formula: str, atoms: dict, charge: float):
    parsed, z = cf.parse_formula(formula)
    assert parsed == atoms
    # element order of appearance is kept
    assert list(parsed.keys()) == list(atoms.keys())
    assert z == charge


def test_species_from_formula():
    s = cf.Species.from_formula("HCO3-")
    assert s.name == "HCO3-"
    assert s.charge == -1.0
    assert s.elements() == ["H", "C", "O"]
    assert s.molar_mass == pytest.approx(61.017e-3, rel=1e-3)


def test_species_with_explicit_molar_mass():
    s = cf.Species("X", {"C": 1.0}, molar_mass=1.0)
    assert s.molar_mass == 1.0


def test_negative_atoms():
    with pytest.raises(cf.ChemicalModellingError):
        cf.Species("X", {"C": -1.0})


def test_database_lookup_of_water():
    database = cf.ChemicalsDatabase()
    assert database.formula("water") == {"H": 2.0, "O": 1.0}
    assert database.molar_mass("water") == pytest.approx(18.015e-3, rel=1e-3)


def test_load_species():
    (water,) = cf.load_species(["water"])
    assert water.name == "water"
    assert water.formula == {"H": 2.0, "O": 1.0}
    with pytest.raises(NotImplementedError):
        cf.load_species(["water"], package="unknown")
