"""Chemical systems shared by the tests.

The association system ``A + B = AB`` consists of three species in an ideal solution,
with element ``C`` in ``A`` and element ``O`` in ``B``. Its equilibrium constant is
:data:`K_AB` at the reference temperature.

The calcite system consists of an aqueous phase with water and the ions of calcite,
and a calcite mineral phase.

"""

from __future__ import annotations

import numpy as np
import pytest

import chemfield as cf

K_AB = 10.0
"""Equilibrium constant of the association ``A + B = AB``."""


def _association_system() -> cf.ChemicalSystem:
    G_AB = -cf.R_IDEAL_MOL * cf.T_REF * np.log(K_AB)
    model = cf.ConstantStandardState
    species = [
        cf.Species("A", {"C": 1.0}, standard_state=model(0.0, 1e-5)),
        cf.Species("B", {"O": 1.0}, standard_state=model(0.0, 2e-5)),
        cf.Species("AB", {"C": 1.0, "O": 1.0}, standard_state=model(G_AB, 3e-5)),
    ]
    return cf.ChemicalSystem([cf.Phase("solution", species)])


def _calcite_system(log10_K: float = 10.0) -> cf.ChemicalSystem:
    """Water, calcium and carbonate in solution, and calcite, with equilibrium
    constant ``10**log10_K`` of ``Calcite = Ca++ + CO3--``."""
    G_CO3 = -cf.R_IDEAL_MOL * cf.T_REF * np.log(10.0) * log10_K
    aqueous = cf.Phase(
        "aqueous",
        [
            cf.Species.from_formula(
                "H2O", standard_state=cf.LinearStandardState(0.0, V0=1.8e-5)
            ),
            cf.Species.from_formula(
                "Ca++", standard_state=cf.LinearStandardState(0.0, V0=-1.8e-5)
            ),
            cf.Species.from_formula(
                "CO3--", standard_state=cf.LinearStandardState(G_CO3, V0=-6e-6)
            ),
        ],
    )
    calcite = cf.Phase.mineral(
        cf.Species(
            "Calcite",
            {"Ca": 1.0, "C": 1.0, "O": 3.0},
            standard_state=cf.LinearStandardState(0.0, V0=3.69e-5),
        )
    )
    return cf.ChemicalSystem([aqueous, calcite])


@pytest.fixture
def ab_system() -> cf.ChemicalSystem:
    return _association_system()


@pytest.fixture
def ab_state(ab_system) -> cf.ChemicalState:
    """One mole of A and B each, no AB."""
    return cf.ChemicalState(ab_system, n=[1.0, 1.0, 0.0])


@pytest.fixture
def calcite() -> cf.ChemicalSystem:
    return _calcite_system()


@pytest.fixture
def make_calcite_system():
    """Factory of calcite systems with given decimal logarithm of the equilibrium
    constant."""
    return _calcite_system


@pytest.fixture
def ab_extent() -> float:
    """Extent of ``A + B = AB`` at equilibrium, starting from one mole of A and B.

    Solves ``K (1 - x)^2 = x (2 - x)`` for the root in ``(0, 1)``.

    """
    K = K_AB
    a, b, c = K + 1.0, -2.0 * (K + 1.0), K
    return (-b - np.sqrt(b * b - 4 * a * c)) / (2 * a)
