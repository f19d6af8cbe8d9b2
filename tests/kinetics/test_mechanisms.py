"""Tests of the rate laws of mineral reactions."""

from __future__ import annotations

import numpy as np
import pytest

import chemfield as cf

AMOUNTS = np.array([55.0, 1e-3, 1e-3, 1e-3])
"""Water, calcium, carbonate and calcite."""


def dissolution(system, **kwargs) -> cf.ReactionSystem:
    reaction = cf.Reaction.from_equation(system, "Calcite = Ca++ + CO3--")
    rate = cf.mineral_reaction_rate(reaction, **kwargs)
    return cf.ReactionSystem(
        system,
        [cf.Reaction.from_equation(system, "Calcite = Ca++ + CO3--", rate=rate)],
    )


def test_rate_constant():
    mechanism = cf.MineralMechanism(logk=-5.0, Ea=20000.0)
    assert mechanism.kappa == pytest.approx(1e-5)
    assert mechanism.rate_constant(cf.T_REF) == pytest.approx(1e-5)
    assert mechanism.rate_constant(cf.T_REF + 30.0) > 1e-5


def test_dissolution_rate_when_undersaturated(calcite):
    """The ion product is far below the equilibrium constant of 1e10."""
    reactions = dissolution(
        calcite, mechanisms=[cf.MineralMechanism(logk=-5.0)], surface_area=2.0
    )
    r = reactions.rates(cf.T_REF, cf.P_REF, AMOUNTS)
    assert r.val[0] == pytest.approx(2e-5, rel=1e-8)


def test_precipitation_rate_when_supersaturated(make_calcite_system):
    system = make_calcite_system(-12.0)
    reactions = dissolution(
        system, mechanisms=[cf.MineralMechanism(logk=-5.0)], surface_area=1.0
    )
    r = reactions.rates(cf.T_REF, cf.P_REF, AMOUNTS)
    assert r.val[0] < 0.0

    # with the ion product at the equilibrium constant, the rate vanishes
    x = 1e-6
    water = 1.0 / x - 2.0
    r = reactions.rates(cf.T_REF, cf.P_REF, np.array([water, 1.0, 1.0, 1e-3]))
    assert r.val[0] == pytest.approx(0.0, abs=1e-15)


def test_specific_surface_area(calcite):
    reactions = dissolution(
        calcite,
        mechanisms=[cf.MineralMechanism(logk=-5.0)],
        mineral="Calcite",
        specific_surface_area=10.0,
    )
    r = reactions.rates(cf.T_REF, cf.P_REF, AMOUNTS)
    molar_mass = calcite.species[3].molar_mass
    assert r.val[0] == pytest.approx(1e-5 * 10.0 * molar_mass * 1e-3, rel=1e-8)
    # proportional to the amount of calcite
    assert r.jac[0, 3] == pytest.approx(1e-5 * 10.0 * molar_mass, rel=1e-6)


def test_catalysed_mechanism(calcite):
    """An acid-like mechanism catalysed by the activity of Ca++ adds to a neutral
    mechanism."""
    neutral = cf.MineralMechanism(logk=-6.0)
    catalysed = cf.MineralMechanism(
        logk=-5.0, catalysts=[cf.MineralCatalyst("Ca++", 0.5)]
    )
    reactions = dissolution(calcite, mechanisms=[neutral, catalysed], surface_area=1.0)
    r = reactions.rates(cf.T_REF, cf.P_REF, AMOUNTS)
    a_Ca = 1e-3 / (55.0 + 2e-3)
    assert r.val[0] == pytest.approx(1e-6 + 1e-5 * np.sqrt(a_Ca), rel=1e-8)


@pytest.mark.parametrize(
    "kwargs",
    [
        {},
        {"surface_area": 1.0, "specific_surface_area": 1.0, "mineral": "Calcite"},
        {"specific_surface_area": 1.0},
    ],
)
def test_invalid_surface_area(calcite, kwargs):
    reaction = cf.Reaction.from_equation(calcite, "Calcite = Ca++ + CO3--")
    with pytest.raises(cf.ChemicalModellingError):
        cf.mineral_reaction_rate(
            reaction, [cf.MineralMechanism(logk=-5.0)], **kwargs
        )


def test_invalid_catalysts(calcite):
    with pytest.raises(cf.ChemicalModellingError):
        cf.MineralCatalyst("Ca++", 1.0, quantity="molality")
    reaction = cf.Reaction.from_equation(calcite, "Calcite = Ca++ + CO3--")
    mechanism = cf.MineralMechanism(
        logk=-5.0, catalysts=[cf.MineralCatalyst("H+", 1.0)]
    )
    with pytest.raises(cf.ChemicalModellingError):
        cf.mineral_reaction_rate(reaction, [mechanism], surface_area=1.0)
