"""Tests of reactions: stoichiometry, equilibrium constants, reaction quotients and
rates."""

from __future__ import annotations

import numpy as np
import pytest

import chemfield as cf


@pytest.fixture
def association(ab_system) -> cf.Reaction:
    """The reaction ``0 = A + B - AB``."""
    return cf.Reaction(ab_system, ["A", "B", "AB"], [1.0, 1.0, -1.0])


def test_reaction_quotient_example(association):
    a = np.array([0.1, 0.2, 0.02])
    Q = association.reaction_quotient(a)
    assert Q.val == pytest.approx(1.0)
    # derivatives w.r.t. the activities, Q * nu_i / a_i
    assert np.allclose(Q.jac, [10.0, 5.0, -50.0])


@pytest.mark.parametrize("activity", [1e-8, 0.3, 1.0, 7.0])
def test_reaction_quotient_of_balanced_reaction(ab_system, activity: float):
    """Powers cancel for uniform activities if the coefficients sum to zero."""
    reaction = cf.Reaction(ab_system, ["A", "B", "AB"], [1.0, 2.0, -3.0])
    Q = reaction.reaction_quotient(np.full(3, activity))
    assert Q.val == pytest.approx(1.0)


@pytest.mark.parametrize("seed", range(5))
def test_reaction_quotient_gradient_wrt_amounts(ab_system, seed: int):
    """The gradient propagated from activities agrees with finite differences in
    the species amounts, for random reactions and amounts."""
    rng = np.random.default_rng(seed)
    nu = rng.choice([-1.0, 1.0], size=3) * rng.uniform(0.5, 3.0, size=3)
    n0 = rng.uniform(0.1, 2.0, size=3)
    reaction = cf.Reaction(ab_system, ["A", "B", "AB"], nu)

    def quotient(n):
        return reaction.reaction_quotient(
            ab_system.activities(cf.T_REF, cf.P_REF, n)
        ).val

    (n,) = cf.init_sensitivity_arrays([n0])
    Q = reaction.reaction_quotient(ab_system.activities(cf.T_REF, cf.P_REF, n))

    h = 1e-7
    fd = np.array(
        [(quotient(n0 + h * e) - quotient(n0 - h * e)) / (2 * h) for e in np.eye(3)]
    )
    assert Q.val == pytest.approx(np.prod((n0 / n0.sum()) ** nu))
    assert np.allclose(Q.jac, fd, rtol=1e-6, atol=1e-8 * Q.val)


def test_reaction_quotient_with_zero_product_activity(association):
    Q = association.reaction_quotient(np.array([0.0, 0.2, 0.02]))
    assert Q.val == 0.0
    assert np.all(Q.jac == 0.0)


@pytest.mark.parametrize(
    "activities", [np.array([0.1, 0.2, 0.0]), np.array([-0.1, 0.2, 0.02])]
)
def test_undefined_reaction_quotient(association, activities):
    with pytest.warns(cf.UndefinedQuotientWarning):
        Q = association.reaction_quotient(activities)
    assert np.isnan(Q.val)
    assert np.all(np.isnan(Q.jac))


def test_equilibrium_constant(ab_system):
    reaction = cf.Reaction.from_equation(ab_system, "A + B = AB")
    K = reaction.equilibrium_constant(cf.T_REF, cf.P_REF)
    assert K.val == pytest.approx(10.0)
    # the standard potentials are constant, dK/dT = K dG / (R T^2)
    assert np.allclose(K.jac, [-10.0 * np.log(10.0) / cf.T_REF, 0.0])
    assert reaction.ln_equilibrium_constant(cf.T_REF, cf.P_REF).val == pytest.approx(
        np.log(10.0)
    )


@pytest.mark.parametrize("T, P", [(cf.T_REF, cf.P_REF), (350.0, 1e7), (280.0, 2e5)])
def test_equilibrium_constant_of_uniform_potentials(T: float, P: float):
    """Zero weighted sum of standard potentials gives unit equilibrium constant."""
    model = cf.LinearStandardState(-1000.0, S0=10.0, V0=1e-5)
    species = [cf.Species(name, {"C": 1.0}, standard_state=model) for name in "XYZ"]
    system = cf.ChemicalSystem([cf.Phase("solution", species)])
    reaction = cf.Reaction(system, ["X", "Y", "Z"], [1.0, 1.0, -2.0])
    assert reaction.equilibrium_constant(T, P).val == 1.0


def test_custom_equilibrium_constant(ab_system):
    reaction = cf.Reaction(
        ab_system,
        ["A", "B", "AB"],
        [-1.0, -1.0, 1.0],
        equilibrium_constant=lambda T, P: 3.0,
    )
    K = reaction.equilibrium_constant(cf.T_REF, cf.P_REF)
    assert K.val == 3.0
    assert np.all(K.jac == 0.0)


def test_stoichiometry_lookup(association):
    assert association.stoichiometry("AB") == -1.0
    assert association.stoichiometry("X") == 0.0
    assert association.index_species("B") == 1
    assert association.index_species("X") == association.num_species
    assert association.contains_species("A")
    assert np.all(association.stoichiometric_vector() == [1.0, 1.0, -1.0])


def test_reaction_from_equation(ab_system):
    reaction = cf.Reaction.from_equation(ab_system, "A + B = AB")
    assert reaction.species_names == ["A", "B", "AB"]
    assert np.all(reaction.stoichiometries == [-1.0, -1.0, 1.0])
    assert reaction.name == "A + B = AB"

    reaction = cf.Reaction.from_equation(ab_system, {"AB": -1.0, "A": 1.0, "B": 1.0})
    assert reaction.species_names == ["AB", "A", "B"]
    assert reaction.name == "AB = A + B"


@pytest.mark.parametrize(
    "species, nu",
    [(["A", "B"], [1.0]), (["A", "A"], [1.0, -1.0]), (["D"], [1.0]), ([5], [1.0])],
)
def test_invalid_reactions(ab_system, species, nu):
    with pytest.raises(cf.ChemicalModellingError):
        cf.Reaction(ab_system, species, nu)


def test_rate_requires_rate_function(association):
    assert not association.has_rate
    with pytest.raises(cf.ChemicalModellingError):
        association.rate(cf.T_REF, cf.P_REF, np.ones(3), np.ones(3))


def test_reaction_system_rates(ab_system):
    """Rates of a mass-action reaction, with derivatives w.r.t. species amounts."""
    k = 2.0

    def rate(T, P, n, a):
        return k * a[0] * a[1] - a[2]

    forward = cf.Reaction.from_equation(ab_system, "A + B = AB", rate=rate)
    constant = cf.Reaction.from_equation(
        ab_system, "AB = A + B", rate=lambda T, P, n, a: 0.5
    )
    reactions = cf.ReactionSystem(ab_system, [forward, constant])
    assert reactions.num_reactions == 2
    assert np.all(
        reactions.stoichiometric_matrix == [[-1.0, -1.0, 1.0], [1.0, 1.0, -1.0]]
    )
    assert reactions.index_reaction("AB = A + B") == 1

    n0 = np.array([1.0, 2.0, 1.0])
    r = reactions.rates(cf.T_REF, cf.P_REF, n0)

    def value(n):
        x = n / n.sum()
        return k * x[0] * x[1] - x[2]

    h = 1e-7
    fd = np.array(
        [(value(n0 + h * e) - value(n0 - h * e)) / (2 * h) for e in np.eye(3)]
    )
    assert np.allclose(r.val, [value(n0), 0.5])
    assert np.allclose(r.jac[0], fd, rtol=1e-6)
    assert np.all(r.jac[1] == 0.0)


def test_reaction_of_other_system(ab_system, calcite):
    reaction = cf.Reaction.from_equation(calcite, "Calcite = Ca++ + CO3--")
    with pytest.raises(cf.ChemicalModellingError):
        cf.ReactionSystem(ab_system, [reaction])
