"""Tests of the equilibrium solver on the association ``A + B = AB`` and on the calcite
system."""

from __future__ import annotations

import numpy as np
import pytest

import chemfield as cf


def solve_amounts(system, n0, T=cf.T_REF, P=cf.P_REF, be=None, partition=None):
    state = cf.ChemicalState(system, T=T, P=P, n=n0)
    cf.EquilibriumSolver(system, partition).solve(state, be=be)
    return state.n


def test_association_equilibrium(ab_system, ab_state, ab_extent):
    result = cf.EquilibriumSolver(ab_system).solve(ab_state)
    assert result.converged
    x = ab_extent
    assert np.allclose(ab_state.n, [1.0 - x, 1.0 - x, x], rtol=1e-6)
    # mass action law in mole fractions
    a = ab_state.activities()
    assert a[2] / (a[0] * a[1]) == pytest.approx(10.0, rel=1e-6)
    assert np.allclose(ab_state.element_amounts(), [1.0, 1.0], atol=1e-10)


def test_equilibrium_is_idempotent(ab_system, ab_state):
    solver = cf.EquilibriumSolver(ab_system)
    solver.solve(ab_state)
    n = ab_state.n.copy()
    solver.solve(ab_state)
    assert np.allclose(ab_state.n, n, rtol=1e-9, atol=1e-12)


def test_equilibrium_with_given_element_amounts(ab_system, ab_state, ab_extent):
    """Scaling the element amounts scales the equilibrium amounts."""
    cf.EquilibriumSolver(ab_system).solve(ab_state, be=[3.0, 3.0])
    x = ab_extent
    assert np.allclose(ab_state.n, 3.0 * np.array([1.0 - x, 1.0 - x, x]), rtol=1e-6)


def test_sensitivities(ab_system, ab_state):
    """Sensitivities agree with central finite differences."""
    cf.EquilibriumSolver(ab_system).solve(ab_state)
    sens = ab_state.sensitivity
    n0 = [1.0, 1.0, 0.0]

    # element conservation is differentiated exactly
    assert np.allclose(ab_system.formula_matrix @ sens.dndb, np.eye(2), atol=1e-8)

    h = 1e-4
    for j, e in enumerate(np.eye(2)):
        be = np.ones(2)
        fd = (
            solve_amounts(ab_system, n0, be=be + h * e)
            - solve_amounts(ab_system, n0, be=be - h * e)
        ) / (2 * h)
        assert np.allclose(sens.dndb[:, j], fd, atol=1e-5)

    hT = 1e-2
    fd = (
        solve_amounts(ab_system, n0, T=cf.T_REF + hT)
        - solve_amounts(ab_system, n0, T=cf.T_REF - hT)
    ) / (2 * hT)
    assert np.allclose(sens.dndT, fd, atol=1e-6)
    # no dependence of the standard potentials and activities on pressure
    assert np.allclose(sens.dndP, 0.0, atol=1e-10)


def test_kinetic_species_are_fixed(ab_system):
    partition = cf.Partition.from_kinetic_species(ab_system, ["AB"])
    state = cf.ChemicalState(ab_system, n=[1.0, 1.0, 0.5])
    cf.EquilibriumSolver(ab_system, partition).solve(state)
    assert np.allclose(state.n, [1.0, 1.0, 0.5], rtol=1e-8)
    assert np.allclose(state.sensitivity.dndnk[:, 0], [0.0, 0.0, 1.0], atol=1e-8)


def test_calcite_dissolves_when_undersaturated(calcite):
    n = solve_amounts(calcite, [55.0, 0.0, 0.0, 1e-3])
    assert n[3] < 1e-9
    assert n[1] == pytest.approx(1e-3, rel=1e-4)
    assert n[2] == pytest.approx(1e-3, rel=1e-4)
    assert n[0] == pytest.approx(55.0)


def test_calcite_precipitates_when_supersaturated(make_calcite_system):
    """With an equilibrium constant of 1e-12 the ion product cannot exceed it."""
    system = make_calcite_system(-12.0)
    n = solve_amounts(system, [55.0, 1e-3, 1e-3, 0.0])
    total = n[:3].sum()
    assert (n[1] / total) * (n[2] / total) == pytest.approx(1e-12, rel=1e-4)
    assert n[1] + n[3] == pytest.approx(1e-3, rel=1e-4)
    assert n[1] == pytest.approx(n[2], rel=1e-3)


def test_equilibrate_function(ab_system, ab_state, ab_extent):
    result = cf.equilibrate(ab_state)
    assert result.num_iter > 0
    assert ab_state.species_amount("AB") == pytest.approx(ab_extent, rel=1e-6)


def test_invalid_input(ab_system, ab_state, calcite):
    solver = cf.EquilibriumSolver(ab_system)
    with pytest.raises(cf.DimensionMismatchError):
        solver.solve(ab_state, be=[1.0, 1.0, 1.0])
    with pytest.raises(cf.ChemicalModellingError):
        solver.solve(cf.ChemicalState(calcite))
    with pytest.raises(cf.ChemicalModellingError):
        solver.set_partition(cf.Partition(calcite))


def test_failure_leaves_state_unchanged(ab_system, ab_state):
    solver = cf.EquilibriumSolver(ab_system, params={"max_iterations": 1})
    with pytest.raises(cf.ConvergenceError):
        solver.solve(ab_state, T=350.0)
    assert np.all(ab_state.n == [1.0, 1.0, 0.0])
    assert ab_state.T == cf.T_REF
    assert ab_state.sensitivity is None


def test_element_with_zero_amount(ab_system, ab_state):
    """Without element O, species B and AB vanish. An infinitesimal amount of O is
    split between B and AB in the ratio ``1 : K``."""
    result = cf.EquilibriumSolver(ab_system).solve(ab_state, be=[1.0, 0.0])
    assert result.converged
    assert np.all(ab_state.n == [1.0, 0.0, 0.0])
    assert np.all(ab_state.z[1:] == 0.0)

    dndb = ab_state.sensitivity.dndb
    expected = [[1.0, -10.0 / 11.0], [0.0, 1.0 / 11.0], [0.0, 10.0 / 11.0]]
    assert np.allclose(dndb, expected, rtol=1e-6, atol=1e-9)
    assert np.allclose(ab_system.formula_matrix @ dndb, np.eye(2), atol=1e-9)

    # one-sided difference
    h = 1e-4
    n = solve_amounts(ab_system, [1.0, 1.0, 0.0], be=[1.0, h])
    assert np.allclose((n - [1.0, 0.0, 0.0]) / h, dndb[:, 1], atol=1e-3)


def test_all_element_amounts_zero(ab_system, ab_state):
    cf.EquilibriumSolver(ab_system).solve(ab_state, be=[0.0, 0.0])
    assert np.all(ab_state.n == 0.0)
    # each element goes to the species containing only this element
    assert np.allclose(ab_state.sensitivity.dndb, [[1.0, 0.0], [0.0, 1.0], [0.0, 0.0]])


def test_unattainable_element_amounts(ab_system):
    """With A kinetic, C is only contained in AB, which cannot form without O."""
    partition = cf.Partition.from_kinetic_species(ab_system, ["A"])
    state = cf.ChemicalState(ab_system, n=[1.0, 1.0, 1.0])
    with pytest.raises(cf.ConvergenceError):
        cf.EquilibriumSolver(ab_system, partition).solve(state, be=[1.0, 0.0])
    assert np.all(state.n == [1.0, 1.0, 1.0])


class SingularMinimizer:
    def solve(self, problem, x0, y0=None, z0=None):
        raise np.linalg.LinAlgError("Singular matrix")


def test_numerical_failure_is_convergence_error(ab_system, ab_state):
    solver = cf.EquilibriumSolver(ab_system, minimizer=SingularMinimizer())
    with pytest.raises(cf.ConvergenceError):
        solver.solve(ab_state)
    assert np.all(ab_state.n == [1.0, 1.0, 0.0])
