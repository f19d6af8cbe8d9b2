"""Tests of the solver for inverse equilibrium problems."""

from __future__ import annotations

import numpy as np
import pytest

import chemfield as cf


def titration_problem(ab_system, target: float) -> cf.EquilibriumInverseProblem:
    """Amount of B to add to one mole of A such that ``target`` moles of AB form."""
    problem = cf.EquilibriumInverseProblem(ab_system)
    problem.add_titrant("B", formula={"O": 1.0})
    problem.set_initial_element_amounts([1.0, 0.0])
    problem.add_species_amount_constraint("AB", target)
    return problem


def test_titration(ab_system):
    """With ``n_AB = n_A = 1/2`` the mass action law gives ``x = 11/18``."""
    problem = titration_problem(ab_system, 0.5)
    state = cf.ChemicalState(ab_system, n=[1.0, 1.0, 0.0])
    result = cf.EquilibriumInverseSolver(problem).solve(state, x0=[1.0])
    assert result.converged
    assert result.num_iter > 0
    assert result.residual_norm <= 1e-8
    assert result.x[0] == pytest.approx(11.0 / 18.0, rel=1e-6)
    assert state.species_amount("AB") == pytest.approx(0.5, rel=1e-7)
    assert np.allclose(state.element_amounts(), [1.0, 11.0 / 18.0], rtol=1e-6)


def test_titration_from_zero(ab_system):
    """Starting without titrant, no O is present and the amounts of B and AB start at
    zero."""
    state = cf.ChemicalState(ab_system, n=[1.0, 1.0, 0.0])
    solver = cf.EquilibriumInverseSolver(titration_problem(ab_system, 0.5))
    result = solver.solve(state)
    assert result.converged
    assert result.x[0] == pytest.approx(11.0 / 18.0, rel=1e-6)
    assert state.species_amount("AB") == pytest.approx(0.5, rel=1e-7)


def test_titration_with_activity_constraint(ab_system):
    """Prescribing the mole fraction of A is equivalent to prescribing the amount of
    AB."""
    problem = cf.EquilibriumInverseProblem(ab_system)
    problem.add_titrant("B", formula={"O": 1.0})
    problem.set_initial_element_amounts([1.0, 0.0])
    # mole fraction of A at the solution of test_titration
    problem.add_species_activity_constraint("A", 0.5 / (11.0 / 18.0 + 0.5))
    state = cf.ChemicalState(ab_system, n=[1.0, 1.0, 0.0])
    result = cf.EquilibriumInverseSolver(problem).solve(state, x0=[1.0])
    assert result.x[0] == pytest.approx(11.0 / 18.0, rel=1e-6)


def test_signed_pairs(ab_system):
    problem = cf.EquilibriumInverseProblem(ab_system)
    problem.add_titrant("A")
    problem.add_titrant("B")
    problem.add_titrant("AB")
    problem.set_as_mutually_exclusive("A", "B")
    solver = cf.EquilibriumInverseSolver(problem)
    assert solver.num_variables == 2

    # unpaired titrant AB first, then the signed variable of the pair
    x, dxdu = solver.titrant_amounts([0.7, -0.3])
    assert np.allclose(x, [0.0, 0.3, 0.7])
    assert np.all(dxdu == [[0.0, 0.0], [0.0, -1.0], [1.0, 0.0]])

    x, dxdu = solver.titrant_amounts([0.7, 0.2])
    assert np.allclose(x, [0.2, 0.0, 0.7])
    assert np.all(dxdu[:, 1] == [1.0, 0.0, 0.0])


def test_titrant_in_two_pairs(ab_system):
    problem = cf.EquilibriumInverseProblem(ab_system)
    for name in ("A", "B", "AB"):
        problem.add_titrant(name)
    problem.set_as_mutually_exclusive("A", "B")
    problem.set_as_mutually_exclusive("A", "AB")
    with pytest.raises(cf.ChemicalModellingError):
        cf.EquilibriumInverseSolver(problem)


def test_non_convergence(ab_system):
    problem = titration_problem(ab_system, 0.5)
    state = cf.ChemicalState(ab_system, n=[1.0, 1.0, 0.0])
    solver = cf.EquilibriumInverseSolver(problem, params={"max_iterations": 0})
    with pytest.raises(cf.ConvergenceError) as err:
        solver.solve(state, x0=[1.0])
    assert err.value.num_iter == 0
    assert err.value.residual_norm > 0.0
