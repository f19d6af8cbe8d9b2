"""Tests of the kinetic step solver with calcite dissolving at a constant rate."""

from __future__ import annotations

import numpy as np
import pytest

import chemfield as cf


@pytest.fixture
def reactions(calcite) -> cf.ReactionSystem:
    """Dissolution of calcite at ``1e-5 mol / s`` in undersaturated water."""
    equation = "Calcite = Ca++ + CO3--"
    rate = cf.mineral_reaction_rate(
        cf.Reaction.from_equation(calcite, equation),
        [cf.MineralMechanism(logk=-5.0)],
        surface_area=1.0,
    )
    return cf.ReactionSystem(
        calcite, [cf.Reaction.from_equation(calcite, equation, rate=rate)]
    )


@pytest.fixture
def state(calcite) -> cf.ChemicalState:
    return cf.ChemicalState(calcite, n=[55.0, 1e-6, 1e-6, 1e-3])


def test_default_partition(reactions):
    solver = cf.KineticSolver(reactions)
    assert solver.partition.indices_kinetic_species.tolist() == [3]
    assert solver.equilibrium_solver.partition is solver.partition


def test_calcite_dissolution_step(reactions, state):
    b0 = state.element_amounts()
    result = cf.KineticSolver(reactions).step(state, 0.0, 1.0)
    assert result.converged
    assert result.num_steps > 0

    assert state.species_amount("Calcite") == pytest.approx(1e-3 - 1e-5, rel=1e-6)
    assert state.species_amount("Ca++") == pytest.approx(1.1e-5, rel=1e-2)
    assert state.species_amount("CO3--") == pytest.approx(1.1e-5, rel=1e-2)
    assert np.allclose(state.element_amounts(), b0, rtol=1e-8, atol=2e-8)
    assert state.sensitivity is not None
    assert state.sensitivity.dndnk.shape == (4, 1)


def test_zero_time_step(reactions, state):
    cf.KineticSolver(reactions).step(state, 0.0, 0.0)
    assert state.species_amount("Calcite") == 1e-3
    assert state.species_amount("Ca++") == pytest.approx(1e-6, rel=1e-2)


def test_negative_time_step(reactions, state):
    with pytest.raises(ValueError):
        cf.KineticSolver(reactions).step(state, 0.0, -1.0)


def test_reaction_without_rate(calcite):
    reactions = cf.ReactionSystem(
        calcite, [cf.Reaction.from_equation(calcite, "Calcite = Ca++ + CO3--")]
    )
    with pytest.raises(cf.ChemicalModellingError):
        cf.KineticSolver(reactions)


def test_shared_partition(reactions, calcite):
    partition = cf.Partition.from_kinetic_species(calcite, ["Calcite"])
    other = cf.Partition.from_kinetic_species(calcite, ["Calcite"])
    solver = cf.EquilibriumSolver(calcite, other)
    with pytest.raises(cf.ChemicalModellingError):
        cf.KineticSolver(reactions, partition, equilibrium_solver=solver)

    kinetic_solver = cf.KineticSolver(reactions, equilibrium_solver=solver)
    assert kinetic_solver.partition is other
    kinetic_solver.set_partition(partition)
    assert solver.partition is partition


class FailingIntegrator:
    def integrate(self, rhs, jac, y0, t, dt):
        raise cf.ConvergenceError("Step size too small.", 3)


def test_failing_integration_leaves_state_unchanged(reactions, state):
    solver = cf.KineticSolver(reactions, integrator=FailingIntegrator())
    with pytest.raises(cf.ConvergenceError):
        solver.step(state, 0.0, 1.0)
    assert np.all(state.n == [55.0, 1e-6, 1e-6, 1e-3])


class SingularIntegrator:
    def integrate(self, rhs, jac, y0, t, dt):
        raise np.linalg.LinAlgError("Singular matrix")


def test_numerical_failure_is_convergence_error(reactions, state):
    solver = cf.KineticSolver(reactions, integrator=SingularIntegrator())
    with pytest.raises(cf.ConvergenceError, match="Singular matrix"):
        solver.step(state, 0.0, 1.0)
    assert np.all(state.n == [55.0, 1e-6, 1e-6, 1e-3])


def test_explicit_integrator(reactions, state):
    integrator = cf.ScipyIntegrator({"method": "RK45"})
    cf.KineticSolver(reactions, integrator=integrator).step(state, 10.0, 2.0)
    assert state.species_amount("Calcite") == pytest.approx(1e-3 - 2e-5, rel=1e-6)
