import jax.numpy as jnp
import numpy as np
import pytest

from jaxauglag import (
    AugmentedLagrangianOptions,
    AugmentedLagrangianSolver,
    AugmentedLagrangianState,
    ConstraintSet,
    OuterLoopState,
    SolveStatus,
    dual_update,
    iLQROptions,
    initial_trajectory,
    max_violation,
    max_violation_penalized,
    penalty_update,
    saturate,
    update_active_set,
)


@pytest.fixture
def state(bounded_problem):
    return AugmentedLagrangianState.initialize(ConstraintSet(bounded_problem))


def test_saturate():
    np.testing.assert_array_equal(
        saturate(jnp.array([-5.0, 0.5, 5.0]), 1.0, -1.0), [-1.0, 0.5, 1.0]
    )


def test_dual_update_projects_inequalities(state):
    opts = AugmentedLagrangianOptions()
    state.C[0] = state.C[0].replace(jnp.array([0.5, -2.0]))
    state.C[-1] = state.C[-1].replace(jnp.array([-0.25, 0.5]))

    dual_update(state, opts)

    np.testing.assert_allclose(state.duals[0].data, [0.5, 0.0])
    # equality multipliers keep their sign
    np.testing.assert_allclose(state.duals[-1].data, [-0.25, 0.5])
    for duals in state.duals:
        assert bool(jnp.all(duals.inequality >= 0.0))


def test_dual_update_saturates(state):
    opts = AugmentedLagrangianOptions(dual_max=1.0, dual_min=-1.0)
    state.C[-1] = state.C[-1].replace(jnp.array([-5.0, 5.0]))
    dual_update(state, opts)
    np.testing.assert_allclose(state.duals[-1].data, [-1.0, 1.0])


def test_dual_update_recomputes_active_set(state):
    opts = AugmentedLagrangianOptions()
    state.C[0] = state.C[0].replace(jnp.array([0.5, -2.0]))
    dual_update(state, opts)

    # a negative enough residual drives the multiplier back to zero and deactivates the row
    state.C[0] = state.C[0].replace(jnp.array([-0.5, -2.0]))
    dual_update(state, opts)

    np.testing.assert_allclose(state.duals[0].data, [0.0, 0.0])
    np.testing.assert_array_equal(state.active_set[0].data, [False, False])

    # a multiplier that stays positive keeps the row active after its residual turns negative
    state.C[0] = state.C[0].replace(jnp.array([0.25, -2.0]))
    dual_update(state, opts)
    state.C[0] = state.C[0].replace(jnp.array([-0.1, -2.0]))
    dual_update(state, opts)
    assert float(state.duals[0].data[0]) == pytest.approx(0.15)
    np.testing.assert_array_equal(state.active_set[0].data, [True, False])


def test_penalty_update_is_monotone_and_capped(state):
    opts = AugmentedLagrangianOptions(penalty_scaling=10.0, penalty_max=1e3)
    history = []
    for _ in range(5):
        penalty_update(state, opts)
        history.append(float(state.penalties[0].data[0]))
    assert history == sorted(history)
    assert history[-1] == 1e3
    for mu in state.penalties:
        assert bool(jnp.all(mu.data <= 1e3))


def test_max_violation_ignores_activation(state):
    state.C[0] = state.C[0].replace(jnp.array([0.5, -2.0]))
    state.C[3] = state.C[3].replace(jnp.array([-1.0, -1.0]))
    state.C[-1] = state.C[-1].replace(jnp.array([-0.25, 0.125]))
    state.penalties[0] = state.penalties[0].replace(jnp.zeros(2))
    update_active_set(state.active_set, state.C, state.duals)

    assert max_violation(state) == pytest.approx(0.5)
    # masked out by the zero penalty at knot 0
    assert max_violation_penalized(state) == pytest.approx(0.25)


def test_max_violation_without_violation(state):
    for k in range(state.num_knots - 1):
        state.C[k] = state.C[k].replace(jnp.array([-1.0, -1.0]))
    assert max_violation(state) == 0.0


def test_set_tolerances(bounded_problem):
    opts = AugmentedLagrangianOptions(
        iterations=3,
        cost_tolerance=1e-6,
        cost_tolerance_intermediate=1e-2,
        gradient_norm_tolerance=1e-7,
        gradient_norm_tolerance_intermediate=1e-3,
    )
    solver = AugmentedLagrangianSolver(bounded_problem, opts)

    solver.set_tolerances(0)
    assert solver.solver_uncon.opts.cost_tolerance == 1e-2
    assert solver.solver_uncon.opts.gradient_norm_tolerance == 1e-3

    solver.set_tolerances(2)
    assert solver.solver_uncon.opts.cost_tolerance == 1e-6
    assert solver.solver_uncon.opts.gradient_norm_tolerance == 1e-7
    # the configured options are never mutated
    assert opts.opts_uncon.cost_tolerance == iLQROptions().cost_tolerance


def test_bounded_problem_converges(bounded_problem):
    opts = AugmentedLagrangianOptions()
    solver = AugmentedLagrangianSolver(bounded_problem, opts)
    U0 = jnp.full((bounded_problem.N - 1, 1), 2.0)
    traj = initial_trajectory(bounded_problem, U0=U0)

    solver.solve(traj)
    stats = solver.stats

    assert stats.status == SolveStatus.SUCCESS
    assert stats.state == OuterLoopState.CONVERGED
    assert stats.c_max[-1] < opts.constraint_tolerance
    assert float(jnp.max(jnp.abs(traj.controls()))) <= 1.0 + opts.constraint_tolerance
    np.testing.assert_allclose(
        traj.X[-1], bounded_problem.objective.xf, atol=opts.constraint_tolerance
    )

    # statistics bookkeeping
    assert stats.iterations == len(stats.cost) == len(stats.c_max) == len(stats.stats_uncon)
    assert stats.iterations_total == sum(stats.iterations_inner)

    # penalties escalate once per outer iteration
    expected_mu = min(
        opts.penalty_initial * opts.penalty_scaling**stats.iterations, opts.penalty_max
    )
    for mu in solver.state.penalties:
        np.testing.assert_allclose(mu.data, expected_mu)
    for duals in solver.state.duals:
        assert bool(jnp.all(duals.inequality >= 0.0))


def test_iteration_limit(bounded_problem):
    opts = AugmentedLagrangianOptions(iterations=1, constraint_tolerance=1e-12)
    solver = AugmentedLagrangianSolver(bounded_problem, opts)
    traj = initial_trajectory(bounded_problem, U0=jnp.full((bounded_problem.N - 1, 1), 2.0))

    solver.solve(traj)

    assert solver.stats.iterations == 1
    assert solver.stats.state == OuterLoopState.ITERATION_LIMIT_REACHED
    assert solver.stats.status == SolveStatus.MAX_ITERATIONS


def test_unconstrained_problem_skips_outer_loop(unconstrained_problem):
    solver = AugmentedLagrangianSolver(unconstrained_problem)
    traj = initial_trajectory(unconstrained_problem)
    solver.solve(traj)

    assert solver.stats.iterations == 1
    assert solver.stats.c_max == [0.0]
    assert solver.stats.state == OuterLoopState.CONVERGED
