import jax.numpy as jnp
import numpy as np
import pytest

from jaxauglag import (
    IntegrationScheme,
    Trajectory,
    closed_loop_rollout,
    iLQROptions,
    rollout,
)
from jaxauglag.rollout import cubic_midpoint


def _controls(problem, values):
    return [jnp.array([v]) for v in values]


def test_open_loop_rollout(make_problem):
    problem = make_problem(N=4, dt=0.5)
    traj = Trajectory([], _controls(problem, [1.0, 0.0, -1.0]))

    assert rollout(problem, traj)

    np.testing.assert_allclose(traj.states(), [[0.0, 0.0], [0.125, 0.5], [0.375, 0.5], [0.5, 0.0]])


def test_closed_loop_with_zero_gains_is_identical(make_problem):
    problem = make_problem(N=6)
    traj = Trajectory([], _controls(problem, [0.3, -0.2, 0.7, 0.1, -0.4]))
    assert rollout(problem, traj)

    K = [jnp.zeros((1, 2))] * 5
    d = [jnp.zeros(1)] * 5
    ok, new_traj = closed_loop_rollout(problem, traj, K, d, 0.0)

    assert ok
    for x, x_new in zip(traj.X, new_traj.X):
        assert jnp.array_equal(x, x_new)
    for u, u_new in zip(traj.U, new_traj.U):
        assert jnp.array_equal(u, u_new)


def test_closed_loop_feedforward(make_problem):
    problem = make_problem(N=3, dt=0.5)
    traj = Trajectory([], _controls(problem, [0.0, 0.0]))
    assert rollout(problem, traj)

    K = [jnp.array([[1.0, 0.0]])] * 2
    d = [jnp.array([-1.0])] * 2
    ok, new_traj = closed_loop_rollout(problem, traj, K, d, 0.5)

    assert ok
    # no state deviation at the first knot
    np.testing.assert_allclose(new_traj.U[0], [0.5])
    dx = new_traj.X[1] - traj.X[1]
    np.testing.assert_allclose(new_traj.U[1], 0.5 - dx[0])


def test_rollout_divergence(make_problem):
    problem = make_problem(N=4)
    traj = Trajectory([], _controls(problem, [1e9, 0.0, 0.0]))
    assert not rollout(problem, traj)

    opts = iLQROptions(max_state_value=1.0)
    traj = Trajectory([], _controls(problem, [100.0, 0.0, 0.0]))
    assert not rollout(problem, traj, opts)


def test_nan_counts_as_divergence(make_problem):
    problem = make_problem(N=4)
    traj = Trajectory([], _controls(problem, [jnp.nan, 0.0, 0.0]))
    assert not rollout(problem, traj)


def test_closed_loop_divergence(make_problem):
    problem = make_problem(N=4)
    traj = Trajectory([], _controls(problem, [0.0, 0.0, 0.0]))
    assert rollout(problem, traj)

    K = [jnp.zeros((1, 2))] * 3
    d = [jnp.array([-1e9])] * 3
    ok, _ = closed_loop_rollout(problem, traj, K, d, 1.0)
    assert not ok


def test_infeasible_slack_is_added(make_problem):
    problem = make_problem(N=3, dt=0.5, infeasible=True)
    U = [jnp.array([0.0, 0.25, -0.5]), jnp.array([0.0, 0.0, 0.0])]
    traj = Trajectory([], U)
    assert rollout(problem, traj)
    np.testing.assert_allclose(traj.X[1], [0.25, -0.5])


def test_minimum_time_uses_squared_step(make_problem):
    problem = make_problem(N=3, dt=0.0)
    U = [jnp.array([1.0, -0.5]), jnp.array([1.0, 0.5])]
    traj = Trajectory([], U)
    assert rollout(problem, traj)
    # h = -0.5 still gives the positive step 0.25
    np.testing.assert_allclose(traj.X[1], [0.03125, 0.25])


def test_cubic_midpoint_of_linear_motion():
    x1 = jnp.array([0.0, 1.0])
    x2 = jnp.array([1.0, 1.0])
    xdot = jnp.array([1.0, 0.0])
    np.testing.assert_allclose(cubic_midpoint(x1, xdot, x2, xdot, 1.0), [0.5, 1.0])


def test_first_order_hold_rollout(make_problem):
    problem = make_problem(N=5, integration=IntegrationScheme.FOH)
    U = [jnp.array([v]) for v in [0.0, 0.5, 1.0, 0.5, 0.0]]
    traj = Trajectory([], U)
    assert rollout(problem, traj)

    assert len(traj.X) == problem.N
    assert len(traj.xdot) == problem.N
    assert len(traj.xmid) == problem.N - 1
    np.testing.assert_allclose(traj.xdot[2], [traj.X[2][1], 1.0])


def test_first_order_hold_zero_gains_is_identical(make_problem):
    problem = make_problem(N=5, integration=IntegrationScheme.FOH)
    traj = Trajectory([], [jnp.array([v]) for v in [0.2, -0.1, 0.4, 0.0, 0.3]])
    assert rollout(problem, traj)

    K = [jnp.zeros((1, 2))] * 5
    d = [jnp.zeros(1)] * 5
    b = [jnp.eye(1)] * 5
    ok, new_traj = closed_loop_rollout(problem, traj, K, d, 0.0, b=b)

    assert ok
    for x, x_new in zip(traj.X, new_traj.X):
        assert jnp.array_equal(x, x_new)
    for xm, xm_new in zip(traj.xmid, new_traj.xmid):
        assert jnp.array_equal(xm, xm_new)


def test_first_order_hold_correction_is_carried_forward(make_problem):
    problem = make_problem(N=3, integration=IntegrationScheme.FOH)
    traj = Trajectory([], [jnp.zeros(1)] * 3)
    assert rollout(problem, traj)

    K = [jnp.zeros((1, 2))] * 3
    d = [jnp.array([1.0]), jnp.zeros(1), jnp.zeros(1)]
    b = [jnp.array([[0.5]])] * 3
    ok, new_traj = closed_loop_rollout(problem, traj, K, d, 1.0, b=b)

    assert ok
    np.testing.assert_allclose(new_traj.U[0], [1.0])
    np.testing.assert_allclose(new_traj.U[1], [0.5])
    np.testing.assert_allclose(new_traj.U[2], [0.25])


@pytest.mark.parametrize("alpha", [1.0, 0.25])
def test_closed_loop_does_not_modify_reference(make_problem, alpha):
    problem = make_problem(N=4)
    traj = Trajectory([], _controls(problem, [0.1, 0.2, 0.3]))
    assert rollout(problem, traj)
    X_before = traj.states()

    K = [jnp.ones((1, 2))] * 3
    d = [jnp.ones(1)] * 3
    closed_loop_rollout(problem, traj, K, d, alpha)

    assert jnp.array_equal(traj.states(), X_before)
