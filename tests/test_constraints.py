import jax.numpy as jnp
import numpy as np
import pytest

from jaxauglag import (
    ConstraintError,
    ConstraintSet,
    ErrorCode,
    Trajectory,
    evaluate_trajectory,
    forward_jacobian,
    jacobian_trajectory,
)


def test_layout_sizes(make_problem):
    problem = make_problem(u_min=-1.0, u_max=1.0, x_max=jnp.array([jnp.inf, 2.0]))
    constraints = ConstraintSet(problem)

    assert constraints.pI == 3
    assert constraints.pE == 0
    assert constraints.p_N == 2

    traj = Trajectory([problem.x0] * problem.N, [jnp.zeros(1)] * (problem.N - 1))
    C = evaluate_trajectory(constraints, traj)
    assert len(C) == problem.N
    for c in C[:-1]:
        assert c.shape == (constraints.p,)
    assert C[-1].shape == (constraints.p_N,)


def test_no_constraints(make_problem):
    constraints = ConstraintSet(make_problem(use_terminal_constraint=False))
    assert constraints.p == 0
    assert constraints.p_N == 0
    assert constraints.is_empty


def test_box_constraint_values_and_jacobian(make_problem):
    problem = make_problem(u_min=-1.0, u_max=1.0, x_max=jnp.array([jnp.inf, 2.0]))
    constraints = ConstraintSet(problem)
    x = jnp.array([0.2, 3.0])
    u = jnp.array([1.5])

    np.testing.assert_allclose(constraints.evaluate(x, u), [0.5, -2.5, 1.0])

    jac = constraints.jacobian(x, u)
    np.testing.assert_array_equal(jac.x, [[0.0, 0.0], [0.0, 0.0], [0.0, 1.0]])
    np.testing.assert_array_equal(jac.u, [[1.0], [-1.0], [0.0]])


def test_custom_constraints(make_problem):
    def cI(x, u):
        return jnp.array([x[0] ** 2 + u[0] - 1.0])

    def cE(x, u):
        return jnp.array([x[1] - 2.0 * u[0]])

    problem = make_problem(cI=cI, cE=cE)
    constraints = ConstraintSet(problem)
    assert constraints.pI == 1
    assert constraints.pE == 1

    x = jnp.array([0.5, 1.0])
    u = jnp.array([0.25])
    c = constraints.evaluate(x, u)
    np.testing.assert_allclose(c, [-0.5, 0.5])

    jac = constraints.jacobian(x, u)
    np.testing.assert_allclose(jac.x, [[1.0, 0.0], [0.0, 1.0]])
    np.testing.assert_allclose(jac.u, [[1.0], [-2.0]])


def _central_difference(fun, point, eps=1e-6):
    point = np.asarray(point, dtype=float)
    value = np.asarray(fun(point))
    J = np.zeros((value.size, point.size))
    for i in range(point.size):
        step = np.zeros_like(point)
        step[i] = eps
        J[:, i] = (np.asarray(fun(point + step)) - np.asarray(fun(point - step))) / (2.0 * eps)
    return value, J


def test_numpy_differentiation_service(make_problem):
    def cI(x, u):
        return jnp.array([x[0] ** 2 + u[0] * x[1] - 1.0])

    def cE(x, u):
        return jnp.array([jnp.sin(x[1]) - 2.0 * u[0]])

    problem = make_problem(cI=cI, cE=cE, u_min=-1.0, u_max=1.0, infeasible=True)
    x = jnp.array([0.5, 1.0])
    u = jnp.array([0.25, 0.1, -0.3])

    expected = ConstraintSet(problem).jacobian(x, u)
    jac = ConstraintSet(problem, differentiate=_central_difference).jacobian(x, u)

    assert jac.x.shape == expected.x.shape
    assert jac.u.shape == expected.u.shape
    np.testing.assert_allclose(jac.x, expected.x, atol=1e-8)
    np.testing.assert_allclose(jac.u, expected.u, atol=1e-8)


def test_forward_jacobian_service():
    def fun(s):
        return jnp.array([s[0] * s[1], s[1] ** 2])

    value, jac = forward_jacobian(fun, jnp.array([2.0, 3.0]))
    np.testing.assert_allclose(value, [6.0, 9.0])
    np.testing.assert_allclose(jac, [[3.0, 2.0], [0.0, 6.0]])


def test_infeasible_slack_rows(make_problem):
    problem = make_problem(infeasible=True, u_max=1.0)
    constraints = ConstraintSet(problem)
    assert constraints.pI == 1
    assert constraints.pE == problem.n

    u = jnp.array([0.5, 0.25, -0.75])
    c = constraints.evaluate(problem.x0, u)
    np.testing.assert_allclose(c[constraints.layout.equality], [0.25, -0.75])

    jac = constraints.jacobian(problem.x0, u)
    np.testing.assert_array_equal(jac.u[1:, 1:], jnp.eye(2))
    np.testing.assert_array_equal(jac.u[1:, :1], jnp.zeros((2, 1)))
    np.testing.assert_array_equal(jac.x[1:], jnp.zeros((2, 2)))


def test_minimum_time_rows(make_problem):
    problem = make_problem(dt=0.0)
    problem_max_h = jnp.sqrt(problem.max_dt)
    constraints = ConstraintSet(problem)

    # time step bounds 0 <= h <= sqrt(max_dt) and the consistency row
    assert constraints.pI == 2
    assert constraints.pE == 1

    u = jnp.array([0.0, 0.5])
    u_next = jnp.array([0.0, 0.25])
    c = constraints.evaluate(problem.x0, u, u_next)
    np.testing.assert_allclose(c, [0.5 - problem_max_h, -0.5, 0.25])

    interior = constraints.jacobian(problem.x0, u, interior=True)
    np.testing.assert_array_equal(interior.u[-1], [0.0, 1.0])
    last = constraints.jacobian(problem.x0, u, interior=False)
    np.testing.assert_array_equal(last.u[-1], [0.0, 0.0])


def test_minimum_time_row_is_zero_at_last_stage(make_problem):
    problem = make_problem(dt=0.0, N=4)
    constraints = ConstraintSet(problem)
    U = [jnp.array([0.0, 0.5]), jnp.array([0.0, 0.25]), jnp.array([0.0, 0.125])]
    traj = Trajectory([problem.x0] * problem.N, U)

    C = evaluate_trajectory(constraints, traj)
    assert float(C[0][-1]) == pytest.approx(0.25)
    assert float(C[1][-1]) == pytest.approx(0.125)
    assert float(C[2][-1]) == 0.0


def test_terminal_jacobian_is_identity(bounded_problem):
    constraints = ConstraintSet(bounded_problem)
    traj = Trajectory(
        [bounded_problem.x0] * bounded_problem.N, [jnp.zeros(1)] * (bounded_problem.N - 1)
    )
    jacobians = jacobian_trajectory(constraints, traj)
    np.testing.assert_array_equal(jacobians[-1].x, jnp.eye(2))
    np.testing.assert_array_equal(jacobians[-1].u, jnp.zeros((2, 1)))
    np.testing.assert_allclose(constraints.evaluate_terminal(jnp.array([1.0, 1.0])), [0.5, 1.0])


def test_custom_terminal_constraint(make_problem):
    problem = make_problem(
        terminal_constraint=lambda x: jnp.array([x[0] + x[1]]),
        terminal_constraint_jacobian=lambda x: jnp.array([[1.0, 1.0]]),
    )
    constraints = ConstraintSet(problem)
    assert constraints.p_N == 1
    np.testing.assert_allclose(constraints.evaluate_terminal(jnp.array([1.0, 2.0])), [3.0])
    np.testing.assert_allclose(constraints.terminal_jacobian(jnp.array([1.0, 2.0])), [[1.0, 1.0]])


def test_custom_terminal_constraint_requires_jacobian(make_problem):
    with pytest.raises(ConstraintError) as excinfo:
        make_problem(terminal_constraint=lambda x: x[:1])
    assert excinfo.value.error_code == ErrorCode.TERMINAL_CONSTRAINT_JACOBIAN_MISSING
