"""Initial trajectory construction.

Utilities for building initial guesses: straight-line state trajectories,
infeasible-start slack controls that make an arbitrary state trajectory
dynamically exact, and recovery of a dynamically feasible trajectory once the
slack controls have been driven to zero.
"""

from __future__ import annotations

import dataclasses

import jax.numpy as jnp
from jax import Array

from .exceptions import ErrorCode, _auglag_throw
from .problem import Problem, Trajectory, _check_shape
from .rollout import rollout
from .solver_options import iLQROptions
from .types import IntegrationScheme


def line_trajectory(x0: Array, xf: Array, N: int) -> Array:
    """Componentwise linear interpolation from ``x0`` to ``xf`` over ``N`` knots.

    Returns:
        (N, n) array whose first row is ``x0`` and last row is ``xf``
    """
    x0 = jnp.asarray(x0, dtype=jnp.float64)
    xf = jnp.asarray(xf, dtype=jnp.float64)
    t = jnp.linspace(0.0, 1.0, N)
    return x0 + t[:, None] * (xf - x0)


def nominal_controls(problem: Problem, U: Array | None = None) -> Array:
    """Controls of width ``m̄`` for every control slot of ``problem``.

    ``U`` may be given with the model's control width ``m``; under minimum time
    the square-root time step is then appended as ``sqrt(max_dt)``. Missing
    controls default to zero.
    """
    num = problem.num_controls
    if U is None:
        U = jnp.zeros((num, problem.m))
    U = jnp.atleast_2d(jnp.asarray(U, dtype=jnp.float64))

    if problem.is_min_time and U.shape[1] == problem.m:
        h = jnp.full((U.shape[0], 1), jnp.sqrt(problem.max_dt))
        U = jnp.hstack([U, h])

    _check_shape("Nominal controls", U.shape, (num, problem.m_bar))
    return U


_MAX_SLACK_CORRECTIONS = 8


def _exact_slack(
    problem: Problem, x: Array, u: Array, u_next: Array | None, slack: Array, target: Array
) -> Array:
    """Adjust ``slack`` until the augmented step lands on ``target`` bit-for-bit.

    The residual ``target - x_sim`` need not round back to ``target`` once it is
    added to ``x_sim`` again; every component still missing is corrected by its
    miss, or moved by one ulp when that correction rounds away.
    """
    for _ in range(_MAX_SLACK_CORRECTIONS):
        miss = problem.step(x, jnp.concatenate([u, slack]), u_next) - target
        if not bool(jnp.any(miss != 0.0)):
            break
        corrected = slack - miss
        nudged = jnp.nextafter(slack, jnp.where(miss > 0.0, -jnp.inf, jnp.inf))
        slack = jnp.where(miss == 0.0, slack, jnp.where(corrected == slack, nudged, corrected))
    return slack


def infeasible_controls(problem: Problem, X0: Array, U: Array | None = None) -> list[Array]:
    """Slack controls that make the dynamics reproduce ``X0`` exactly.

    The dynamics are simulated from ``problem.x0`` with the nominal controls
    ``U``; at every step the slack is the residual between ``X0[k + 1]`` and the
    simulated state, and the simulation continues from ``X0[k + 1]``.

    Returns:
        One slack vector per control slot, the slot without a following
        interval (first-order hold) holding zeros
    """
    n, N = problem.n, problem.N
    X0 = jnp.asarray(X0, dtype=jnp.float64)
    _check_shape("Reference states", X0.shape, (N, n))
    U = nominal_controls(problem, U)

    foh = problem.integration == IntegrationScheme.FOH
    pad = jnp.zeros(problem.mm - problem.m_bar)
    slack = []
    x = problem.x0
    for k in range(N - 1):
        u_next = jnp.concatenate([U[k + 1], pad]) if foh else None
        x_sim = problem.step(x, jnp.concatenate([U[k], pad]), u_next)
        s = X0[k + 1] - x_sim
        if problem.infeasible:
            s = _exact_slack(problem, x, U[k], u_next, s, X0[k + 1])
        slack.append(s)
        x = X0[k + 1]
    if foh:
        slack.append(jnp.zeros(n))
    return slack


def infeasible_trajectory(
    problem: Problem,
    X0: Array,
    U: Array | None = None,
    opts: iLQROptions | None = None,
) -> Trajectory:
    """Initial trajectory of an infeasible-start problem that follows ``X0``.

    The controls are the nominal controls augmented with the slack controls of
    :func:`infeasible_controls`; the states are rolled out from ``x0``.
    """
    if not problem.infeasible:
        _auglag_throw(
            "Slack controls require a problem built with infeasible=True",
            ErrorCode.INFEASIBLE_NOT_ENABLED,
        )
    U_bar = nominal_controls(problem, U)
    slack = infeasible_controls(problem, X0, U_bar)
    controls = [jnp.concatenate([U_bar[k], slack[k]]) for k in range(problem.num_controls)]
    traj = Trajectory([problem.x0] * problem.N, controls)

    if not rollout(problem, traj, opts):
        _auglag_throw("Infeasible-start rollout diverged", ErrorCode.INITIAL_ROLLOUT_DIVERGED)
    return traj


def feasible_problem(problem: Problem) -> Problem:
    """Copy of an infeasible-start problem without the slack controls."""
    return dataclasses.replace(problem, infeasible=False)


def feasible_trajectory(
    problem: Problem, traj: Trajectory, opts: iLQROptions | None = None
) -> tuple[bool, Trajectory]:
    """Strip the slack controls and roll the dynamics out again.

    Args:
        problem: Infeasible-start problem that produced ``traj``
        traj: Trajectory with slack controls

    Returns:
        Tuple of (success, trajectory with controls of width ``m̄``)
    """
    if not problem.infeasible:
        _auglag_throw(
            "Only trajectories of infeasible-start problems carry slack controls",
            ErrorCode.INFEASIBLE_NOT_ENABLED,
        )
    feasible = feasible_problem(problem)
    controls = [u[: problem.m_bar] for u in traj.U]
    new_traj = Trajectory([problem.x0] * problem.N, controls)
    return rollout(feasible, new_traj, opts), new_traj
