"""Dynamics rollouts for JAX-based trajectory optimization.

Open-loop rollouts propagate the states from the controls; closed-loop
rollouts apply feedback gains and a scaled feedforward correction from the
inner solver around a reference trajectory. Both report divergence (states or
controls exceeding the configured ceilings, including NaN and Inf) by
returning ``False``; divergence is never raised.
"""

from __future__ import annotations

import jax
import jax.numpy as jnp
from jax import Array

from .problem import Problem, Trajectory
from .solver_options import iLQROptions
from .types import Float, IntegrationScheme


@jax.jit
def _infinity_norm(v: Array) -> Array:
    return jnp.max(jnp.abs(v), initial=0.0)


@jax.jit
def cubic_midpoint(x1: Array, xdot1: Array, x2: Array, xdot2: Array, dt: Float) -> Array:
    """State at the interval midpoint of the cubic Hermite spline through both ends."""
    return 0.5 * x1 + dt / 8.0 * xdot1 + 0.5 * x2 - dt / 8.0 * xdot2


def _within_ceilings(x: Array, u: Array, opts: iLQROptions) -> bool:
    # written so that NaN fails the test
    return bool(
        _infinity_norm(x) < opts.max_state_value and _infinity_norm(u) < opts.max_control_value
    )


def calculate_derivatives(problem: Problem, traj: Trajectory) -> None:
    """Evaluate the continuous dynamics at every knot into ``traj.xdot``."""
    m = problem.m
    traj.xdot = [problem.model.continuous(traj.X[k], traj.U[k][:m]) for k in range(problem.N)]


def calculate_midpoints(problem: Problem, traj: Trajectory) -> None:
    """Compute the cubic midpoint of every interval into ``traj.xmid``."""
    X, U, xdot = traj.X, traj.U, traj.xdot
    traj.xmid = [
        cubic_midpoint(X[k], xdot[k], X[k + 1], xdot[k + 1], problem.timestep(U[k]))
        for k in range(problem.N - 1)
    ]


def rollout(problem: Problem, traj: Trajectory, opts: iLQROptions | None = None) -> bool:
    """Propagate ``traj.X`` from ``problem.x0`` using the controls in ``traj.U``.

    Returns ``False`` if the rollout diverged, in which case ``traj.X`` must not
    be used.
    """
    opts = opts if opts is not None else iLQROptions()
    N = problem.N
    foh = problem.integration == IntegrationScheme.FOH
    X, U = traj.X, traj.U
    if len(X) != N:
        X[:] = [problem.x0] * N

    X[0] = problem.x0
    for k in range(N - 1):
        u_next = U[k + 1] if foh else None
        X[k + 1] = problem.step(X[k], U[k], u_next)

        if not _within_ceilings(X[k + 1], U[k], opts):
            return False

    if foh:
        calculate_derivatives(problem, traj)
        calculate_midpoints(problem, traj)

    return True


def closed_loop_rollout(
    problem: Problem,
    traj: Trajectory,
    K: list[Array],
    d: list[Array],
    alpha: Float,
    opts: iLQROptions | None = None,
    b: list[Array] | None = None,
) -> tuple[bool, Trajectory]:
    """Simulate a new trajectory by correcting the controls of ``traj``.

    Zero-order hold applies ``U_[k] = U[k] - K[k] (X_[k] - X[k]) - alpha d[k]``.
    First-order hold carries the correction forward,
    ``dv = K[k] (X_[k-1] - X[k-1]) + b[k] du + alpha d[k]``, where ``du`` is
    the correction applied at the previous knot.
    The built-in iLQR solver only produces zero-order-hold gains, so ``b``
    comes from callers that compute first-order-hold gains themselves.

    Returns:
        Tuple of (success, new trajectory)
    """
    opts = opts if opts is not None else iLQROptions()
    N = problem.N
    X, U = traj.X, traj.U
    X_ = [problem.x0] * N
    U_ = list(U)

    if problem.integration == IntegrationScheme.FOH:
        if b is None:
            b = [jnp.zeros((problem.mm, problem.mm))] * N
        du = alpha * d[0]
        U_[0] = U[0] + du
        for k in range(1, N):
            delta = X_[k - 1] - X[k - 1]
            dv = K[k] @ delta + b[k] @ du + alpha * d[k]
            U_[k] = U[k] + dv
            X_[k] = problem.step(X_[k - 1], U_[k - 1], U_[k])
            du = dv

            if not _within_ceilings(X_[k], U_[k - 1], opts):
                return False, Trajectory(X_, U_)

        new_traj = Trajectory(X_, U_)
        calculate_derivatives(problem, new_traj)
        calculate_midpoints(problem, new_traj)
        return True, new_traj

    for k in range(N - 1):
        delta = X_[k] - X[k]
        U_[k] = U[k] - K[k] @ delta - alpha * d[k]
        X_[k + 1] = problem.step(X_[k], U_[k])

        if not _within_ceilings(X_[k + 1], U_[k], opts):
            return False, Trajectory(X_, U_)

    return True, Trajectory(X_, U_)
