"""Double integrator example for JAX-based Augmented Lagrangian trajectory optimization.

This example shows how to:
1. Describe the dynamics with a continuous or discrete function (jacobians are
   computed automatically)
2. Add box bounds, a custom inequality constraint and a goal constraint
3. Solve from a rolled-out initial guess and from an infeasible start
4. Extract and analyze the results

The problem is to move a 2D double integrator from rest at (1, 1) to rest at
the origin with limited acceleration while staying outside a circular keep-out
zone.
"""

from __future__ import annotations

import time

import jax
import jax.numpy as jnp
from jax import Array

from jaxauglag import (
    AugmentedLagrangianOptions,
    Objective,
    Problem,
    SolverResults,
    Verbosity,
    double_integrator,
    feasible_trajectory,
    iLQROptions,
    solve,
)
from jaxauglag.types import Float


def create_keep_out_constraint(center: Array, radius: Float) -> callable:
    """Create a circular keep-out constraint ``radius^2 - |p - center|^2 <= 0``.

    Args:
        center: Center of the keep-out zone in the plane
        radius: Radius of the keep-out zone

    Returns:
        Constraint function (jacobian computed automatically by JAX)
    """

    @jax.jit
    def constraint_function(x: Array, u: Array) -> Array:
        dp = x[:2] - center
        return jnp.array([radius**2 - jnp.dot(dp, dp)])

    return constraint_function


def create_problem(infeasible: bool = False) -> Problem:
    """Set up the bounded double integrator problem."""

    dim = 2
    n = 2 * dim  # State dimension: [x, y, x_dot, y_dot]
    m = dim  # Input dimension: [u_x, u_y]

    # Time horizon
    tf = 5.0
    num_segments = 50
    h = tf / num_segments

    x0 = jnp.array([1.0, 1.0, 0.0, 0.0])  # Start at (1,1) with zero velocity
    x_goal = jnp.zeros(n)  # Goal at origin with zero velocity

    objective = Objective(
        Q=jnp.eye(n),
        R=1e-2 * jnp.eye(m),
        Qf=100.0 * jnp.eye(n),
        xf=x_goal,
        u_min=-0.5,
        u_max=0.5,
        cI=create_keep_out_constraint(jnp.array([0.5, 0.5]), 0.2),
    )

    print("Setting up double integrator trajectory optimization...")
    print(f"  State dimension: {n}")
    print(f"  Input dimension: {m}")
    print(f"  Time horizon: {tf} seconds")
    print(f"  Number of segments: {num_segments}")
    print(f"  Time step: {h:.3f} seconds")
    print(f"  Infeasible start: {infeasible}")

    return Problem(
        model=double_integrator(dim),
        objective=objective,
        x0=x0,
        N=num_segments + 1,
        dt=h,
        infeasible=infeasible,
    )


def report(problem: Problem, results: SolverResults, solve_time: Float) -> None:
    """Print a summary of a solve."""
    X = results.states()
    U = results.controls()
    x_goal = problem.objective.xf

    print(f"\nSolve completed in {solve_time:.3f} seconds")
    print(f"Status: {results.status.value}")
    print(f"Outer iterations: {results.stats.iterations}")
    print(f"Inner iterations: {results.stats.iterations_total}")
    print(f"Final cost: {results.cost:.6f}")
    print(f"Constraint violation: {results.c_max:.2e}")
    print(f"Max |u|: {float(jnp.max(jnp.abs(U[:, : problem.m]))):.4f}")

    print("\nTrajectory samples:")
    N = problem.N
    for k in [0, N // 4, N // 2, 3 * N // 4, N - 1]:
        print(f"  t={k * problem.dt:.2f}: x={X[k, :2]}, v={X[k, 2:]}")

    print(f"  Distance to goal: {jnp.linalg.norm(X[-1] - x_goal):.6f}")


def solve_double_integrator_example() -> SolverResults:
    """Solve the bounded problem from zero initial controls."""
    problem = create_problem()
    opts = AugmentedLagrangianOptions(
        verbose=Verbosity.OUTER,
        constraint_tolerance=1e-4,
        opts_uncon=iLQROptions(iterations=100),
    )

    print("\nSolving trajectory optimization problem...")
    start_time = time.time()
    results = solve(problem, opts=opts)
    report(problem, results, time.time() - start_time)
    return results


def solve_infeasible_start_example() -> SolverResults:
    """Solve the same problem from a straight-line state guess through the keep-out zone."""
    problem = create_problem(infeasible=True)
    opts = AugmentedLagrangianOptions(verbose=Verbosity.OUTER, constraint_tolerance=1e-4)

    print("\nSolving from an infeasible start...")
    start_time = time.time()
    results = solve(problem, opts=opts)
    report(problem, results, time.time() - start_time)

    ok, traj = feasible_trajectory(problem, results.trajectory)
    print("\nFeasible trajectory after removing the slack controls:")
    print(f"  Rollout succeeded: {ok}")
    print(f"  Final state: {traj.X[-1]}")
    return results


if __name__ == "__main__":
    print("JAX-based Augmented Lagrangian Double Integrator Example")
    print("=" * 50)

    solve_double_integrator_example()
    solve_infeasible_start_example()
    print("\nExample completed successfully!")
