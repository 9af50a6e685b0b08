"""User-facing entry point for JAX-based constrained trajectory optimization.

:func:`solve` builds the initial trajectory of a problem, runs the Augmented
Lagrangian solver (which falls through to a single inner solve when the
problem has no constraints) and collects the results.
"""

from __future__ import annotations

from dataclasses import dataclass

from jax import Array

from .augmented_lagrangian import AugmentedLagrangianSolver
from .exceptions import ErrorCode, _auglag_throw
from .initialization import infeasible_trajectory, line_trajectory, nominal_controls
from .problem import Problem, Trajectory
from .rollout import rollout
from .solver_options import AugmentedLagrangianOptions, iLQROptions
from .solver_stats import AugmentedLagrangianStats
from .types import Float, OuterLoopState, SolveStatus


@dataclass
class SolverResults:
    """Outcome of a call to :func:`solve`."""

    trajectory: Trajectory
    status: SolveStatus
    state: OuterLoopState
    stats: AugmentedLagrangianStats
    cost: Float
    c_max: Float

    def is_converged(self) -> bool:
        return self.status == SolveStatus.SUCCESS

    def states(self) -> Array:
        return self.trajectory.states()

    def controls(self) -> Array:
        return self.trajectory.controls()


def initial_trajectory(
    problem: Problem,
    X0: Array | None = None,
    U0: Array | None = None,
    opts: iLQROptions | None = None,
) -> Trajectory:
    """Dynamically consistent initial trajectory.

    Infeasible-start problems follow the reference states ``X0`` (a straight
    line from ``x0`` to ``xf`` when omitted) through slack controls. Otherwise
    the states are rolled out from the controls ``U0`` and ``X0`` is ignored.
    """
    U = nominal_controls(problem, U0)
    if problem.infeasible:
        if X0 is None:
            X0 = line_trajectory(problem.x0, problem.objective.xf, problem.N)
        return infeasible_trajectory(problem, X0, U, opts)

    traj = Trajectory([problem.x0] * problem.N, [U[k] for k in range(U.shape[0])])
    if not rollout(problem, traj, opts):
        _auglag_throw(
            "Rollout of the initial controls diverged", ErrorCode.INITIAL_ROLLOUT_DIVERGED
        )
    return traj


def solve(
    problem: Problem,
    X0: Array | None = None,
    U0: Array | None = None,
    opts: AugmentedLagrangianOptions | None = None,
) -> SolverResults:
    """Solve a trajectory optimization problem.

    Args:
        problem: Problem to solve
        X0: Reference states for an infeasible start, shape (N, n)
        U0: Initial controls, shape (N - 1, m) or (N - 1, m̄)
        opts: Solver options

    Returns:
        Solver results. Check ``status`` for convergence; reaching the
        iteration limit is not an error.
    """
    opts = opts if opts is not None else AugmentedLagrangianOptions()
    traj = initial_trajectory(problem, X0, U0, opts.opts_uncon)

    solver = AugmentedLagrangianSolver(problem, opts)
    solver.solve(traj)

    stats = solver.stats
    return SolverResults(
        trajectory=traj,
        status=stats.status,
        state=stats.state,
        stats=stats,
        cost=stats.get_final_cost(),
        c_max=stats.get_final_violation(),
    )
