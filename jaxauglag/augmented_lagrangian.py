"""Augmented Lagrangian outer loop for constrained trajectory optimization.

Each outer iteration solves the unconstrained subproblem with the inner
solver, then performs a first-order multiplier update, recomputes the active
set from the new multipliers, escalates the penalties and records the
iteration. The loop stops as soon as the maximum constraint violation drops
below ``constraint_tolerance`` or the iteration cap is reached.
"""

from __future__ import annotations

import dataclasses
import time

import jax
import jax.numpy as jnp
from jax import Array

from .active_set import penalty_weights, update_active_set
from .constraints import ConstraintSet
from .cost import AugmentedLagrangianObjective, UnconstrainedObjective
from .ilqr import iLQRSolver
from .lagrangian_state import AugmentedLagrangianState
from .parted import PartedVector
from .problem import Problem, Trajectory
from .solver_options import AugmentedLagrangianOptions
from .solver_stats import AugmentedLagrangianStats, iLQRStats
from .types import Float, OuterLoopState, SolveStatus, Verbosity


@jax.jit
def saturate(value: Array, max_value: Float, min_value: Float) -> Array:
    """Clamp every element of ``value`` into ``[min_value, max_value]``."""
    return jnp.maximum(min_value, jnp.minimum(max_value, value))


@jax.jit
def _updated_duals(
    duals: Array,
    penalties: Array,
    c: Array,
    inequality_mask: Array,
    dual_max: Float,
    dual_min: Float,
) -> Array:
    duals = saturate(duals + penalties * c, dual_max, dual_min)
    return jnp.where(inequality_mask, jnp.maximum(0.0, duals), duals)


def dual_update(state: AugmentedLagrangianState, opts: AugmentedLagrangianOptions) -> None:
    """First-order multiplier update followed by the active-set update.

    The active set must be recomputed from the new multipliers before any
    violation metric or penalty is evaluated.
    """
    for k in range(state.num_knots):
        c = state.C[k]
        duals = _updated_duals(
            state.duals[k].data,
            state.penalties[k].data,
            c.data,
            c.layout.inequality_mask(),
            opts.dual_max,
            opts.dual_min,
        )
        state.duals[k] = state.duals[k].replace(duals)

    update_active_set(state.active_set, state.C, state.duals)


def penalty_update(state: AugmentedLagrangianState, opts: AugmentedLagrangianOptions) -> None:
    """Scale every penalty by ``penalty_scaling``, saturating at ``penalty_max``."""
    for k in range(state.num_knots):
        mu = state.penalties[k]
        state.penalties[k] = mu.replace(
            saturate(opts.penalty_scaling * mu.data, opts.penalty_max, 0.0)
        )


def _knot_violation(c: PartedVector) -> Float:
    violation = 0.0
    if c.layout.num_equality > 0:
        violation = max(violation, float(jnp.max(jnp.abs(c.equality))))
    if c.layout.num_inequality > 0:
        violation = max(violation, float(jnp.max(c.inequality)))
    return violation


def max_violation(state: AugmentedLagrangianState) -> Float:
    """Maximum constraint violation over every knot, terminal knot included.

    Equality rows count with their magnitude and inequality rows with their
    positive part, regardless of the current active set.
    """
    return max((_knot_violation(c) for c in state.C), default=0.0)


def max_violation_penalized(state: AugmentedLagrangianState) -> Float:
    """Maximum residual magnitude over the rows that currently carry a penalty.

    Stage rows are masked by ``Iμ > 0``; every terminal row counts.
    """
    c_max = 0.0
    for k in range(state.num_knots - 1):
        weights = penalty_weights(state.active_set[k], state.penalties[k])
        masked = jnp.where(weights > 0.0, jnp.abs(state.C[k].data), 0.0)
        c_max = max(c_max, float(jnp.max(masked, initial=0.0)))
    c_N = state.C[-1].data
    return max(c_max, float(jnp.max(jnp.abs(c_N), initial=0.0)))


class AugmentedLagrangianSolver:
    """Constrained solver wrapping an unconstrained inner solver.

    Args:
        problem: Constrained problem
        opts: Outer loop options, including the inner solver options
        constraints: Constraint set, built from ``problem`` when omitted
    """

    def __init__(
        self,
        problem: Problem,
        opts: AugmentedLagrangianOptions | None = None,
        constraints: ConstraintSet | None = None,
    ):
        self.problem = problem
        self.opts = opts if opts is not None else AugmentedLagrangianOptions()
        self.constraints = constraints if constraints is not None else ConstraintSet(problem)
        self.stats = AugmentedLagrangianStats()
        self.state = AugmentedLagrangianState.initialize(
            self.constraints, penalty_initial=self.opts.penalty_initial
        )
        self.solver_uncon = iLQRSolver(problem, self.opts.opts_uncon)

    def reset(self) -> None:
        """Reset statistics and the multiplier and penalty state."""
        self.stats.reset()
        self.state = AugmentedLagrangianState.initialize(
            self.constraints, penalty_initial=self.opts.penalty_initial
        )
        self.solver_uncon.opts = self.opts.opts_uncon
        self.solver_uncon.reset()

    def set_tolerances(self, iteration: int) -> None:
        """Use the intermediate inner tolerances on every outer iteration but the last."""
        opts = self.opts
        if iteration != opts.iterations - 1:
            cost_tolerance = opts.cost_tolerance_intermediate
            gradient_norm_tolerance = opts.gradient_norm_tolerance_intermediate
        else:
            cost_tolerance = opts.cost_tolerance
            gradient_norm_tolerance = opts.gradient_norm_tolerance
        self.solver_uncon.opts = dataclasses.replace(
            self.solver_uncon.opts,
            cost_tolerance=cost_tolerance,
            gradient_norm_tolerance=gradient_norm_tolerance,
        )

    def step(
        self, objective: AugmentedLagrangianObjective, traj: Trajectory
    ) -> tuple[Float, iLQRStats]:
        """One outer iteration: inner solve, dual update, penalty update.

        Returns:
            Tuple of (cost of the inner solve, statistics of the inner solve)
        """
        self.stats.state = OuterLoopState.INNER_SOLVE
        J, _ = self.solver_uncon.solve(objective, traj)
        inner_stats = self.solver_uncon.stats.snapshot()
        self.solver_uncon.reset()

        self.stats.state = OuterLoopState.DUAL_UPDATE
        dual_update(self.state, self.opts)

        self.stats.state = OuterLoopState.PENALTY_UPDATE
        penalty_update(self.state, self.opts)
        self.state.snapshot_constraints()
        return J, inner_stats

    def record_iteration(self, J: Float, inner_stats: iLQRStats) -> None:
        c_max = max_violation(self.state)
        self.stats.record(J, c_max, inner_stats)

        if self.opts.verbose != Verbosity.SILENT:
            mu_max = max(
                (float(jnp.max(mu.data)) for mu in self.state.penalties if len(mu) > 0),
                default=0.0,
            )
            print(
                f"  outer iter = {self.stats.iterations:3d}, "
                f"total = {self.stats.iterations_total:4d}, cost = {J:10.4g}, "
                f"c_max = {c_max:8.3e}, mu_max = {mu_max:7.2g}"
            )

    def evaluate_convergence(self) -> bool:
        return self.stats.c_max[-1] < self.opts.constraint_tolerance

    def _solve_unconstrained(self, traj: Trajectory, start_time: Float) -> Trajectory:
        stats = self.stats
        stats.state = OuterLoopState.INNER_SOLVE
        self.set_tolerances(self.opts.iterations - 1)
        J, _ = self.solver_uncon.solve(UnconstrainedObjective(self.problem), traj)
        stats.record(J, 0.0, self.solver_uncon.stats.snapshot())

        stats.state = OuterLoopState.CONVERGED
        stats.status = self.solver_uncon.stats.status
        stats.solve_time = (time.time() - start_time) * 1000  # Convert to milliseconds
        return traj

    def solve(self, traj: Trajectory) -> Trajectory:
        """Solve the constrained problem starting from the dynamically consistent ``traj``.

        ``traj`` is updated in place and returned. Non-convergence is reported
        through the statistics, never raised.
        """
        self.reset()
        stats = self.stats
        start_time = time.time()

        if self.constraints.is_empty:
            return self._solve_unconstrained(traj, start_time)

        objective = AugmentedLagrangianObjective(
            self.problem, self.constraints, self.state, self.opts.normalize_constraint_cost
        )

        if self.opts.verbose != Verbosity.SILENT:
            print("STARTING AUGMENTED LAGRANGIAN SOLVE....")

        for i in range(self.opts.iterations):
            self.set_tolerances(i)
            J, inner_stats = self.step(objective, traj)
            self.record_iteration(J, inner_stats)
            if self.evaluate_convergence():
                stats.state = OuterLoopState.CONVERGED
                stats.status = SolveStatus.SUCCESS
                break
        else:
            stats.state = OuterLoopState.ITERATION_LIMIT_REACHED
            stats.status = SolveStatus.MAX_ITERATIONS

        stats.solve_time = (time.time() - start_time) * 1000  # Convert to milliseconds
        if self.opts.verbose != Verbosity.SILENT:
            print("AUGMENTED LAGRANGIAN SOLVE FINISHED!")

        return traj
