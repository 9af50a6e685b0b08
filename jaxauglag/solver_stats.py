"""Solver statistics for JAX-based Augmented Lagrangian trajectory optimization.

Both solvers own one statistics object each; it is reset at the start of every
top-level solve, appended to once per iteration and read-only afterwards.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field

from .types import Float, OuterLoopState, SolveStatus


@dataclass
class iLQRStats:
    """Statistics of the unconstrained inner solver."""

    status: SolveStatus = SolveStatus.UNSOLVED
    solve_time: Float = 0.0
    iterations: int = 0
    cost: list[Float] = field(default_factory=list)
    gradient: list[Float] = field(default_factory=list)
    step_size: list[Float] = field(default_factory=list)
    regularization: list[Float] = field(default_factory=list)
    line_search_failures: int = 0

    def reset(self) -> None:
        """Reset all statistics to initial values."""
        self.status = SolveStatus.UNSOLVED
        self.solve_time = 0.0
        self.iterations = 0
        self.cost = []
        self.gradient = []
        self.step_size = []
        self.regularization = []
        self.line_search_failures = 0

    def snapshot(self) -> iLQRStats:
        """Return an independent copy of the current statistics."""
        return copy.deepcopy(self)

    def is_converged(self) -> bool:
        """Check if solver has converged successfully."""
        return self.status == SolveStatus.SUCCESS


@dataclass
class AugmentedLagrangianStats:
    """Statistics of the Augmented Lagrangian outer loop."""

    status: SolveStatus = SolveStatus.UNSOLVED
    state: OuterLoopState = OuterLoopState.INIT
    solve_time: Float = 0.0

    # Iteration counts
    iterations: int = 0
    iterations_total: int = 0
    iterations_inner: list[int] = field(default_factory=list)

    # Per outer iteration histories
    cost: list[Float] = field(default_factory=list)
    c_max: list[Float] = field(default_factory=list)
    stats_uncon: list[iLQRStats] = field(default_factory=list)

    def reset(self) -> None:
        """Reset all statistics to initial values."""
        self.status = SolveStatus.UNSOLVED
        self.state = OuterLoopState.INIT
        self.solve_time = 0.0
        self.iterations = 0
        self.iterations_total = 0
        self.iterations_inner = []
        self.cost = []
        self.c_max = []
        self.stats_uncon = []

    def record(self, cost: Float, c_max: Float, inner_stats: iLQRStats) -> None:
        """Append the results of one outer iteration."""
        self.iterations += 1
        self.iterations_total += inner_stats.iterations
        self.iterations_inner.append(inner_stats.iterations)
        self.cost.append(cost)
        self.c_max.append(c_max)
        self.stats_uncon.append(inner_stats.snapshot())

    def is_converged(self) -> bool:
        """Check if solver has converged successfully."""
        return self.status == SolveStatus.SUCCESS

    def get_final_cost(self) -> Float:
        """Get the cost recorded on the last outer iteration."""
        return self.cost[-1] if self.cost else float("nan")

    def get_final_violation(self) -> Float:
        """Get the maximum constraint violation recorded on the last outer iteration."""
        return self.c_max[-1] if self.c_max else float("nan")
