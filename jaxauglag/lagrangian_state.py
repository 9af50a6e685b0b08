"""Per-knot Augmented Lagrangian state.

The outer loop owns one :class:`AugmentedLagrangianState` per solve and passes
it by reference to constraint evaluation, jacobian assembly and the cost
expansion. Slot ``k`` of every list belongs to knot ``k``; the terminal knot is
the last slot and uses the terminal layout.
"""

from __future__ import annotations

from dataclasses import dataclass

import jax.numpy as jnp

from .constraints import (
    ConstraintJacobian,
    ConstraintSet,
    evaluate_trajectory,
    jacobian_trajectory,
)
from .parted import BlockLayout, PartedVector
from .problem import Trajectory
from .types import Float


@dataclass
class AugmentedLagrangianState:
    """Constraint values, jacobians, multipliers, penalties and active set per knot."""

    C: list[PartedVector]
    jacobians: list[ConstraintJacobian]
    duals: list[PartedVector]
    penalties: list[PartedVector]
    active_set: list[PartedVector]
    C_prev: list[PartedVector]

    @classmethod
    def initialize(
        cls,
        constraints: ConstraintSet,
        penalty_initial: Float = 1.0,
        dual_initial: Float = 0.0,
    ) -> AugmentedLagrangianState:
        """Allocate the state for every knot of a problem."""
        N = constraints.N
        layouts: list[BlockLayout] = [constraints.layout] * (N - 1) + [constraints.terminal_layout]

        jacobians = [
            ConstraintJacobian(
                jnp.zeros((layout.size, constraints.n)), jnp.zeros((layout.size, constraints.mm))
            )
            for layout in layouts
        ]
        return cls(
            C=[layout.zeros() for layout in layouts],
            jacobians=jacobians,
            duals=[layout.full(dual_initial) for layout in layouts],
            penalties=[layout.full(penalty_initial) for layout in layouts],
            active_set=[layout.full(True) for layout in layouts],
            C_prev=[layout.zeros() for layout in layouts],
        )

    @property
    def num_knots(self) -> int:
        return len(self.C)

    def update_constraints(self, constraints: ConstraintSet, traj: Trajectory) -> None:
        """Evaluate the constraints along a trajectory into ``C``."""
        for k, value in enumerate(evaluate_trajectory(constraints, traj)):
            self.C[k] = self.C[k].replace(value)

    def update_jacobians(self, constraints: ConstraintSet, traj: Trajectory) -> None:
        """Assemble the constraint jacobians along a trajectory."""
        self.jacobians = jacobian_trajectory(constraints, traj)

    def snapshot_constraints(self) -> None:
        """Keep a copy of the current constraint values in ``C_prev``."""
        self.C_prev = list(self.C)
