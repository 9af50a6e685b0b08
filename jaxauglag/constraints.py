"""Constraint layout, evaluation and jacobian assembly.

The stage constraint vector has a fixed layout computed once per problem:

    [control upper bounds   (active bounds only)
     control lower bounds
     state upper bounds
     state lower bounds
     custom inequalities    cI(x, u)
     custom equalities      cE(x, u)
     infeasible slack       u[m̄:mm]           (infeasible start only)
     time step consistency  h[k] - h[k + 1]   (minimum time only)]

The first five families are inequalities (``c <= 0``), the rest equalities.
The terminal knot has its own layout holding the goal constraint ``x - xf``
or a user-supplied terminal constraint.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import NamedTuple

import jax
import jax.numpy as jnp
from jax import Array

from .parted import BlockLayout
from .problem import Problem, Trajectory, _constraint_output_size
from .types import ConstraintFunction, DifferentiationService, Float


def forward_jacobian(fun: ConstraintFunction, point: Array) -> tuple[Array, Array]:
    """Differentiate ``fun`` at ``point`` with forward-mode automatic differentiation."""
    return fun(point), jax.jacfwd(fun)(point)


class ConstraintJacobian(NamedTuple):
    """Constraint jacobian split into state and control blocks."""

    x: Array
    u: Array


class BoxMasks(NamedTuple):
    """Row indices of the finite (active) box bounds."""

    u_max: Array
    u_min: Array
    x_max: Array
    x_min: Array


def _active(bound: Array) -> Array:
    return jnp.flatnonzero(jnp.isfinite(bound))


def _signed_identity_rows(size: int, upper: Array, lower: Array) -> Array:
    eye = jnp.eye(size)
    return jnp.vstack([eye[upper], -eye[lower]])


class ConstraintSet:
    """Stage and terminal constraints of a problem with their jacobians.

    Args:
        problem: Problem whose objective describes the constraints
        differentiate: Automatic differentiation service used for the custom
            constraints, ``differentiate(fun, point) -> (value, jacobian)``
    """

    def __init__(self, problem: Problem, differentiate: DifferentiationService = forward_jacobian):
        obj = problem.objective
        n, m = problem.n, problem.m
        self.n = n
        self.m = m
        self.m_bar = problem.m_bar
        self.mm = problem.mm
        self.N = problem.N
        self.is_min_time = problem.is_min_time
        self.infeasible = problem.infeasible
        self.differentiate = differentiate

        # The square root of the time step is bounded like any other control
        u_max = obj.u_max
        u_min = obj.u_min
        if self.is_min_time:
            u_max = jnp.append(u_max, jnp.sqrt(problem.max_dt))
            u_min = jnp.append(u_min, 0.0)

        self.u_max = u_max
        self.u_min = u_min
        self.x_max = obj.x_max
        self.x_min = obj.x_min
        self.masks = BoxMasks(
            _active(u_max), _active(u_min), _active(obj.x_max), _active(obj.x_min)
        )

        self.pI_u = len(self.masks.u_max) + len(self.masks.u_min)
        self.pI_x = len(self.masks.x_max) + len(self.masks.x_min)
        self.cI = obj.cI
        self.cE = obj.cE
        self.pI_c = _constraint_output_size(obj.cI, n, m) if obj.cI is not None else 0
        self.pE_c = _constraint_output_size(obj.cE, n, m) if obj.cE is not None else 0

        pI = self.pI_u + self.pI_x + self.pI_c
        pE = self.pE_c + (n if self.infeasible else 0) + (1 if self.is_min_time else 0)
        self.layout = BlockLayout(pI, pE)

        # Terminal constraint
        self.xf = obj.xf
        self.terminal_constraint = obj.terminal_constraint
        self.terminal_constraint_jacobian = obj.terminal_constraint_jacobian
        if obj.terminal_constraint is not None:
            size = int(jax.eval_shape(obj.terminal_constraint, obj.xf).shape[0])
        elif obj.use_terminal_constraint:
            size = n
        else:
            size = 0
        self.terminal_layout = BlockLayout(0, size)

        # Constant box constraint blocks
        box_x = jnp.vstack(
            [
                jnp.zeros((self.pI_u, n)),
                _signed_identity_rows(n, self.masks.x_max, self.masks.x_min),
            ]
        )
        box_u = jnp.vstack(
            [
                jnp.hstack(
                    [
                        _signed_identity_rows(self.m_bar, self.masks.u_max, self.masks.u_min),
                        jnp.zeros((self.pI_u, self.mm - self.m_bar)),
                    ]
                ),
                jnp.zeros((self.pI_x, self.mm)),
            ]
        )
        self.box_jacobian = ConstraintJacobian(box_x, box_u)

        # Constant slack and time step rows, without and with the consistency row
        self.augmented_jacobian = (self._augmented_rows(0.0), self._augmented_rows(1.0))

        # Only JAX-traceable services run under jit
        self._custom_jacobians = []
        for fun in (self.cI, self.cE):
            if fun is not None:
                block = self._custom_block(fun)
                if differentiate is forward_jacobian:
                    block = jax.jit(block)
                self._custom_jacobians.append(block)

        self._evaluate = jax.jit(self._evaluate_stage)
        self._evaluate_terminal = jax.jit(self._terminal)
        self._terminal_jac = jax.jit(self._terminal_jacobian)

    @property
    def p(self) -> int:
        return self.layout.size

    @property
    def pI(self) -> int:
        return self.layout.num_inequality

    @property
    def pE(self) -> int:
        return self.layout.num_equality

    @property
    def p_N(self) -> int:
        return self.terminal_layout.size

    @property
    def is_empty(self) -> bool:
        """Check if the problem has no constraints at all."""
        return self.p == 0 and self.p_N == 0

    def evaluate(self, x: Array, u: Array, u_next: Array | None = None) -> Array:
        """Evaluate the stage constraints.

        The time step consistency row of a minimum-time problem is only
        evaluated when the next control ``u_next`` is given and is zero otherwise.
        """
        return self._evaluate(x, u, u if u_next is None else u_next)

    def jacobian(self, x: Array, u: Array, interior: bool = False) -> ConstraintJacobian:
        """Assemble the stage constraint jacobian.

        ``interior`` marks a knot whose time step consistency row is active.
        """
        blocks = [self.box_jacobian]
        blocks.extend(jacobian(x, u) for jacobian in self._custom_jacobians)
        blocks.append(self.augmented_jacobian[int(interior)])
        return ConstraintJacobian(
            jnp.vstack([block.x for block in blocks]), jnp.vstack([block.u for block in blocks])
        )

    def evaluate_terminal(self, x: Array) -> Array:
        """Evaluate the terminal constraint."""
        return self._evaluate_terminal(x)

    def terminal_jacobian(self, x: Array) -> Array:
        """Jacobian of the terminal constraint with respect to the state."""
        return self._terminal_jac(x)

    def _custom_point(self, x: Array, u: Array) -> Array:
        return jnp.concatenate([x, u[: self.m]])

    def _evaluate_stage(self, x: Array, u: Array, u_next: Array) -> Array:
        masks = self.masks
        u_bar = u[: self.m_bar]
        parts = [
            (u_bar - self.u_max)[masks.u_max],
            (self.u_min - u_bar)[masks.u_min],
            (x - self.x_max)[masks.x_max],
            (self.x_min - x)[masks.x_min],
        ]
        if self.cI is not None:
            parts.append(self.cI(x, u[: self.m]))
        if self.cE is not None:
            parts.append(self.cE(x, u[: self.m]))
        if self.infeasible:
            parts.append(u[self.m_bar :])
        if self.is_min_time:
            h = self.m_bar - 1
            parts.append(jnp.atleast_1d(u[h] - u_next[h]))
        return jnp.concatenate(parts)

    def _custom_block(
        self, fun: ConstraintFunction
    ) -> Callable[[Array, Array], ConstraintJacobian]:
        n = self.n

        def stacked(S: Array) -> Array:
            return fun(S[:n], S[n:])

        def custom_jacobian(x: Array, u: Array) -> ConstraintJacobian:
            _, J = self.differentiate(stacked, self._custom_point(x, u))
            J = jnp.asarray(J)
            Cu = jnp.hstack([J[:, n:], jnp.zeros((J.shape[0], self.mm - self.m))])
            return ConstraintJacobian(J[:, :n], Cu)

        return custom_jacobian

    def _augmented_rows(self, interior: Float) -> ConstraintJacobian:
        n = self.n
        rows_x = [jnp.zeros((0, n))]
        rows_u = [jnp.zeros((0, self.mm))]
        if self.infeasible:
            rows_x.append(jnp.zeros((n, n)))
            rows_u.append(jnp.hstack([jnp.zeros((n, self.m_bar)), jnp.eye(n)]))
        if self.is_min_time:
            rows_x.append(jnp.zeros((1, n)))
            rows_u.append(interior * jnp.eye(1, self.mm, self.m_bar - 1))
        return ConstraintJacobian(jnp.vstack(rows_x), jnp.vstack(rows_u))

    def _terminal(self, x: Array) -> Array:
        if self.terminal_constraint is not None:
            return self.terminal_constraint(x)
        if self.p_N == 0:
            return jnp.zeros(0)
        return x - self.xf

    def _terminal_jacobian(self, x: Array) -> Array:
        if self.terminal_constraint_jacobian is not None:
            return self.terminal_constraint_jacobian(x)
        return jnp.eye(self.p_N, self.n)


def is_interior(k: int, N: int) -> bool:
    """Knots whose control is followed by another stage control."""
    return k < N - 2


def evaluate_trajectory(constraints: ConstraintSet, traj: Trajectory) -> list[Array]:
    """Evaluate the constraints at every knot, terminal knot last."""
    N = constraints.N
    values = []
    for k in range(N - 1):
        u_next = traj.U[k + 1] if is_interior(k, N) else None
        values.append(constraints.evaluate(traj.X[k], traj.U[k], u_next))
    values.append(constraints.evaluate_terminal(traj.X[N - 1]))
    return values


def jacobian_trajectory(
    constraints: ConstraintSet, traj: Trajectory
) -> list[ConstraintJacobian]:
    """Assemble the constraint jacobians at every knot, terminal knot last."""
    N = constraints.N
    jacobians = []
    for k in range(N - 1):
        jacobians.append(constraints.jacobian(traj.X[k], traj.U[k], is_interior(k, N)))
    Cx_N = constraints.terminal_jacobian(traj.X[N - 1])
    jacobians.append(ConstraintJacobian(Cx_N, jnp.zeros((constraints.p_N, constraints.mm))))
    return jacobians
