"""Cost evaluation and second-order cost expansion.

The unconstrained objective and the Augmented Lagrangian objective share one
interface: ``cost(traj)`` and ``cost_expansion(traj)``. The unconstrained
variant contributes no constraint terms; the Augmented Lagrangian variant adds
``λ'C + 0.5 C' Iμ C`` to the cost and the matching penalty terms to the
expansion of every knot.
"""

from __future__ import annotations

from dataclasses import dataclass

import jax
import jax.numpy as jnp
from jax import Array

from .active_set import penalty_weights, update_active_set
from .constraints import ConstraintSet
from .lagrangian_state import AugmentedLagrangianState
from .problem import Problem, Trajectory
from .types import Float, IntegrationScheme


@jax.jit
def stage_cost(x: Array, u: Array, Q: Array, R: Array, xf: Array, c: Float = 0.0) -> Array:
    """Quadratic stage cost with a goal state."""
    dx = x - xf
    return 0.5 * dx @ Q @ dx + 0.5 * u @ R @ u + c


@jax.jit
def terminal_cost(x: Array, Qf: Array, xf: Array) -> Array:
    dx = x - xf
    return 0.5 * dx @ Qf @ dx


@jax.jit
def aula_cost(active: Array, c: Array, duals: Array, penalties: Array) -> Array:
    """Lagrangian and quadratic penalty terms ``λ'c + 0.5 c' diag(a .* μ) c``."""
    return duals @ c + 0.5 * c @ (jnp.where(active, penalties, 0.0) * c)


def _knot_cost(state: AugmentedLagrangianState, k: int) -> Array:
    return aula_cost(
        state.active_set[k].data, state.C[k].data, state.duals[k].data, state.penalties[k].data
    )


@jax.jit
def _constraint_expansion(
    Cx: Array, Cu: Array, c: Array, duals: Array, weights: Array
) -> tuple[Array, Array, Array, Array, Array]:
    IμCx = weights[:, None] * Cx
    IμCu = weights[:, None] * Cu
    g = weights * c + duals
    return Cx.T @ IμCx, Cu.T @ IμCu, Cu.T @ IμCx, Cx.T @ g, Cu.T @ g


@dataclass
class CostExpansion:
    """Second-order model of the cost at every knot.

    The terminal knot is the last slot; its control blocks stay zero.
    """

    Qxx: list[Array]
    Quu: list[Array]
    Qux: list[Array]
    Qx: list[Array]
    Qu: list[Array]

    @classmethod
    def zeros(cls, n: int, mm: int, N: int) -> CostExpansion:
        return cls(
            Qxx=[jnp.zeros((n, n))] * N,
            Quu=[jnp.zeros((mm, mm))] * N,
            Qux=[jnp.zeros((mm, n))] * N,
            Qx=[jnp.zeros(n)] * N,
            Qu=[jnp.zeros(mm)] * N,
        )

    def add(self, k: int, Qxx: Array, Quu: Array, Qux: Array, Qx: Array, Qu: Array) -> None:
        """Accumulate terms into knot ``k``."""
        self.Qxx[k] = self.Qxx[k] + Qxx
        self.Quu[k] = self.Quu[k] + Quu
        self.Qux[k] = self.Qux[k] + Qux
        self.Qx[k] = self.Qx[k] + Qx
        self.Qu[k] = self.Qu[k] + Qu


class UnconstrainedObjective:
    """Quadratic tracking cost of a problem without constraint terms.

    The stage cost uses the full augmented control width, weighting slack
    controls and the square-root time step through ``problem.R_augmented``.
    """

    def __init__(self, problem: Problem):
        self.problem = problem
        obj = problem.objective
        self.Q = obj.Q
        self.R = problem.R_augmented
        self.Qf = obj.Qf
        self.xf = obj.xf
        self.c = obj.c

        self._stage = jax.jit(self._weighted_stage_cost)
        self._simpson = jax.jit(self._simpson_stage_cost)
        self._stage_expansion = jax.jit(self._weighted_stage_expansion)

    def _weighted_stage_cost(self, x: Array, u: Array) -> Array:
        return self.problem.timestep(u) * stage_cost(x, u, self.Q, self.R, self.xf, self.c)

    def _simpson_stage_cost(
        self, x1: Array, u1: Array, xm: Array, x2: Array, u2: Array
    ) -> Array:
        um = 0.5 * (u1 + u2)
        ell = (
            stage_cost(x1, u1, self.Q, self.R, self.xf, self.c)
            + 4.0 * stage_cost(xm, um, self.Q, self.R, self.xf, self.c)
            + stage_cost(x2, u2, self.Q, self.R, self.xf, self.c)
        )
        return self.problem.timestep(u1) / 6.0 * ell

    def _weighted_stage_expansion(
        self, x: Array, u: Array
    ) -> tuple[Array, Array, Array, Array, Array]:
        Qx, Qu = jax.grad(self._weighted_stage_cost, argnums=(0, 1))(x, u)
        (Qxx, _), (Qux, Quu) = jax.hessian(self._weighted_stage_cost, argnums=(0, 1))(x, u)
        return Qxx, Quu, Qux, Qx, Qu

    def unconstrained_cost(self, traj: Trajectory) -> Float:
        """Time-weighted stage costs plus the terminal cost.

        First-order hold integrates every interval with Simpson's rule over the
        start, the cubic midpoint and the end of the interval.
        """
        problem = self.problem
        N = problem.N
        X, U = traj.X, traj.U
        J = 0.0
        if problem.integration == IntegrationScheme.FOH:
            for k in range(N - 1):
                J += self._simpson(X[k], U[k], traj.xmid[k], X[k + 1], U[k + 1])
        else:
            for k in range(N - 1):
                J += self._stage(X[k], U[k])
        J += terminal_cost(X[N - 1], self.Qf, self.xf)
        return float(J)

    def constraint_cost(self, traj: Trajectory) -> Float:
        return 0.0

    def cost(self, traj: Trajectory) -> Float:
        """Total cost of a trajectory."""
        return self.unconstrained_cost(traj) + self.constraint_cost(traj)

    def add_constraint_expansion(self, expansion: CostExpansion, traj: Trajectory) -> None:
        pass

    def cost_expansion(self, traj: Trajectory) -> CostExpansion:
        """Second-order expansion of the cost about ``traj`` at every knot."""
        problem = self.problem
        N = problem.N
        expansion = CostExpansion.zeros(problem.n, problem.mm, N)
        for k in range(N - 1):
            expansion.add(k, *self._stage_expansion(traj.X[k], traj.U[k]))
        dx = traj.X[N - 1] - self.xf
        expansion.Qxx[N - 1] = self.Qf
        expansion.Qx[N - 1] = self.Qf @ dx
        self.add_constraint_expansion(expansion, traj)
        return expansion


class AugmentedLagrangianObjective(UnconstrainedObjective):
    """Unconstrained cost plus the Augmented Lagrangian constraint terms.

    Constraint values, multipliers, penalties and the active set live in the
    shared ``state`` owned by the outer loop. Evaluating the cost of a
    trajectory refreshes the constraint values and the active set in ``state``.

    Args:
        problem: Problem being solved
        constraints: Constraint set of the problem
        state: Per-knot Augmented Lagrangian state
        normalize: Divide the summed stage constraint cost by ``N - 1``
    """

    def __init__(
        self,
        problem: Problem,
        constraints: ConstraintSet,
        state: AugmentedLagrangianState,
        normalize: bool = True,
    ):
        super().__init__(problem)
        self.constraints = constraints
        self.state = state
        self.normalize = normalize

    def update_constraints(self, traj: Trajectory) -> None:
        """Evaluate the constraints along ``traj`` and refresh the active set."""
        state = self.state
        state.update_constraints(self.constraints, traj)
        update_active_set(state.active_set, state.C, state.duals)

    def constraint_cost(self, traj: Trajectory) -> Float:
        self.update_constraints(traj)
        state = self.state
        N = self.problem.N

        Jc = 0.0
        for k in range(N - 1):
            Jc += _knot_cost(state, k)
        if self.normalize:
            Jc /= N - 1.0

        Jc += _knot_cost(state, N - 1)
        return float(Jc)

    def add_constraint_expansion(self, expansion: CostExpansion, traj: Trajectory) -> None:
        """Add the penalty terms of every knot onto ``expansion``.

        The terminal knot contributes its state blocks only.
        """
        self.update_constraints(traj)
        state = self.state
        state.update_jacobians(self.constraints, traj)
        N = self.problem.N

        for k in range(N):
            weights = penalty_weights(state.active_set[k], state.penalties[k])
            jac = state.jacobians[k]
            Qxx, Quu, Qux, Qx, Qu = _constraint_expansion(
                jac.x, jac.u, state.C[k].data, state.duals[k].data, weights
            )
            if k == N - 1:
                expansion.Qxx[k] = expansion.Qxx[k] + Qxx
                expansion.Qx[k] = expansion.Qx[k] + Qx
            else:
                expansion.add(k, Qxx, Quu, Qux, Qx, Qu)
