"""Problem description for JAX-based trajectory optimization.

This module provides the objective, problem and trajectory containers. A
:class:`Problem` is validated once at construction; every solver component
assumes its dimensions are consistent afterwards.
"""

from __future__ import annotations

from dataclasses import dataclass, field

import jax
import jax.numpy as jnp
import jax.scipy as jsp
from jax import Array

from .exceptions import ErrorCode, _auglag_throw
from .model import DiscreteDynamics, DynamicsModel
from .types import (
    ConstraintFunction,
    Float,
    IntegrationScheme,
    TerminalConstraintFunction,
    TerminalConstraintJacobian,
)


def _constraint_output_size(fun: ConstraintFunction, n: int, m: int) -> int:
    """Infer the output size of ``fun(x, u)`` without evaluating it."""
    x = jax.ShapeDtypeStruct((n,), jnp.float64)
    u = jax.ShapeDtypeStruct((m,), jnp.float64)
    shape = jax.eval_shape(fun, x, u).shape
    if len(shape) != 1:
        _auglag_throw(
            f"Constraint functions must return a vector, got shape {shape}",
            ErrorCode.INVALID_CONSTRAINT_DIM,
        )
    return int(shape[0])


def _check_shape(name: str, shape: tuple[int, ...], expected: tuple[int, ...]) -> None:
    if shape != expected:
        _auglag_throw(
            f"{name} has shape {shape}, expected {expected}", ErrorCode.DIMENSION_MISMATCH
        )


@dataclass
class Objective:
    """Quadratic tracking objective with optional constraints.

    Stage cost ``0.5 (x - xf)' Q (x - xf) + 0.5 u' R u + c`` and terminal cost
    ``0.5 (x - xf)' Qf (x - xf)``. Box bounds default to infinite (inactive);
    ``cI(x, u) <= 0`` and ``cE(x, u) = 0`` are custom stage constraints. The
    terminal constraint defaults to ``x - xf = 0`` when
    ``use_terminal_constraint`` is set; a custom ``terminal_constraint`` must
    come with its ``terminal_constraint_jacobian``.
    """

    Q: Array
    R: Array
    Qf: Array
    xf: Array
    c: Float = 0.0

    # Box bounds
    x_min: Array | None = None
    x_max: Array | None = None
    u_min: Array | None = None
    u_max: Array | None = None

    # Custom stage constraints
    cI: ConstraintFunction | None = None
    cE: ConstraintFunction | None = None

    # Terminal constraint
    use_terminal_constraint: bool = True
    terminal_constraint: TerminalConstraintFunction | None = None
    terminal_constraint_jacobian: TerminalConstraintJacobian | None = None

    def __post_init__(self) -> None:
        self.Q = jnp.atleast_2d(jnp.asarray(self.Q, dtype=jnp.float64))
        self.R = jnp.atleast_2d(jnp.asarray(self.R, dtype=jnp.float64))
        self.Qf = jnp.atleast_2d(jnp.asarray(self.Qf, dtype=jnp.float64))
        self.xf = jnp.asarray(self.xf, dtype=jnp.float64)

        n = self.xf.shape[0]
        m = self.R.shape[0]
        self.x_min = self._bound(self.x_min, n, -jnp.inf)
        self.x_max = self._bound(self.x_max, n, jnp.inf)
        self.u_min = self._bound(self.u_min, m, -jnp.inf)
        self.u_max = self._bound(self.u_max, m, jnp.inf)

    @staticmethod
    def _bound(value: Array | Float | None, size: int, default: Float) -> Array:
        if value is None:
            return jnp.full(size, default)
        value = jnp.asarray(value, dtype=jnp.float64)
        if value.ndim > 0:
            _check_shape("Bound", value.shape, (size,))
        return jnp.broadcast_to(value, (size,))

    @property
    def n(self) -> int:
        return int(self.xf.shape[0])

    @property
    def m(self) -> int:
        return int(self.R.shape[0])


@dataclass
class Trajectory:
    """State and control trajectory.

    ``X`` holds N states. ``U`` holds N - 1 controls under zero-order hold and
    N under first-order hold. ``xdot`` and ``xmid`` hold the state derivatives
    and cubic midpoints used by first-order hold.
    """

    X: list[Array]
    U: list[Array]
    xdot: list[Array] = field(default_factory=list)
    xmid: list[Array] = field(default_factory=list)

    def copy(self) -> Trajectory:
        """Return a copy whose lists can be modified independently."""
        return Trajectory(list(self.X), list(self.U), list(self.xdot), list(self.xmid))

    def states(self) -> Array:
        """Stack the states into an (N, n) array."""
        return jnp.stack(self.X)

    def controls(self) -> Array:
        """Stack the controls into an (N - 1 or N, mm) array."""
        return jnp.stack(self.U)

    @staticmethod
    def from_arrays(X: Array, U: Array) -> Trajectory:
        """Build a trajectory from (N, n) states and (N - 1 or N, mm) controls."""
        X = jnp.asarray(X, dtype=jnp.float64)
        U = jnp.asarray(U, dtype=jnp.float64)
        return Trajectory([X[k] for k in range(X.shape[0])], [U[k] for k in range(U.shape[0])])


@dataclass
class Problem:
    """Immutable per-solve description of a trajectory optimization problem.

    Args:
        model: Dynamics model
        objective: Cost and constraint description
        x0: Initial state
        N: Number of knot points
        dt: Fixed time step, 0 for a minimum-time problem
        integration: Zero-order or first-order hold on the controls
        infeasible: Append per-step slack controls to every control vector
        max_dt: Upper bound on the free time step of a minimum-time problem
        R_infeasible: Cost weight on slack controls
        R_minimum_time: Cost weight on the square-root time step control
    """

    model: DynamicsModel
    objective: Objective
    x0: Array
    N: int
    dt: Float
    integration: IntegrationScheme = IntegrationScheme.ZOH
    infeasible: bool = False
    max_dt: Float = 1.0
    R_infeasible: Float = 1.0
    R_minimum_time: Float = 1.0

    def __post_init__(self) -> None:
        self.x0 = jnp.asarray(self.x0, dtype=jnp.float64)
        self._validate()

        self.discrete: DiscreteDynamics = self.model.discretize(self.integration)
        self.R_augmented = self._augmented_control_cost()

        if self.integration == IntegrationScheme.FOH:
            self._step = jax.jit(self._foh_step)
            self._step_jacobian = jax.jit(self._foh_step_jacobian)
        else:
            self._step = jax.jit(self._zoh_step)
            self._step_jacobian = jax.jit(self._zoh_step_jacobian)

    def _validate(self) -> None:
        n, m = self.model.n, self.model.m
        obj = self.objective

        if self.N < 2:
            _auglag_throw("Number of knot points must be at least 2", ErrorCode.NON_POSITIVE)
        if self.dt < 0.0:
            _auglag_throw("Time step must be non-negative", ErrorCode.TIMESTEP_NEGATIVE)
        if self.max_dt <= 0.0:
            _auglag_throw("max_dt must be positive", ErrorCode.NON_POSITIVE)
        if self.R_infeasible <= 0.0 or self.R_minimum_time <= 0.0:
            _auglag_throw("Augmented control weights must be positive", ErrorCode.NON_POSITIVE)

        _check_shape("x0", self.x0.shape, (n,))
        _check_shape("xf", obj.xf.shape, (n,))
        _check_shape("Q", obj.Q.shape, (n, n))
        _check_shape("R", obj.R.shape, (m, m))
        _check_shape("Qf", obj.Qf.shape, (n, n))

        if bool(jnp.any(obj.x_min > obj.x_max)) or bool(jnp.any(obj.u_min > obj.u_max)):
            _auglag_throw("Lower bounds exceed upper bounds", ErrorCode.INVALID_BOUND_CONSTRAINT)

        for name, fun in (("cI", obj.cI), ("cE", obj.cE)):
            if fun is not None and _constraint_output_size(fun, n, m) == 0:
                _auglag_throw(
                    f"Custom constraint {name} returns an empty vector",
                    ErrorCode.INVALID_CONSTRAINT_DIM,
                )

        if obj.terminal_constraint is not None and obj.terminal_constraint_jacobian is None:
            _auglag_throw(
                "A custom terminal constraint requires a terminal constraint jacobian",
                ErrorCode.TERMINAL_CONSTRAINT_JACOBIAN_MISSING,
            )

        if self.integration == IntegrationScheme.FOH and not self.model.has_continuous_dynamics():
            _auglag_throw(
                "First-order hold requires continuous dynamics for the state derivatives",
                ErrorCode.UNSUPPORTED_INTEGRATION,
            )

    def _augmented_control_cost(self) -> Array:
        R = self.objective.R
        if self.is_min_time:
            R = jsp.linalg.block_diag(R, jnp.array([[self.R_minimum_time]]))
        if self.infeasible:
            R = jsp.linalg.block_diag(R, self.R_infeasible * jnp.eye(self.n))
        return R

    @property
    def n(self) -> int:
        return self.model.n

    @property
    def m(self) -> int:
        return self.model.m

    @property
    def is_min_time(self) -> bool:
        """A zero time step makes the time step a decision variable."""
        return self.dt == 0.0

    @property
    def m_bar(self) -> int:
        """Number of controls excluding infeasible slack controls."""
        return self.m + 1 if self.is_min_time else self.m

    @property
    def mm(self) -> int:
        """Total control width."""
        return self.m_bar + self.n if self.infeasible else self.m_bar

    @property
    def num_controls(self) -> int:
        """Number of control vectors in a trajectory."""
        return self.N if self.integration == IntegrationScheme.FOH else self.N - 1

    def timestep(self, u: Array) -> Array | Float:
        """Local time step of the interval starting with control ``u``."""
        if self.is_min_time:
            return u[self.m_bar - 1] ** 2
        return self.dt

    def step(self, x: Array, u: Array, u_next: Array | None = None) -> Array:
        """Propagate one interval of the augmented discrete dynamics."""
        if self.integration == IntegrationScheme.FOH:
            return self._step(x, u, u_next)
        return self._step(x, u)

    def step_jacobian(self, x: Array, u: Array, u_next: Array | None = None) -> tuple[Array, ...]:
        """Jacobian of :meth:`step` with respect to ``x`` and the full control(s)."""
        if self.integration == IntegrationScheme.FOH:
            return self._step_jacobian(x, u, u_next)
        return self._step_jacobian(x, u)

    def _add_slack(self, x_next: Array, u: Array) -> Array:
        if self.infeasible:
            return x_next + u[self.m_bar :]
        return x_next

    def _zoh_step(self, x: Array, u: Array) -> Array:
        x_next = self.discrete.fd(x, u[: self.m], self.timestep(u))
        return self._add_slack(x_next, u)

    def _foh_step(self, x: Array, u: Array, u_next: Array) -> Array:
        x_next = self.discrete.fd(x, u[: self.m], u_next[: self.m], self.timestep(u))
        return self._add_slack(x_next, u)

    def _augment_columns(self, B: Array, dfdt: Array | None, is_start: bool) -> Array:
        n = self.n
        columns = [B]
        if self.is_min_time:
            columns.append(dfdt[:, None] if is_start else jnp.zeros((n, 1)))
        if self.infeasible:
            columns.append(jnp.eye(n) if is_start else jnp.zeros((n, n)))
        return jnp.hstack(columns)

    def _zoh_step_jacobian(self, x: Array, u: Array) -> tuple[Array, Array]:
        fd = self.discrete.fd
        dt = self.timestep(u)
        A, B = self.discrete.Fd(x, u[: self.m], dt)
        dfdt = None
        if self.is_min_time:
            # chain rule through dt = h^2
            dfdt = 2.0 * u[self.m_bar - 1] * jax.jacfwd(fd, argnums=2)(x, u[: self.m], dt)
        return A, self._augment_columns(B, dfdt, True)

    def _foh_step_jacobian(self, x: Array, u: Array, u_next: Array) -> tuple[Array, Array, Array]:
        fd = self.discrete.fd
        dt = self.timestep(u)
        A, B, Bv = self.discrete.Fd(x, u[: self.m], u_next[: self.m], dt)
        dfdt = None
        if self.is_min_time:
            dfdt = 2.0 * u[self.m_bar - 1] * jax.jacfwd(fd, argnums=3)(
                x, u[: self.m], u_next[: self.m], dt
            )
        return A, self._augment_columns(B, dfdt, True), self._augment_columns(Bv, dfdt, False)
