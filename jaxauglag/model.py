"""Dynamics models for JAX-based trajectory optimization.

A :class:`DynamicsModel` bundles continuous dynamics ``fc(x, u)`` with the
discrete dynamics used by the rollouts. Discrete dynamics are either supplied
by the user or derived from ``fc`` by explicit Runge-Kutta integration, and any
jacobian that is not supplied is computed with JAX automatic differentiation.
"""

from __future__ import annotations

from dataclasses import dataclass, field

import jax
import jax.numpy as jnp
from jax import Array

from .exceptions import ErrorCode, _auglag_throw
from .types import (
    ContinuousDynamicsFunction,
    ContinuousDynamicsJacobian,
    DiscreteDynamicsFunction,
    DiscreteDynamicsJacobian,
    Float,
    IntegrationScheme,
)


def rk4(fc: ContinuousDynamicsFunction) -> DiscreteDynamicsFunction:
    """Fourth-order Runge-Kutta discretization with the control held constant."""

    def fd(x: Array, u: Array, dt: Float) -> Array:
        k1 = fc(x, u)
        k2 = fc(x + 0.5 * dt * k1, u)
        k3 = fc(x + 0.5 * dt * k2, u)
        k4 = fc(x + dt * k3, u)
        return x + dt / 6.0 * (k1 + 2.0 * k2 + 2.0 * k3 + k4)

    return fd


def rk3_foh(fc: ContinuousDynamicsFunction) -> DiscreteDynamicsFunction:
    """Third-order Runge-Kutta discretization with linearly interpolated control.

    ``u`` is the control at the start of the interval and ``v`` at its end.
    """

    def fd(x: Array, u: Array, v: Array, dt: Float) -> Array:
        k1 = fc(x, u)
        k2 = fc(x + 0.5 * dt * k1, 0.5 * (u + v))
        k3 = fc(x - dt * k1 + 2.0 * dt * k2, v)
        return x + dt / 6.0 * (k1 + 4.0 * k2 + k3)

    return fd


def _continuous_jacobian(fc: ContinuousDynamicsFunction) -> ContinuousDynamicsJacobian:
    @jax.jit
    def auto_continuous_jacobian(x: Array, u: Array) -> tuple[Array, Array]:
        return jax.jacfwd(fc, argnums=(0, 1))(x, u)

    return auto_continuous_jacobian


def _discrete_jacobian(
    fd: DiscreteDynamicsFunction, scheme: IntegrationScheme
) -> DiscreteDynamicsJacobian:
    if scheme == IntegrationScheme.FOH:

        @jax.jit
        def auto_foh_jacobian(
            x: Array, u: Array, v: Array, dt: Float
        ) -> tuple[Array, Array, Array]:
            return jax.jacfwd(fd, argnums=(0, 1, 2))(x, u, v, dt)

        return auto_foh_jacobian

    @jax.jit
    def auto_zoh_jacobian(x: Array, u: Array, dt: Float) -> tuple[Array, Array]:
        return jax.jacfwd(fd, argnums=(0, 1))(x, u, dt)

    return auto_zoh_jacobian


@dataclass(frozen=True)
class DiscreteDynamics:
    """Discrete dynamics ``fd`` and its jacobian ``Fd`` for one integration scheme.

    Zero-order hold: ``fd(x, u, dt) -> x_next`` and ``Fd(x, u, dt) -> (A, B)``.
    First-order hold: ``fd(x, u, v, dt) -> x_next`` and ``Fd(x, u, v, dt) -> (A, B, Bv)``.
    """

    scheme: IntegrationScheme
    fd: DiscreteDynamicsFunction
    Fd: DiscreteDynamicsJacobian


@dataclass
class DynamicsModel:
    """State-space model with ``n`` states and ``m`` controls.

    Args:
        n: State dimension
        m: Control dimension
        fc: Continuous dynamics ``fc(x, u) -> xdot``
        Fc: Optional continuous jacobian ``Fc(x, u) -> (Ac, Bc)``
        fd: Optional discrete dynamics written for ``scheme``
        Fd: Optional discrete jacobian written for ``scheme``
        scheme: Integration scheme ``fd``/``Fd`` are written for
    """

    n: int
    m: int
    fc: ContinuousDynamicsFunction | None = None
    Fc: ContinuousDynamicsJacobian | None = None
    fd: DiscreteDynamicsFunction | None = None
    Fd: DiscreteDynamicsJacobian | None = None
    scheme: IntegrationScheme = IntegrationScheme.ZOH
    _discrete_cache: dict[IntegrationScheme, DiscreteDynamics] = field(
        default_factory=dict, init=False, repr=False
    )

    def __post_init__(self) -> None:
        if self.n <= 0:
            _auglag_throw("Number of states must be positive", ErrorCode.NON_POSITIVE)
        if self.m <= 0:
            _auglag_throw("Number of controls must be positive", ErrorCode.NON_POSITIVE)
        if self.fc is None and self.fd is None:
            _auglag_throw(
                "Either continuous or discrete dynamics must be supplied", ErrorCode.NON_POSITIVE
            )
        if self.fc is not None and self.Fc is None:
            self.Fc = _continuous_jacobian(self.fc)

    def has_continuous_dynamics(self) -> bool:
        """Check if continuous dynamics are available."""
        return self.fc is not None

    def continuous(self, x: Array, u: Array) -> Array:
        """Evaluate the continuous dynamics."""
        if self.fc is None:
            _auglag_throw(
                "Continuous dynamics are required by this operation",
                ErrorCode.UNSUPPORTED_INTEGRATION,
            )
        return self.fc(x, u)

    def continuous_jacobian(self, x: Array, u: Array) -> tuple[Array, Array]:
        """Evaluate the continuous jacobian ``(Ac, Bc)``."""
        if self.Fc is None:
            _auglag_throw(
                "Continuous dynamics are required by this operation",
                ErrorCode.UNSUPPORTED_INTEGRATION,
            )
        return self.Fc(x, u)

    def discretize(self, scheme: IntegrationScheme) -> DiscreteDynamics:
        """Get the discrete dynamics for an integration scheme."""
        if scheme in self._discrete_cache:
            return self._discrete_cache[scheme]

        if self.fd is not None and self.scheme == scheme:
            fd = self.fd
            Fd = self.Fd if self.Fd is not None else _discrete_jacobian(fd, scheme)
        elif self.fc is not None:
            fd = rk3_foh(self.fc) if scheme == IntegrationScheme.FOH else rk4(self.fc)
            Fd = _discrete_jacobian(fd, scheme)
        else:
            _auglag_throw(
                f"Discrete dynamics were supplied for {self.scheme.value} only and no "
                f"continuous dynamics are available to integrate with {scheme.value}",
                ErrorCode.UNSUPPORTED_INTEGRATION,
            )

        discrete = DiscreteDynamics(scheme, jax.jit(fd), Fd)
        self._discrete_cache[scheme] = discrete
        return discrete


def double_integrator(dim: int = 1) -> DynamicsModel:
    """Double integrator with ``dim`` positions, ``dim`` velocities and ``dim`` accelerations."""

    def fc(x: Array, u: Array) -> Array:
        return jnp.concatenate([x[dim:], u])

    def fd(x: Array, u: Array, dt: Float) -> Array:
        pos, vel = x[:dim], x[dim:]
        return jnp.concatenate([pos + vel * dt + 0.5 * u * dt**2, vel + u * dt])

    return DynamicsModel(n=2 * dim, m=dim, fc=fc, fd=fd, scheme=IntegrationScheme.ZOH)
