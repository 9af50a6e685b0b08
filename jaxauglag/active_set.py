"""Active-set bookkeeping for the Augmented Lagrangian penalty.

Equality rows are always active. An inequality row is active when its residual
is at least ``tol`` or its multiplier is positive, so a constraint whose
multiplier has gone positive stays penalized after its residual turns negative.
"""

from __future__ import annotations

import jax
import jax.numpy as jnp
from jax import Array

from .parted import PartedVector
from .types import Float


@jax.jit
def _active_rows(inequality_mask: Array, c: Array, duals: Array, tol: Float) -> Array:
    return jnp.where(inequality_mask, (c >= tol) | (duals > 0.0), True)


def active_set(c: PartedVector, duals: PartedVector, tol: Float = 0.0) -> PartedVector:
    """Compute the active set of a single knot."""
    layout = c.layout
    return PartedVector(_active_rows(layout.inequality_mask(), c.data, duals.data, tol), layout)


def update_active_set(
    active: list[PartedVector],
    C: list[PartedVector],
    duals: list[PartedVector],
    tol: Float = 0.0,
) -> None:
    """Recompute the active set of every knot in place.

    Must run after every multiplier update and before the active set is used
    to build a penalty.
    """
    for k in range(len(C)):
        active[k] = active[k].replace(active_set(C[k], duals[k], tol).data)


def penalty_weights(active: PartedVector, penalties: PartedVector) -> Array:
    """Diagonal of the effective penalty ``Iμ = diag(active .* μ)``."""
    return jnp.where(active.data, penalties.data, 0.0)


def effective_penalty(active: PartedVector, penalties: PartedVector) -> Array:
    """Effective penalty matrix ``Iμ = diag(active .* μ)``."""
    return jnp.diag(penalty_weights(active, penalties))
