"""Backward pass regularization schedule.

Damping heuristic from Tassa, Erez and Todorov, "Synthesis and Stabilization
of Complex Behaviors through Online Trajectory Optimization" (IROS 2012). The
regularization ``rho`` grows geometrically while the backward pass fails and
decays geometrically after accepted steps; ``drho`` is its rate of change.
"""

from __future__ import annotations

from .types import Float, RegularizationDirection


def regularization_update(
    rho: Float,
    drho: Float,
    direction: RegularizationDirection,
    factor: Float,
    rho_min: Float,
) -> tuple[Float, Float]:
    """Return the updated ``(rho, drho)``.

    Increasing never yields less than ``rho_min``. Decreasing snaps ``rho`` to
    zero once it would fall to ``rho_min`` or below.
    """
    if direction == RegularizationDirection.INCREASE:
        drho = max(drho * factor, factor)
        rho = max(rho * drho, rho_min)
    else:
        drho = min(drho / factor, 1.0 / factor)
        rho = rho * drho
        if rho <= rho_min:
            rho = 0.0
    return rho, drho
