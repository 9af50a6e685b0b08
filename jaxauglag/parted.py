"""Block-partitioned constraint vectors.

Every constraint-shaped vector (residuals, multipliers, penalties, active set)
is a flat buffer whose leading rows are inequality constraints and whose
trailing rows are equality constraints. The row ranges are fixed once per
problem by a :class:`BlockLayout`.
"""

from __future__ import annotations

from dataclasses import dataclass, field

import jax.numpy as jnp
from jax import Array

from .exceptions import ErrorCode, _auglag_throw


@dataclass(frozen=True)
class BlockLayout:
    """Inequality rows ``[0, pI)`` followed by equality rows ``[pI, pI + pE)``."""

    num_inequality: int
    num_equality: int
    inequality: slice = field(init=False, repr=False)
    equality: slice = field(init=False, repr=False)

    def __post_init__(self) -> None:
        p = self.num_inequality + self.num_equality
        object.__setattr__(self, "inequality", slice(0, self.num_inequality))
        object.__setattr__(self, "equality", slice(self.num_inequality, p))

    @property
    def size(self) -> int:
        return self.num_inequality + self.num_equality

    def inequality_mask(self) -> Array:
        """Boolean mask selecting the inequality rows."""
        return jnp.arange(self.size) < self.num_inequality

    def zeros(self) -> PartedVector:
        return PartedVector(jnp.zeros(self.size), self)

    def full(self, value: float | bool) -> PartedVector:
        return PartedVector(jnp.full(self.size, value), self)


@dataclass(frozen=True)
class PartedVector:
    """Flat vector tagged with a :class:`BlockLayout`."""

    data: Array
    layout: BlockLayout

    @property
    def inequality(self) -> Array:
        return self.data[self.layout.inequality]

    @property
    def equality(self) -> Array:
        return self.data[self.layout.equality]

    def __len__(self) -> int:
        return self.layout.size

    def replace(self, data: Array) -> PartedVector:
        """Return a vector with new contents and the same layout.

        The size of a constraint vector is fixed by its layout and never changes.
        """
        if data.shape != (self.layout.size,):
            _auglag_throw(
                f"Cannot store a vector of shape {data.shape} "
                f"in a layout of size {self.layout.size}",
                ErrorCode.DIMENSION_MISMATCH,
            )
        return PartedVector(data, self.layout)
