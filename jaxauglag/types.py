"""Core type definitions for JAX-based Augmented Lagrangian trajectory optimization.

This module provides the JAX-compatible type aliases and enums shared by the
constraint, rollout, cost and solver modules.
"""

from __future__ import annotations

from collections.abc import Callable
from enum import Enum
from typing import TypeAlias

from jax import Array


# Core JAX array types
StateVector: TypeAlias = Array  # JAX array for state vectors
ControlInput: TypeAlias = Array  # JAX array for control inputs
DualVariable: TypeAlias = Array  # JAX array for Lagrange multipliers
JacobianMatrix: TypeAlias = Array  # JAX array for Jacobian matrices

# Scalar types
Float: TypeAlias = float

# Dynamics signatures. The first-order-hold forms take the control at both ends
# of the interval.
ContinuousDynamicsFunction: TypeAlias = Callable[[StateVector, ControlInput], StateVector]
ContinuousDynamicsJacobian: TypeAlias = Callable[
    [StateVector, ControlInput], tuple[JacobianMatrix, JacobianMatrix]
]
DiscreteDynamicsFunction: TypeAlias = Callable[..., StateVector]
DiscreteDynamicsJacobian: TypeAlias = Callable[..., tuple[JacobianMatrix, ...]]

ConstraintFunction: TypeAlias = Callable[[StateVector, ControlInput], Array]
TerminalConstraintFunction: TypeAlias = Callable[[StateVector], Array]
TerminalConstraintJacobian: TypeAlias = Callable[[StateVector], JacobianMatrix]

# Automatic differentiation service: (function, point) -> (value, jacobian)
DifferentiationService: TypeAlias = Callable[[Callable[[Array], Array], Array], tuple[Array, Array]]


class IntegrationScheme(Enum):
    """Control interpolation between knot points."""

    ZOH = "zoh"
    FOH = "foh"


class SolveStatus(Enum):
    """Solver termination status."""

    SUCCESS = "Success"
    UNSOLVED = "Unsolved"
    MAX_ITERATIONS = "MaxIterations"
    BACKWARD_PASS_FAILED = "BackwardPassFailed"


class OuterLoopState(Enum):
    """States of the Augmented Lagrangian outer loop."""

    INIT = "Init"
    INNER_SOLVE = "InnerSolve"
    DUAL_UPDATE = "DualUpdate"
    PENALTY_UPDATE = "PenaltyUpdate"
    CONVERGED = "Converged"
    ITERATION_LIMIT_REACHED = "IterationLimitReached"


class RegularizationDirection(Enum):
    """Direction of a regularization update."""

    INCREASE = "increase"
    DECREASE = "decrease"


class Verbosity(Enum):
    """Verbosity levels."""

    SILENT = "Silent"
    OUTER = "Outer"
    INNER = "Inner"


class ErrorCode(Enum):
    """Error codes carried by the exception hierarchy."""

    NO_ERROR = "NoError"
    DIMENSION_MISMATCH = "DimensionMismatch"
    NON_POSITIVE = "NonPositive"
    TIMESTEP_NEGATIVE = "TimestepNegative"
    INVALID_BOUND_CONSTRAINT = "InvalidBoundConstraint"
    INVALID_CONSTRAINT_DIM = "InvalidConstraintDim"
    TERMINAL_CONSTRAINT_JACOBIAN_MISSING = "TerminalConstraintJacobianMissing"
    UNSUPPORTED_INTEGRATION = "UnsupportedIntegration"
    INFEASIBLE_NOT_ENABLED = "InfeasibleNotEnabled"
    INITIAL_ROLLOUT_DIVERGED = "InitialRolloutDiverged"
    BACKWARD_PASS_FAILED = "BackwardPassFailed"
