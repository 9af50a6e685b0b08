"""JAX-based Augmented Lagrangian trajectory optimization package.

This package solves constrained discrete-time trajectory optimization problems
by reducing them to a sequence of unconstrained subproblems with the
Augmented Lagrangian method, each solved by an iterative LQR inner solver.
JAX provides the automatic differentiation of dynamics, costs and custom
constraints and JIT compilation of the per-knot kernels.
"""

from __future__ import annotations

import jax

# Active set and multiplier bookkeeping
from .active_set import active_set, effective_penalty, penalty_weights, update_active_set

# Outer loop
from .augmented_lagrangian import (
    AugmentedLagrangianSolver,
    dual_update,
    max_violation,
    max_violation_penalized,
    penalty_update,
    saturate,
)

# Constraints
from .constraints import (
    ConstraintJacobian,
    ConstraintSet,
    evaluate_trajectory,
    forward_jacobian,
    jacobian_trajectory,
)

# Costs
from .cost import (
    AugmentedLagrangianObjective,
    CostExpansion,
    UnconstrainedObjective,
    aula_cost,
    stage_cost,
)

# Exception hierarchy
from .exceptions import (
    AugLagException,
    ConfigurationError,
    ConstraintError,
    DimensionError,
    InitializationError,
    OptimizationError,
)

# Inner solver
from .ilqr import iLQRSolver

# Initialization utilities
from .initialization import (
    feasible_problem,
    feasible_trajectory,
    infeasible_controls,
    infeasible_trajectory,
    line_trajectory,
    nominal_controls,
)
from .lagrangian_state import AugmentedLagrangianState

# Problem description
from .model import DynamicsModel, double_integrator, rk3_foh, rk4
from .parted import BlockLayout, PartedVector
from .problem import Objective, Problem, Trajectory
from .regularization import regularization_update
from .rollout import calculate_derivatives, calculate_midpoints, closed_loop_rollout, rollout

# User-facing entry point
from .solve import SolverResults, initial_trajectory, solve

# Configuration classes
from .solver_options import AugmentedLagrangianOptions, iLQROptions
from .solver_stats import AugmentedLagrangianStats, iLQRStats

# Type definitions
from .types import (
    ControlInput,
    DualVariable,
    ErrorCode,
    Float,
    IntegrationScheme,
    OuterLoopState,
    RegularizationDirection,
    SolveStatus,
    StateVector,
    Verbosity,
)


# Version information
__version__ = "0.1.0"

# Public API
__all__ = [
    "AugLagException",
    "AugmentedLagrangianObjective",
    "AugmentedLagrangianOptions",
    "AugmentedLagrangianSolver",
    "AugmentedLagrangianState",
    "AugmentedLagrangianStats",
    "BlockLayout",
    "ConfigurationError",
    "ConstraintError",
    "ConstraintJacobian",
    "ConstraintSet",
    "ControlInput",
    "CostExpansion",
    "DimensionError",
    "DualVariable",
    "DynamicsModel",
    "ErrorCode",
    "Float",
    "InitializationError",
    "IntegrationScheme",
    "Objective",
    "OptimizationError",
    "OuterLoopState",
    "PartedVector",
    "Problem",
    "RegularizationDirection",
    "SolveStatus",
    "SolverResults",
    "StateVector",
    "Trajectory",
    "UnconstrainedObjective",
    "Verbosity",
    "__version__",
    "active_set",
    "aula_cost",
    "calculate_derivatives",
    "calculate_midpoints",
    "closed_loop_rollout",
    "double_integrator",
    "dual_update",
    "effective_penalty",
    "evaluate_trajectory",
    "feasible_problem",
    "feasible_trajectory",
    "forward_jacobian",
    "iLQROptions",
    "iLQRSolver",
    "iLQRStats",
    "infeasible_controls",
    "infeasible_trajectory",
    "initial_trajectory",
    "jacobian_trajectory",
    "line_trajectory",
    "max_violation",
    "max_violation_penalized",
    "nominal_controls",
    "penalty_update",
    "penalty_weights",
    "regularization_update",
    "rk3_foh",
    "rk4",
    "rollout",
    "saturate",
    "solve",
    "stage_cost",
    "update_active_set",
]


def _check_jax_installation() -> None:
    """Check that JAX is properly installed and accessible."""
    try:
        import jax
        import jax.numpy as jnp

        # Test basic JAX functionality
        _ = jnp.array([1.0, 2.0, 3.0])
        _ = jax.grad(lambda x: x**2)(1.0)
    except ImportError as e:
        raise ImportError(
            "JAX is required for jaxauglag but not found. Please install JAX with: pip install jax"
        ) from e
    except Exception as e:
        raise RuntimeError(
            "JAX installation appears to be broken. "
            "Please reinstall JAX with: pip install --upgrade jax"
        ) from e


# Perform dependency checks on import
_check_jax_installation()

# Enable 64-bit precision for numerical stability
jax.config.update("jax_enable_x64", True)
