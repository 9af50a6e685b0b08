from __future__ import annotations

from dataclasses import dataclass, field

from .types import Float, Verbosity


@dataclass(frozen=True)
class iLQROptions:
    # Maximum number of iterations
    iterations: int = 300
    iterations_linesearch: int = 15

    # Convergence tolerances
    cost_tolerance: Float = 1e-4
    gradient_norm_tolerance: Float = 1e-5

    # Accepted ratio of actual to expected cost decrease
    line_search_lower_bound: Float = 1e-8
    line_search_upper_bound: Float = 10.0

    # Backward pass regularization
    bp_reg_initial: Float = 0.0
    bp_reg_increase_factor: Float = 1.6
    bp_reg_min: Float = 1e-8
    bp_reg_max: Float = 1e8

    # Divergence ceilings for rollouts
    max_state_value: Float = 1e8
    max_control_value: Float = 1e8

    # Verbosity level
    verbose: Verbosity = Verbosity.SILENT

    def __post_init__(self) -> None:
        """Validate option values after initialization."""
        if self.iterations <= 0:
            raise ValueError("iterations must be positive")
        if self.iterations_linesearch <= 0:
            raise ValueError("iterations_linesearch must be positive")
        if self.cost_tolerance <= 0:
            raise ValueError("cost_tolerance must be positive")
        if self.gradient_norm_tolerance <= 0:
            raise ValueError("gradient_norm_tolerance must be positive")
        if self.line_search_lower_bound >= self.line_search_upper_bound:
            raise ValueError("line_search_lower_bound must be less than line_search_upper_bound")
        if self.bp_reg_initial < 0:
            raise ValueError("bp_reg_initial must be non-negative")
        if self.bp_reg_increase_factor <= 1:
            raise ValueError("bp_reg_increase_factor must be greater than 1")
        if self.bp_reg_min <= 0:
            raise ValueError("bp_reg_min must be positive")
        if self.bp_reg_max <= self.bp_reg_min:
            raise ValueError("bp_reg_max must be greater than bp_reg_min")
        if self.max_state_value <= 0 or self.max_control_value <= 0:
            raise ValueError("divergence ceilings must be positive")


@dataclass(frozen=True)
class AugmentedLagrangianOptions:
    # Maximum number of outer iterations
    iterations: int = 30

    # Inner solver tolerances on the final outer iteration
    cost_tolerance: Float = 1e-4
    gradient_norm_tolerance: Float = 1e-5

    # Inner solver tolerances on every other outer iteration
    cost_tolerance_intermediate: Float = 1e-3
    gradient_norm_tolerance_intermediate: Float = 1e-5

    # Maximum constraint violation accepted at convergence
    constraint_tolerance: Float = 1e-3

    # Multiplier saturation
    dual_min: Float = -1e8
    dual_max: Float = 1e8

    # Penalty method parameters
    penalty_initial: Float = 1.0
    penalty_scaling: Float = 10.0
    penalty_max: Float = 1e8

    # Divide the summed stage constraint cost by (N - 1)
    normalize_constraint_cost: bool = True

    # Verbosity level
    verbose: Verbosity = Verbosity.SILENT

    # Options of the unconstrained inner solver
    opts_uncon: iLQROptions = field(default_factory=iLQROptions)

    def __post_init__(self) -> None:
        """Validate option values after initialization."""
        if self.iterations <= 0:
            raise ValueError("iterations must be positive")
        if self.cost_tolerance <= 0 or self.cost_tolerance_intermediate <= 0:
            raise ValueError("cost tolerances must be positive")
        if self.gradient_norm_tolerance <= 0 or self.gradient_norm_tolerance_intermediate <= 0:
            raise ValueError("gradient norm tolerances must be positive")
        if self.constraint_tolerance <= 0:
            raise ValueError("constraint_tolerance must be positive")
        if self.dual_min > self.dual_max:
            raise ValueError("dual_min must not exceed dual_max")
        if self.penalty_initial <= 0:
            raise ValueError("penalty_initial must be positive")
        if self.penalty_scaling <= 1:
            raise ValueError("penalty_scaling must be greater than 1")
        if self.penalty_max <= self.penalty_initial:
            raise ValueError("penalty_max must be greater than penalty_initial")
