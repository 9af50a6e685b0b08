"""Exception hierarchy for JAX-based Augmented Lagrangian trajectory optimization.

Every error raised by this package derives from :class:`AugLagException` and
carries an :class:`~jaxauglag.types.ErrorCode` describing its category.
"""

from __future__ import annotations

from typing import NoReturn

from .types import ErrorCode


class AugLagException(Exception):
    """Base exception class for trajectory optimization errors."""

    def __init__(self, message: str, error_code: ErrorCode) -> None:
        super().__init__(message)
        self.error_code = error_code
        self.message = message

    def __str__(self) -> str:
        description = _error_code_to_string(self.error_code)
        return f"AugLag Error {self.error_code.value} ({description}): {self.message}"


class DimensionError(AugLagException):
    """Exception for dimension-related errors."""

    def __init__(self, message: str, error_code: ErrorCode = ErrorCode.DIMENSION_MISMATCH) -> None:
        super().__init__(message, error_code)


class ConfigurationError(AugLagException):
    """Exception for malformed problem descriptions."""

    def __init__(self, message: str, error_code: ErrorCode = ErrorCode.NON_POSITIVE) -> None:
        super().__init__(message, error_code)


class InitializationError(AugLagException):
    """Exception for invalid initial trajectories."""

    def __init__(self, message: str, error_code: ErrorCode = ErrorCode.DIMENSION_MISMATCH) -> None:
        super().__init__(message, error_code)


class ConstraintError(AugLagException):
    """Exception for constraint-related errors."""

    def __init__(
        self, message: str, error_code: ErrorCode = ErrorCode.INVALID_CONSTRAINT_DIM
    ) -> None:
        super().__init__(message, error_code)


class OptimizationError(AugLagException):
    """Exception for optimization algorithm errors."""

    def __init__(self, message: str, error_code: ErrorCode) -> None:
        super().__init__(message, error_code)


def _error_code_to_string(error_code: ErrorCode) -> str:
    """Convert error code to a descriptive string."""
    error_messages = {
        ErrorCode.NO_ERROR: "no error",
        ErrorCode.DIMENSION_MISMATCH: "dimension mismatch",
        ErrorCode.NON_POSITIVE: "expected a positive value",
        ErrorCode.TIMESTEP_NEGATIVE: "timestep is negative",
        ErrorCode.INVALID_BOUND_CONSTRAINT: (
            "Invalid bound constraint. "
            "Make sure all upper bounds are greater than or equal to the lower bounds"
        ),
        ErrorCode.INVALID_CONSTRAINT_DIM: "invalid constraint dimension",
        ErrorCode.TERMINAL_CONSTRAINT_JACOBIAN_MISSING: (
            "a custom terminal constraint requires its jacobian"
        ),
        ErrorCode.UNSUPPORTED_INTEGRATION: "integration scheme not supported by this operation",
        ErrorCode.INFEASIBLE_NOT_ENABLED: "operation requires an infeasible-start problem",
        ErrorCode.INITIAL_ROLLOUT_DIVERGED: "rollout of the initial trajectory diverged",
        ErrorCode.BACKWARD_PASS_FAILED: "Backward pass failed. Try increasing regularization",
    }
    return error_messages.get(error_code, "unknown error")


def _auglag_throw(message: str, error_code: ErrorCode) -> NoReturn:
    """Raise the exception class that matches the error code."""
    if error_code == ErrorCode.DIMENSION_MISMATCH:
        raise DimensionError(message, error_code)
    if error_code == ErrorCode.INITIAL_ROLLOUT_DIVERGED:
        raise InitializationError(message, error_code)
    if error_code in (
        ErrorCode.INVALID_CONSTRAINT_DIM,
        ErrorCode.TERMINAL_CONSTRAINT_JACOBIAN_MISSING,
    ):
        raise ConstraintError(message, error_code)
    if error_code == ErrorCode.BACKWARD_PASS_FAILED:
        raise OptimizationError(message, error_code)
    raise ConfigurationError(message, error_code)
