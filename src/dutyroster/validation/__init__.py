"""Validation module for roster constraint checking."""

from dutyroster.validation.validator import (
    ScheduleValidator,
    ValidationError,
    ValidationErrorType,
    ValidationResult,
)

__all__ = ["ScheduleValidator", "ValidationError", "ValidationErrorType", "ValidationResult"]
