"""Primitive validation helpers shared by every request model.

All validators are pure functions. ``None`` always means "not provided" and
passes validation, so optional fields can be checked unconditionally; use
``validate_present`` for required values. Failures raise
``ValidationError`` with the ``INVALID_ARGUMENT`` code and a message that
names the offending field, e.g. ``"Temperature must be at least 0.0"``.
"""

from __future__ import annotations

import math
from collections.abc import Collection
from numbers import Real
from typing import Any

from gemini_kit.domain.exceptions import ValidationError

INVALID_ARGUMENT = "INVALID_ARGUMENT"


def _fail(message: str) -> ValidationError:
    return ValidationError(message, INVALID_ARGUMENT)


def _is_number(value: Any) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool)


def validate_present(value: Any, param_name: str) -> None:
    """Reject a missing required value."""
    if value is None:
        raise _fail(f"{param_name} cannot be None")


def validate_string(value: Any, param_name: str) -> None:
    """Check that ``value`` is a string when provided."""
    if value is None:
        return
    if not isinstance(value, str):
        raise _fail(f"{param_name} must be a string")


def validate_not_empty(value: Any, param_name: str) -> None:
    """Check that ``value`` is a non-empty string when provided."""
    if value is None:
        return
    validate_string(value, param_name)
    if not value:
        raise _fail(f"{param_name} cannot be empty")


def validate_numeric(
    value: Any,
    param_name: str,
    *,
    min_value: float | None = None,
    max_value: float | None = None,
) -> None:
    """Check that ``value`` is a number inside ``[min_value, max_value]``.

    Args:
        value: Value to check. None passes.
        param_name: Field name used in the error message.
        min_value: Inclusive lower bound, or None for no bound.
        max_value: Inclusive upper bound, or None for no bound.

    Raises:
        ValidationError: If the value is not a finite number (booleans,
            NaN and infinities are rejected) or falls outside the bounds.
    """
    if value is None:
        return
    if not _is_number(value):
        raise _fail(f"{param_name} must be a number")
    if not math.isfinite(value):
        raise _fail(f"{param_name} must be a finite number")
    if min_value is not None and value < min_value:
        raise _fail(f"{param_name} must be at least {min_value}")
    if max_value is not None and value > max_value:
        raise _fail(f"{param_name} must be at most {max_value}")


def validate_integer(
    value: Any,
    param_name: str,
    *,
    min_value: int | None = None,
    max_value: int | None = None,
) -> None:
    """Check that ``value`` is an integer inside the optional bounds."""
    if value is None:
        return
    if not isinstance(value, int) or isinstance(value, bool):
        raise _fail(f"{param_name} must be an integer")
    validate_numeric(value, param_name, min_value=min_value, max_value=max_value)


def validate_positive_integer(value: Any, param_name: str) -> None:
    """Check that ``value`` is an integer greater than zero."""
    if value is None:
        return
    validate_integer(value, param_name)
    if value <= 0:
        raise _fail(f"{param_name} must be positive")


def validate_probability(value: Any, param_name: str) -> None:
    """Check that ``value`` is a number in ``[0.0, 1.0]``."""
    validate_numeric(value, param_name, min_value=0.0, max_value=1.0)


def validate_array(value: Any, param_name: str) -> None:
    """Check that ``value`` is a list or tuple."""
    if value is None:
        return
    if not isinstance(value, (list, tuple)):
        raise _fail(f"{param_name} must be an array")


def validate_string_array(value: Any, param_name: str) -> None:
    """Check that ``value`` is a list or tuple of strings.

    The failing element is reported by index, e.g.
    ``"Stop sequences[1] must be a string"``.
    """
    if value is None:
        return
    validate_array(value, param_name)
    for index, item in enumerate(value):
        if not isinstance(item, str):
            raise _fail(f"{param_name}[{index}] must be a string")


def validate_allowed_values(value: Any, param_name: str, allowed_values: Collection[Any]) -> None:
    """Check that ``value`` is one of ``allowed_values``."""
    if value is None:
        return
    if value not in allowed_values:
        allowed = ", ".join(str(item) for item in allowed_values)
        raise _fail(f"{param_name} must be one of: {allowed}")


__all__ = [
    "INVALID_ARGUMENT",
    "validate_allowed_values",
    "validate_array",
    "validate_integer",
    "validate_not_empty",
    "validate_numeric",
    "validate_positive_integer",
    "validate_present",
    "validate_probability",
    "validate_string",
    "validate_string_array",
]
