"""
Input Validation - Sanity checks for catalog and team administration.

Every validator returns (is_valid, error_message) and never raises.
"""

import re
from typing import Any, Dict, Iterable, Optional, Tuple

# =============================================================================
# Constants
# =============================================================================

MAX_STRING_LENGTH = 256
MAX_ID_LENGTH = 32
MAX_AMOUNT = 2**53 - 1  # Largest integer a JSON client can represent exactly
MAX_QUANTITY = 10_000
MAX_DURATION_SECONDS = 7 * 24 * 3600

# Catalog/team identifiers: letters, digits, dash, underscore
ID_PATTERN = r"^[A-Za-z0-9_-]+$"


# =============================================================================
# Validation Functions
# =============================================================================


def validate_integer(
    value: Any,
    name: str,
    min_val: int = 0,
    max_val: int = MAX_AMOUNT,
) -> Tuple[bool, str]:
    """
    Validate integer within bounds.

    Args:
        value: Value to validate
        name: Field name for errors
        min_val: Minimum allowed value
        max_val: Maximum allowed value

    Returns:
        (is_valid, error_message)
    """
    if isinstance(value, bool) or not isinstance(value, int):
        return False, f"{name} must be int, got {type(value).__name__}"

    if value < min_val:
        return False, f"{name} must be >= {min_val}, got {value}"

    if value > max_val:
        return False, f"{name} must be <= {max_val}, got {value}"

    return True, ""


def validate_amount(amount: Any, name: str = "amount") -> Tuple[bool, str]:
    """Validate a VC amount."""
    return validate_integer(amount, name, 0, MAX_AMOUNT)


def validate_quantity(quantity: Any) -> Tuple[bool, str]:
    """Validate units offered for an asset."""
    return validate_integer(quantity, "quantity", 1, MAX_QUANTITY)


def validate_duration(seconds: Any) -> Tuple[bool, str]:
    """Validate an auction duration."""
    return validate_integer(seconds, "duration_seconds", 1, MAX_DURATION_SECONDS)


def validate_string(
    value: Any,
    name: str,
    max_length: int = MAX_STRING_LENGTH,
    pattern: Optional[str] = None,
    allow_empty: bool = False,
) -> Tuple[bool, str]:
    """
    Validate string input.

    Args:
        value: Value to validate
        name: Field name for errors
        max_length: Maximum string length
        pattern: Optional regex pattern
        allow_empty: Whether "" is acceptable

    Returns:
        (is_valid, error_message)
    """
    if not isinstance(value, str):
        return False, f"{name} must be str, got {type(value).__name__}"

    if not allow_empty and not value.strip():
        return False, f"{name} must not be empty"

    if len(value) > max_length:
        return False, f"{name} exceeds max length {max_length}"

    if pattern and not re.match(pattern, value):
        return False, f"{name} does not match required pattern"

    return True, ""


def validate_identifier(value: Any, name: str = "id") -> Tuple[bool, str]:
    """Validate a catalog or team identifier."""
    return validate_string(value, name, MAX_ID_LENGTH, ID_PATTERN)


# =============================================================================
# Composite Validators
# =============================================================================


def validate_fields(
    data: Dict[str, Any],
    allowed: Iterable[str],
    protected: Iterable[str] = (),
) -> Tuple[bool, str]:
    """
    Check an update payload's keys.

    Protected fields are reported separately from unknown ones so callers
    can tell "not yours to change" from "no such field".
    """
    if not isinstance(data, dict):
        return False, "Update must be a mapping"

    protected = set(protected)
    allowed = set(allowed)
    for key in data:
        if key in protected:
            return False, f"Field '{key}' cannot be modified directly"
        if key not in allowed:
            return False, f"Unknown field: {key}"

    return True, ""


__all__ = [
    "validate_integer",
    "validate_amount",
    "validate_quantity",
    "validate_duration",
    "validate_string",
    "validate_identifier",
    "validate_fields",
    "MAX_AMOUNT",
    "MAX_QUANTITY",
    "MAX_DURATION_SECONDS",
]
