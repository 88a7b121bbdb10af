"""
Input Validation - Sanitization of externally supplied values.

Provides validation for caller inputs before they reach the engine:
- Course codes (the original 8-byte codes)
- Identities (0x addresses)
- Token amounts and durations
- Signatures
"""

from typing import Any, Tuple

from seatbid.crypto import SIGNATURE_SIZE, is_valid_address

# =============================================================================
# Constants
# =============================================================================

MAX_COURSE_CODE_LENGTH = 8
MAX_AMOUNT = 2**64 - 1
MAX_PREREQUISITES = 16


# =============================================================================
# Validation Functions
# =============================================================================


def validate_int(
    value: Any,
    name: str,
    min_value: int = 0,
    max_value: int = MAX_AMOUNT,
) -> Tuple[bool, str]:
    """
    Validate an integer within bounds.

    Booleans are rejected even though they subclass int.

    Returns:
        (is_valid, error_message)
    """
    if isinstance(value, bool) or not isinstance(value, int):
        return False, f"{name} must be an integer, got {type(value).__name__}"

    if value < min_value:
        return False, f"{name} must be >= {min_value}, got {value}"

    if value > max_value:
        return False, f"{name} must be <= {max_value}, got {value}"

    return True, ""


def validate_amount(amount: Any, allow_zero: bool = False) -> Tuple[bool, str]:
    """Validate a token amount."""
    return validate_int(amount, "amount", min_value=0 if allow_zero else 1)


def validate_course_code(code: Any) -> Tuple[bool, str]:
    """Validate a course code: 1-8 printable ASCII characters, no spaces."""
    if not isinstance(code, str):
        return False, f"course code must be str, got {type(code).__name__}"

    if not 1 <= len(code) <= MAX_COURSE_CODE_LENGTH:
        return False, f"course code must be 1-{MAX_COURSE_CODE_LENGTH} characters, got {len(code)}"

    if not code.isascii() or not code.isprintable() or " " in code:
        return False, f"course code must be printable ASCII without spaces: {code!r}"

    return True, ""


def validate_identity(identity: Any, name: str = "identity") -> Tuple[bool, str]:
    """Validate a 0x address."""
    if not is_valid_address(identity):
        return False, f"{name} is not a valid address: {identity!r}"
    return True, ""


def validate_signature(signature: Any) -> Tuple[bool, str]:
    """Validate a recoverable signature blob."""
    if not isinstance(signature, (bytes, bytearray)):
        return False, f"signature must be bytes, got {type(signature).__name__}"
    if len(signature) != SIGNATURE_SIZE:
        return False, f"signature must be {SIGNATURE_SIZE} bytes, got {len(signature)}"
    return True, ""
