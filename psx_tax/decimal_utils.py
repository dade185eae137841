from decimal import Decimal, InvalidOperation, ROUND_FLOOR, ROUND_HALF_UP, getcontext
from typing import Any


# ============================================================================
# PRECISION CONSTANTS
# ============================================================================

# PKR precision (paisa)
PKR_PRECISION = Decimal('0.01')

# Whole-share precision for corporate action entitlements
SHARE_PRECISION = Decimal('1')

# Below this a capital gain is treated as zero when deriving rates
GAIN_EPSILON = Decimal('0.000001')


# ============================================================================
# TAX ROUNDING CONTEXT
# ============================================================================

def set_tax_rounding_context() -> None:
    """
    Set global Decimal context for tax calculations.
    Uses ROUND_HALF_UP (0.5 always rounds up).
    Call this once at application startup.
    """
    ctx = getcontext()
    ctx.rounding = ROUND_HALF_UP
    ctx.prec = 28  # Support up to 28 significant digits


# Initialize tax rounding on module load
set_tax_rounding_context()


# ============================================================================
# DECIMAL COERCION HELPERS
# ============================================================================

def to_decimal(value: Any, default: Decimal = Decimal(0)) -> Decimal:
    """
    Safely coerce any value to a Decimal, preserving precision for financial calculations.

    Args:
        value: Any value to convert. Supports int, float, str, Decimal, None.
        default: Decimal fallback if conversion fails. Defaults to Decimal(0).

    Returns:
        Decimal: Precise numeric value, or default if conversion fails.

    Examples:
        >>> to_decimal('100.5')
        Decimal('100.5')
        >>> to_decimal(0.5) == Decimal('0.5')
        True
        >>> to_decimal('invalid') == Decimal(0)
        True
        >>> to_decimal(None, Decimal('-1')) == Decimal('-1')
        True

    Note:
        - Floats are coerced via str() to preserve precision
        - Existing Decimals are passed through unchanged
        - None, booleans and invalid strings return default (no exception)
    """
    if value is None or isinstance(value, bool):
        return default
    try:
        if isinstance(value, Decimal):
            return value
        if isinstance(value, str):
            value = value.strip()
        return Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        return default


def round_decimal(value: Any, places: int = 2) -> Decimal:
    """Round to the given number of places with ROUND_HALF_UP; NaN/inf become zero."""
    value = to_decimal(value)
    if not value.is_finite():
        return Decimal('0')
    quantizer = Decimal(10) ** -places
    return value.quantize(quantizer, rounding=ROUND_HALF_UP)


def floor_shares(value: Decimal) -> Decimal:
    """Round a share entitlement down to whole shares."""
    return value.quantize(SHARE_PRECISION, rounding=ROUND_FLOOR)
