"""Amount utilities.

Every stored amount is an integer in minor units (paise). Major-unit values
(rupees) only appear at the edges: order metadata written by the storefront
and display fields. Convert with these helpers, never with float math.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

MINOR_PER_MAJOR = 100
RAW_PRECISION = 20


def to_minor(major: Decimal | int | float | str) -> int:
    """Convert a major-unit amount to integer minor units.

    Example: Decimal("12.345") -> 1235, "0.5" -> 50
    """
    try:
        value = Decimal(str(major))
    except InvalidOperation as e:
        raise ValueError(f"Not a numeric amount: {major!r}") from e
    return int((value * MINOR_PER_MAJOR).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def to_major(minor: int) -> Decimal:
    """Convert integer minor units to a two-decimal major-unit amount.

    Example: 1235 -> Decimal("12.35")
    """
    return (Decimal(minor) / MINOR_PER_MAJOR).quantize(Decimal("0.01"))


def round_minor(value: Decimal) -> int:
    """Round a fractional minor-unit amount half-up to an integer."""
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def precision_tagged(value: int | Decimal) -> dict[str, object]:
    """Build the framework's raw twin of a numeric total.

    Example: 10000 -> {"value": "10000", "precision": 20}
    """
    return {"value": str(value), "precision": RAW_PRECISION}


def as_decimal(value: object, default: Decimal = Decimal("0")) -> Decimal:
    """Read a numeric value from a JSON totals blob.

    The framework may store numbers, strings or raw ``{"value": ...}`` twins.
    """
    if value is None:
        return default
    if isinstance(value, dict):
        value = value.get("value")
        if value is None:
            return default
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return default
