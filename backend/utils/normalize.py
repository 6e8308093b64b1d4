"""
Input Normalization Utilities
=============================

All parsing of query-string inputs and money values happens here.

Usage:
    from utils.normalize import to_int, to_bool, ValidationError

    @bp.route("/products")
    def list_products():
        try:
            page = to_int(request.args.get("page"), default=1, field="page")
        except ValidationError as e:
            return make_error_response("INVALID_PARAMS", str(e), field=e.field)
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Optional

CENTS = Decimal('0.01')


class ValidationError(ValueError):
    """Raised when input cannot be normalized to expected type."""

    def __init__(self, message: str, field: str = None, received_value=None):
        super().__init__(message)
        self.field = field
        self.received_value = received_value


def to_int(
    value: Optional[str],
    *,
    default: Optional[int] = None,
    field: str = None,
    min_value: Optional[int] = None,
) -> Optional[int]:
    """
    Convert string to int, with explicit None handling.

    Raises:
        ValidationError: If value cannot be converted or is below min_value
    """
    if value is None or value == "":
        return default
    try:
        result = int(value)
    except (ValueError, TypeError):
        raise ValidationError(
            f"Expected int, got {type(value).__name__}: {value!r}",
            field=field,
            received_value=value
        )
    if min_value is not None and result < min_value:
        raise ValidationError(f"Must be >= {min_value}", field=field, received_value=value)
    return result


def to_float(
    value: Optional[str],
    *,
    default: Optional[float] = None,
    field: str = None
) -> Optional[float]:
    """Convert string to float, with explicit None handling."""
    if value is None or value == "":
        return default
    try:
        return float(value)
    except (ValueError, TypeError):
        raise ValidationError(
            f"Expected float, got {type(value).__name__}: {value!r}",
            field=field,
            received_value=value
        )


def to_bool(
    value: Optional[str],
    *,
    default: bool = False,
    field: str = None
) -> bool:
    """
    Convert string to bool.

    Accepts (case-insensitive):
        True: 'true', '1', 'yes', 'on'
        False: 'false', '0', 'no', 'off'
    """
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        return value
    lower = str(value).lower()
    if lower in ("true", "1", "yes", "on"):
        return True
    if lower in ("false", "0", "no", "off"):
        return False
    raise ValidationError(
        f"Expected bool, got: {value!r}",
        field=field,
        received_value=value
    )


def to_decimal(value, *, default: Optional[Decimal] = None, field: str = None) -> Optional[Decimal]:
    """Convert int/float/str to Decimal. Floats go through str() to avoid binary noise."""
    if value is None or value == "":
        return default
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError(
            f"Expected a number, got {type(value).__name__}: {value!r}",
            field=field,
            received_value=value
        )


def round_money(value) -> Decimal:
    """Round to cents, half up (ARS amounts shown to customers)."""
    return to_decimal(value, default=Decimal('0')).quantize(CENTS, rounding=ROUND_HALF_UP)


def clamp_fraction(value) -> Decimal:
    """Clamp a discount fraction into [0, 1]; anything unparseable is 0."""
    try:
        fraction = to_decimal(value, default=Decimal('0'))
    except ValidationError:
        return Decimal('0')
    if not fraction.is_finite():
        return Decimal('0')
    return min(max(fraction, Decimal('0')), Decimal('1'))


def to_page(page, limit, *, default_limit: int, max_limit: int):
    """
    Parse page/limit query params.

    Returns:
        (page, limit) with page >= 1 and 1 <= limit <= max_limit
    """
    page = to_int(page, default=1, field="page", min_value=1)
    limit = to_int(limit, default=default_limit, field="limit", min_value=1)
    return page, min(limit, max_limit)
