"""Number parsing utilities for JSON and query-string input."""
import re
from decimal import Decimal, InvalidOperation

QTY_PLACES = Decimal('0.001')
MONEY_PLACES = Decimal('0.01')
NUMBER_PATTERN = re.compile(r"^-?\d+(?:[.,]\d+)?$")

# Largest value a Numeric(12, scale) column holds
QTY_MAX = Decimal('999999999.999')
MONEY_MAX = Decimal('9999999999.99')
_COLUMN_MAX = {QTY_PLACES: QTY_MAX, MONEY_PLACES: MONEY_MAX}


def _check_range(decimal_value: Decimal, field: str, maximum) -> None:
    if maximum is not None and abs(decimal_value) > maximum:
        raise ValueError(f'{field} must be at most {maximum}')


def parse_decimal(value, field: str = 'value', allow_negative: bool = False, places: Decimal = QTY_PLACES) -> Decimal:
    """
    Parse a JSON number or numeric string to Decimal.

    Rules:
    - int/float/Decimal are accepted as-is, booleans are not numbers
    - strings accept a single decimal separator (dot or comma)
    - negatives are rejected unless allow_negative
    - the rounded value must fit the Numeric(12, places) column

    Raises:
        ValueError: if the value is missing, not numeric, negative or too large.
    """
    if value is None or isinstance(value, bool):
        raise ValueError(f'{field} must be a number')

    if isinstance(value, (int, float, Decimal)):
        try:
            decimal_value = Decimal(str(value))
        except InvalidOperation:
            raise ValueError(f'{field} must be a number')
    else:
        cleaned = str(value).strip()
        if not NUMBER_PATTERN.match(cleaned):
            raise ValueError(f'{field} must be a number')
        decimal_value = Decimal(cleaned.replace(',', '.'))

    if not decimal_value.is_finite():
        raise ValueError(f'{field} must be a number')

    if decimal_value < 0 and not allow_negative:
        raise ValueError(f'{field} cannot be negative')

    maximum = _COLUMN_MAX.get(places)
    _check_range(decimal_value, field, maximum)
    try:
        decimal_value = decimal_value.quantize(places)
    except InvalidOperation:
        raise ValueError(f'{field} is out of range')
    # 999999999.9996 rounds up past the column limit
    _check_range(decimal_value, field, maximum)
    return decimal_value


def parse_quantity(value, field: str = 'quantity') -> Decimal:
    """Parse a non-negative stock quantity (3 decimal places)."""
    return parse_decimal(value, field=field)


def parse_money(value, field: str = 'price') -> Decimal:
    """Parse a non-negative monetary amount (2 decimal places)."""
    return parse_decimal(value, field=field, places=MONEY_PLACES)


def to_number(value):
    """Decimal -> int when integral, float otherwise (JSON friendly)."""
    if value is None:
        return None
    value = Decimal(str(value))
    if value == value.to_integral_value():
        return int(value)
    return float(value)
