"""Date parsing for query-string filters."""
from datetime import date, datetime, time, timezone

from stockledger.exceptions import ValidationError


def parse_date_param(value, field: str):
    """Parse ``YYYY-MM-DD`` or an ISO datetime; empty means no filter."""
    if value is None or value == '':
        return None
    if isinstance(value, (date, datetime)):
        return value
    text = str(value).strip()
    try:
        if len(text) == 10:
            return date.fromisoformat(text)
        return datetime.fromisoformat(text.replace('Z', '+00:00'))
    except ValueError:
        raise ValidationError(f'{field} must be a date (YYYY-MM-DD)', field=field)


def start_of(value):
    """Lower bound of a date filter (midnight UTC for plain dates)."""
    if value is None or isinstance(value, datetime):
        return value
    return datetime.combine(value, time.min, tzinfo=timezone.utc)


def end_of(value):
    """Inclusive upper bound: a plain date covers the whole day."""
    if value is None or isinstance(value, datetime):
        return value
    return datetime.combine(value, time.max, tzinfo=timezone.utc)
