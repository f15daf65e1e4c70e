"""Request parsing helpers for the JSON blueprints."""
from flask import request

from stockledger.exceptions import ValidationError
from stockledger.utils.dates import parse_date_param


def json_body() -> dict:
    """The request JSON object, or a 400 when the body is not an object."""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object')
    return data


def int_arg(args, name: str):
    value = args.get(name)
    if value in (None, '', 'all'):
        return None
    try:
        return int(value)
    except ValueError:
        raise ValidationError(f'{name} must be an integer id', field=name)


def movement_filters(args) -> dict:
    """Movement history filters from the query string."""
    return {
        'movement_type': args.get('type') or None,
        'warehouse_id': int_arg(args, 'warehouseId'),
        'start_date': parse_date_param(args.get('startDate'), 'startDate'),
        'end_date': parse_date_param(args.get('endDate'), 'endDate'),
        'search': (args.get('search') or '').strip() or None,
    }
