"""Pagination helpers shared by the list endpoints."""
import math
from flask import current_app

from stockledger.exceptions import ValidationError


def parse_pagination(args) -> tuple:
    """Read ``page`` and ``limit`` from request args, clamped to config bounds."""
    default_limit = current_app.config.get('DEFAULT_PAGE_SIZE', 20)
    max_limit = current_app.config.get('MAX_PAGE_SIZE', 100)

    try:
        page = int(args.get('page', 1) or 1)
        limit = int(args.get('limit', default_limit) or default_limit)
    except (TypeError, ValueError):
        raise ValidationError('page and limit must be integers')

    if page < 1:
        raise ValidationError('page must be greater than or equal to 1', field='page')
    if limit < 1:
        raise ValidationError('limit must be greater than or equal to 1', field='limit')

    return page, min(limit, max_limit)


def paginate(query, page: int, limit: int, serializer=None) -> dict:
    """
    Run a paginated query and wrap it in the list envelope.

    Returns:
        {'data': [...], 'pagination': {page, limit, total, totalPages, hasMore}}
    """
    total = query.order_by(None).count()
    offset = (page - 1) * limit
    rows = query.offset(offset).limit(limit).all()

    data = [serializer(row) for row in rows] if serializer else rows
    return {
        'data': data,
        'pagination': {
            'page': page,
            'limit': limit,
            'total': total,
            'totalPages': math.ceil(total / limit) if limit else 0,
            'hasMore': offset + len(rows) < total,
        },
    }
