"""Main blueprint with health check endpoints."""
import logging

from flask import Blueprint, jsonify
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from stockledger.database import get_session
from stockledger.services.cache_service import get_cache

logger = logging.getLogger(__name__)

main_bp = Blueprint('main', __name__)


@main_bp.route('/health')
def health():
    """
    Health check endpoint that validates the database connection.

    Returns:
        200: Healthy (DB connected)
        503: Unhealthy (DB error)
    """
    try:
        row = get_session().execute(text("SELECT 1 AS health_check")).fetchone()
    except SQLAlchemyError as e:
        logger.error(f"Health check failed: {e}")
        return jsonify({
            'status': 'unhealthy',
            'database': 'disconnected',
            'error': str(e),
        }), 503

    cache = get_cache()
    return jsonify({
        'status': 'healthy' if row and row[0] == 1 else 'unhealthy',
        'database': 'connected',
        'cache': 'connected' if cache and cache.is_available() else 'disabled',
    }), 200
