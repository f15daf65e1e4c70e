"""Alerts blueprint - low/out-of-stock alerts - Multi-Tenant."""
from flask import Blueprint, g, jsonify, request

from stockledger.database import get_session
from stockledger.middleware import require_login, require_tenant
from stockledger.services import alert_service
from stockledger.utils.pagination import paginate, parse_pagination
from stockledger.utils.serializers import alert_to_dict

alerts_bp = Blueprint('alerts', __name__, url_prefix='/alerts')


@alerts_bp.route('', methods=['GET'])
@require_login
@require_tenant
def list_alerts():
    """Open alerts by default; ?resolved=true for history, ?resolved=all for both."""
    page, limit = parse_pagination(request.args)
    resolved_arg = (request.args.get('resolved') or 'false').lower()
    resolved = None if resolved_arg == 'all' else resolved_arg in ('1', 'true', 'yes')
    query = alert_service.list_alerts(
        get_session(), g.tenant_id, resolved=resolved, priority=request.args.get('priority') or None
    )
    return jsonify(paginate(query, page, limit, serializer=alert_to_dict))


@alerts_bp.route('/<int:alert_id>/resolve', methods=['POST'])
@require_login
@require_tenant
def resolve_alert(alert_id: int):
    alert = alert_service.resolve_alert(get_session(), g.tenant_id, alert_id)
    return jsonify(alert_to_dict(alert))
