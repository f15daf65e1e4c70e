"""Auth blueprint - session-cookie login for the JSON API."""
import logging

from flask import Blueprint, g, jsonify, request, session

from stockledger.database import get_session
from stockledger.exceptions import AuthenticationError, UnauthorizedError, ValidationError
from stockledger.middleware import require_login
from stockledger.models import AppUser, Tenant, UserTenant

logger = logging.getLogger(__name__)

auth_bp = Blueprint('auth', __name__, url_prefix='/auth')


def _user_tenants(db_session, user_id: int):
    return db_session.query(UserTenant, Tenant).join(
        Tenant, Tenant.id == UserTenant.tenant_id
    ).filter(
        UserTenant.user_id == user_id,
        UserTenant.active.is_(True),
        Tenant.active.is_(True),
        Tenant.is_suspended.is_(False)
    ).order_by(Tenant.name).all()


def _tenants_payload(rows):
    return [
        {'id': tenant.id, 'slug': tenant.slug, 'name': tenant.name, 'role': user_tenant.role}
        for user_tenant, tenant in rows
    ]


@auth_bp.route('/login', methods=['POST'])
def login():
    """Validate email + password; selects the tenant when the user has exactly one."""
    data = request.get_json(silent=True) or {}
    email = (data.get('email') or '').strip().lower()
    password = data.get('password') or ''
    if not email or not password:
        raise ValidationError('email and password are required')

    db_session = get_session()
    user = db_session.query(AppUser).filter_by(email=email).first()
    if not user or not user.active or not user.check_password(password):
        logger.warning(f"Failed login for {email}")
        raise AuthenticationError('Invalid email or password')

    rows = _user_tenants(db_session, user.id)
    if not rows:
        raise UnauthorizedError('Your account has no active tenants')

    session.clear()
    session['user_id'] = user.id
    session.permanent = True
    if len(rows) == 1:
        session['tenant_id'] = rows[0][1].id

    logger.info(f"User {user.id} logged in")
    return jsonify({
        'user': {'id': user.id, 'email': user.email, 'fullName': user.full_name},
        'tenantId': session.get('tenant_id'),
        'tenants': _tenants_payload(rows),
    })


@auth_bp.route('/select-tenant', methods=['POST'])
@require_login
def select_tenant():
    data = request.get_json(silent=True) or {}
    try:
        tenant_id = int(data.get('tenantId'))
    except (TypeError, ValueError):
        raise ValidationError('tenantId must be an integer id', field='tenantId')

    rows = _user_tenants(get_session(), g.user.id)
    if tenant_id not in {tenant.id for _, tenant in rows}:
        raise UnauthorizedError('You do not have access to this tenant')

    session['tenant_id'] = tenant_id
    return jsonify({'tenantId': tenant_id})


@auth_bp.route('/logout', methods=['POST'])
def logout():
    session.clear()
    return jsonify({'message': 'Logged out'})
