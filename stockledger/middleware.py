"""Middleware for authentication and tenant context."""
import logging
from functools import wraps

from flask import session, g

from stockledger.database import get_session
from stockledger.exceptions import AuthenticationError, UnauthorizedError, ValidationError
from stockledger.models import AppUser, Tenant, UserTenant, ROLE_HIERARCHY

logger = logging.getLogger(__name__)


def load_user_and_tenant():
    """
    Load current user and tenant into g (Flask's per-request global).

    Called before each request. Sets g.user, g.tenant_id and g.user_role
    when the session cookie carries a valid user_id/tenant_id pair.
    """
    g.user = None
    g.tenant_id = None
    g.user_role = None

    user_id = session.get('user_id')
    if not user_id:
        return

    db_session = get_session()
    user = db_session.query(AppUser).filter_by(id=user_id, active=True).first()
    if not user:
        session.clear()
        return
    g.user = user

    tenant_id = session.get('tenant_id')
    if not tenant_id:
        return

    user_tenant = db_session.query(UserTenant).filter_by(
        user_id=user.id,
        tenant_id=tenant_id,
        active=True
    ).first()
    if not user_tenant:
        # User lost access to this tenant
        session.pop('tenant_id', None)
        return

    tenant = db_session.query(Tenant).filter_by(id=tenant_id).first()
    if not tenant or not tenant.active or tenant.is_suspended:
        logger.warning(f"Blocked request for suspended/inactive tenant {tenant_id}")
        session.pop('tenant_id', None)
        return

    g.tenant_id = tenant_id
    g.user_role = user_tenant.role


def current_performer() -> str:
    """Name recorded as performedBy on ledger writes."""
    return g.user.display_name if g.get('user') else 'system'


def require_login(f):
    """Decorator: 401 unless a user is logged in."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if g.get('user') is None:
            raise AuthenticationError()
        return f(*args, **kwargs)
    return decorated_function


def require_tenant(f):
    """
    Decorator: Require a tenant to be selected.

    Must be used AFTER require_login.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if g.get('tenant_id') is None:
            raise ValidationError('No tenant selected', field='tenantId')
        return f(*args, **kwargs)
    return decorated_function


def require_role(min_role='STAFF'):
    """
    Decorator: Require minimum role for the current tenant.

    Roles hierarchy: OWNER > ADMIN > STAFF
    Must be used AFTER require_login and require_tenant.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            user_role_level = ROLE_HIERARCHY.get(g.get('user_role'), 0)
            required_level = ROLE_HIERARCHY.get(min_role, 1)
            if user_role_level < required_level:
                raise UnauthorizedError(f'{min_role} role or higher required')
            return f(*args, **kwargs)
        return decorated_function
    return decorator
