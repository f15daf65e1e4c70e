"""
Audit logging service for tracking catalog and ledger actions.
"""
import json
import logging
from datetime import datetime, timezone

from flask import g, has_app_context, has_request_context, request

from stockledger.models.audit_log import AuditLog, AuditAction

logger = logging.getLogger(__name__)


def log_action(
    session,
    action: AuditAction,
    resource_type: str = None,
    resource_id: int = None,
    details: dict = None
):
    """
    Add an audit entry for the current user/tenant to the session.

    The caller commits; outside a request (CLI, bare service calls) or
    without a logged-in user nothing is recorded.
    """
    if not has_app_context():
        return

    user = g.get('user')
    tenant_id = g.get('tenant_id')
    if not user or not tenant_id:
        logger.debug(f"Skipping audit for {action.value}: no user/tenant in context")
        return

    ip_address = None
    user_agent = None
    if has_request_context():
        ip_address = request.remote_addr
        user_agent = request.headers.get('User-Agent', '')[:255]

    details_json = json.dumps(details, default=str) if details else None

    session.add(AuditLog(
        tenant_id=tenant_id,
        user_id=user.id,
        action=action,
        resource_type=resource_type,
        resource_id=resource_id,
        details=details_json,
        ip_address=ip_address,
        user_agent=user_agent,
        created_at=datetime.now(timezone.utc)
    ))
    logger.info(f"Audit log created: {action.value} by user {user.id} on {resource_type} {resource_id}")


def get_audit_logs(
    session,
    tenant_id: int,
    limit: int = 100,
    offset: int = 0,
    action_filter: AuditAction = None,
    resource_type_filter: str = None
):
    """Audit entries for a tenant, newest first."""
    query = session.query(AuditLog).filter(AuditLog.tenant_id == tenant_id)

    if action_filter:
        query = query.filter(AuditLog.action == action_filter)

    if resource_type_filter:
        query = query.filter(AuditLog.resource_type == resource_type_filter)

    return query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).limit(limit).offset(offset).all()
