"""
Stock alert service.
Keeps product status and open low-stock alerts in step with the ledger.
"""
import logging
from datetime import datetime, timezone

from stockledger.exceptions import NotFoundError, BusinessLogicError, ValidationError
from stockledger.models import StockAlert, StockStatus, AuditAction
from stockledger.services.audit_service import log_action
from stockledger.utils.number_format import to_number

logger = logging.getLogger(__name__)

ALERT_PRIORITY = {
    StockStatus.LOW_STOCK: 'high',
    StockStatus.OUT_OF_STOCK: 'critical',
}


def _alert_text(product, status):
    if status == StockStatus.OUT_OF_STOCK:
        title = f"Out of stock: {product.name}"
    else:
        title = f"Low stock: {product.name}"
    message = f"{product.name} now has {to_number(product.current_stock)} {product.unit} in stock."
    return title, message


def refresh_product_alerts(session, tenant_id: int, product) -> StockStatus:
    """
    Recompute product.status and sync its open alert.

    Runs inside the caller's transaction (no commit):
    - entering low/out-of-stock opens an alert, or escalates the open one
    - returning to in_stock resolves every open alert of the product
    """
    previous = product.status
    status = product.refresh_status()

    open_alerts = (
        session.query(StockAlert)
        .filter(
            StockAlert.tenant_id == tenant_id,
            StockAlert.product_id == product.id,
            StockAlert.is_resolved.is_(False),
        )
        .all()
    )

    if status == StockStatus.IN_STOCK:
        now = datetime.now(timezone.utc)
        for alert in open_alerts:
            alert.is_resolved = True
            alert.resolved_at = now
        if open_alerts:
            logger.info(f"Resolved {len(open_alerts)} alert(s) for product {product.id}")
        return status

    if status == previous and open_alerts:
        return status

    title, message = _alert_text(product, status)
    if open_alerts:
        alert = open_alerts[0]
        alert.priority = ALERT_PRIORITY[status]
        alert.title = title
        alert.message = message
    else:
        session.add(StockAlert(
            tenant_id=tenant_id,
            product_id=product.id,
            type='low_stock',
            priority=ALERT_PRIORITY[status],
            title=title,
            message=message,
        ))
        logger.info(f"Opened {status.value} alert for product {product.id}")
    return status


def list_alerts(session, tenant_id: int, resolved=False, priority: str = None):
    """Alert query for a tenant, critical first then newest."""
    query = session.query(StockAlert).filter(StockAlert.tenant_id == tenant_id)

    if resolved is not None:
        query = query.filter(StockAlert.is_resolved.is_(bool(resolved)))

    if priority:
        if priority not in ALERT_PRIORITY.values():
            raise ValidationError(f"Unknown priority '{priority}'", field='priority')
        query = query.filter(StockAlert.priority == priority)

    # 'critical' sorts before 'high'
    return query.order_by(StockAlert.priority.asc(), StockAlert.created_at.desc(), StockAlert.id.desc())


def resolve_alert(session, tenant_id: int, alert_id: int) -> StockAlert:
    """Mark an alert resolved by hand."""
    alert = session.query(StockAlert).filter(
        StockAlert.id == alert_id,
        StockAlert.tenant_id == tenant_id,
    ).first()
    if not alert:
        raise NotFoundError('Alert not found')
    if alert.is_resolved:
        raise BusinessLogicError('Alert is already resolved', code='ALERT_RESOLVED')

    try:
        alert.is_resolved = True
        alert.resolved_at = datetime.now(timezone.utc)
        log_action(session, AuditAction.ALERT_RESOLVED, 'alert', alert.id)
        session.commit()
    except Exception:
        session.rollback()
        raise

    logger.info(f"Alert {alert.id} resolved for tenant {tenant_id}")
    return alert
