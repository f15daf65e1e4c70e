"""
Unit tests for the audit trail.
"""
from flask import g

from stockledger.models import AuditAction, AuditLog
from stockledger.services import ledger_service
from stockledger.services.audit_service import get_audit_logs, log_action


class TestAuditService:
    """Audit entries follow the logged-in user."""

    def test_nothing_recorded_without_user(self, session, tenant1, product):
        ledger_service.apply_adjustment(session, tenant1.id, product.id, 'add', 1, reason='x')

        assert session.query(AuditLog).count() == 0

    def test_ledger_writes_are_audited(self, session, tenant1, user1, product):
        g.user = user1
        g.tenant_id = tenant1.id

        _, movement = ledger_service.apply_adjustment(session, tenant1.id, product.id, 'add', 3, reason='Recount')

        entries = get_audit_logs(session, tenant1.id, action_filter=AuditAction.STOCK_ADJUSTED)
        assert len(entries) == 1
        assert entries[0].resource_type == 'product'
        assert entries[0].resource_id == product.id
        assert f'"movement_id": {movement.id}' in entries[0].details

    def test_filters_and_paging(self, session, tenant1, user1):
        g.user = user1
        g.tenant_id = tenant1.id
        log_action(session, AuditAction.PRODUCT_CREATED, 'product', 1)
        log_action(session, AuditAction.WAREHOUSE_CREATED, 'warehouse', 2)
        log_action(session, AuditAction.PRODUCT_UPDATED, 'product', 1, {'fields': ['name']})
        session.commit()

        products_only = get_audit_logs(session, tenant1.id, resource_type_filter='product')
        newest = get_audit_logs(session, tenant1.id, limit=1)

        assert len(products_only) == 2
        assert newest[0].action == AuditAction.PRODUCT_UPDATED
        assert get_audit_logs(session, tenant1.id, offset=3) == []

    def test_other_tenant_entries_hidden(self, session, tenant1, tenant2, user2):
        g.user = user2
        g.tenant_id = tenant2.id
        log_action(session, AuditAction.PRODUCT_CREATED, 'product', 1)
        session.commit()

        assert get_audit_logs(session, tenant1.id) == []
