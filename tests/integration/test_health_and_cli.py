"""
Integration tests for health, metrics and the CLI commands.
"""
from stockledger.database import get_session
from stockledger.models import AppUser, Product, Tenant, UserTenant


class TestHealthAndMetrics:
    """Operational endpoints."""

    def test_health(self, client):
        response = client.get('/health')

        assert response.status_code == 200
        assert response.get_json() == {'status': 'healthy', 'database': 'connected', 'cache': 'disabled'}

    def test_metrics_count_ledger_writes(self, client, session, tenant1, product):
        from stockledger.services import ledger_service
        ledger_service.record_sale(session, tenant1.id, product.id, 1)

        response = client.get('/metrics')

        assert response.status_code == 200
        body = response.get_data(as_text=True)
        assert 'stock_movements_total{movement_type="sale"}' in body
        assert 'http_requests_total' in body


class TestCliCommands:
    """flask create-tenant / verify-ledger."""

    def test_create_tenant(self, app):
        runner = app.test_cli_runner()

        result = runner.invoke(args=[
            'create-tenant', '--slug', 'acme', '--name', 'Acme', '--email', 'Owner@Acme.com',
            '--password', 'secret123', '--full-name', 'Owner',
        ])

        assert result.exit_code == 0, result.output
        db_session = get_session()
        tenant = db_session.query(Tenant).filter_by(slug='acme').one()
        user = db_session.query(AppUser).filter_by(email='owner@acme.com').one()
        membership = db_session.query(UserTenant).filter_by(tenant_id=tenant.id, user_id=user.id).one()
        assert membership.role == 'OWNER'

    def test_create_tenant_rejects_bad_slug(self, app):
        result = app.test_cli_runner().invoke(args=[
            'create-tenant', '--slug', 'Not A Slug', '--name', 'X', '--email', 'x@x.com', '--password', 'secret123',
        ])

        assert result.exit_code != 0

    def test_create_tenant_rejects_duplicate_slug(self, app, tenant1):
        result = app.test_cli_runner().invoke(args=[
            'create-tenant', '--slug', tenant1.slug, '--name', 'X', '--email', 'x@x.com', '--password', 'secret123',
        ])

        assert result.exit_code != 0
        assert 'already exists' in result.output

    def test_verify_ledger_consistent(self, app, tenant1, product, stocked_product):
        result = app.test_cli_runner().invoke(args=['verify-ledger', '--tenant-id', str(tenant1.id)])

        assert result.exit_code == 0
        assert 'Ledger consistent for 2 product(s)' in result.output

    def test_verify_ledger_reports_breaks(self, app, session, tenant1, product):
        products = Product.__table__
        session.execute(products.update().where(products.c.id == product.id).values(current_stock=3))
        session.commit()

        result = app.test_cli_runner().invoke(args=['verify-ledger', '--tenant-id', str(tenant1.id)])

        assert result.exit_code == 1
        assert 'product_balance' in result.output
