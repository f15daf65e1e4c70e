"""
Critical integration tests for tenant isolation.
These tests ensure that data is properly isolated between tenants.
"""

from decimal import Decimal

from stockledger.models import Product, StockMovement


class TestProductIsolation:
    """Test product isolation between tenants."""

    def test_list_only_shows_own_products(self, authenticated_client, tenant2_client, product, product_tenant2):
        tenant1_codes = [p['name'] for p in authenticated_client.get('/products').get_json()['data']]
        tenant2_codes = [p['name'] for p in tenant2_client.get('/products').get_json()['data']]

        assert tenant1_codes == ['Widget']
        assert tenant2_codes == ['Tenant 2 Widget']

    def test_cannot_read_other_tenant_product(self, authenticated_client, product_tenant2):
        response = authenticated_client.get(f'/products/{product_tenant2.id}')

        assert response.status_code == 404

    def test_cannot_update_or_delete_other_tenant_product(self, authenticated_client, session, product_tenant2):
        product_id = product_tenant2.id

        assert authenticated_client.put(f'/products/{product_id}', json={'name': 'Hijacked'}).status_code == 404
        assert authenticated_client.delete(f'/products/{product_id}').status_code == 404

        stored = session.get(Product, product_id)
        assert stored.name == 'Tenant 2 Widget'
        assert stored.active is True


class TestLedgerIsolation:
    """Stock writes and reads never cross tenants."""

    def test_cannot_adjust_other_tenant_stock(self, authenticated_client, session, product_tenant2):
        product_id = product_tenant2.id

        response = authenticated_client.post(f'/products/{product_id}/stock', json={
            'operation': 'subtract', 'quantity': 1, 'reason': 'x',
        })

        assert response.status_code == 404
        assert session.get(Product, product_id).current_stock == Decimal('7')
        assert session.query(StockMovement).filter_by(product_id=product_id).count() == 1

    def test_cannot_read_other_tenant_history(self, authenticated_client, product_tenant2):
        response = authenticated_client.get(f'/products/{product_tenant2.id}/stock-movements')

        assert response.status_code == 404

    def test_tenant_wide_log_is_scoped(self, tenant2_client, product, product_tenant2):
        product_id = product_tenant2.id

        data = tenant2_client.get('/products/stock-movements').get_json()

        assert [m['productId'] for m in data['data']] == [product_id]

    def test_cannot_use_other_tenant_warehouse(self, tenant2_client, product_tenant2, warehouse_a):
        response = tenant2_client.post(f'/products/{product_tenant2.id}/stock', json={
            'operation': 'add', 'quantity': 1, 'reason': 'x', 'warehouseId': warehouse_a.id,
        })

        assert response.status_code == 404

    def test_cannot_transfer_other_tenant_product(self, authenticated_client, product_tenant2, warehouse_a, warehouse_b):
        response = authenticated_client.post('/warehouses/transfers', json={
            'sourceWarehouseId': warehouse_a.id,
            'targetWarehouseId': warehouse_b.id,
            'items': [{'productId': product_tenant2.id, 'quantity': 1}],
        })

        assert response.status_code == 404


class TestWarehouseIsolation:
    """Warehouses and transfers are tenant scoped."""

    def test_other_tenant_warehouse_is_invisible(self, tenant2_client, warehouse_a):
        warehouse_id = warehouse_a.id

        assert tenant2_client.get(f'/warehouses/{warehouse_id}').status_code == 404
        assert tenant2_client.get('/warehouses').get_json()['data'] == []

    def test_other_tenant_transfer_is_invisible(self, tenant2_client, session, tenant1, stocked_product,
                                                warehouse_a, warehouse_b):
        from stockledger.services import ledger_service
        transfer = ledger_service.transfer_stock(session, tenant1.id, warehouse_a.id, warehouse_b.id,
                                                 [{'productId': stocked_product.id, 'quantity': 1}])
        transfer_id = transfer.id

        assert tenant2_client.get(f'/warehouses/transfers/{transfer_id}').status_code == 404
        assert tenant2_client.get('/warehouses/transfers').get_json()['data'] == []
