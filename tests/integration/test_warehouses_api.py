"""
Integration tests for warehouses and stock transfers.
"""
from datetime import date

from stockledger.models import StockMovement, StockTransfer


class TestWarehouseEndpoints:
    """CRUD over /warehouses."""

    def test_create_with_generated_code(self, authenticated_client):
        response = authenticated_client.post('/warehouses', json={'name': 'Depot', 'city': 'Nampula', 'isDefault': True})

        assert response.status_code == 201
        data = response.get_json()
        assert data['code'].startswith('WH-')
        assert data['isDefault'] is True

    def test_only_one_default(self, authenticated_client):
        first = authenticated_client.post('/warehouses', json={'name': 'One', 'isDefault': True}).get_json()
        authenticated_client.post('/warehouses', json={'name': 'Two', 'isDefault': True})

        assert authenticated_client.get(f"/warehouses/{first['id']}").get_json()['isDefault'] is False

    def test_staff_cannot_create(self, staff_client):
        response = staff_client.post('/warehouses', json={'name': 'Depot'})

        assert response.status_code == 403
        assert response.get_json()['code'] == 'FORBIDDEN'

    def test_list_and_search(self, authenticated_client, warehouse_a, warehouse_b):
        data = authenticated_client.get('/warehouses?search=beira').get_json()

        assert [w['code'] for w in data['data']] == ['WH-B']

    def test_detail_includes_stock(self, authenticated_client, stocked_product, warehouse_a):
        data = authenticated_client.get(f'/warehouses/{warehouse_a.id}').get_json()

        assert [(s['product']['code'], s['quantity']) for s in data['stocks']] == [('GAD-001', 15)]

    def test_stock_listing(self, authenticated_client, stocked_product, warehouse_a, warehouse_b):
        warehouse_b_id = warehouse_b.id

        empty = authenticated_client.get(f'/warehouses/{warehouse_b_id}/stock').get_json()
        full = authenticated_client.get(f'/warehouses/{warehouse_a.id}/stock').get_json()

        assert empty['data'] == []
        assert full['data'][0]['quantity'] == 15

    def test_update(self, authenticated_client, warehouse_a):
        response = authenticated_client.put(f'/warehouses/{warehouse_a.id}', json={'manager': 'Rita', 'capacity': 500})

        assert response.status_code == 200
        assert response.get_json()['capacity'] == 500

    def test_delete_refused_while_holding_stock(self, authenticated_client, stocked_product, warehouse_a):
        response = authenticated_client.delete(f'/warehouses/{warehouse_a.id}')

        assert response.status_code == 400
        assert response.get_json()['code'] == 'WAREHOUSE_NOT_EMPTY'

    def test_delete_empty(self, authenticated_client, warehouse_b):
        warehouse_id = warehouse_b.id

        assert authenticated_client.delete(f'/warehouses/{warehouse_id}').status_code == 200
        assert authenticated_client.get(f'/warehouses/{warehouse_id}').status_code == 404


class TestTransferEndpoints:
    """Stock transfers between warehouses."""

    def test_create_transfer(self, authenticated_client, stocked_product, warehouse_a, warehouse_b):
        product_id, source_id, target_id = stocked_product.id, warehouse_a.id, warehouse_b.id

        response = authenticated_client.post('/warehouses/transfers', json={
            'sourceWarehouseId': source_id,
            'targetWarehouseId': target_id,
            'items': [{'productId': product_id, 'quantity': 5}],
            'reason': 'Restock store',
        })

        assert response.status_code == 201
        data = response.get_json()
        assert data['number'] == f'GT-{date.today().year}-0001'
        assert data['status'] == 'completed'
        assert data['items'][0]['quantity'] == 5
        assert data['sourceWarehouse']['code'] == 'WH-A'

        target = authenticated_client.get(f'/warehouses/{target_id}/stock').get_json()
        assert target['data'][0]['quantity'] == 5
        product = authenticated_client.get(f'/products/{product_id}').get_json()
        assert product['currentStock'] == 15

    def test_transfer_rejected_names_the_product(self, authenticated_client, session, stocked_product, warehouse_a, warehouse_b):
        product_id = stocked_product.id

        response = authenticated_client.post('/warehouses/transfers', json={
            'sourceWarehouseId': warehouse_a.id,
            'targetWarehouseId': warehouse_b.id,
            'items': [{'productId': product_id, 'quantity': 16}],
        })

        assert response.status_code == 409
        body = response.get_json()
        assert body['code'] == 'INSUFFICIENT_STOCK'
        assert body['productId'] == product_id
        assert 'Gadget' in body['error']
        assert session.query(StockTransfer).count() == 0
        assert session.query(StockMovement).filter_by(product_id=product_id).count() == 1

    def test_same_warehouse(self, authenticated_client, stocked_product, warehouse_a):
        response = authenticated_client.post('/warehouses/transfers', json={
            'sourceWarehouseId': warehouse_a.id,
            'targetWarehouseId': warehouse_a.id,
            'items': [{'productId': stocked_product.id, 'quantity': 1}],
        })

        assert response.status_code == 400

    def test_list_get_and_cancel(self, authenticated_client, stocked_product, warehouse_a, warehouse_b):
        source_id = warehouse_a.id
        created = authenticated_client.post('/warehouses/transfers', json={
            'sourceWarehouseId': source_id,
            'targetWarehouseId': warehouse_b.id,
            'items': [{'productId': stocked_product.id, 'quantity': 3}],
        }).get_json()

        listing = authenticated_client.get('/warehouses/transfers?status=completed').get_json()
        assert [t['id'] for t in listing['data']] == [created['id']]
        assert authenticated_client.get(f"/warehouses/transfers/{created['id']}").status_code == 200

        cancelled = authenticated_client.post(f"/warehouses/transfers/{created['id']}/cancel")
        assert cancelled.status_code == 200
        assert cancelled.get_json()['status'] == 'cancelled'

        source = authenticated_client.get(f'/warehouses/{source_id}/stock').get_json()
        assert source['data'][0]['quantity'] == 15

        again = authenticated_client.post(f"/warehouses/transfers/{created['id']}/cancel")
        assert again.status_code == 400
        assert again.get_json()['code'] == 'TRANSFER_NOT_CANCELLABLE'

    def test_staff_cannot_cancel(self, staff_client, session, tenant1, stocked_product, warehouse_a, warehouse_b):
        from stockledger.services import ledger_service
        transfer = ledger_service.transfer_stock(session, tenant1.id, warehouse_a.id, warehouse_b.id,
                                                 [{'productId': stocked_product.id, 'quantity': 1}])

        response = staff_client.post(f'/warehouses/transfers/{transfer.id}/cancel')

        assert response.status_code == 403

    def test_unknown_status_filter(self, authenticated_client):
        assert authenticated_client.get('/warehouses/transfers?status=lost').status_code == 400
