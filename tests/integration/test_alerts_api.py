"""
Integration tests for the alerts endpoints.
"""


class TestAlertsEndpoints:
    """GET /alerts and POST /alerts/<id>/resolve."""

    def test_open_alerts_follow_stock(self, authenticated_client, product):
        product_id = product.id
        authenticated_client.post(f'/products/{product_id}/stock', json={
            'operation': 'subtract', 'quantity': 12, 'reason': 'Stolen',
        })

        data = authenticated_client.get('/alerts').get_json()

        assert len(data['data']) == 1
        assert data['data'][0]['productId'] == product_id
        assert data['data'][0]['priority'] == 'critical'

    def test_resolve_and_history(self, authenticated_client, product):
        authenticated_client.post(f'/products/{product.id}/stock', json={
            'operation': 'set', 'quantity': 2, 'reason': 'Count',
        })
        alert_id = authenticated_client.get('/alerts').get_json()['data'][0]['id']

        response = authenticated_client.post(f'/alerts/{alert_id}/resolve')

        assert response.status_code == 200
        assert response.get_json()['isResolved'] is True
        assert authenticated_client.get('/alerts').get_json()['data'] == []
        assert len(authenticated_client.get('/alerts?resolved=true').get_json()['data']) == 1
        assert authenticated_client.post(f'/alerts/{alert_id}/resolve').status_code == 400

    def test_priority_filter(self, authenticated_client, product):
        authenticated_client.post(f'/products/{product.id}/stock', json={
            'operation': 'set', 'quantity': 2, 'reason': 'Count',
        })

        assert authenticated_client.get('/alerts?priority=critical').get_json()['data'] == []
        assert authenticated_client.get('/alerts?priority=urgent').status_code == 400

    def test_unknown_alert(self, authenticated_client):
        assert authenticated_client.post('/alerts/999999/resolve').status_code == 404
