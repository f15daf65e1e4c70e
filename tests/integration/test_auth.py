"""
Integration tests for authentication and authorization.
"""

import pytest
from flask import session as flask_session

from stockledger.models import Tenant, UserTenant


class TestLogin:
    """Session-cookie login flow."""

    def test_login_selects_single_tenant(self, client, user1, tenant1):
        email, user_id, tenant_id = user1.email, user1.id, tenant1.id

        with client:
            response = client.post('/auth/login', json={'email': email, 'password': 'password123'})

            assert response.status_code == 200
            assert flask_session['user_id'] == user_id
            assert flask_session['tenant_id'] == tenant_id

        data = response.get_json()
        assert data['tenantId'] == tenant_id
        assert data['tenants'][0]['role'] == 'OWNER'

    def test_logged_in_client_can_list_products(self, client, user1):
        client.post('/auth/login', json={'email': user1.email, 'password': 'password123'})

        assert client.get('/products').status_code == 200

    def test_wrong_password(self, client, user1):
        response = client.post('/auth/login', json={'email': user1.email, 'password': 'nope'})

        assert response.status_code == 401
        assert response.get_json()['code'] == 'UNAUTHENTICATED'

    def test_missing_credentials(self, client):
        assert client.post('/auth/login', json={}).status_code == 400

    def test_multi_tenant_user_must_select(self, client, session, user1, tenant2):
        session.add(UserTenant(user_id=user1.id, tenant_id=tenant2.id, role='STAFF', active=True))
        session.commit()
        email, tenant2_id = user1.email, tenant2.id

        data = client.post('/auth/login', json={'email': email, 'password': 'password123'}).get_json()
        assert data['tenantId'] is None
        assert len(data['tenants']) == 2
        assert client.get('/products').status_code == 400

        assert client.post('/auth/select-tenant', json={'tenantId': tenant2_id}).status_code == 200
        assert client.get('/products').status_code == 200

    def test_cannot_select_foreign_tenant(self, authenticated_client, tenant2):
        response = authenticated_client.post('/auth/select-tenant', json={'tenantId': tenant2.id})

        assert response.status_code == 403

    def test_logout(self, authenticated_client):
        assert authenticated_client.post('/auth/logout').status_code == 200
        assert authenticated_client.get('/products').status_code == 401


class TestProtectedEndpoints:
    """Every tenant endpoint requires a login."""

    @pytest.mark.parametrize('method,path', [
        ('get', '/products'),
        ('post', '/products'),
        ('get', '/products/1'),
        ('post', '/products/1/stock'),
        ('get', '/products/1/stock-movements'),
        ('get', '/products/stock-movements'),
        ('get', '/products/alerts/expiring'),
        ('get', '/warehouses'),
        ('post', '/warehouses/transfers'),
        ('get', '/alerts'),
    ])
    def test_requires_login(self, client, method, path):
        response = getattr(client, method)(path, json={})

        assert response.status_code == 401
        assert response.get_json()['code'] == 'UNAUTHENTICATED'

    def test_suspended_tenant_is_blocked(self, authenticated_client, session, tenant1):
        tenant = session.get(Tenant, tenant1.id)
        tenant.is_suspended = True
        session.commit()

        response = authenticated_client.get('/products')

        assert response.status_code == 400
        assert response.get_json()['field'] == 'tenantId'

    def test_staff_can_adjust_stock(self, staff_client, product):
        response = staff_client.post(f'/products/{product.id}/stock', json={
            'operation': 'add', 'quantity': 1, 'reason': 'Found one',
        })

        assert response.status_code == 200
