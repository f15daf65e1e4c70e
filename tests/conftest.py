import uuid
from decimal import Decimal

import pytest

from stockledger import create_app
from stockledger.database import Base, create_all, drop_all, get_session
from stockledger.models import Tenant, AppUser, UserTenant
from stockledger.services import product_service, warehouse_service


@pytest.fixture(scope='session')
def app():
    """Create application instance for testing (SQLite in memory, no Redis)."""
    app = create_app('config.TestingConfig')
    with app.app_context():
        create_all()
    yield app
    with app.app_context():
        drop_all()


@pytest.fixture(autouse=True)
def app_context(app):
    """Run every test inside an app context and empty all tables afterwards."""
    with app.app_context():
        yield
        db_session = get_session()
        db_session.rollback()
        # Core deletes: the ORM refuses to delete ledger rows
        for table in reversed(Base.metadata.sorted_tables):
            db_session.execute(table.delete())
        db_session.commit()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def session():
    """Database session shared with the app (scoped session)."""
    return get_session()


def _make_tenant(session, label):
    suffix = str(uuid.uuid4())[:8]
    tenant = Tenant(slug=f'{label}-{suffix}', name=f'{label} {suffix}', active=True)
    session.add(tenant)
    session.commit()
    return tenant


def _make_user(session, tenant, role='OWNER'):
    suffix = str(uuid.uuid4())[:8]
    user = AppUser(email=f'user-{suffix}@test.com', full_name=f'User {suffix}', active=True)
    user.set_password('password123')
    session.add(user)
    session.flush()
    session.add(UserTenant(user_id=user.id, tenant_id=tenant.id, role=role, active=True))
    session.commit()
    return user


@pytest.fixture(scope='function')
def tenant1(session):
    """Create first test tenant."""
    return _make_tenant(session, 'test-tenant-1')


@pytest.fixture(scope='function')
def tenant2(session):
    """Create second test tenant for isolation tests."""
    return _make_tenant(session, 'test-tenant-2')


@pytest.fixture(scope='function')
def user1(session, tenant1):
    """OWNER of tenant1."""
    return _make_user(session, tenant1)


@pytest.fixture(scope='function')
def user2(session, tenant2):
    """OWNER of tenant2."""
    return _make_user(session, tenant2)


@pytest.fixture(scope='function')
def staff_user(session, tenant1):
    """STAFF member of tenant1."""
    return _make_user(session, tenant1, role='STAFF')


@pytest.fixture(scope='function')
def product(session, tenant1):
    """Global-scope product of tenant1 with 12 units (one opening movement)."""
    return product_service.create_product(session, tenant1.id, {
        'code': 'WID-001',
        'name': 'Widget',
        'category': 'hardware',
        'price': 10,
        'costPrice': 6,
        'minStock': 5,
        'initialStock': 12,
    }, performed_by='fixture')


@pytest.fixture(scope='function')
def product_tenant2(session, tenant2):
    return product_service.create_product(session, tenant2.id, {
        'code': 'WID-001',
        'name': 'Tenant 2 Widget',
        'price': 20,
        'initialStock': 7,
    })


@pytest.fixture(scope='function')
def warehouse_a(session, tenant1):
    return warehouse_service.create_warehouse(session, tenant1.id, {'code': 'WH-A', 'name': 'Main Warehouse', 'city': 'Maputo'})


@pytest.fixture(scope='function')
def warehouse_b(session, tenant1):
    return warehouse_service.create_warehouse(session, tenant1.id, {'code': 'WH-B', 'name': 'Store Room', 'city': 'Beira'})


@pytest.fixture(scope='function')
def stocked_product(session, tenant1, warehouse_a):
    """Product of tenant1 whose 15 opening units sit in warehouse A."""
    return product_service.create_product(session, tenant1.id, {
        'code': 'GAD-001',
        'name': 'Gadget',
        'price': Decimal('25.50'),
        'minStock': 2,
        'initialStock': 15,
        'warehouseId': warehouse_a.id,
    })


@pytest.fixture(scope='function')
def authenticated_client(client, user1, tenant1):
    """Create authenticated client for tenant1."""
    with client.session_transaction() as sess:
        sess['user_id'] = user1.id
        sess['tenant_id'] = tenant1.id
    return client


@pytest.fixture(scope='function')
def staff_client(client, staff_user, tenant1):
    with client.session_transaction() as sess:
        sess['user_id'] = staff_user.id
        sess['tenant_id'] = tenant1.id
    return client


@pytest.fixture(scope='function')
def tenant2_client(app, user2, tenant2):
    client = app.test_client()
    with client.session_transaction() as sess:
        sess['user_id'] = user2.id
        sess['tenant_id'] = tenant2.id
    return client
