"""
Product catalog service - Multi-Tenant.

Stock is never written here directly: opening stock goes through the
ledger so the movement log reconstructs every balance.
"""
import logging
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import List, Optional, Tuple

from flask import current_app, has_app_context
from sqlalchemy import or_
from sqlalchemy.orm import selectinload

from stockledger.exceptions import DuplicateError, NotFoundError, ValidationError
from stockledger.models import AuditAction, Product, StockStatus, WarehouseStock
from stockledger.services import ledger_service
from stockledger.services.alert_service import refresh_product_alerts
from stockledger.services.audit_service import log_action
from stockledger.services.cache_service import PRODUCTS_MODULE, get_cache, invalidate_stock_views, make_key
from stockledger.utils.codes import clean_text, generate_code
from stockledger.utils.dates import parse_date_param
from stockledger.utils.number_format import parse_decimal, parse_money, parse_quantity
from stockledger.utils.pagination import paginate
from stockledger.utils.serializers import product_to_dict

logger = logging.getLogger(__name__)

SORT_COLUMNS = {
    'name': Product.name,
    'code': Product.code,
    'price': Product.price,
    'currentStock': Product.current_stock,
    'createdAt': Product.created_at,
    'category': Product.category,
}

# Writable text attributes: JSON key -> (column, max length)
_TEXT_FIELDS = {
    'name': ('name', 200),
    'description': ('description', None),
    'category': ('category', 100),
    'unit': ('unit', 20),
    'barcode': ('barcode', 100),
    'batchNumber': ('batch_number', 100),
}
_MONEY_FIELDS = {'price': 'price', 'costPrice': 'cost_price'}
_QTY_FIELDS = {'minStock': 'min_stock', 'maxStock': 'max_stock'}
EXPIRY_WINDOW_DAYS = 30
EXPIRY_MAX_DAYS = 3650


def _validate_product_payload(data: dict, partial: bool = False) -> Tuple[dict, List[str]]:
    """Parse a product payload and return (values, errors)."""
    values = {}
    errors = []

    if 'currentStock' in data and partial:
        errors.append('currentStock cannot be changed here; use the stock adjustment endpoint')

    for key, (column, max_len) in _TEXT_FIELDS.items():
        if key not in data:
            continue
        text = clean_text(data.get(key))
        if max_len and text and len(text) > max_len:
            errors.append(f'{key} must be at most {max_len} characters')
        values[column] = text

    if not partial or 'name' in data:
        if not values.get('name'):
            errors.append('name is required')

    for key, column in _MONEY_FIELDS.items():
        if key in data and data[key] not in (None, ''):
            try:
                values[column] = parse_money(data[key], key)
            except ValueError as e:
                errors.append(str(e))

    for key, column in _QTY_FIELDS.items():
        if key in data:
            if data[key] in (None, ''):
                values[column] = None if key == 'maxStock' else Decimal('0')
                continue
            try:
                values[column] = parse_quantity(data[key], key)
            except ValueError as e:
                errors.append(str(e))

    if 'expiryDate' in data:
        try:
            expiry = parse_date_param(data.get('expiryDate'), 'expiryDate')
        except ValidationError as e:
            errors.append(e.message)
        else:
            values['expiry_date'] = expiry.date() if isinstance(expiry, datetime) else expiry

    if values.get('max_stock') is not None and values.get('min_stock') is not None:
        if values['max_stock'] < values['min_stock']:
            errors.append('maxStock must be greater than or equal to minStock')

    for key in ('category', 'unit'):
        if key in values and values[key] is None:
            del values[key]

    return values, errors


def _ensure_code_free(session, tenant_id: int, code: str, exclude_id: Optional[int] = None) -> None:
    query = session.query(Product.id).filter(Product.tenant_id == tenant_id, Product.code == code)
    if exclude_id is not None:
        query = query.filter(Product.id != exclude_id)
    if query.first():
        raise DuplicateError(f"Product code '{code}' already exists", field='code')


def list_products_query(session, tenant_id: int, filters: dict):
    """Active products filtered and sorted for the list endpoint."""
    query = session.query(Product).options(
        selectinload(Product.warehouse_stocks).selectinload(WarehouseStock.warehouse)
    ).filter(Product.tenant_id == tenant_id, Product.active.is_(True))

    search = clean_text(filters.get('search'))
    if search:
        pattern = f'%{search}%'
        query = query.filter(or_(
            Product.name.ilike(pattern),
            Product.code.ilike(pattern),
            Product.barcode.ilike(pattern),
        ))

    category = clean_text(filters.get('category'))
    if category and category != 'all':
        query = query.filter(Product.category == category)

    status = clean_text(filters.get('status'))
    if status and status != 'all':
        try:
            query = query.filter(Product.status == StockStatus(status))
        except ValueError:
            raise ValidationError(f"Unknown status '{status}'", field='status')

    for key, op in (('minPrice', '__ge__'), ('maxPrice', '__le__')):
        raw = filters.get(key)
        if raw not in (None, ''):
            try:
                bound = parse_decimal(raw, key, places=Decimal('0.01'))
            except ValueError as e:
                raise ValidationError(str(e), field=key)
            query = query.filter(getattr(Product.price, op)(bound))

    warehouse_id = clean_text(filters.get('warehouseId'))
    if warehouse_id and warehouse_id != 'all':
        try:
            warehouse_id = int(warehouse_id)
        except ValueError:
            raise ValidationError('warehouseId must be an integer id', field='warehouseId')
        query = query.filter(Product.warehouse_stocks.any(
            (WarehouseStock.warehouse_id == warehouse_id) & (WarehouseStock.quantity > 0)
        ))

    sort_by = filters.get('sortBy') or 'name'
    if sort_by not in SORT_COLUMNS:
        raise ValidationError(
            f"sortBy must be one of: {', '.join(SORT_COLUMNS)}", field='sortBy'
        )
    sort_order = (filters.get('sortOrder') or 'asc').lower()
    if sort_order not in ('asc', 'desc'):
        raise ValidationError("sortOrder must be 'asc' or 'desc'", field='sortOrder')

    column = SORT_COLUMNS[sort_by]
    ordering = column.asc() if sort_order == 'asc' else column.desc()
    return query.order_by(ordering, Product.id.asc())


def list_products(session, tenant_id: int, filters: dict, page: int, limit: int) -> dict:
    """Paginated product list, served from the Redis cache when warm."""
    def load():
        return paginate(list_products_query(session, tenant_id, filters), page, limit, serializer=product_to_dict)

    cache = get_cache()
    if cache is None:
        return load()

    key = make_key({'filters': filters, 'page': page, 'limit': limit})
    ttl = current_app.config.get('CACHE_PRODUCTS_TTL', 120)
    return cache.memoize(tenant_id, PRODUCTS_MODULE, key, load, ttl)


def get_product(session, tenant_id: int, product_id: int, include_inactive: bool = False) -> Product:
    query = session.query(Product).filter(Product.id == product_id, Product.tenant_id == tenant_id)
    if not include_inactive:
        query = query.filter(Product.active.is_(True))
    product = query.first()
    if not product:
        raise NotFoundError('Product not found')
    return product


def create_product(session, tenant_id: int, data: dict, performed_by: Optional[str] = None) -> Product:
    """
    Create a product; ``initialStock`` (optionally at ``warehouseId``) is
    posted as an opening adjustment movement in the same transaction.
    """
    values, errors = _validate_product_payload(data)

    initial_stock = Decimal('0')
    if data.get('initialStock', data.get('currentStock')) not in (None, ''):
        try:
            initial_stock = parse_quantity(data.get('initialStock', data.get('currentStock')), 'initialStock')
        except ValueError as e:
            errors.append(str(e))

    if errors:
        raise ValidationError('Invalid product data', details=errors)

    code = clean_text(data.get('code'))
    if code and len(code) > 50:
        raise ValidationError('code must be at most 50 characters', field='code')

    if 'min_stock' not in values:
        default_min = current_app.config.get('DEFAULT_MIN_STOCK', 0) if has_app_context() else 0
        values['min_stock'] = Decimal(str(default_min))

    try:
        if code:
            _ensure_code_free(session, tenant_id, code)
        else:
            code = generate_code(session, tenant_id, 'PROD', Product)

        product = Product(tenant_id=tenant_id, code=code, current_stock=Decimal('0'), active=True, **values)
        session.add(product)
        session.flush()

        ledger_service.post_opening_balance(
            session, tenant_id, product, initial_stock, performed_by=performed_by,
            warehouse_id=data.get('warehouseId') or None
        )
        log_action(session, AuditAction.PRODUCT_CREATED, 'product', product.id, {'code': code, 'name': product.name})
        session.commit()
    except Exception:
        session.rollback()
        raise

    logger.info(f"Product {product.id} ({code}) created for tenant {tenant_id}")
    invalidate_stock_views(tenant_id)
    return product


def update_product(session, tenant_id: int, product_id: int, data: dict) -> Product:
    """Update catalog fields; stock balances are left to the ledger."""
    product = get_product(session, tenant_id, product_id)
    values, errors = _validate_product_payload(data, partial=True)

    min_stock = values.get('min_stock', product.min_stock)
    max_stock = values['max_stock'] if 'max_stock' in values else product.max_stock
    if max_stock is not None and min_stock is not None and Decimal(str(max_stock)) < Decimal(str(min_stock)):
        errors.append('maxStock must be greater than or equal to minStock')

    if errors:
        raise ValidationError('Invalid product data', details=list(dict.fromkeys(errors)))

    try:
        code = clean_text(data.get('code'))
        if code and code != product.code:
            _ensure_code_free(session, tenant_id, code, exclude_id=product.id)
            product.code = code

        for column, value in values.items():
            setattr(product, column, value)

        if 'min_stock' in values:
            refresh_product_alerts(session, tenant_id, product)

        log_action(session, AuditAction.PRODUCT_UPDATED, 'product', product.id, {'fields': sorted(values)})
        session.commit()
    except Exception:
        session.rollback()
        raise

    logger.info(f"Product {product.id} updated for tenant {tenant_id}")
    invalidate_stock_views(tenant_id)
    return product


def delete_product(session, tenant_id: int, product_id: int) -> None:
    """Soft delete: the product and its ledger history stay in the database."""
    product = get_product(session, tenant_id, product_id)
    try:
        product.active = False
        log_action(session, AuditAction.PRODUCT_DELETED, 'product', product.id, {'code': product.code})
        session.commit()
    except Exception:
        session.rollback()
        raise

    logger.info(f"Product {product_id} deactivated for tenant {tenant_id}")
    invalidate_stock_views(tenant_id)


def low_stock_query(session, tenant_id: int):
    """Active products at or below their threshold, emptiest first."""
    return session.query(Product).filter(
        Product.tenant_id == tenant_id,
        Product.active.is_(True),
        Product.status.in_([StockStatus.LOW_STOCK, StockStatus.OUT_OF_STOCK]),
    ).order_by(Product.current_stock.asc(), Product.id.asc())


def expiring_query(session, tenant_id: int, days=None):
    """
    Active products whose expiry date falls within ``days`` from today.

    Already expired products are included; the soonest expiry comes first.
    """
    if days is None or days == '':
        days = EXPIRY_WINDOW_DAYS
    try:
        days = int(days)
    except (TypeError, ValueError):
        raise ValidationError('days must be an integer', field='days')
    if days < 0 or days > EXPIRY_MAX_DAYS:
        raise ValidationError(f'days must be between 0 and {EXPIRY_MAX_DAYS}', field='days')

    horizon = date.today() + timedelta(days=days)
    return session.query(Product).filter(
        Product.tenant_id == tenant_id,
        Product.active.is_(True),
        Product.expiry_date.isnot(None),
        Product.expiry_date <= horizon,
    ).order_by(Product.expiry_date.asc(), Product.id.asc())
