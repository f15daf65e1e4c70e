"""
Warehouse service - Multi-Tenant.
Warehouse CRUD, per-warehouse stock lines and transfer listings.
"""
import logging
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import selectinload

from stockledger.exceptions import BusinessLogicError, DuplicateError, NotFoundError, ValidationError
from stockledger.models import (
    AuditAction, Product, StockTransfer, StockTransferItem, TransferStatus, Warehouse, WarehouseStock
)
from stockledger.services.audit_service import log_action
from stockledger.services.cache_service import invalidate_stock_views
from stockledger.utils.codes import clean_text, generate_code
from stockledger.utils.dates import end_of, start_of

logger = logging.getLogger(__name__)

SORT_COLUMNS = {
    'name': Warehouse.name,
    'code': Warehouse.code,
    'city': Warehouse.city,
    'createdAt': Warehouse.created_at,
}


def _parse_warehouse_payload(data: dict, partial: bool = False) -> dict:
    values = {}
    errors = []

    for key, max_len in (('name', 100), ('address', 500), ('city', 100), ('manager', 200), ('notes', None)):
        if key in data:
            text = clean_text(data.get(key))
            if max_len and text and len(text) > max_len:
                errors.append(f'{key} must be at most {max_len} characters')
            values[key] = text

    if (not partial or 'name' in data) and not values.get('name'):
        errors.append('name is required')

    if 'capacity' in data:
        capacity = data.get('capacity')
        if capacity in (None, ''):
            values['capacity'] = None
        elif isinstance(capacity, bool):
            errors.append('capacity must be a whole number')
        else:
            try:
                values['capacity'] = int(capacity)
                if values['capacity'] < 0:
                    errors.append('capacity cannot be negative')
            except (TypeError, ValueError):
                errors.append('capacity must be a whole number')

    if 'isDefault' in data:
        values['is_default'] = bool(data.get('isDefault'))

    if errors:
        raise ValidationError('Invalid warehouse data', details=errors)
    return values


def _ensure_code_free(session, tenant_id: int, code: str, exclude_id: Optional[int] = None) -> None:
    query = session.query(Warehouse.id).filter(Warehouse.tenant_id == tenant_id, Warehouse.code == code)
    if exclude_id is not None:
        query = query.filter(Warehouse.id != exclude_id)
    if query.first():
        raise DuplicateError(f"Warehouse code '{code}' already exists", field='code')


def _clear_default(session, tenant_id: int, keep_id: Optional[int] = None) -> None:
    """Only one default warehouse per tenant."""
    query = session.query(Warehouse).filter(Warehouse.tenant_id == tenant_id, Warehouse.is_default.is_(True))
    if keep_id is not None:
        query = query.filter(Warehouse.id != keep_id)
    for warehouse in query.all():
        warehouse.is_default = False


def list_warehouses_query(session, tenant_id: int, filters: dict):
    """Active warehouses, searchable by name/code/city."""
    query = session.query(Warehouse).filter(Warehouse.tenant_id == tenant_id, Warehouse.active.is_(True))

    search = clean_text(filters.get('search'))
    if search:
        pattern = f'%{search}%'
        query = query.filter(or_(
            Warehouse.name.ilike(pattern),
            Warehouse.code.ilike(pattern),
            Warehouse.city.ilike(pattern),
        ))

    sort_by = filters.get('sortBy') or 'name'
    if sort_by not in SORT_COLUMNS:
        raise ValidationError(f"sortBy must be one of: {', '.join(SORT_COLUMNS)}", field='sortBy')
    sort_order = (filters.get('sortOrder') or 'asc').lower()
    if sort_order not in ('asc', 'desc'):
        raise ValidationError("sortOrder must be 'asc' or 'desc'", field='sortOrder')

    column = SORT_COLUMNS[sort_by]
    return query.order_by(column.asc() if sort_order == 'asc' else column.desc(), Warehouse.id.asc())


def get_warehouse(session, tenant_id: int, warehouse_id: int) -> Warehouse:
    warehouse = session.query(Warehouse).filter(
        Warehouse.id == warehouse_id,
        Warehouse.tenant_id == tenant_id,
        Warehouse.active.is_(True)
    ).first()
    if not warehouse:
        raise NotFoundError('Warehouse not found')
    return warehouse


def create_warehouse(session, tenant_id: int, data: dict) -> Warehouse:
    values = _parse_warehouse_payload(data)
    code = clean_text(data.get('code'))
    if code and len(code) > 50:
        raise ValidationError('code must be at most 50 characters', field='code')

    try:
        if code:
            _ensure_code_free(session, tenant_id, code)
        else:
            code = generate_code(session, tenant_id, 'WH', Warehouse)

        warehouse = Warehouse(tenant_id=tenant_id, code=code, active=True, **values)
        session.add(warehouse)
        session.flush()
        if warehouse.is_default:
            _clear_default(session, tenant_id, keep_id=warehouse.id)

        log_action(session, AuditAction.WAREHOUSE_CREATED, 'warehouse', warehouse.id, {'code': code})
        session.commit()
    except Exception:
        session.rollback()
        raise

    logger.info(f"Warehouse {warehouse.id} ({code}) created for tenant {tenant_id}")
    return warehouse


def update_warehouse(session, tenant_id: int, warehouse_id: int, data: dict) -> Warehouse:
    warehouse = get_warehouse(session, tenant_id, warehouse_id)
    values = _parse_warehouse_payload(data, partial=True)

    try:
        code = clean_text(data.get('code'))
        if code and code != warehouse.code:
            _ensure_code_free(session, tenant_id, code, exclude_id=warehouse.id)
            warehouse.code = code

        for column, value in values.items():
            setattr(warehouse, column, value)
        if values.get('is_default'):
            _clear_default(session, tenant_id, keep_id=warehouse.id)

        log_action(session, AuditAction.WAREHOUSE_UPDATED, 'warehouse', warehouse.id, {'fields': sorted(values)})
        session.commit()
    except Exception:
        session.rollback()
        raise

    logger.info(f"Warehouse {warehouse.id} updated for tenant {tenant_id}")
    invalidate_stock_views(tenant_id)
    return warehouse


def delete_warehouse(session, tenant_id: int, warehouse_id: int) -> None:
    """Soft delete, refused while the warehouse still holds stock."""
    warehouse = get_warehouse(session, tenant_id, warehouse_id)

    holding = session.query(WarehouseStock.id).filter(
        WarehouseStock.warehouse_id == warehouse.id,
        WarehouseStock.quantity > 0
    ).first()
    if holding:
        raise BusinessLogicError(
            'Cannot delete a warehouse that still holds stock. Transfer it first.',
            code='WAREHOUSE_NOT_EMPTY'
        )

    try:
        warehouse.active = False
        warehouse.is_default = False
        log_action(session, AuditAction.WAREHOUSE_DELETED, 'warehouse', warehouse.id, {'code': warehouse.code})
        session.commit()
    except Exception:
        session.rollback()
        raise

    logger.info(f"Warehouse {warehouse_id} deactivated for tenant {tenant_id}")
    invalidate_stock_views(tenant_id)


def warehouse_stock_query(session, tenant_id: int, warehouse_id: int, include_empty: bool = False):
    """Stock lines held in a warehouse, by product name."""
    warehouse = get_warehouse(session, tenant_id, warehouse_id)
    query = (
        session.query(WarehouseStock)
        .join(Product, WarehouseStock.product_id == Product.id)
        .options(selectinload(WarehouseStock.product))
        .filter(WarehouseStock.warehouse_id == warehouse.id, Product.tenant_id == tenant_id)
    )
    if not include_empty:
        query = query.filter(WarehouseStock.quantity > 0)
    return query.order_by(Product.name.asc(), WarehouseStock.id.asc())


def list_transfers_query(session, tenant_id: int, status=None, start_date=None, end_date=None,
                         warehouse_id: Optional[int] = None):
    """Transfers of a tenant, newest first."""
    query = session.query(StockTransfer).options(
        selectinload(StockTransfer.items).selectinload(StockTransferItem.product),
        selectinload(StockTransfer.source_warehouse),
        selectinload(StockTransfer.target_warehouse),
    ).filter(StockTransfer.tenant_id == tenant_id)

    if status:
        try:
            query = query.filter(StockTransfer.status == TransferStatus(str(status).lower()))
        except ValueError:
            raise ValidationError(f"Unknown transfer status '{status}'", field='status')

    if warehouse_id is not None:
        query = query.filter(or_(
            StockTransfer.source_warehouse_id == warehouse_id,
            StockTransfer.target_warehouse_id == warehouse_id,
        ))

    start, end = start_of(start_date), end_of(end_date)
    if start and end and start > end:
        raise ValidationError('startDate must not be after endDate', field='startDate')
    if start:
        query = query.filter(StockTransfer.date >= start)
    if end:
        query = query.filter(StockTransfer.date <= end)

    return query.order_by(StockTransfer.date.desc(), StockTransfer.id.desc())


def get_transfer(session, tenant_id: int, transfer_id: int) -> StockTransfer:
    transfer = session.query(StockTransfer).filter(
        StockTransfer.id == transfer_id,
        StockTransfer.tenant_id == tenant_id
    ).first()
    if not transfer:
        raise NotFoundError('Transfer not found')
    return transfer
