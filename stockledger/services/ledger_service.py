"""
Stock ledger service - Multi-Tenant.

Every function that changes stock runs one read-modify-write transaction:
lock the balance rows, compute the new balance, append the StockMovement
that explains it, update the denormalized balance, commit. Either all of it
is visible or none of it is.

Ledger scopes:
- (product, warehouse_id=None): product.current_stock
- (product, warehouse_id): WarehouseStock.quantity; the product total moves
  by the same delta, except for transfers which only move stock between
  warehouses.
"""
import functools
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, Tuple

from flask import current_app, has_app_context
from sqlalchemy import func, or_
from sqlalchemy.orm.exc import StaleDataError

from stockledger.exceptions import (
    BusinessLogicError, ConcurrencyConflictError, InsufficientStockError, NotFoundError, ValidationError
)
from stockledger.models import (
    AuditAction, MovementType, MOVEMENT_DIRECTION, Product, StockMovement, StockTransfer,
    StockTransferItem, Tenant, TransferStatus, Warehouse, WarehouseStock
)
from stockledger.blueprints.metrics import stock_movements_total, stock_rejections_total
from stockledger.services.alert_service import refresh_product_alerts
from stockledger.services.audit_service import log_action
from stockledger.services.cache_service import invalidate_stock_views
from stockledger.utils.dates import end_of, start_of
from stockledger.utils.number_format import QTY_MAX, parse_quantity, to_number
from stockledger.utils.pagination import paginate
from stockledger.utils.serializers import movement_to_dict

logger = logging.getLogger(__name__)

ADJUSTMENT_OPERATIONS = ('add', 'subtract', 'set')
SYSTEM_USER = 'system'
TRANSFER_PREFIX = 'GT'
ZERO = Decimal('0')


# ---------------------------------------------------------------------------
# Input coercion
# ---------------------------------------------------------------------------

def _coerce_quantity(value, field: str = 'quantity') -> Decimal:
    try:
        return parse_quantity(value, field)
    except ValueError as e:
        raise ValidationError(str(e), field=field)


def _coerce_id(value, field: str, required: bool = True) -> Optional[int]:
    if value is None or value == '':
        if required:
            raise ValidationError(f'{field} is required', field=field)
        return None
    if isinstance(value, bool):
        raise ValidationError(f'{field} must be an integer id', field=field)
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f'{field} must be an integer id', field=field)


def coerce_movement_type(value, field: str = 'movementType') -> MovementType:
    """Accept a MovementType or its string value."""
    if isinstance(value, MovementType):
        return value
    try:
        return MovementType(str(value).strip().lower())
    except ValueError:
        allowed = ', '.join(m.value for m in MovementType)
        raise ValidationError(f"Unknown movement type '{value}' (expected one of: {allowed})", field=field)


def _max_retries() -> int:
    if has_app_context():
        return max(1, int(current_app.config.get('LEDGER_MAX_RETRIES', 3)))
    return 3


def _retry_on_conflict(func_):
    """
    Re-run a ledger write when the optimistic version check fails.

    Each attempt re-reads the locked rows, so a retry sees the balance the
    concurrent writer committed. After LEDGER_MAX_RETRIES the caller gets a
    ConcurrencyConflictError (HTTP 409).
    """
    @functools.wraps(func_)
    def wrapper(session, *args, **kwargs):
        attempts = _max_retries()
        for attempt in range(1, attempts + 1):
            try:
                return func_(session, *args, **kwargs)
            except StaleDataError:
                logger.warning(f"{func_.__name__}: concurrent modification (attempt {attempt}/{attempts})")
                if attempt == attempts:
                    stock_rejections_total.labels(reason='concurrent_modification').inc()
                    raise ConcurrencyConflictError()
    return wrapper


# ---------------------------------------------------------------------------
# Row access (locking)
# ---------------------------------------------------------------------------

def _lock_product(session, tenant_id: int, product_id: int) -> Product:
    """SELECT ... FOR UPDATE the product row, refreshed from the database."""
    product = (
        session.query(Product)
        .filter(Product.id == product_id, Product.tenant_id == tenant_id)
        .with_for_update()
        .populate_existing()
        .first()
    )
    if not product or not product.active:
        raise NotFoundError('Product not found')
    return product


def _lock_products(session, tenant_id: int, product_ids) -> dict:
    """Lock several products in id order."""
    products = (
        session.query(Product)
        .filter(Product.tenant_id == tenant_id, Product.id.in_(product_ids), Product.active.is_(True))
        .order_by(Product.id)
        .with_for_update()
        .populate_existing()
        .all()
    )
    found = {p.id: p for p in products}
    for product_id in product_ids:
        if product_id not in found:
            raise NotFoundError(f'Product {product_id} not found')
    return found


def _get_warehouse(session, tenant_id: int, warehouse_id: int, field: str = 'warehouseId') -> Warehouse:
    warehouse = session.query(Warehouse).filter(
        Warehouse.id == warehouse_id,
        Warehouse.tenant_id == tenant_id,
        Warehouse.active.is_(True)
    ).first()
    if not warehouse:
        raise NotFoundError('Warehouse not found', payload={'field': field})
    return warehouse


def _lock_warehouse_stock(session, warehouse_id: int, product_id: int, create: bool = False) -> Optional[WarehouseStock]:
    """Lock the (warehouse, product) row; optionally create it at zero."""
    row = (
        session.query(WarehouseStock)
        .filter(WarehouseStock.warehouse_id == warehouse_id, WarehouseStock.product_id == product_id)
        .with_for_update()
        .populate_existing()
        .first()
    )
    if row is None and create:
        row = WarehouseStock(warehouse_id=warehouse_id, product_id=product_id, quantity=ZERO)
        session.add(row)
        session.flush()
    return row


def _is_warehouse_tracked(session, product_id: int) -> bool:
    """True once any warehouse holds a stock row for the product."""
    return session.query(
        session.query(WarehouseStock).filter(WarehouseStock.product_id == product_id).exists()
    ).scalar()


def _check_scope(session, product: Product, warehouse_id: Optional[int]) -> None:
    """
    Keep product.current_stock equal to the sum of its warehouse rows.

    A product tracked per warehouse only moves through warehouse-scoped
    writes, and stock held outside any warehouse cannot be split into one.
    """
    tracked = _is_warehouse_tracked(session, product.id)
    if warehouse_id is None and tracked:
        raise ValidationError(f'{product.name} is stocked per warehouse; warehouseId is required', field='warehouseId')
    if warehouse_id is not None and not tracked and _balance(product.current_stock) != 0:
        raise ValidationError(
            f'{product.name} holds stock outside any warehouse; omit warehouseId', field='warehouseId'
        )


def _balance(value) -> Decimal:
    return Decimal(str(value if value is not None else 0))


# ---------------------------------------------------------------------------
# Movement bookkeeping
# ---------------------------------------------------------------------------

def _append_movement(
    session,
    tenant_id: int,
    product: Product,
    stock_row: Optional[WarehouseStock],
    movement_type: MovementType,
    delta: Decimal,
    performed_by: str,
    reason: Optional[str] = None,
    reference: Optional[str] = None,
    reference_type: Optional[str] = None,
    transfer: Optional[StockTransfer] = None,
) -> StockMovement:
    """
    Apply ``delta`` to the scope balance and append the movement explaining it.

    Callers have already locked the rows and checked availability.
    """
    product_before = _balance(product.current_stock)
    if movement_type == MovementType.TRANSFER:
        product_after = product_before
    else:
        product_after = product_before + delta

    if stock_row is not None:
        before = _balance(stock_row.quantity)
        after = before + delta
        stock_row.quantity = after
    else:
        before = product_before
        after = product_after

    if product_after != product_before:
        product.current_stock = product_after

    movement = StockMovement(
        tenant_id=tenant_id,
        product_id=product.id,
        warehouse_id=stock_row.warehouse_id if stock_row is not None else None,
        transfer=transfer,
        movement_type=movement_type,
        quantity=delta,
        balance_before=before,
        balance_after=after,
        product_balance_before=product_before,
        product_balance_after=product_after,
        reason=reason,
        reference=reference,
        reference_type=reference_type,
        performed_by=performed_by or SYSTEM_USER,
        created_at=datetime.now(timezone.utc),
    )
    session.add(movement)
    return movement


def _reject_insufficient(product, requested, available, warehouse_id=None):
    stock_rejections_total.labels(reason='insufficient_stock').inc()
    raise InsufficientStockError(product.name, requested, available, product_id=product.id, warehouse_id=warehouse_id)


def _post_movement(
    session,
    tenant_id: int,
    product_id: int,
    warehouse_id: Optional[int],
    movement_type: MovementType,
    compute_delta,
    performed_by: str,
    reason: Optional[str],
    reference: Optional[str] = None,
    reference_type: Optional[str] = None,
    audit_action: AuditAction = AuditAction.STOCK_MOVEMENT_RECORDED,
) -> Tuple[Product, StockMovement]:
    """Shared read-modify-write for adjustments and fixed-type movements."""
    try:
        product = _lock_product(session, tenant_id, product_id)
        stock_row = None
        if warehouse_id is not None:
            warehouse = _get_warehouse(session, tenant_id, warehouse_id)
            _check_scope(session, product, warehouse.id)
            stock_row = _lock_warehouse_stock(session, warehouse.id, product.id, create=True)
            before = _balance(stock_row.quantity)
        else:
            _check_scope(session, product, None)
            before = _balance(product.current_stock)

        delta = compute_delta(before)

        if delta > 0 and _balance(product.current_stock) + delta > QTY_MAX:
            raise ValidationError(f'{product.name} stock would exceed {QTY_MAX}', field='quantity')

        # Reject policy: a decrease never drives a balance below zero
        if delta < 0:
            if -delta > before:
                _reject_insufficient(product, -delta, before, warehouse_id)
            product_stock = _balance(product.current_stock)
            if stock_row is not None and -delta > product_stock:
                _reject_insufficient(product, -delta, product_stock)

        movement = _append_movement(
            session, tenant_id, product, stock_row, movement_type, delta,
            performed_by, reason=reason, reference=reference, reference_type=reference_type
        )
        refresh_product_alerts(session, tenant_id, product)
        session.flush()

        log_action(session, audit_action, 'product', product.id, {
            'movement_id': movement.id,
            'movement_type': movement_type.value,
            'warehouse_id': warehouse_id,
            'quantity': str(delta),
            'balance_before': str(movement.balance_before),
            'balance_after': str(movement.balance_after),
        })
        session.commit()
    except InsufficientStockError as e:
        session.rollback()
        logger.warning(f"Rejected {movement_type.value} on product {product_id} (tenant {tenant_id}): {e.message}")
        raise
    except Exception:
        session.rollback()
        raise

    stock_movements_total.labels(movement_type=movement_type.value).inc()
    logger.info(
        f"{movement_type.value} product={product.id} warehouse={warehouse_id} "
        f"qty={to_number(movement.quantity)} {to_number(movement.balance_before)} -> {to_number(movement.balance_after)}"
    )
    invalidate_stock_views(tenant_id)
    return product, movement


def post_opening_balance(session, tenant_id: int, product: Product, quantity, performed_by: Optional[str] = None,
                         warehouse_id: Optional[int] = None) -> Optional[StockMovement]:
    """
    Record the opening stock of a product being created, inside the caller's transaction.

    The product must be flushed and still at zero; nothing is committed here.
    """
    qty = _coerce_quantity(quantity, 'initialStock')
    stock_row = None
    if warehouse_id is not None:
        warehouse = _get_warehouse(session, tenant_id, _coerce_id(warehouse_id, 'warehouseId'))
        stock_row = _lock_warehouse_stock(session, warehouse.id, product.id, create=True)

    movement = None
    if qty > 0:
        movement = _append_movement(
            session, tenant_id, product, stock_row, MovementType.ADJUSTMENT, qty,
            performed_by, reason='Opening stock', reference_type='adjustment'
        )
    refresh_product_alerts(session, tenant_id, product)
    return movement


# ---------------------------------------------------------------------------
# Public write operations
# ---------------------------------------------------------------------------

@_retry_on_conflict
def apply_adjustment(
    session,
    tenant_id: int,
    product_id: int,
    operation: str,
    quantity,
    reason: Optional[str] = None,
    performed_by: Optional[str] = None,
    warehouse_id: Optional[int] = None,
) -> Tuple[Product, StockMovement]:
    """
    Manual stock adjustment (add, subtract or set) in one scope.

    - add/subtract need quantity > 0, set needs quantity >= 0
    - subtract beyond the available balance raises InsufficientStockError
    - set records ``after - before`` as the movement quantity, zero included

    Returns:
        (product, movement) after commit.
    """
    operation = (operation or '').strip().lower() if isinstance(operation, str) else operation
    if operation not in ADJUSTMENT_OPERATIONS:
        raise ValidationError(
            f"Invalid operation '{operation}' (expected add, subtract or set)", field='operation'
        )

    qty = _coerce_quantity(quantity)
    if operation in ('add', 'subtract') and qty <= 0:
        raise ValidationError('quantity must be greater than 0', field='quantity')

    product_id = _coerce_id(product_id, 'productId')
    warehouse_id = _coerce_id(warehouse_id, 'warehouseId', required=False)

    def compute_delta(before: Decimal) -> Decimal:
        if operation == 'add':
            return qty
        if operation == 'subtract':
            return -qty
        return qty - before

    reason = (reason or '').strip() or f'Manual adjustment ({operation})'
    return _post_movement(
        session, tenant_id, product_id, warehouse_id, MovementType.ADJUSTMENT, compute_delta,
        performed_by, reason, reference_type='adjustment', audit_action=AuditAction.STOCK_ADJUSTED
    )


@_retry_on_conflict
def record_movement(
    session,
    tenant_id: int,
    product_id: int,
    movement_type,
    quantity,
    performed_by: Optional[str] = None,
    warehouse_id: Optional[int] = None,
    reference: Optional[str] = None,
    reference_type: Optional[str] = None,
    reason: Optional[str] = None,
) -> Tuple[Product, StockMovement]:
    """
    Record a fixed-direction movement (sale, purchase, returns, loss, expiry).

    ``quantity`` is the positive amount; the sign comes from the type.
    """
    movement_type = coerce_movement_type(movement_type)
    if movement_type not in MOVEMENT_DIRECTION:
        raise ValidationError(
            f"'{movement_type.value}' movements cannot be recorded directly",
            field='movementType'
        )

    qty = _coerce_quantity(quantity)
    if qty <= 0:
        raise ValidationError('quantity must be greater than 0', field='quantity')

    product_id = _coerce_id(product_id, 'productId')
    warehouse_id = _coerce_id(warehouse_id, 'warehouseId', required=False)
    delta = qty * MOVEMENT_DIRECTION[movement_type]

    return _post_movement(
        session, tenant_id, product_id, warehouse_id, movement_type, lambda before: delta,
        performed_by, (reason or '').strip() or None,
        reference=reference, reference_type=reference_type or movement_type.value
    )


def record_sale(session, tenant_id, product_id, quantity, reference=None, performed_by=None, warehouse_id=None, reason=None):
    return record_movement(session, tenant_id, product_id, MovementType.SALE, quantity, performed_by,
                           warehouse_id=warehouse_id, reference=reference, reference_type='sale', reason=reason)


def record_purchase(session, tenant_id, product_id, quantity, reference=None, performed_by=None, warehouse_id=None, reason=None):
    return record_movement(session, tenant_id, product_id, MovementType.PURCHASE, quantity, performed_by,
                           warehouse_id=warehouse_id, reference=reference, reference_type='purchase', reason=reason)


def record_return(session, tenant_id, product_id, quantity, direction='in', reference=None, performed_by=None,
                  warehouse_id=None, reason=None):
    """Customer return (``in``, stock comes back) or return to supplier (``out``)."""
    if direction not in ('in', 'out'):
        raise ValidationError("direction must be 'in' or 'out'", field='direction')
    movement_type = MovementType.RETURN_IN if direction == 'in' else MovementType.RETURN_OUT
    return record_movement(session, tenant_id, product_id, movement_type, quantity, performed_by,
                           warehouse_id=warehouse_id, reference=reference, reason=reason)


def record_loss(session, tenant_id, product_id, quantity, reason=None, performed_by=None, warehouse_id=None, reference=None):
    return record_movement(session, tenant_id, product_id, MovementType.LOSS, quantity, performed_by,
                           warehouse_id=warehouse_id, reference=reference, reason=reason)


def record_expiry(session, tenant_id, product_id, quantity, reason=None, performed_by=None, warehouse_id=None, reference=None):
    return record_movement(session, tenant_id, product_id, MovementType.EXPIRED, quantity, performed_by,
                           warehouse_id=warehouse_id, reference=reference, reason=reason)


# ---------------------------------------------------------------------------
# Transfers
# ---------------------------------------------------------------------------

def _normalize_transfer_items(items) -> dict:
    """Validate transfer lines and merge repeated products, keeping request order."""
    if not isinstance(items, (list, tuple)) or not items:
        raise ValidationError('At least one item is required', field='items')

    max_items = current_app.config.get('MAX_TRANSFER_ITEMS', 100) if has_app_context() else 100
    if len(items) > max_items:
        raise ValidationError(f'A transfer accepts at most {max_items} items', field='items')

    lines = {}
    details = []
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            details.append(f'items[{index}] must be an object')
            continue
        try:
            product_id = _coerce_id(item.get('productId', item.get('product_id')), f'items[{index}].productId')
            qty = _coerce_quantity(item.get('quantity'), f'items[{index}].quantity')
        except ValidationError as e:
            details.append(e.message)
            continue
        if qty <= 0:
            details.append(f'items[{index}].quantity must be greater than 0')
            continue
        lines[product_id] = lines.get(product_id, ZERO) + qty

    if details:
        raise ValidationError('Invalid transfer items', details=details, field='items')
    return lines


def _next_transfer_number(session, tenant_id: int) -> str:
    """GT-<year>-<seq>, sequential per tenant and year. Caller holds the tenant lock."""
    year = datetime.now(timezone.utc).year
    prefix = f'{TRANSFER_PREFIX}-{year}-'
    count = session.query(func.count(StockTransfer.id)).filter(
        StockTransfer.tenant_id == tenant_id,
        StockTransfer.number.like(f'{prefix}%')
    ).scalar() or 0
    return f'{prefix}{count + 1:04d}'


def _lock_tenant(session, tenant_id: int) -> Tenant:
    tenant = session.query(Tenant).filter(Tenant.id == tenant_id).with_for_update().first()
    if not tenant:
        raise NotFoundError('Tenant not found')
    return tenant


def _lock_transfer_rows(session, warehouse_ids, product_ids, create_in=None) -> dict:
    """Lock warehouse_stock rows in (warehouse, product) order."""
    rows = {}
    for warehouse_id in sorted(warehouse_ids):
        for product_id in sorted(product_ids):
            rows[(warehouse_id, product_id)] = _lock_warehouse_stock(
                session, warehouse_id, product_id, create=(warehouse_id == create_in)
            )
    return rows


@_retry_on_conflict
def transfer_stock(
    session,
    tenant_id: int,
    source_warehouse_id,
    target_warehouse_id,
    items,
    responsible: Optional[str] = None,
    reason: Optional[str] = None,
    notes: Optional[str] = None,
    performed_by: Optional[str] = None,
) -> StockTransfer:
    """
    Move stock between two warehouses, all items or none.

    Every line is checked against the source balance (under lock) before
    anything is written. Each line produces a negative transfer movement at
    the source and a positive one at the target, both linked to the transfer.
    """
    source_id = _coerce_id(source_warehouse_id, 'sourceWarehouseId')
    target_id = _coerce_id(target_warehouse_id, 'targetWarehouseId')
    if source_id == target_id:
        raise ValidationError('Source and target warehouses must be different', field='targetWarehouseId')
    lines = _normalize_transfer_items(items)

    try:
        _lock_tenant(session, tenant_id)
        source = _get_warehouse(session, tenant_id, source_id, field='sourceWarehouseId')
        target = _get_warehouse(session, tenant_id, target_id, field='targetWarehouseId')
        products = _lock_products(session, tenant_id, list(lines))
        rows = _lock_transfer_rows(session, (source.id, target.id), lines, create_in=target.id)

        for product_id, qty in lines.items():
            source_row = rows[(source.id, product_id)]
            available = _balance(source_row.quantity if source_row is not None else None)
            if qty > available:
                _reject_insufficient(products[product_id], qty, available, source.id)

        transfer = StockTransfer(
            tenant_id=tenant_id,
            number=_next_transfer_number(session, tenant_id),
            source_warehouse_id=source.id,
            target_warehouse_id=target.id,
            status=TransferStatus.COMPLETED,
            responsible=responsible,
            reason=reason,
            notes=notes,
            date=datetime.now(timezone.utc),
        )
        session.add(transfer)
        session.flush()

        performer = performed_by or responsible or SYSTEM_USER
        movement_reason = reason or f'Transfer {transfer.number}'
        for product_id, qty in lines.items():
            product = products[product_id]
            transfer.items.append(StockTransferItem(product_id=product_id, quantity=qty))
            _append_movement(
                session, tenant_id, product, rows[(source.id, product_id)], MovementType.TRANSFER, -qty,
                performer, reason=movement_reason, reference=transfer.number, reference_type='transfer',
                transfer=transfer
            )
            _append_movement(
                session, tenant_id, product, rows[(target.id, product_id)], MovementType.TRANSFER, qty,
                performer, reason=movement_reason, reference=transfer.number, reference_type='transfer',
                transfer=transfer
            )

        log_action(session, AuditAction.TRANSFER_CREATED, 'transfer', transfer.id, {
            'number': transfer.number,
            'source_warehouse_id': source.id,
            'target_warehouse_id': target.id,
            'items': {str(pid): str(qty) for pid, qty in lines.items()},
        })
        session.commit()
    except InsufficientStockError as e:
        session.rollback()
        logger.warning(f"Rejected transfer {source_id} -> {target_id} (tenant {tenant_id}): {e.message}")
        raise
    except Exception:
        session.rollback()
        raise

    stock_movements_total.labels(movement_type=MovementType.TRANSFER.value).inc(2 * len(lines))
    logger.info(f"Transfer {transfer.number}: warehouse {source_id} -> {target_id}, {len(lines)} item(s)")
    invalidate_stock_views(tenant_id)
    return transfer


@_retry_on_conflict
def cancel_transfer(session, tenant_id: int, transfer_id, performed_by: Optional[str] = None) -> StockTransfer:
    """
    Cancel a completed transfer with compensating movements (target -> source).

    The transfer's own movements stay untouched. Fails with InsufficientStockError
    when the target warehouse no longer holds a transferred quantity.
    """
    transfer_id = _coerce_id(transfer_id, 'transferId')
    try:
        transfer = (
            session.query(StockTransfer)
            .filter(StockTransfer.id == transfer_id, StockTransfer.tenant_id == tenant_id)
            .with_for_update()
            .populate_existing()
            .first()
        )
        if not transfer:
            raise NotFoundError('Transfer not found')
        if transfer.status != TransferStatus.COMPLETED:
            raise BusinessLogicError('Only completed transfers can be cancelled', code='TRANSFER_NOT_CANCELLABLE')

        lines = {item.product_id: _balance(item.quantity) for item in transfer.items}
        products = _lock_products(session, tenant_id, list(lines))
        source_id, target_id = transfer.source_warehouse_id, transfer.target_warehouse_id
        rows = _lock_transfer_rows(session, (source_id, target_id), lines, create_in=source_id)

        for product_id, qty in lines.items():
            target_row = rows[(target_id, product_id)]
            available = _balance(target_row.quantity if target_row is not None else None)
            if qty > available:
                _reject_insufficient(products[product_id], qty, available, target_id)

        performer = performed_by or SYSTEM_USER
        movement_reason = f'Cancellation of transfer {transfer.number}'
        for product_id, qty in lines.items():
            product = products[product_id]
            _append_movement(
                session, tenant_id, product, rows[(target_id, product_id)], MovementType.TRANSFER, -qty,
                performer, reason=movement_reason, reference=transfer.number, reference_type='transfer_cancel',
                transfer=transfer
            )
            _append_movement(
                session, tenant_id, product, rows[(source_id, product_id)], MovementType.TRANSFER, qty,
                performer, reason=movement_reason, reference=transfer.number, reference_type='transfer_cancel',
                transfer=transfer
            )

        transfer.status = TransferStatus.CANCELLED
        transfer.cancelled_at = datetime.now(timezone.utc)
        log_action(session, AuditAction.TRANSFER_CANCELLED, 'transfer', transfer.id, {'number': transfer.number})
        session.commit()
    except InsufficientStockError as e:
        session.rollback()
        logger.warning(f"Rejected cancellation of transfer {transfer_id} (tenant {tenant_id}): {e.message}")
        raise
    except Exception:
        session.rollback()
        raise

    stock_movements_total.labels(movement_type=MovementType.TRANSFER.value).inc(2 * len(lines))
    logger.info(f"Transfer {transfer.number} cancelled")
    invalidate_stock_views(tenant_id)
    return transfer


# ---------------------------------------------------------------------------
# Read side
# ---------------------------------------------------------------------------

def movement_history_query(
    session,
    tenant_id: int,
    product_id: Optional[int] = None,
    movement_type=None,
    warehouse_id: Optional[int] = None,
    start_date=None,
    end_date=None,
    search: Optional[str] = None,
):
    """Filtered movement query, newest first: (created_at desc, id desc)."""
    query = session.query(StockMovement).filter(StockMovement.tenant_id == tenant_id)

    if product_id is not None:
        product_id = _coerce_id(product_id, 'productId')
        exists = session.query(Product.id).filter(
            Product.id == product_id, Product.tenant_id == tenant_id
        ).first()
        if not exists:
            raise NotFoundError('Product not found')
        query = query.filter(StockMovement.product_id == product_id)

    if movement_type:
        query = query.filter(StockMovement.movement_type == coerce_movement_type(movement_type, field='type'))

    if warehouse_id is not None and warehouse_id != '':
        query = query.filter(StockMovement.warehouse_id == _coerce_id(warehouse_id, 'warehouseId'))

    start = start_of(start_date)
    end = end_of(end_date)
    if start and end and start > end:
        raise ValidationError('startDate must not be after endDate', field='startDate')
    if start:
        query = query.filter(StockMovement.created_at >= start)
    if end:
        query = query.filter(StockMovement.created_at <= end)

    if search:
        pattern = f'%{search.strip()}%'
        query = query.join(Product, StockMovement.product_id == Product.id).filter(or_(
            StockMovement.reason.ilike(pattern),
            StockMovement.reference.ilike(pattern),
            Product.name.ilike(pattern),
            Product.code.ilike(pattern),
        ))

    return query.order_by(StockMovement.created_at.desc(), StockMovement.id.desc())


def get_movement_history(session, tenant_id: int, product_id: Optional[int] = None, filters: Optional[dict] = None,
                         page: int = 1, limit: int = 20) -> dict:
    """
    Paginated movement history (read-only).

    ``filters`` keys: movement_type, warehouse_id, start_date, end_date, search.
    ``product_id=None`` returns the tenant-wide log.
    """
    query = movement_history_query(session, tenant_id, product_id=product_id, **(filters or {}))
    return paginate(query, page, limit, serializer=movement_to_dict)


def verify_chain(session, tenant_id: int, product_id: int) -> list:
    """
    Walk a product's movements oldest first and report every inconsistency.

    Checked per movement: before + quantity = after, the warehouse scope
    chain, the product-wide chain, and finally the stored balances,
    including that warehouse rows add up to the product total.
    Returns a list of break dicts (empty when the ledger is consistent).
    """
    product = session.query(Product).filter(
        Product.id == product_id, Product.tenant_id == tenant_id
    ).first()
    if not product:
        raise NotFoundError('Product not found')

    movements = (
        session.query(StockMovement)
        .filter(StockMovement.tenant_id == tenant_id, StockMovement.product_id == product_id)
        .order_by(StockMovement.created_at.asc(), StockMovement.id.asc())
        .all()
    )

    breaks = []

    def report(kind, movement, expected, actual, warehouse_id=None):
        breaks.append({
            'kind': kind,
            'movementId': movement.id if movement is not None else None,
            'warehouseId': warehouse_id,
            'expected': to_number(expected),
            'actual': to_number(actual),
        })

    scope_after = {}
    product_after = ZERO
    for movement in movements:
        quantity = _balance(movement.quantity)
        before, after = _balance(movement.balance_before), _balance(movement.balance_after)
        p_before, p_after = _balance(movement.product_balance_before), _balance(movement.product_balance_after)

        if before + quantity != after:
            report('arithmetic', movement, before + quantity, after, movement.warehouse_id)

        if p_before != product_after:
            report('product_chain', movement, product_after, p_before)

        expected_p_after = p_before if movement.movement_type == MovementType.TRANSFER else p_before + quantity
        if p_after != expected_p_after:
            report('product_arithmetic', movement, expected_p_after, p_after)

        if movement.warehouse_id is None:
            # Product-wide scope: its balance is the product total
            if before != p_before:
                report('scope_chain', movement, p_before, before)
        else:
            expected_before = scope_after.get(movement.warehouse_id, ZERO)
            if before != expected_before:
                report('scope_chain', movement, expected_before, before, movement.warehouse_id)
            scope_after[movement.warehouse_id] = after

        product_after = p_after

    if product_after != _balance(product.current_stock):
        report('product_balance', None, product_after, product.current_stock)

    stocks = {
        row.warehouse_id: _balance(row.quantity)
        for row in session.query(WarehouseStock).filter(WarehouseStock.product_id == product_id).all()
    }
    for warehouse_id in sorted(set(stocks) | set(scope_after)):
        expected = scope_after.get(warehouse_id, ZERO)
        actual = stocks.get(warehouse_id, ZERO)
        if expected != actual:
            report('warehouse_balance', None, expected, actual, warehouse_id)

    if stocks:
        warehouse_total = sum(stocks.values(), ZERO)
        if warehouse_total != _balance(product.current_stock):
            report('warehouse_sum', None, product.current_stock, warehouse_total)

    if breaks:
        logger.warning(f"Ledger for product {product_id} (tenant {tenant_id}) has {len(breaks)} break(s)")
    return breaks
