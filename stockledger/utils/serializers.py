"""JSON representations of the models (camelCase keys, numbers as numbers)."""
from stockledger.utils.number_format import to_number


def _iso(value):
    return value.isoformat() if value else None


def _enum(value):
    return value.value if value is not None and hasattr(value, 'value') else value


def warehouse_ref(warehouse):
    if warehouse is None:
        return None
    return {'id': warehouse.id, 'code': warehouse.code, 'name': warehouse.name}


def product_ref(product):
    if product is None:
        return None
    return {'id': product.id, 'code': product.code, 'name': product.name, 'unit': product.unit}


def product_to_dict(product, include_warehouses: bool = True) -> dict:
    data = {
        'id': product.id,
        'code': product.code,
        'barcode': product.barcode,
        'name': product.name,
        'description': product.description,
        'category': product.category,
        'unit': product.unit,
        'price': to_number(product.price),
        'costPrice': to_number(product.cost_price),
        'currentStock': to_number(product.current_stock),
        'minStock': to_number(product.min_stock),
        'maxStock': to_number(product.max_stock),
        'expiryDate': _iso(product.expiry_date),
        'batchNumber': product.batch_number,
        'status': _enum(product.status),
        'isActive': product.active,
        'createdAt': _iso(product.created_at),
        'updatedAt': _iso(product.updated_at),
    }
    if include_warehouses:
        data['warehouseStocks'] = [
            {
                'warehouseId': ws.warehouse_id,
                'warehouse': warehouse_ref(ws.warehouse),
                'quantity': to_number(ws.quantity),
            }
            for ws in sorted(product.warehouse_stocks, key=lambda ws: ws.warehouse_id)
        ]
    return data


def warehouse_to_dict(warehouse) -> dict:
    return {
        'id': warehouse.id,
        'code': warehouse.code,
        'name': warehouse.name,
        'address': warehouse.address,
        'city': warehouse.city,
        'manager': warehouse.manager,
        'capacity': warehouse.capacity,
        'notes': warehouse.notes,
        'isDefault': warehouse.is_default,
        'isActive': warehouse.active,
        'createdAt': _iso(warehouse.created_at),
        'updatedAt': _iso(warehouse.updated_at),
    }


def warehouse_stock_to_dict(stock) -> dict:
    return {
        'id': stock.id,
        'warehouseId': stock.warehouse_id,
        'productId': stock.product_id,
        'product': product_ref(stock.product),
        'quantity': to_number(stock.quantity),
    }


def movement_to_dict(movement) -> dict:
    return {
        'id': movement.id,
        'productId': movement.product_id,
        'product': product_ref(movement.product),
        'warehouseId': movement.warehouse_id,
        'warehouse': warehouse_ref(movement.warehouse),
        'transferId': movement.transfer_id,
        'movementType': _enum(movement.movement_type),
        'quantity': to_number(movement.quantity),
        'balanceBefore': to_number(movement.balance_before),
        'balanceAfter': to_number(movement.balance_after),
        'productBalanceBefore': to_number(movement.product_balance_before),
        'productBalanceAfter': to_number(movement.product_balance_after),
        'reason': movement.reason,
        'referenceType': movement.reference_type,
        'reference': movement.reference,
        'performedBy': movement.performed_by,
        'createdAt': _iso(movement.created_at),
    }


def transfer_to_dict(transfer) -> dict:
    return {
        'id': transfer.id,
        'number': transfer.number,
        'sourceWarehouseId': transfer.source_warehouse_id,
        'sourceWarehouse': warehouse_ref(transfer.source_warehouse),
        'targetWarehouseId': transfer.target_warehouse_id,
        'targetWarehouse': warehouse_ref(transfer.target_warehouse),
        'status': _enum(transfer.status),
        'responsible': transfer.responsible,
        'reason': transfer.reason,
        'notes': transfer.notes,
        'date': _iso(transfer.date),
        'cancelledAt': _iso(transfer.cancelled_at),
        'items': [
            {
                'id': item.id,
                'productId': item.product_id,
                'product': product_ref(item.product),
                'quantity': to_number(item.quantity),
            }
            for item in transfer.items
        ],
    }


def alert_to_dict(alert) -> dict:
    return {
        'id': alert.id,
        'productId': alert.product_id,
        'product': product_ref(alert.product),
        'type': alert.type,
        'priority': alert.priority,
        'title': alert.title,
        'message': alert.message,
        'isResolved': alert.is_resolved,
        'resolvedAt': _iso(alert.resolved_at),
        'createdAt': _iso(alert.created_at),
    }
