"""Warehouses blueprint - warehouses and stock transfers - Multi-Tenant."""
import logging

from flask import Blueprint, g, jsonify, request

from stockledger.database import get_session
from stockledger.middleware import current_performer, require_login, require_role, require_tenant
from stockledger.services import ledger_service, warehouse_service
from stockledger.utils.dates import parse_date_param
from stockledger.utils.http import int_arg, json_body
from stockledger.utils.pagination import paginate, parse_pagination
from stockledger.utils.serializers import transfer_to_dict, warehouse_stock_to_dict, warehouse_to_dict

logger = logging.getLogger(__name__)

warehouses_bp = Blueprint('warehouses', __name__, url_prefix='/warehouses')


@warehouses_bp.route('', methods=['GET'])
@require_login
@require_tenant
def list_warehouses():
    page, limit = parse_pagination(request.args)
    query = warehouse_service.list_warehouses_query(get_session(), g.tenant_id, request.args)
    return jsonify(paginate(query, page, limit, serializer=warehouse_to_dict))


@warehouses_bp.route('', methods=['POST'])
@require_login
@require_tenant
@require_role('ADMIN')
def create_warehouse():
    warehouse = warehouse_service.create_warehouse(get_session(), g.tenant_id, json_body())
    return jsonify(warehouse_to_dict(warehouse)), 201


# === STOCK TRANSFERS ===

@warehouses_bp.route('/transfers', methods=['GET'])
@require_login
@require_tenant
def list_transfers():
    page, limit = parse_pagination(request.args)
    query = warehouse_service.list_transfers_query(
        get_session(), g.tenant_id,
        status=request.args.get('status') or None,
        start_date=parse_date_param(request.args.get('startDate'), 'startDate'),
        end_date=parse_date_param(request.args.get('endDate'), 'endDate'),
        warehouse_id=int_arg(request.args, 'warehouseId'),
    )
    return jsonify(paginate(query, page, limit, serializer=transfer_to_dict))


@warehouses_bp.route('/transfers', methods=['POST'])
@require_login
@require_tenant
def create_transfer():
    """
    {sourceWarehouseId, targetWarehouseId, items: [{productId, quantity}], responsible?, reason?, notes?}

    All items move or none do; a short item answers 409 naming the product.
    """
    data = json_body()
    transfer = ledger_service.transfer_stock(
        get_session(), g.tenant_id,
        source_warehouse_id=data.get('sourceWarehouseId'),
        target_warehouse_id=data.get('targetWarehouseId'),
        items=data.get('items'),
        responsible=data.get('responsible') or current_performer(),
        reason=data.get('reason'),
        notes=data.get('notes'),
        performed_by=current_performer(),
    )
    return jsonify(transfer_to_dict(transfer)), 201


@warehouses_bp.route('/transfers/<int:transfer_id>', methods=['GET'])
@require_login
@require_tenant
def get_transfer(transfer_id: int):
    transfer = warehouse_service.get_transfer(get_session(), g.tenant_id, transfer_id)
    return jsonify(transfer_to_dict(transfer))


@warehouses_bp.route('/transfers/<int:transfer_id>/cancel', methods=['POST'])
@require_login
@require_tenant
@require_role('ADMIN')
def cancel_transfer(transfer_id: int):
    transfer = ledger_service.cancel_transfer(get_session(), g.tenant_id, transfer_id, performed_by=current_performer())
    return jsonify(transfer_to_dict(transfer))


# === WAREHOUSES ===

@warehouses_bp.route('/<int:warehouse_id>', methods=['GET'])
@require_login
@require_tenant
def get_warehouse(warehouse_id: int):
    db_session = get_session()
    warehouse = warehouse_service.get_warehouse(db_session, g.tenant_id, warehouse_id)
    data = warehouse_to_dict(warehouse)
    data['stocks'] = [
        warehouse_stock_to_dict(row)
        for row in warehouse_service.warehouse_stock_query(db_session, g.tenant_id, warehouse_id).all()
    ]
    return jsonify(data)


@warehouses_bp.route('/<int:warehouse_id>', methods=['PUT'])
@require_login
@require_tenant
@require_role('ADMIN')
def update_warehouse(warehouse_id: int):
    warehouse = warehouse_service.update_warehouse(get_session(), g.tenant_id, warehouse_id, json_body())
    return jsonify(warehouse_to_dict(warehouse))


@warehouses_bp.route('/<int:warehouse_id>', methods=['DELETE'])
@require_login
@require_tenant
@require_role('ADMIN')
def delete_warehouse(warehouse_id: int):
    warehouse_service.delete_warehouse(get_session(), g.tenant_id, warehouse_id)
    return jsonify({'message': 'Warehouse deleted'})


@warehouses_bp.route('/<int:warehouse_id>/stock', methods=['GET'])
@require_login
@require_tenant
def warehouse_stock(warehouse_id: int):
    page, limit = parse_pagination(request.args)
    include_empty = request.args.get('includeEmpty', '').lower() in ('1', 'true', 'yes')
    query = warehouse_service.warehouse_stock_query(get_session(), g.tenant_id, warehouse_id, include_empty)
    return jsonify(paginate(query, page, limit, serializer=warehouse_stock_to_dict))
