"""Products blueprint - catalog and stock ledger endpoints - Multi-Tenant."""
import logging

from flask import Blueprint, g, jsonify, request

from stockledger.database import get_session
from stockledger.exceptions import ValidationError
from stockledger.middleware import current_performer, require_login, require_tenant
from stockledger.services import ledger_service, product_service
from stockledger.utils.http import int_arg, json_body, movement_filters
from stockledger.utils.pagination import paginate, parse_pagination
from stockledger.utils.serializers import movement_to_dict, product_to_dict

logger = logging.getLogger(__name__)

products_bp = Blueprint('products', __name__, url_prefix='/products')

LIST_FILTERS = ('search', 'category', 'status', 'warehouseId', 'minPrice', 'maxPrice', 'sortBy', 'sortOrder')


@products_bp.route('', methods=['GET'])
@require_login
@require_tenant
def list_products():
    page, limit = parse_pagination(request.args)
    filters = {key: request.args.get(key) for key in LIST_FILTERS if request.args.get(key)}
    return jsonify(product_service.list_products(get_session(), g.tenant_id, filters, page, limit))


@products_bp.route('', methods=['POST'])
@require_login
@require_tenant
def create_product():
    product = product_service.create_product(get_session(), g.tenant_id, json_body(), performed_by=current_performer())
    return jsonify(product_to_dict(product)), 201


@products_bp.route('/stock-movements', methods=['GET'])
@require_login
@require_tenant
def list_all_movements():
    """Tenant-wide movement log, newest first."""
    page, limit = parse_pagination(request.args)
    result = ledger_service.get_movement_history(
        get_session(), g.tenant_id,
        product_id=int_arg(request.args, 'productId'),
        filters=movement_filters(request.args),
        page=page, limit=limit
    )
    return jsonify(result)


@products_bp.route('/alerts/low-stock', methods=['GET'])
@require_login
@require_tenant
def low_stock():
    page, limit = parse_pagination(request.args)
    query = product_service.low_stock_query(get_session(), g.tenant_id)
    return jsonify(paginate(query, page, limit, serializer=lambda p: product_to_dict(p, include_warehouses=False)))


@products_bp.route('/alerts/expiring', methods=['GET'])
@require_login
@require_tenant
def expiring():
    page, limit = parse_pagination(request.args)
    query = product_service.expiring_query(get_session(), g.tenant_id, request.args.get('days'))
    return jsonify(paginate(query, page, limit, serializer=lambda p: product_to_dict(p, include_warehouses=False)))


@products_bp.route('/<int:product_id>', methods=['GET'])
@require_login
@require_tenant
def get_product(product_id: int):
    product = product_service.get_product(get_session(), g.tenant_id, product_id)
    return jsonify(product_to_dict(product))


@products_bp.route('/<int:product_id>', methods=['PUT'])
@require_login
@require_tenant
def update_product(product_id: int):
    product = product_service.update_product(get_session(), g.tenant_id, product_id, json_body())
    return jsonify(product_to_dict(product))


@products_bp.route('/<int:product_id>', methods=['DELETE'])
@require_login
@require_tenant
def delete_product(product_id: int):
    product_service.delete_product(get_session(), g.tenant_id, product_id)
    return jsonify({'message': 'Product deleted'})


@products_bp.route('/<int:product_id>/stock', methods=['POST', 'PATCH'])
@require_login
@require_tenant
def adjust_stock(product_id: int):
    """
    Manual adjustment: {operation: add|subtract|set, quantity, warehouseId?, reason}.

    The returned balances are the server's; clients reconcile any preview with them.
    """
    data = json_body()
    reason = data.get('reason')
    if not isinstance(reason, str) or not reason.strip():
        raise ValidationError('reason is required', field='reason')

    product, movement = ledger_service.apply_adjustment(
        get_session(), g.tenant_id, product_id,
        operation=data.get('operation'),
        quantity=data.get('quantity'),
        reason=reason,
        performed_by=current_performer(),
        warehouse_id=data.get('warehouseId'),
    )
    return jsonify({'product': product_to_dict(product), 'movement': movement_to_dict(movement)})


@products_bp.route('/<int:product_id>/movements', methods=['POST'])
@require_login
@require_tenant
def record_movement(product_id: int):
    """Sale, purchase, return, loss or expiry: {movementType, quantity, warehouseId?, reference?, reason?}."""
    data = json_body()
    product, movement = ledger_service.record_movement(
        get_session(), g.tenant_id, product_id,
        movement_type=data.get('movementType'),
        quantity=data.get('quantity'),
        performed_by=current_performer(),
        warehouse_id=data.get('warehouseId'),
        reference=data.get('reference'),
        reference_type=data.get('referenceType'),
        reason=data.get('reason'),
    )
    return jsonify({'product': product_to_dict(product), 'movement': movement_to_dict(movement)}), 201


@products_bp.route('/<int:product_id>/stock-movements', methods=['GET'])
@require_login
@require_tenant
def product_movements(product_id: int):
    page, limit = parse_pagination(request.args)
    result = ledger_service.get_movement_history(
        get_session(), g.tenant_id,
        product_id=product_id,
        filters=movement_filters(request.args),
        page=page, limit=limit
    )
    return jsonify(result)
