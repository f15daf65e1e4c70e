"""Models package - exports all SQLAlchemy models."""
# SaaS Core Models
from stockledger.models.app_user import AppUser
from stockledger.models.tenant import Tenant
from stockledger.models.user_tenant import UserTenant, UserRole, ROLE_HIERARCHY

# Inventory Models
from stockledger.models.product import Product, StockStatus, compute_stock_status
from stockledger.models.warehouse import Warehouse
from stockledger.models.warehouse_stock import WarehouseStock
from stockledger.models.stock_movement import (
    StockMovement, MovementType, MOVEMENT_DIRECTION, ImmutableMovementError
)
from stockledger.models.stock_transfer import StockTransfer, TransferStatus
from stockledger.models.stock_transfer_item import StockTransferItem
from stockledger.models.stock_alert import StockAlert
from stockledger.models.audit_log import AuditLog, AuditAction

__all__ = [
    # SaaS Core
    'Tenant', 'AppUser', 'UserTenant', 'UserRole', 'ROLE_HIERARCHY',
    # Inventory
    'Product', 'StockStatus', 'compute_stock_status',
    'Warehouse', 'WarehouseStock',
    'StockMovement', 'MovementType', 'MOVEMENT_DIRECTION', 'ImmutableMovementError',
    'StockTransfer', 'TransferStatus', 'StockTransferItem',
    'StockAlert',
    'AuditLog', 'AuditAction',
]
