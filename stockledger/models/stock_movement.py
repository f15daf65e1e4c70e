"""Stock Movement model - immutable ledger of quantity changes."""
import enum
from datetime import datetime, timezone
from sqlalchemy import Column, BigInteger, String, Numeric, DateTime, ForeignKey, Enum, Index, event
from sqlalchemy.orm import relationship
from stockledger.database import Base, IdType


class MovementType(enum.Enum):
    """Stock movement type enum."""
    PURCHASE = 'purchase'
    SALE = 'sale'
    RETURN_IN = 'return_in'
    RETURN_OUT = 'return_out'
    ADJUSTMENT = 'adjustment'
    EXPIRED = 'expired'
    TRANSFER = 'transfer'
    LOSS = 'loss'


# Direction of the fixed-type movements: +1 increases stock, -1 decreases it.
# ADJUSTMENT and TRANSFER carry their own sign.
MOVEMENT_DIRECTION = {
    MovementType.PURCHASE: 1,
    MovementType.RETURN_IN: 1,
    MovementType.SALE: -1,
    MovementType.RETURN_OUT: -1,
    MovementType.EXPIRED: -1,
    MovementType.LOSS: -1,
}


def _utcnow():
    return datetime.now(timezone.utc)


class StockMovement(Base):
    """
    Immutable record of a signed quantity change.

    Rules:
    - Never updated or deleted (enforced by mapper events below)
    - Corrections are new movements with the inverse quantity
    - balance_after = balance_before + quantity, within the ledger scope
      (product, warehouse_id); warehouse_id NULL is the product-wide scope
    - product_balance_before/after track product.current_stock around the
      same movement, so the product chain holds when scopes interleave
    """

    __tablename__ = 'stock_movement'
    __table_args__ = (
        Index('ix_stock_movement_scope', 'tenant_id', 'product_id', 'warehouse_id', 'created_at'),
        Index('ix_stock_movement_tenant_created', 'tenant_id', 'created_at'),
    )

    id = Column(IdType, primary_key=True, autoincrement=True)
    tenant_id = Column(BigInteger, ForeignKey('tenant.id'), nullable=False)
    product_id = Column(BigInteger, ForeignKey('product.id'), nullable=False)
    warehouse_id = Column(BigInteger, ForeignKey('warehouse.id'), nullable=True)
    transfer_id = Column(BigInteger, ForeignKey('stock_transfer.id'), nullable=True, index=True)
    movement_type = Column(
        Enum(MovementType, name='movement_type', values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )
    quantity = Column(Numeric(12, 3), nullable=False)
    balance_before = Column(Numeric(12, 3), nullable=False)
    balance_after = Column(Numeric(12, 3), nullable=False)
    product_balance_before = Column(Numeric(12, 3), nullable=False)
    product_balance_after = Column(Numeric(12, 3), nullable=False)
    reason = Column(String(500), nullable=True)
    reference_type = Column(String(50), nullable=True)
    reference = Column(String(100), nullable=True)
    performed_by = Column(String(200), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    # Relationships
    product = relationship('Product')
    warehouse = relationship('Warehouse')
    transfer = relationship('StockTransfer', back_populates='movements')

    def __repr__(self):
        sign = '+' if self.quantity is not None and self.quantity > 0 else ''
        return (
            f"<StockMovement(id={self.id}, type={self.movement_type.value}, "
            f"{sign}{self.quantity}: {self.balance_before} -> {self.balance_after})>"
        )


class ImmutableMovementError(RuntimeError):
    """Raised when code tries to rewrite ledger history."""


@event.listens_for(StockMovement, 'before_update')
def _block_movement_update(mapper, connection, target):
    raise ImmutableMovementError(
        "Stock movements are immutable. Record a compensating movement instead."
    )


@event.listens_for(StockMovement, 'before_delete')
def _block_movement_delete(mapper, connection, target):
    raise ImmutableMovementError(
        "Stock movements are immutable. Record a compensating movement instead."
    )
