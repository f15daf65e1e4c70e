"""Product model."""
import enum
from decimal import Decimal
from sqlalchemy import (
    Column, BigInteger, Integer, String, Text, Boolean, Numeric, Date, DateTime, ForeignKey, Enum,
    UniqueConstraint, CheckConstraint, Index
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from stockledger.database import Base, IdType


class StockStatus(enum.Enum):
    """Stock level classification kept on the product row."""
    IN_STOCK = 'in_stock'
    LOW_STOCK = 'low_stock'
    OUT_OF_STOCK = 'out_of_stock'


def compute_stock_status(current_stock, min_stock) -> StockStatus:
    """Classify a balance against the reorder threshold."""
    current = Decimal(str(current_stock or 0))
    minimum = Decimal(str(min_stock or 0))
    if current <= 0:
        return StockStatus.OUT_OF_STOCK
    if minimum > 0 and current <= minimum:
        return StockStatus.LOW_STOCK
    return StockStatus.IN_STOCK


class Product(Base):
    """Product model.

    ``current_stock`` is the denormalized running balance. It is only written
    by the ledger service, together with the StockMovement that explains it.
    """

    __tablename__ = 'product'
    __table_args__ = (
        UniqueConstraint('tenant_id', 'code', name='uq_product_tenant_code'),
        CheckConstraint('current_stock >= 0', name='ck_product_stock_non_negative'),
        Index('ix_product_tenant_active', 'tenant_id', 'active'),
        Index('ix_product_tenant_expiry', 'tenant_id', 'expiry_date'),
    )

    id = Column(IdType, primary_key=True, autoincrement=True)
    tenant_id = Column(BigInteger, ForeignKey('tenant.id'), nullable=False)
    code = Column(String(50), nullable=False)
    barcode = Column(String(100), nullable=True)
    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String(100), nullable=False, default='other', server_default='other')
    unit = Column(String(20), nullable=False, default='un', server_default='un')
    price = Column(Numeric(12, 2), nullable=False, default=0)
    cost_price = Column(Numeric(12, 2), nullable=False, default=0, server_default='0')
    current_stock = Column(Numeric(12, 3), nullable=False, default=0, server_default='0')
    min_stock = Column(Numeric(12, 3), nullable=False, default=0, server_default='0')
    max_stock = Column(Numeric(12, 3), nullable=True)
    expiry_date = Column(Date, nullable=True)
    batch_number = Column(String(100), nullable=True)
    status = Column(
        Enum(StockStatus, name='stock_status', values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=StockStatus.OUT_OF_STOCK,
    )
    active = Column(Boolean, nullable=False, default=True)
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    tenant = relationship('Tenant')
    warehouse_stocks = relationship('WarehouseStock', back_populates='product')

    # Optimistic concurrency: a stale read fails the UPDATE with StaleDataError
    __mapper_args__ = {'version_id_col': version}

    def refresh_status(self) -> StockStatus:
        """Recompute ``status`` from the current balance and threshold."""
        self.status = compute_stock_status(self.current_stock, self.min_stock)
        return self.status

    def __repr__(self):
        return f"<Product(id={self.id}, code='{self.code}', current_stock={self.current_stock})>"
