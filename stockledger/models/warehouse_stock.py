"""Warehouse Stock model - per-warehouse sub-total of a product."""
from sqlalchemy import Column, BigInteger, Integer, Numeric, DateTime, ForeignKey, UniqueConstraint, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from stockledger.database import Base, IdType


class WarehouseStock(Base):
    """Quantity of one product held in one warehouse."""

    __tablename__ = 'warehouse_stock'
    __table_args__ = (
        UniqueConstraint('warehouse_id', 'product_id', name='uq_warehouse_stock_warehouse_product'),
        CheckConstraint('quantity >= 0', name='ck_warehouse_stock_non_negative'),
    )

    id = Column(IdType, primary_key=True, autoincrement=True)
    warehouse_id = Column(BigInteger, ForeignKey('warehouse.id'), nullable=False)
    product_id = Column(BigInteger, ForeignKey('product.id'), nullable=False)
    quantity = Column(Numeric(12, 3), nullable=False, default=0)
    version = Column(Integer, nullable=False, default=1)
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    warehouse = relationship('Warehouse', back_populates='stocks')
    product = relationship('Product', back_populates='warehouse_stocks')

    __mapper_args__ = {'version_id_col': version}

    def __repr__(self):
        return f"<WarehouseStock(warehouse_id={self.warehouse_id}, product_id={self.product_id}, quantity={self.quantity})>"
