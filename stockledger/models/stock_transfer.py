"""Stock Transfer model."""
import enum
from datetime import datetime, timezone
from sqlalchemy import Column, BigInteger, String, Text, DateTime, ForeignKey, Enum, UniqueConstraint, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from stockledger.database import Base, IdType


class TransferStatus(enum.Enum):
    """Stock transfer status enum."""
    COMPLETED = 'completed'
    CANCELLED = 'cancelled'


class StockTransfer(Base):
    """Stock Transfer between two warehouses of the same tenant.

    Created together with its pair of movements per item; a cancelled
    transfer keeps its movements and gains compensating ones.
    """

    __tablename__ = 'stock_transfer'
    __table_args__ = (
        UniqueConstraint('tenant_id', 'number', name='uq_stock_transfer_tenant_number'),
        CheckConstraint('source_warehouse_id <> target_warehouse_id', name='ck_stock_transfer_distinct_warehouses'),
    )

    id = Column(IdType, primary_key=True, autoincrement=True)
    tenant_id = Column(BigInteger, ForeignKey('tenant.id'), nullable=False)
    number = Column(String(30), nullable=False)  # GT-<year>-<seq>
    source_warehouse_id = Column(BigInteger, ForeignKey('warehouse.id'), nullable=False)
    target_warehouse_id = Column(BigInteger, ForeignKey('warehouse.id'), nullable=False)
    status = Column(
        Enum(TransferStatus, name='transfer_status', values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=TransferStatus.COMPLETED,
    )
    responsible = Column(String(200), nullable=True)
    reason = Column(String(500), nullable=True)
    notes = Column(Text, nullable=True)
    date = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    # Relationships
    source_warehouse = relationship('Warehouse', foreign_keys=[source_warehouse_id])
    target_warehouse = relationship('Warehouse', foreign_keys=[target_warehouse_id])
    items = relationship('StockTransferItem', back_populates='transfer', cascade='all, delete-orphan')
    movements = relationship('StockMovement', back_populates='transfer', order_by='StockMovement.id')

    def __repr__(self):
        return f"<StockTransfer(id={self.id}, number='{self.number}', status={self.status.value})>"
